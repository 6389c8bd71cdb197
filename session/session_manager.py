"""会话生命周期与干预状态机"""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from capture.camera_source import CameraSource
from capture.capture_loop import CaptureLoop
from models.data_models import FrameResult, ProcessorState, SessionRuntimeState, SessionSummary
from models.errors import CameraError, ModelInitError, classify_camera_error

logger = logging.getLogger(__name__)

IDLE = "idle"
TRACKING = "tracking"


class SessionListener:
    """界面边界事件，默认全部为空操作，按需覆盖。"""

    def on_loaded(self):
        pass

    def on_tracking_state_changed(self, is_tracking: bool):
        pass

    def on_frame_result(self, eye_fatigue: bool, stress_level: int):
        pass

    def on_intervention_triggered(self):
        pass

    def on_camera_error(self, reason: str):
        pass


class SessionManager:
    """管理追踪的开始/停止、会话计数、阈值干预和历史记录写入。"""

    def __init__(
        self,
        worker,
        history_store,
        camera_factory: Callable[[], CameraSource] = CameraSource,
        listener: Optional[SessionListener] = None,
        clock: Callable[[], datetime] = datetime.now,
        critical_stress_threshold: int = 15,
        capture_interval: float = 2.0,
    ):
        self.worker = worker
        self.history_store = history_store
        self.listener = listener or SessionListener()
        self.critical_stress_threshold = critical_stress_threshold
        self.capture_interval = capture_interval
        self._camera_factory = camera_factory
        self._clock = clock
        self._lock = threading.RLock()

        self.state = IDLE
        self.runtime = None
        self.processor_state = ProcessorState()
        self.stress_level = 0
        self.eye_fatigue = False
        self.camera_error = None
        self._camera = None
        self._loop = None

    @property
    def is_tracking(self) -> bool:
        return self.state == TRACKING

    @property
    def intervention_fired(self) -> bool:
        return self.runtime is not None and self.runtime.intervention_fired

    @property
    def loop(self) -> Optional[CaptureLoop]:
        return self._loop

    def handle_worker_init(self, response: dict):
        """推理线程初始化应答"""
        if response.get("type") == "INIT_SUCCESS":
            logger.info("模型已就绪")
            self.listener.on_loaded()
        else:
            logger.error("模型初始化失败: %s", response.get("error"))

    def start(self) -> bool:
        """
        开始一次追踪会话。

        Returns:
            是否成功进入追踪状态

        Raises:
            ModelInitError: 模型初始化已失败
        """
        with self._lock:
            if self.state == TRACKING:
                logger.debug("已在追踪中，忽略 start()")
                return False

            self.camera_error = None
            if self.worker.init_error is not None:
                raise ModelInitError(self.worker.init_error)
            if not self.worker.is_ready:
                logger.warning("模型尚未就绪，无法开始追踪")
                return False

            try:
                camera = self._camera_factory()
                camera.open()
            except CameraError as e:
                return self._report_camera_error(e)
            except Exception as e:
                return self._report_camera_error(classify_camera_error(e))

            self._camera = camera
            self.runtime = SessionRuntimeState(started_at=self._clock())
            self.processor_state = ProcessorState()
            self.stress_level = 0
            self.eye_fatigue = False
            self.state = TRACKING

            self._loop = CaptureLoop(
                source=camera,
                worker=self.worker,
                get_state=self._current_processor_state,
                on_result=self.handle_frame_result,
                on_source_lost=self._handle_source_lost,
                interval=self.capture_interval,
            )
            self._loop.start()

        logger.info("追踪会话开始")
        self.listener.on_tracking_state_changed(True)
        return True

    def _report_camera_error(self, error: CameraError) -> bool:
        self.camera_error = error.reason
        logger.error("摄像头错误: %s", error.reason)
        self.listener.on_camera_error(error.reason)
        return False

    def _current_processor_state(self) -> ProcessorState:
        with self._lock:
            return self.processor_state

    def handle_frame_result(self, result: FrameResult, processor_state: ProcessorState):
        """处理推理线程返回的一帧结果"""
        with self._lock:
            if self.state != TRACKING:
                return

            self.processor_state = processor_state
            self.stress_level = result.stress_level
            self.eye_fatigue = result.eye_fatigue

            runtime = self.runtime
            if result.eye_fatigue:
                runtime.eye_fatigue_warnings += 1
            runtime.peak_stress = max(runtime.peak_stress, result.stress_level)

            self.listener.on_frame_result(result.eye_fatigue, result.stress_level)

            trigger = result.stress_level >= self.critical_stress_threshold and not runtime.intervention_fired
            if trigger:
                runtime.intervention_fired = True

        if trigger:
            logger.warning("压力达到临界值 %d，触发干预", self.critical_stress_threshold)
            self.stop()
            self.listener.on_intervention_triggered()

    def _handle_source_lost(self):
        logger.error("摄像头丢失，强制结束会话")
        self.stop()

    def stop(self) -> Optional[SessionSummary]:
        """
        结束当前会话并写入历史记录。

        Returns:
            本次会话摘要；未在追踪时返回 None
        """
        with self._lock:
            if self.state != TRACKING:
                return None

            loop, camera = self._loop, self._camera
            self._loop = None
            self._camera = None

            now = self._clock()
            runtime = self.runtime
            duration = max(0, int((now - runtime.started_at).total_seconds()))
            summary = SessionSummary(
                timestamp=now,
                duration_seconds=duration,
                peak_stress=runtime.peak_stress,
                eye_fatigue_warning_count=runtime.eye_fatigue_warnings,
            )

            self.stress_level = 0
            self.eye_fatigue = False
            self.state = IDLE

        # 采集线程可能正在回调 stop()，join 时不得持有 self._lock
        try:
            if loop is not None:
                loop.stop()
        finally:
            if camera is not None:
                camera.release()

        session_id = self.history_store.append(summary)
        summary = replace(summary, id=session_id)

        logger.info(
            "追踪会话结束: 时长 %ds, 峰值压力 %d, 眼疲劳警告 %d 次",
            summary.duration_seconds, summary.peak_stress, summary.eye_fatigue_warning_count,
        )
        self.listener.on_tracking_state_changed(False)
        return summary
