"""采集循环模块：定时取帧并交给推理线程处理"""

import logging
import threading
from typing import Callable, Optional

from models.data_models import FrameResult, ProcessorState
from models.errors import FrameCaptureTransientError, FrameSourceLostError
from workers.cv_worker import FRAME_ERROR, RESULTS

logger = logging.getLogger(__name__)


class CaptureLoop:
    """按固定间隔采集一帧；上一帧结果未返回时丢弃本次采集，不排队。"""

    def __init__(
        self,
        source,
        worker,
        get_state: Callable[[], ProcessorState],
        on_result: Callable[[FrameResult, ProcessorState], None],
        on_source_lost: Optional[Callable[[], None]] = None,
        interval: float = 2.0,
    ):
        self.source = source
        self.worker = worker
        self.interval = interval
        self._get_state = get_state
        self._on_result = on_result
        self._on_source_lost = on_source_lost
        self._stop_event = threading.Event()
        self._busy = False
        self._busy_lock = threading.Lock()
        self._thread = None
        self.frames_submitted = 0
        self.frames_dropped = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_busy(self) -> bool:
        return self._busy

    def start(self):
        """启动定时线程"""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="capture-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0):
        """停止定时线程；停止后到达的结果全部丢弃"""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def _run(self):
        while not self._stop_event.wait(self.interval):
            self.tick()

    def tick(self) -> bool:
        """
        采集并提交一帧。

        Returns:
            本次是否向推理线程提交了帧
        """
        if self.stopped or not self.worker.is_ready:
            return False

        with self._busy_lock:
            if self._busy:
                self.frames_dropped += 1
                logger.debug("上一帧尚未处理完成，丢弃本次采集")
                return False
            self._busy = True

        submitted = False
        try:
            frame = self.source.read()
            if frame is not None:
                submitted = self.worker.submit(frame, self._get_state(), self._on_reply)
        except FrameSourceLostError as e:
            logger.error("帧来源丢失: %s", e)
            self._stop_event.set()
            if self._on_source_lost is not None:
                self._on_source_lost()
        except FrameCaptureTransientError as e:
            logger.warning("采集帧失败，跳过: %s", e)
        finally:
            if not submitted:
                self._release_busy()

        if submitted:
            self.frames_submitted += 1
        return submitted

    def _release_busy(self):
        with self._busy_lock:
            self._busy = False

    def _on_reply(self, response: dict):
        # 结果交付（新状态写回）之后才允许下一次采集
        try:
            if self.stopped:
                return

            kind = response.get("type")
            if kind == RESULTS:
                payload = response["payload"]
                self._on_result(payload["result"], payload["state"])
            elif kind == FRAME_ERROR:
                logger.warning("推理失败，跳过该帧: %s", response.get("error"))
        finally:
            self._release_busy()
