"""后台推理线程：通过消息队列接收帧，执行人脸检测与压力计算"""

import logging
import queue
import threading
from typing import Callable, Optional

from detectors.face_detector import FaceDetector, extract_eyes
from evaluators.stress_evaluator import StressEvaluator
from models.errors import ModelInitError

logger = logging.getLogger(__name__)

# 消息类型
INIT = "INIT"
PROCESS_FRAME = "PROCESS_FRAME"
INIT_SUCCESS = "INIT_SUCCESS"
INIT_ERROR = "INIT_ERROR"
RESULTS = "RESULTS"
FRAME_ERROR = "FRAME_ERROR"
SKIPPED = "SKIPPED"

_SHUTDOWN = object()


class CVWorker:
    """单线程 FIFO 推理单元。

    所有请求按到达顺序逐个处理；每个请求带一个 reply 回调，
    回调在工作线程中执行。帧的所有权随消息转移，处理完即丢弃。
    """

    def __init__(
        self,
        detector_factory: Callable[[], FaceDetector] = FaceDetector,
        evaluator: Optional[StressEvaluator] = None,
    ):
        self._detector_factory = detector_factory
        self._detector = None
        self.evaluator = evaluator or StressEvaluator()
        self._inbox = queue.Queue()
        self._thread = None
        self._ready = threading.Event()
        self._init_done = threading.Event()
        self.init_error = None
        self._init_callbacks = []
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, on_init: Optional[Callable[[dict], None]] = None) -> None:
        """启动工作线程并发送初始化消息。"""
        immediate = None
        with self._lock:
            if on_init is not None:
                if self.is_ready or self.init_error is not None:
                    immediate = on_init
                else:
                    self._init_callbacks.append(on_init)
            if not self.is_running:
                self._thread = threading.Thread(target=self._run, name="cv-worker", daemon=True)
                self._thread.start()
                self._inbox.put({"type": INIT})
        if immediate is not None:
            immediate(self._init_reply())

    def retry_init(self, on_init: Optional[Callable[[dict], None]] = None) -> None:
        """初始化失败后由外部显式重试"""
        with self._lock:
            if self.is_ready:
                return
            self.init_error = None
            self._init_done.clear()
            if on_init is not None:
                self._init_callbacks.append(on_init)
            if not self.is_running:
                self._thread = threading.Thread(target=self._run, name="cv-worker", daemon=True)
                self._thread.start()
            self._inbox.put({"type": INIT})

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """等待初始化完成（成功或失败），返回模型是否就绪"""
        self._init_done.wait(timeout)
        return self.is_ready

    def submit(self, frame, state, reply: Callable[[dict], None]) -> bool:
        """
        提交一帧。

        Returns:
            模型尚未就绪时返回 False（请求被忽略），否则 True
        """
        if not self.is_ready:
            return False
        self._inbox.put({"type": PROCESS_FRAME, "payload": {"frame": frame, "state": state}, "reply": reply})
        return True

    def terminate(self, timeout: float = 2.0) -> None:
        """停止工作线程并释放模型"""
        if self.is_running:
            self._inbox.put(_SHUTDOWN)
            self._thread.join(timeout=timeout)
        self._thread = None
        if self._detector is not None:
            self._detector.close()
            self._detector = None
        self._ready.clear()
        logger.info("推理线程已停止")

    def _run(self):
        while True:
            message = self._inbox.get()
            if message is _SHUTDOWN:
                break
            self.handle(message)

    def handle(self, message: dict) -> dict:
        """处理单条消息并返回应答，同时调用消息附带的 reply 回调。"""
        kind = message.get("type")
        if kind == INIT:
            response = self._handle_init()
            with self._lock:
                callbacks, self._init_callbacks = self._init_callbacks, []
            for callback in callbacks:
                callback(response)
            self._init_done.set()
            return response

        if kind == PROCESS_FRAME:
            response = self._handle_frame(message.pop("payload"))
            reply = message.get("reply")
            if reply is not None:
                reply(response)
            return response

        logger.warning("未知消息类型: %s", kind)
        return {"type": FRAME_ERROR, "error": f"未知消息类型: {kind}"}

    def _handle_init(self) -> dict:
        try:
            detector = self._detector_factory()
            detector.initialize()
        except ModelInitError as e:
            self.init_error = str(e)
        except Exception as e:
            self.init_error = f"FaceMesh 模型加载失败: {e}"
        else:
            self._detector = detector
            self.init_error = None
            self._ready.set()

        if self.init_error is not None:
            logger.error("模型初始化失败: %s", self.init_error)
        return self._init_reply()

    def _init_reply(self) -> dict:
        if self.is_ready:
            return {"type": INIT_SUCCESS}
        return {"type": INIT_ERROR, "error": self.init_error}

    def _handle_frame(self, payload: dict) -> dict:
        frame = payload.pop("frame")
        state = payload["state"]

        if self._detector is None:
            return {"type": SKIPPED}

        try:
            faces = self._detector.detect_faces(frame)
            result, new_state = self.evaluator.process_frame(extract_eyes(faces), state)
        except Exception as e:
            logger.warning("处理帧失败: %s", e)
            return {"type": FRAME_ERROR, "error": str(e)}
        finally:
            del frame

        return {"type": RESULTS, "payload": {"result": result, "state": new_state}}


# 进程内共享的推理单元
_shared_worker = None
_shared_lock = threading.Lock()


def get_shared_worker(evaluator: Optional[StressEvaluator] = None) -> CVWorker:
    """首次调用时创建并启动共享推理线程"""
    global _shared_worker
    with _shared_lock:
        if _shared_worker is None:
            _shared_worker = CVWorker(evaluator=evaluator)
            _shared_worker.start()
        return _shared_worker


def shutdown_shared_worker() -> None:
    """关闭共享推理线程"""
    global _shared_worker
    with _shared_lock:
        if _shared_worker is not None:
            _shared_worker.terminate()
            _shared_worker = None
