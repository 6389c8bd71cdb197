"""摄像头帧来源模块，封装 OpenCV VideoCapture"""

import logging
from typing import Optional

import cv2
import numpy as np

from models.errors import (
    CameraNotFoundError,
    FrameCaptureTransientError,
    FrameSourceLostError,
    classify_camera_error,
)

logger = logging.getLogger(__name__)


class CameraSource:
    """按需读取摄像头帧，支持 with 语句确保释放"""

    def __init__(
        self,
        camera_index: int = 0,
        width: int = 640,
        height: int = 480,
        max_read_failures: int = 5,
    ):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self.max_read_failures = max_read_failures
        self._cap = None
        self._has_produced = False
        self._read_failures = 0

    @classmethod
    def from_config(cls, config: dict) -> "CameraSource":
        return cls(
            camera_index=config["camera_index"],
            width=config["frame_width"],
            height=config["frame_height"],
            max_read_failures=config["max_read_failures"],
        )

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self) -> "CameraSource":
        """
        打开摄像头。

        Raises:
            CameraError 子类: 权限、设备不存在等失败原因
        """
        try:
            cap = cv2.VideoCapture(self.camera_index)
        except Exception as e:
            raise classify_camera_error(e) from e

        if not cap.isOpened():
            cap.release()
            raise CameraNotFoundError()

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        self._cap = cap
        self._has_produced = False
        self._read_failures = 0
        logger.info("摄像头 %s 已打开", self.camera_index)
        return self

    def read(self) -> Optional[np.ndarray]:
        """
        读取一帧。

        Returns:
            BGR 图像帧；摄像头尚未开始输出画面时返回 None

        Raises:
            FrameCaptureTransientError: 已有画面后单帧读取失败
            FrameSourceLostError: 摄像头已关闭或连续读取失败过多
        """
        if not self.is_open:
            raise FrameSourceLostError("摄像头已断开")

        ret, frame = self._cap.read()
        if ret and frame is not None:
            self._has_produced = True
            self._read_failures = 0
            return frame

        if not self._has_produced:
            return None

        self._read_failures += 1
        if self._read_failures >= self.max_read_failures:
            raise FrameSourceLostError(f"连续 {self._read_failures} 次读取失败")
        raise FrameCaptureTransientError("读取摄像头帧失败")

    def release(self):
        """释放摄像头资源"""
        if self._cap is not None:
            self._cap.release()
            logger.info("摄像头 %s 已释放", self.camera_index)
        self._cap = None

    def __enter__(self):
        if not self.is_open:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
