"""人脸关键点检测模块，基于 MediaPipe FaceMesh"""

import logging
from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from models.data_models import FaceLandmarks, Keypoint
from models.errors import ModelInitError

logger = logging.getLogger(__name__)

# 关键点索引常量（468 点人脸网格）
LEFT_EYE_INDICES = [33, 160, 158, 133, 153, 144]
RIGHT_EYE_INDICES = [362, 385, 387, 263, 373, 380]


def _create_face_mesh(**kwargs):
    """创建 MediaPipe FaceMesh 实例"""
    return mp.solutions.face_mesh.FaceMesh(**kwargs)


class FaceDetector:
    """使用 MediaPipe FaceMesh 检测人脸关键点"""

    def __init__(
        self,
        max_num_faces: int = 1,
        min_detection_confidence: float = 0.5,
        refine_landmarks: bool = True,
    ):
        """保存模型参数，模型本身在 initialize() 中加载"""
        self.max_num_faces = max_num_faces
        self.min_detection_confidence = min_detection_confidence
        self.refine_landmarks = refine_landmarks
        self._face_mesh = None

    @property
    def is_ready(self) -> bool:
        return self._face_mesh is not None

    def initialize(self) -> None:
        """
        加载 FaceMesh 模型。

        Raises:
            ModelInitError: 模型加载失败时抛出，调用方负责上报
        """
        if self._face_mesh is not None:
            return
        try:
            self._face_mesh = _create_face_mesh(
                max_num_faces=self.max_num_faces,
                min_detection_confidence=self.min_detection_confidence,
                min_tracking_confidence=0.5,
                refine_landmarks=self.refine_landmarks,
            )
        except Exception as e:
            raise ModelInitError(f"FaceMesh 模型加载失败: {e}") from e
        logger.info("FaceMesh 模型加载完成")

    def detect_faces(self, frame: np.ndarray) -> List[List[Keypoint]]:
        """
        检测单帧图像中的所有人脸关键点。

        Args:
            frame: BGR 格式的 OpenCV 图像帧

        Returns:
            每张人脸的像素坐标关键点列表；未检测到人脸时返回空列表
        """
        if self._face_mesh is None:
            raise ModelInitError("FaceMesh 模型尚未初始化")

        h, w = frame.shape[:2]

        # BGR -> RGB
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb_frame.flags.writeable = False

        results = self._face_mesh.process(rgb_frame)

        if not results.multi_face_landmarks:
            return []

        # 将归一化坐标转换为像素坐标
        return [
            [(lm.x * w, lm.y * h) for lm in face.landmark]
            for face in results.multi_face_landmarks
        ]

    def close(self):
        """释放 MediaPipe 资源"""
        if self._face_mesh is not None:
            self._face_mesh.close()
            self._face_mesh = None


def extract_eyes(faces: List[List[Keypoint]]) -> Optional[FaceLandmarks]:
    """
    从检测结果中取第一张人脸的双眼轮廓，多余人脸忽略。

    Returns:
        FaceLandmarks；无人脸或关键点不足时返回 None
    """
    if not faces:
        return None

    all_landmarks = faces[0]
    needed = max(LEFT_EYE_INDICES + RIGHT_EYE_INDICES)
    if len(all_landmarks) <= needed:
        logger.debug("关键点数量不足: %d", len(all_landmarks))
        return None

    return FaceLandmarks(
        left_eye=[all_landmarks[i] for i in LEFT_EYE_INDICES],
        right_eye=[all_landmarks[i] for i in RIGHT_EYE_INDICES],
        all_landmarks=all_landmarks,
    )
