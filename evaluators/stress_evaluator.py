"""压力信号处理模块：将逐帧 EAR 累积为带衰减的压力分数"""

import logging
import math
from dataclasses import replace
from typing import Optional, Tuple

from detectors.eye_analyzer import average_ear, is_valid_contour
from models.data_models import FaceLandmarks, FrameResult, ProcessorState

logger = logging.getLogger(__name__)

# 浮点累减误差容差，避免 4.0 被记为 3.999...
_FLOOR_EPSILON = 1e-9


class StressEvaluator:
    """根据双眼 EAR 维护连续闭眼帧计数与压力分数。

    状态不保存在实例上，由调用方传入 ProcessorState 并接收新的状态。
    """

    def __init__(
        self,
        ear_threshold: float = 0.22,
        min_burst_frames: int = 3,
        burst_weight: float = 0.5,
        burst_cap: float = 5.0,
        stress_decay: float = 0.1,
    ):
        self.ear_threshold = ear_threshold
        self.min_burst_frames = min_burst_frames
        self.burst_weight = burst_weight
        self.burst_cap = burst_cap
        self.stress_decay = stress_decay

    @classmethod
    def from_config(cls, config: dict) -> "StressEvaluator":
        return cls(
            ear_threshold=config["ear_threshold"],
            min_burst_frames=config["min_burst_frames"],
            burst_weight=config["burst_weight"],
            burst_cap=config["burst_cap"],
            stress_decay=config["stress_decay"],
        )

    def burst_contribution(self, frame_count: int) -> float:
        """一次连续闭眼结束时增加的压力值，单次最多 burst_cap"""
        if frame_count < self.min_burst_frames:
            return 0.0
        return min(frame_count * self.burst_weight, self.burst_cap)

    def process_frame(
        self,
        observation: Optional[FaceLandmarks],
        state: ProcessorState,
    ) -> Tuple[FrameResult, ProcessorState]:
        """
        处理一帧观测。

        Args:
            observation: 第一张人脸的双眼轮廓；None 表示未检测到人脸
            state: 当前会话的处理器状态

        Returns:
            (FrameResult, 新的 ProcessorState)
        """
        if observation is None or not (
            is_valid_contour(observation.left_eye) and is_valid_contour(observation.right_eye)
        ):
            # 无人脸：既不累积也不衰减
            return FrameResult(eye_fatigue=False, stress_level=self.report(state)), state

        avg_ear = average_ear(observation.left_eye, observation.right_eye)

        if avg_ear < self.ear_threshold:
            new_state = replace(
                state, consecutive_low_ear_frames=state.consecutive_low_ear_frames + 1
            )
            logger.debug("低 EAR 帧 %.3f，连续 %d 帧", avg_ear, new_state.consecutive_low_ear_frames)
            return FrameResult(eye_fatigue=True, stress_level=self.report(new_state)), new_state

        # 睁眼：先衰减已有压力，再计入刚结束的连续闭眼
        # 4 帧闭眼 + 1 帧睁眼报告 2；先累加后衰减则为 1.9，报告 1
        stress = max(0.0, state.stress_level - self.stress_decay)
        contribution = self.burst_contribution(state.consecutive_low_ear_frames)
        if contribution > 0:
            logger.debug(
                "连续闭眼 %d 帧结束，压力 +%.1f", state.consecutive_low_ear_frames, contribution
            )
        stress += contribution

        new_state = ProcessorState(consecutive_low_ear_frames=0, stress_level=stress)
        return FrameResult(eye_fatigue=False, stress_level=self.report(new_state)), new_state

    @staticmethod
    def report(state: ProcessorState) -> int:
        """对外报告的压力值为内部累积值向下取整"""
        return max(0, math.floor(state.stress_level + _FLOOR_EPSILON))
