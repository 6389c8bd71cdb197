"""核心数据模型定义"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

Keypoint = Tuple[float, float]


@dataclass
class FaceLandmarks:
    """单张人脸的关键点（仅取第一张检测到的人脸）"""
    left_eye: List[Keypoint]
    right_eye: List[Keypoint]
    all_landmarks: List[Keypoint] = field(default_factory=list)


@dataclass(frozen=True)
class ProcessorState:
    """压力信号处理器状态，每次会话开始时重置"""
    consecutive_low_ear_frames: int = 0
    stress_level: float = 0.0


@dataclass(frozen=True)
class FrameResult:
    """单帧处理结果"""
    eye_fatigue: bool
    stress_level: int


@dataclass(frozen=True)
class SessionSummary:
    """已完成会话的摘要，持久化后不可修改"""
    timestamp: datetime
    duration_seconds: int
    peak_stress: int
    eye_fatigue_warning_count: int
    id: Optional[int] = None


@dataclass
class SessionRuntimeState:
    """当前会话的运行时计数器"""
    started_at: datetime
    eye_fatigue_warnings: int = 0
    peak_stress: int = 0
    intervention_fired: bool = False
