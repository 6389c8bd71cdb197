"""眼睛几何计算模块，负责由 6 个眼部轮廓点计算 EAR 值"""

import math
from typing import Sequence, Tuple

EYE_CONTOUR_SIZE = 6


def calculate_ear(eye_points: Sequence[Tuple[float, float]]) -> float:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p1-p5| + |p2-p4|) / (2 * |p0-p3|)

    Args:
        eye_points: 6 个眼睛轮廓关键点，顺序为
            [外眼角, 上眼睑1, 上眼睑2, 内眼角, 下眼睑1, 下眼睑2]

    Returns:
        EAR 值；关键点不足 6 个或分母为零时返回 0.0
    """
    if len(eye_points) < EYE_CONTOUR_SIZE:
        return 0.0

    p0, p1, p2, p3, p4, p5 = eye_points[:EYE_CONTOUR_SIZE]

    vertical_1 = math.dist(p1, p5)
    vertical_2 = math.dist(p2, p4)
    horizontal = math.dist(p0, p3)

    if horizontal == 0.0:
        return 0.0

    return (vertical_1 + vertical_2) / (2.0 * horizontal)


def is_valid_contour(eye_points: Sequence[Tuple[float, float]]) -> bool:
    """判断轮廓能否得到有意义的 EAR（点数足够且眼宽不为零）"""
    if len(eye_points) < EYE_CONTOUR_SIZE:
        return False
    return math.dist(eye_points[0], eye_points[3]) > 0.0


def average_ear(left_eye, right_eye) -> float:
    """双眼 EAR 平均值"""
    return (calculate_ear(left_eye) + calculate_ear(right_eye)) / 2.0
