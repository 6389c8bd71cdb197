"""阈值与运行参数配置"""

import json
import logging

logger = logging.getLogger(__name__)

# 默认配置
DEFAULTS = {
    "ear_threshold": 0.22,
    "min_burst_frames": 3,
    "burst_weight": 0.5,
    "burst_cap": 5.0,
    "stress_decay": 0.1,
    "critical_stress_threshold": 15,
    "capture_interval": 2.0,
    "camera_index": 0,
    "frame_width": 640,
    "frame_height": 480,
    "max_read_failures": 5,
    "history_db_path": "data/history.db",
}


def load_config(config_path=None):
    """从 JSON 配置文件加载参数，缺失字段使用默认值。"""
    config = dict(DEFAULTS)

    if config_path is None:
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认配置", config_path)
        return config
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认配置", config_path)
        return config

    # 用配置文件中的值覆盖默认值
    for key in DEFAULTS:
        if key in data and data[key] is not None:
            config[key] = data[key]

    return config
