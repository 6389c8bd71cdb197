"""追踪系统异常类型"""


class TrackerError(Exception):
    """所有追踪相关异常的基类"""


class ModelInitError(TrackerError):
    """人脸关键点模型初始化失败，不会自动重试"""


class CameraError(TrackerError):
    """摄像头获取失败的基类，reason 为可直接展示给用户的文字"""

    reason = "无法访问摄像头"

    def __init__(self, reason=None):
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)


class CameraPermissionError(CameraError):
    reason = "摄像头权限被拒绝，请在系统设置中允许访问摄像头"


class CameraNotFoundError(CameraError):
    reason = "未找到可用摄像头，请确认设备未被其他程序占用"


class InsecureContextError(CameraError):
    reason = "摄像头访问需要安全上下文 (HTTPS 或 localhost)"


class UnknownCameraError(CameraError):
    reason = "无法访问摄像头"


class FrameCaptureTransientError(TrackerError):
    """单帧获取或处理失败，跳过该帧即可"""


class FrameSourceLostError(TrackerError):
    """帧来源不可恢复地丢失，需要强制结束会话"""


def classify_camera_error(exc: Exception) -> CameraError:
    """
    根据底层异常信息归类摄像头错误。

    Args:
        exc: OpenCV 或系统层抛出的异常

    Returns:
        对应的 CameraError 子类实例
    """
    if isinstance(exc, CameraError):
        return exc
    if isinstance(exc, PermissionError):
        return CameraPermissionError()
    if isinstance(exc, FileNotFoundError):
        return CameraNotFoundError()

    message = str(exc).lower()
    if "permission" in message or "denied" in message or "not allowed" in message:
        return CameraPermissionError()
    if "secure context" in message:
        return InsecureContextError()
    if "not found" in message or "no such device" in message or "can't open camera" in message:
        return CameraNotFoundError()
    return UnknownCameraError(str(exc) or None)
