"""CameraSource 与摄像头错误归类测试"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from capture.camera_source import CameraSource
from config import DEFAULTS
from models.errors import (
    CameraNotFoundError,
    CameraPermissionError,
    FrameCaptureTransientError,
    FrameSourceLostError,
    InsecureContextError,
    UnknownCameraError,
    classify_camera_error,
)

PATCH_TARGET = "capture.camera_source.cv2.VideoCapture"
FRAME = np.zeros((48, 64, 3), dtype=np.uint8)


def _mock_cap(reads, opened=True):
    cap = MagicMock()
    cap.isOpened.return_value = opened
    cap.read.side_effect = list(reads)
    return cap


class TestOpen:
    @patch(PATCH_TARGET)
    def test_open_sets_resolution(self, mock_vc):
        cap = _mock_cap([])
        mock_vc.return_value = cap

        source = CameraSource(camera_index=1, width=320, height=240).open()

        mock_vc.assert_called_once_with(1)
        assert source.is_open
        assert cap.set.call_count == 2

    @patch(PATCH_TARGET)
    def test_not_opened_raises_not_found(self, mock_vc):
        cap = _mock_cap([], opened=False)
        mock_vc.return_value = cap

        with pytest.raises(CameraNotFoundError):
            CameraSource().open()
        cap.release.assert_called_once()

    @patch(PATCH_TARGET, side_effect=PermissionError("denied"))
    def test_backend_exception_classified(self, mock_vc):
        with pytest.raises(CameraPermissionError):
            CameraSource().open()

    def test_from_config(self):
        source = CameraSource.from_config(dict(DEFAULTS, camera_index=2, max_read_failures=3))
        assert source.camera_index == 2
        assert source.width == 640
        assert source.max_read_failures == 3


class TestRead:
    @patch(PATCH_TARGET)
    def test_read_returns_frame(self, mock_vc):
        mock_vc.return_value = _mock_cap([(True, FRAME)])
        source = CameraSource().open()
        assert source.read() is FRAME

    @patch(PATCH_TARGET)
    def test_none_before_first_frame(self, mock_vc):
        mock_vc.return_value = _mock_cap([(False, None), (False, None), (True, FRAME)])
        source = CameraSource(max_read_failures=1).open()
        assert source.read() is None
        assert source.read() is None
        assert source.read() is FRAME

    @patch(PATCH_TARGET)
    def test_transient_then_lost(self, mock_vc):
        mock_vc.return_value = _mock_cap([(True, FRAME)] + [(False, None)] * 3)
        source = CameraSource(max_read_failures=3).open()
        source.read()

        with pytest.raises(FrameCaptureTransientError):
            source.read()
        with pytest.raises(FrameCaptureTransientError):
            source.read()
        with pytest.raises(FrameSourceLostError):
            source.read()

    @patch(PATCH_TARGET)
    def test_success_resets_failure_count(self, mock_vc):
        reads = [(True, FRAME), (False, None), (True, FRAME), (False, None)]
        mock_vc.return_value = _mock_cap(reads)
        source = CameraSource(max_read_failures=2).open()
        source.read()
        with pytest.raises(FrameCaptureTransientError):
            source.read()
        source.read()
        with pytest.raises(FrameCaptureTransientError):
            source.read()

    def test_read_without_open_raises_lost(self):
        with pytest.raises(FrameSourceLostError):
            CameraSource().read()

    @patch(PATCH_TARGET)
    def test_context_manager_releases(self, mock_vc):
        cap = _mock_cap([(True, FRAME)])
        mock_vc.return_value = cap
        with CameraSource() as source:
            assert source.read() is FRAME
        cap.release.assert_called_once()
        assert not source.is_open


class TestClassifyCameraError:
    @pytest.mark.parametrize(
        "exc, expected",
        [
            (PermissionError("x"), CameraPermissionError),
            (FileNotFoundError("x"), CameraNotFoundError),
            (RuntimeError("NotAllowedError: Permission denied"), CameraPermissionError),
            (RuntimeError("getUserMedia requires a secure context"), InsecureContextError),
            (RuntimeError("VIDEOIO: can't open camera by index"), CameraNotFoundError),
            (OSError("No such device"), CameraNotFoundError),
            (RuntimeError("something odd"), UnknownCameraError),
        ],
    )
    def test_classification(self, exc, expected):
        assert type(classify_camera_error(exc)) is expected

    def test_unknown_keeps_message(self):
        assert classify_camera_error(RuntimeError("something odd")).reason == "something odd"

    def test_unknown_without_message_uses_default(self):
        assert classify_camera_error(RuntimeError()).reason == UnknownCameraError.reason

    def test_camera_error_passed_through(self):
        error = InsecureContextError()
        assert classify_camera_error(error) is error
