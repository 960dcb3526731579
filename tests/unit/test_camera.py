"""Tests for photorestorer.core.camera — scoped camera stream ownership.

The device is faked so no hardware or OpenCV is needed.  The central property
is that every exit path (capture, close, context exit) stops the stream
exactly once.
"""

from __future__ import annotations

import io
import sys
from unittest.mock import MagicMock

import pytest
from PIL import Image

from photorestorer.core.camera import (
    CAMERA_ACCESS_MESSAGE,
    CameraAccessError,
    CameraCapture,
    OpenCVCameraDevice,
)


class FakeStream:
    def __init__(self, fail_read: bool = False) -> None:
        self.stop_calls = 0
        self.fail_read = fail_read

    def read_frame(self) -> Image.Image:
        if self.fail_read:
            raise RuntimeError("no frame")
        return Image.new("RGB", (4, 3), (10, 20, 30))

    def stop(self) -> None:
        self.stop_calls += 1


class FakeDevice:
    def __init__(self, error: Exception | None = None, fail_read: bool = False) -> None:
        self.error = error
        self.fail_read = fail_read
        self.opened: list[str] = []
        self.streams: list[FakeStream] = []

    def open(self, facing_mode: str) -> FakeStream:
        if self.error is not None:
            raise self.error
        self.opened.append(facing_mode)
        stream = FakeStream(self.fail_read)
        self.streams.append(stream)
        return stream


class TestCameraLifecycle:
    def test_capture_returns_png_and_releases(self):
        device = FakeDevice()
        with CameraCapture(device) as camera:
            filename, data = camera.capture()
            assert not camera.is_streaming
        assert filename.startswith("capture-") and filename.endswith(".png")
        assert Image.open(io.BytesIO(data)).format == "PNG"
        assert device.streams[0].stop_calls == 1

    def test_close_then_exit_releases_once(self):
        device = FakeDevice()
        with CameraCapture(device) as camera:
            camera.close()
            camera.close()
        assert device.streams[0].stop_calls == 1

    def test_exit_without_capture_releases(self):
        device = FakeDevice()
        with pytest.raises(KeyError):
            with CameraCapture(device):
                raise KeyError("teardown")
        assert device.streams[0].stop_calls == 1

    def test_default_facing_mode_is_environment(self):
        device = FakeDevice()
        with CameraCapture(device):
            pass
        assert device.opened == ["environment"]

    def test_switch_camera_releases_and_reopens(self):
        device = FakeDevice()
        with CameraCapture(device) as camera:
            camera.switch_camera()
            assert camera.facing_mode == "user"
        assert device.opened == ["environment", "user"]
        assert [s.stop_calls for s in device.streams] == [1, 1]

    def test_unknown_facing_mode(self):
        with pytest.raises(ValueError):
            CameraCapture(FakeDevice(), "sideways")


class TestCameraErrors:
    def test_permission_denied_is_recoverable(self):
        device = FakeDevice(error=PermissionError("denied"))
        camera = CameraCapture(device)
        with pytest.raises(CameraAccessError, match="permissions"):
            camera.start()
        assert camera.error == CAMERA_ACCESS_MESSAGE

        device.error = None
        camera.start()
        assert camera.is_streaming
        assert camera.error is None
        camera.close()

    def test_capture_without_stream(self):
        with pytest.raises(CameraAccessError):
            CameraCapture(FakeDevice()).capture()

    def test_frame_failure_releases_stream(self):
        device = FakeDevice(fail_read=True)
        with CameraCapture(device) as camera:
            with pytest.raises(CameraAccessError):
                camera.capture()
        assert device.streams[0].stop_calls == 1


class TestOpenCVCameraDevice:
    def test_maps_facing_mode_to_index(self, monkeypatch):
        mock_cv2 = MagicMock()
        mock_cv2.VideoCapture.return_value.isOpened.return_value = True
        monkeypatch.setitem(sys.modules, "cv2", mock_cv2)

        device = OpenCVCameraDevice({"environment": 0, "user": 2})
        stream = device.open("user")
        mock_cv2.VideoCapture.assert_called_once_with(2)

        stream.stop()
        mock_cv2.VideoCapture.return_value.release.assert_called_once()

    def test_unopened_device_raises(self, monkeypatch):
        mock_cv2 = MagicMock()
        mock_cv2.VideoCapture.return_value.isOpened.return_value = False
        monkeypatch.setitem(sys.modules, "cv2", mock_cv2)

        with pytest.raises(CameraAccessError):
            OpenCVCameraDevice({"environment": 0}).open("environment")
        mock_cv2.VideoCapture.return_value.release.assert_called_once()
