"""Live camera capture with scoped stream ownership.

A :class:`CameraCapture` owns at most one live :class:`VideoStream`.  The
stream is a hardware-held resource, so it is released on every exit path:

- after a successful :meth:`CameraCapture.capture`
- on an explicit :meth:`CameraCapture.close`
- when the ``with`` block exits (teardown)

Each path goes through the same internal release, which stops the stream at
most once.

Devices are pluggable through the :class:`CameraDevice` protocol.
:class:`OpenCVCameraDevice` is the production implementation; OpenCV is
imported lazily so the rest of the package works without the ``camera``
extra installed.

Usage
-----
::

    device = OpenCVCameraDevice({"environment": 0, "user": 1})
    with CameraCapture(device) as camera:
        filename, png_bytes = camera.capture()
"""

from __future__ import annotations

import io
import logging
import time
from typing import Literal, Protocol

from PIL import Image

logger = logging.getLogger(__name__)

FacingMode = Literal["user", "environment"]
FACING_MODES: tuple[str, ...] = ("user", "environment")

CAMERA_ACCESS_MESSAGE = "Could not access the camera. Please ensure permissions are granted."


class CameraAccessError(Exception):
    """The camera is unavailable or access was denied.

    Recoverable: the user can fix permissions and try again.
    """


class VideoStream(Protocol):
    def read_frame(self) -> Image.Image: ...

    def stop(self) -> None: ...


class CameraDevice(Protocol):
    def open(self, facing_mode: str) -> VideoStream: ...


class CameraCapture:
    """Acquire a camera stream, snapshot one frame, and release the stream.

    Args:
        device: Device used to open video streams.
        facing_mode: Preferred camera orientation.
    """

    def __init__(self, device: CameraDevice, facing_mode: str = "environment") -> None:
        if facing_mode not in FACING_MODES:
            raise ValueError(f"Unknown facing mode: {facing_mode!r}")
        self.device = device
        self.facing_mode = facing_mode
        self.error: str | None = None
        self._stream: VideoStream | None = None

    @property
    def is_streaming(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        """Open a stream for the current facing mode.

        Any existing stream is released first.

        Raises:
            CameraAccessError: If the device cannot be opened
        """
        self._release()
        self.error = None
        try:
            self._stream = self.device.open(self.facing_mode)
        except CameraAccessError as e:
            self.error = str(e) or CAMERA_ACCESS_MESSAGE
            logger.warning("Camera access failed (%s): %s", self.facing_mode, e)
            raise CameraAccessError(self.error) from e
        except (OSError, RuntimeError) as e:
            self.error = CAMERA_ACCESS_MESSAGE
            logger.warning("Camera access failed (%s): %s", self.facing_mode, e)
            raise CameraAccessError(CAMERA_ACCESS_MESSAGE) from e
        logger.info("Camera stream opened (%s)", self.facing_mode)

    def switch_camera(self) -> None:
        """Flip between the front and rear camera and reopen the stream."""
        self.facing_mode = "user" if self.facing_mode == "environment" else "environment"
        self.start()

    def capture(self) -> tuple[str, bytes]:
        """Snapshot the current frame as PNG and release the stream.

        Returns:
            Tuple of (filename, png_bytes)

        Raises:
            CameraAccessError: If no stream is open or the frame read fails
        """
        if self._stream is None:
            raise CameraAccessError(self.error or CAMERA_ACCESS_MESSAGE)

        try:
            frame = self._stream.read_frame()
        except (OSError, RuntimeError) as e:
            self.error = CAMERA_ACCESS_MESSAGE
            self._release()
            raise CameraAccessError(CAMERA_ACCESS_MESSAGE) from e

        buffer = io.BytesIO()
        frame.save(buffer, format="PNG")
        self._release()
        return f"capture-{int(time.time() * 1000)}.png", buffer.getvalue()

    def close(self) -> None:
        self._release()

    def __enter__(self) -> CameraCapture:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._release()

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            logger.info("Camera stream released")
        except (OSError, RuntimeError) as e:
            logger.error("Error stopping camera stream: %s", e)


class _OpenCVStream:
    def __init__(self, capture) -> None:
        self._capture = capture

    def read_frame(self) -> Image.Image:
        import cv2

        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise RuntimeError("Camera returned no frame")
        return Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))

    def stop(self) -> None:
        self._capture.release()


class OpenCVCameraDevice:
    """Camera device backed by ``cv2.VideoCapture``.

    Args:
        device_indexes: Mapping of facing mode to OpenCV device index.
    """

    def __init__(self, device_indexes: dict[str, int]) -> None:
        self.device_indexes = device_indexes

    def open(self, facing_mode: str) -> VideoStream:
        try:
            import cv2
        except ImportError as e:
            raise CameraAccessError(
                "Camera support is not installed. Install the 'camera' extra."
            ) from e

        index = self.device_indexes.get(facing_mode, 0)
        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise CameraAccessError(CAMERA_ACCESS_MESSAGE)
        return _OpenCVStream(capture)
