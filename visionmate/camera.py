"""Camera access and on-demand still frame capture."""

import base64
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from visionmate.errors import CameraUnavailable, DeviceUnavailable, PermissionDenied
from visionmate.models import ImagePayload

logger = logging.getLogger(__name__)


class CameraStream(ABC):
    """A live video feed.

    The stream calls ``on_playing`` on the event loop thread once the first
    real frame has been delivered.
    """

    def __init__(self):
        self.on_playing: Optional[Callable[[], None]] = None

    @property
    @abstractmethod
    def video_width(self) -> int:
        pass

    @property
    @abstractmethod
    def video_height(self) -> int:
        pass

    @abstractmethod
    def snapshot_jpeg(self) -> Optional[bytes]:
        """JPEG bytes of the latest frame, or None."""
        pass

    @abstractmethod
    def stop_tracks(self):
        pass


class CameraDevice(ABC):
    """Something that can open a video feed."""

    @abstractmethod
    async def open(self, facing_mode: str = "environment") -> CameraStream:
        """Open the camera.

        Raises:
            PermissionDenied: access was refused
            DeviceUnavailable: no usable camera
        """
        pass


class FrameCaptureService:
    """Bridges a live video feed to still-image capture.

    ``is_ready`` turns true only when the feed reports its first frame, which
    can be well after ``start_camera()`` returns.
    """

    def __init__(self, device: Optional[CameraDevice], facing_mode: str = "environment"):
        self._device = device
        self.facing_mode = facing_mode
        self._stream: Optional[CameraStream] = None
        self._ready = False
        self._generation = 0
        self.error: Optional[CameraUnavailable] = None

    @property
    def is_on(self) -> bool:
        return self._stream is not None

    @property
    def is_ready(self) -> bool:
        return self._stream is not None and self._ready

    async def start_camera(self):
        """Acquire the rear camera.

        Raises:
            CameraUnavailable: no camera support or permission refused
        """
        self.error = None
        if self._stream is not None:
            return
        if self._device is None:
            raise self._unavailable("Your device does not support camera access.")

        self._generation += 1
        generation = self._generation
        try:
            stream = await self._device.open(self.facing_mode)
        except PermissionDenied as e:
            logger.error("Camera permission denied: %s", e)
            raise self._unavailable("Could not access the camera. Please allow permission.") from e
        except DeviceUnavailable as e:
            logger.error("Camera unavailable: %s", e)
            raise self._unavailable(e.user_message) from e

        if generation != self._generation or self._stream is not None:
            # stop_camera() ran while we were waiting for the device
            stream.stop_tracks()
            return

        self._stream = stream
        self._ready = False
        stream.on_playing = lambda: self._handle_playing(stream)
        logger.info("Camera started (%s)", self.facing_mode)

    def stop_camera(self):
        """Release every acquired track. Idempotent."""
        self._generation += 1
        stream, self._stream = self._stream, None
        self._ready = False
        if stream is not None:
            stream.on_playing = None
            stream.stop_tracks()
            logger.info("Camera stopped")

    def capture_frame(self) -> Optional[ImagePayload]:
        """Encode the current frame as JPEG, or return None when not ready."""
        stream = self._stream
        if stream is None or not self._ready:
            logger.warning("Tried capturing before camera ready")
            return None

        width, height = stream.video_width, stream.video_height
        if width <= 0 or height <= 0:
            logger.warning("Video dimensions invalid: %sx%s", width, height)
            return None

        data = stream.snapshot_jpeg()
        if not data:
            return None
        return ImagePayload(
            data=base64.b64encode(data).decode("ascii"),
            mime_type="image/jpeg",
            width=width,
            height=height,
        )

    def _handle_playing(self, stream: CameraStream):
        if stream is not self._stream:
            return
        if stream.video_width > 0 and stream.video_height > 0:
            logger.info("Camera feed is live at %dx%d", stream.video_width, stream.video_height)
            self._ready = True

    def _unavailable(self, reason: str) -> CameraUnavailable:
        self.error = CameraUnavailable(reason)
        return self.error
