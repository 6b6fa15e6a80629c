"""OpenCV-backed camera device."""

import asyncio
import logging
import threading
from typing import Optional

import cv2
import numpy as np

from visionmate.camera import CameraDevice, CameraStream
from visionmate.config import Config
from visionmate.errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class OpenCVStream(CameraStream):
    """Reads frames on a daemon thread and keeps only the latest one."""

    def __init__(self, capture: "cv2.VideoCapture", loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._capture = capture
        self._loop = loop
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self._running = True
        self._thread = threading.Thread(target=self._read_loop, daemon=True)
        self._thread.start()

    @property
    def video_width(self) -> int:
        with self._lock:
            return 0 if self._frame is None else int(self._frame.shape[1])

    @property
    def video_height(self) -> int:
        with self._lock:
            return 0 if self._frame is None else int(self._frame.shape[0])

    def snapshot_jpeg(self) -> Optional[bytes]:
        with self._lock:
            frame = None if self._frame is None else self._frame.copy()
        if frame is None:
            return None
        ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), 85])
        if not ok:
            logger.warning("JPEG encoding failed")
            return None
        return buf.tobytes()

    def stop_tracks(self):
        self._running = False
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=2)
        self._capture.release()

    def _read_loop(self):
        announced = False
        while self._running:
            ok, frame = self._capture.read()
            if not ok or frame is None or frame.size == 0:
                threading.Event().wait(0.05)
                continue
            with self._lock:
                self._frame = frame
            if not announced:
                announced = True
                self._loop.call_soon_threadsafe(self._playing)

    def _playing(self):
        if self.on_playing is not None:
            self.on_playing()


class OpenCVCamera(CameraDevice):
    """Camera at a fixed OpenCV index. The index stands for the rear camera."""

    def __init__(self, index: Optional[int] = None):
        self.index = Config.CAMERA_INDEX if index is None else index

    async def open(self, facing_mode: str = "environment") -> CameraStream:
        loop = asyncio.get_running_loop()
        capture = await loop.run_in_executor(None, cv2.VideoCapture, self.index)
        if not capture.isOpened():
            capture.release()
            raise DeviceUnavailable(f"Could not open camera {self.index}.")
        logger.info("Opened camera %d for %s", self.index, facing_mode)
        return OpenCVStream(capture, loop)
