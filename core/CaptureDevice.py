"""
Camera capture session for StarryCam
Streams preview frames on a background thread and takes exactly one still photo
"""

import asyncio
import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Callable, Optional

import cv2
import numpy as np
from PIL import Image

from core.Errors import CaptureFailureError, DeviceUnavailableError
from utilities.ConfigManager import PHOTO_QUALITY_LEVELS
from utilities.Logger import Logger

logger = Logger.setup_logger(log_file="starrycam.log", log_level=logging.INFO)

_capture_sequence = itertools.count(1)


class CaptureState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    CAPTURING = "capturing"
    CAPTURED = "captured"


@dataclass(frozen=True)
class CapturedImage:
    """One still photo, JPEG encoded"""

    data: bytes
    width: int
    height: int
    quality: str = "balanced"
    sequence: int = field(default_factory=lambda: next(_capture_sequence))
    captured_at: float = field(default_factory=time.time)

    @classmethod
    def from_file(cls, path, quality="balanced"):
        """Wrap an existing photo file as a captured still."""
        with open(path, "rb") as f:
            return cls.from_bytes(f.read(), quality=quality)

    @classmethod
    def from_bytes(cls, data, quality="balanced"):
        """Wrap encoded photo bytes, e.g. from a browser camera widget."""
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
        return cls(data=bytes(data), width=width, height=height, quality=quality)


def open_camera(index):
    return cv2.VideoCapture(index)


class CaptureDeviceAdapter:
    """
    Owns one live camera connection.

    States run IDLE -> STREAMING -> CAPTURING -> CAPTURED. CAPTURED is terminal;
    a retake needs a new adapter. ``stop()`` can be called any number of times.
    """

    def __init__(self, camera_index=0, photo_quality="balanced",
                 preview_sink: Optional[Callable[[np.ndarray], None]] = None,
                 device_factory: Optional[Callable] = None,
                 frame_interval: float = 1 / 30):
        if photo_quality not in PHOTO_QUALITY_LEVELS:
            raise ValueError(f"Unknown photo quality '{photo_quality}'")
        self.camera_index = camera_index
        self.photo_quality = photo_quality
        self.preview_sink = preview_sink
        self.device_factory = device_factory or open_camera
        self.frame_interval = frame_interval

        self.state = CaptureState.IDLE
        self.last_error = None
        self._device = None
        self._device_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._stream_thread = None
        self._camera_executor = None

    @property
    def is_streaming(self) -> bool:
        return self.state == CaptureState.STREAMING

    def start(self) -> bool:
        """Open the camera and begin streaming preview frames. Returns False if no camera is usable."""
        if self.state == CaptureState.CAPTURED:
            logger.warning("Capture session already produced its photo; create a new session to retake")
            return False
        if self.state != CaptureState.IDLE:
            return True

        try:
            device = self.device_factory(self.camera_index)
        except Exception as e:
            return self._device_unavailable(f"Error setting up camera input: {e}")
        if device is None or not device.isOpened():
            if device is not None:
                device.release()
            return self._device_unavailable(f"Camera {self.camera_index} is not available")

        self._device = device
        self._stop_event.clear()
        self._camera_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="camera")
        self._stream_thread = threading.Thread(target=self._stream_loop, name="camera-preview", daemon=True)
        self.state = CaptureState.STREAMING
        self._stream_thread.start()
        logger.info(f"Camera {self.camera_index} streaming")
        return True

    def stop(self):
        """Stop streaming and release the camera."""
        self._stop_event.set()
        thread, self._stream_thread = self._stream_thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)

        with self._device_lock:
            device, self._device = self._device, None
        if device is not None:
            device.release()
            logger.info(f"Camera {self.camera_index} released")

        executor, self._camera_executor = self._camera_executor, None
        if executor is not None:
            executor.shutdown(wait=False)

        self.preview_sink = None
        if self.state in (CaptureState.STREAMING, CaptureState.CAPTURING):
            self.state = CaptureState.IDLE

    async def capture_photo(self) -> Optional[CapturedImage]:
        """
        Take one still photo, then stop the session.

        :return: The captured image, or None if the session is not streaming or capture fails.
        """
        if self.state != CaptureState.STREAMING:
            logger.warning(f"Capture rejected while session is {self.state.value}")
            return None

        self.state = CaptureState.CAPTURING
        loop = asyncio.get_running_loop()
        image = None
        try:
            image = await loop.run_in_executor(self._camera_executor, self._grab_still)
        except Exception as e:
            self.last_error = CaptureFailureError(str(e))
            logger.error(f"Error capturing photo: {e}")
        finally:
            if image is not None:
                self.state = CaptureState.CAPTURED
            self.stop()

        if image is not None:
            logger.info(f"Captured photo #{image.sequence} ({image.width}x{image.height})")
        return image

    def _grab_still(self) -> CapturedImage:
        with self._device_lock:
            if self._device is None:
                raise CaptureFailureError("Camera was released before the photo was taken")
            ok, frame = self._device.read()
        if not ok or frame is None:
            raise CaptureFailureError("Camera returned no frame")

        quality = PHOTO_QUALITY_LEVELS[self.photo_quality]
        ok, encoded = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
        if not ok:
            raise CaptureFailureError("Could not encode photo as JPEG")
        height, width = frame.shape[:2]
        return CapturedImage(data=encoded.tobytes(), width=width, height=height, quality=self.photo_quality)

    def _stream_loop(self):
        while not self._stop_event.is_set():
            with self._device_lock:
                if self._device is None:
                    break
                ok, frame = self._device.read()
            if not ok or frame is None:
                logger.debug("Dropped preview frame")
            else:
                sink = self.preview_sink
                if sink is not None:
                    try:
                        sink(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
                    except Exception as e:
                        logger.error(f"Preview sink failed: {e}")
            self._stop_event.wait(self.frame_interval)

    def _device_unavailable(self, message):
        self.last_error = DeviceUnavailableError(message)
        logger.error(message)
        return False

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
