"""
Session/Display controller for StarryCam

Single source of truth for one camera screen: waits for a photo, runs the style
model on it and holds the stylized result until the user retakes.
All methods are meant to be called from the event loop thread.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from PIL import Image

from core.CaptureDevice import CaptureDeviceAdapter, CapturedImage
from core.Errors import CaptureFailureError, DeviceUnavailableError, StarryCamError
from core.InferencePipeline import InferencePipeline
from utilities.Logger import Logger

logger = Logger.setup_logger(log_file="starrycam.log", log_level=logging.INFO)

NO_IMAGE_MESSAGE = "No Image Available"


class SessionState(Enum):
    AWAITING_CAPTURE = "awaiting_capture"
    PREDICTING = "predicting"
    DISPLAYING = "displaying"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class InferenceRequest:
    """One prediction in flight for one captured image"""

    generation: int
    image: CapturedImage


@dataclass(frozen=True)
class DisplayState:
    """Snapshot handed to the UI after every change"""

    state: SessionState
    busy: bool
    captured: Optional[CapturedImage] = None
    transformed: Optional[Image.Image] = None
    error: Optional[StarryCamError] = None

    @property
    def message(self) -> Optional[str]:
        if self.state == SessionState.ERROR:
            return self.error.user_message if self.error else NO_IMAGE_MESSAGE
        if self.state == SessionState.DISPLAYING and self.transformed is None:
            return NO_IMAGE_MESSAGE
        return None

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None


class SessionController:
    def __init__(self, pipeline: InferencePipeline,
                 adapter_factory: Optional[Callable[[], CaptureDeviceAdapter]] = CaptureDeviceAdapter,
                 owns_pipeline: bool = False):
        self.pipeline = pipeline
        self.adapter_factory = adapter_factory
        self.owns_pipeline = owns_pipeline

        self.state = SessionState.AWAITING_CAPTURE
        self.captured = None
        self.transformed = None
        self.error = None
        self._adapter = None
        self._capturing = False
        self._generation = 0
        self._observers: List[Callable[[DisplayState], None]] = []

    @classmethod
    def from_config(cls, config, pipeline=None, preview_sink=None, use_device_camera=True):
        owns = pipeline is None
        if pipeline is None:
            pipeline = InferencePipeline.from_config(config)
        if not use_device_camera:
            return cls(pipeline, adapter_factory=None, owns_pipeline=owns)

        def adapter_factory():
            return CaptureDeviceAdapter(
                camera_index=config.camera_index,
                photo_quality=config.photo_quality,
                preview_sink=preview_sink,
            )

        return cls(pipeline, adapter_factory=adapter_factory, owns_pipeline=owns)

    @property
    def adapter(self) -> Optional[CaptureDeviceAdapter]:
        return self._adapter

    @property
    def busy(self) -> bool:
        return self._capturing or self.state == SessionState.PREDICTING

    def snapshot(self) -> DisplayState:
        return DisplayState(
            state=self.state,
            busy=self.busy,
            captured=self.captured,
            transformed=self.transformed,
            error=self.error,
        )

    def subscribe(self, callback: Callable[[DisplayState], None]):
        """Register an observer; returns a function that removes it."""
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def open(self) -> bool:
        """Start a fresh capture session for this screen."""
        if self.state == SessionState.CLOSED:
            raise RuntimeError("Session controller is closed")
        self._teardown_adapter()

        if self.adapter_factory is None:
            # Photos arrive through submit() from an external camera widget
            self.state = SessionState.AWAITING_CAPTURE
            self._notify()
            return True

        adapter = self.adapter_factory()
        self._adapter = adapter
        if not adapter.start():
            self._fail(adapter.last_error or DeviceUnavailableError("Camera is not available"))
            return False

        self.state = SessionState.AWAITING_CAPTURE
        self._notify()
        return True

    async def take_photo(self):
        """
        Capture one photo from the live session and stylize it.

        :return: The prediction result, or None if nothing was captured.
        """
        adapter = self._adapter
        if self.state != SessionState.AWAITING_CAPTURE or adapter is None or self._capturing:
            logger.warning(f"Take photo ignored while {self.state.value}")
            return None

        self._capturing = True
        self._notify()
        try:
            captured = await adapter.capture_photo()
        finally:
            adapter.stop()
            self._capturing = False

        if adapter is not self._adapter:
            logger.info("Discarding photo from a session that was torn down")
            return None
        if captured is None:
            self._fail(adapter.last_error or CaptureFailureError("Capture did not complete"))
            return None
        return await self.submit(captured)

    async def submit(self, captured: CapturedImage):
        """
        Stylize a captured image. The most recently submitted image always wins;
        completions for older submissions are dropped.
        """
        if self.state == SessionState.CLOSED:
            raise RuntimeError("Session controller is closed")

        self._generation += 1
        request = InferenceRequest(generation=self._generation, image=captured)
        self.captured = captured
        self.transformed = None
        self.error = None
        self.state = SessionState.PREDICTING
        self._notify()

        result = await self.pipeline.predict(request.image)

        if request.generation != self._generation:
            logger.info(f"Discarding stale prediction for photo #{getattr(captured, 'sequence', '?')}")
            return result

        if result.ok:
            self.transformed = result.image
            self.state = SessionState.DISPLAYING
            logger.info(f"Displaying stylized image ({result.inference_time:.3f}s)")
        else:
            self.error = result.error
            self.state = SessionState.ERROR
            logger.error(f"Prediction failed [{result.kind}]: {result.error}")
        self._notify()
        return result

    def retake(self) -> bool:
        """Drop the current photo and result, then go back to a live camera."""
        self._generation += 1
        self.captured = None
        self.transformed = None
        self.error = None
        return self.open()

    def close(self):
        """Tear the screen down. Safe to call more than once."""
        self._generation += 1
        self._teardown_adapter()
        if self.state != SessionState.CLOSED:
            self.state = SessionState.CLOSED
            if self.owns_pipeline:
                self.pipeline.close()
            self._notify()
        self._observers.clear()

    def _fail(self, error: StarryCamError):
        self.error = error
        self.transformed = None
        self.state = SessionState.ERROR
        logger.error(f"Session error [{error.kind}]: {error}")
        self._notify()

    def _teardown_adapter(self):
        adapter, self._adapter = self._adapter, None
        if adapter is not None:
            adapter.stop()

    def _notify(self):
        snapshot = self.snapshot()
        for callback in list(self._observers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Display observer failed: {e}")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
