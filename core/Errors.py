"""
Error taxonomy and tagged prediction results for StarryCam
"""

from dataclasses import dataclass
from typing import Union

from PIL import Image


class StarryCamError(Exception):
    """Base class for every capture and inference failure"""

    kind = "error"
    user_message = "Something went wrong"


class DeviceUnavailableError(StarryCamError):
    kind = "device_unavailable"
    user_message = "Camera is not available or authorized"


class CaptureFailureError(StarryCamError):
    kind = "capture_failure"
    user_message = "The photo could not be captured"


class ModelUnavailableError(StarryCamError):
    kind = "model_unavailable"
    user_message = "The style model could not be loaded"


class DecodeError(StarryCamError):
    kind = "decode_error"
    user_message = "The photo could not be read"


class EncodeError(StarryCamError):
    kind = "encode_error"
    user_message = "The stylized image could not be rendered"


class NoResultError(StarryCamError):
    kind = "no_result"
    user_message = "The style model produced no image"


class InferenceFailedError(StarryCamError):
    kind = "inference_failed"
    user_message = "The style model failed while processing the photo"


@dataclass(frozen=True)
class Stylized:
    """Successful prediction"""

    image: Image.Image
    inference_time: float = 0.0

    ok = True


@dataclass(frozen=True)
class Failed:
    """Failed prediction, carries the error instead of raising it"""

    error: StarryCamError

    ok = False

    @property
    def kind(self) -> str:
        return self.error.kind


PredictionResult = Union[Stylized, Failed]
