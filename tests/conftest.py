import threading
from io import BytesIO

import numpy as np
import pytest
import torch
import torch.nn as nn
from PIL import Image

from core.CaptureDevice import CapturedImage
from core.ImageBridge import ImageBridge
from core.InferencePipeline import InferencePipeline
from core.StyleTransferModel import StyleTransferModel


class FakeCamera:
    """Stands in for cv2.VideoCapture"""

    def __init__(self, opened=True, fail_read=False, frame=None):
        self.opened = opened
        self.fail_read = fail_read
        self.frame = frame if frame is not None else np.full((4, 6, 3), (255, 0, 0), dtype=np.uint8)
        self.reads = 0
        self.release_count = 0

    def isOpened(self):
        return self.opened and self.release_count == 0

    def read(self):
        self.reads += 1
        if self.fail_read:
            return False, None
        return True, self.frame.copy()

    def release(self):
        self.release_count += 1


class CountingModel(nn.Module):
    """Identity network that counts forward passes"""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def forward(self, x):
        self.calls += 1
        return x


class GatedModel(nn.Module):
    """Identity network whose first forward pass blocks until released"""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.gate = threading.Event()
        self._first = True
        self._lock = threading.Lock()

    def forward(self, x):
        with self._lock:
            first, self._first = self._first, False
        if first:
            self.entered.set()
            self.gate.wait(timeout=5)
        return x


def png_bytes(image):
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def solid_capture(color, size=(6, 4)):
    return CapturedImage.from_bytes(png_bytes(Image.new("RGB", size, color=color)))


def make_pipeline(module=None, image_size=None, max_workers=1):
    model = StyleTransferModel(module=module if module is not None else nn.Identity(), device="cpu")
    return InferencePipeline(model, bridge=ImageBridge(image_size=image_size), max_workers=max_workers)


@pytest.fixture
def fake_camera():
    return FakeCamera()


@pytest.fixture
def pipeline():
    pipeline = make_pipeline()
    yield pipeline
    pipeline.close()


@pytest.fixture
def scripted_model_path(tmp_path):
    path = tmp_path / "starry_night.pt"
    torch.jit.save(torch.jit.script(nn.Identity()), str(path))
    return path


@pytest.fixture
def photo_path(tmp_path):
    path = tmp_path / "photo.png"
    Image.new("RGB", (32, 24), color=(30, 60, 200)).save(path)
    return path
