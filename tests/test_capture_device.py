import asyncio
import threading

import numpy as np
import pytest
from PIL import Image
from io import BytesIO

from core.CaptureDevice import CaptureDeviceAdapter, CapturedImage, CaptureState
from core.Errors import CaptureFailureError, DeviceUnavailableError
from conftest import FakeCamera


def make_adapter(camera, **kwargs):
    return CaptureDeviceAdapter(device_factory=lambda index: camera, frame_interval=0.001, **kwargs)


def test_stop_before_start_is_harmless():
    camera = FakeCamera()
    adapter = make_adapter(camera)
    adapter.stop()
    adapter.stop()
    assert adapter.state == CaptureState.IDLE
    assert camera.release_count == 0


def test_stop_twice_releases_once(fake_camera):
    adapter = make_adapter(fake_camera)
    assert adapter.start()
    assert adapter.is_streaming
    adapter.stop()
    adapter.stop()
    assert fake_camera.release_count == 1
    assert adapter.state == CaptureState.IDLE


def test_unavailable_camera_is_terminal():
    camera = FakeCamera(opened=False)
    adapter = make_adapter(camera)
    assert not adapter.start()
    assert adapter.state == CaptureState.IDLE
    assert isinstance(adapter.last_error, DeviceUnavailableError)


def test_camera_factory_error_is_logged_not_raised():
    def broken_factory(index):
        raise OSError("no video device")

    adapter = CaptureDeviceAdapter(device_factory=broken_factory)
    assert not adapter.start()
    assert "no video device" in str(adapter.last_error)


def test_preview_frames_reach_sink_as_rgb(fake_camera):
    received = []
    got_frame = threading.Event()

    def sink(frame):
        received.append(frame)
        got_frame.set()

    with make_adapter(fake_camera, preview_sink=sink) as adapter:
        assert adapter.is_streaming
        assert got_frame.wait(timeout=2)

    # FakeCamera frames are pure blue in BGR order
    assert tuple(received[0][0, 0]) == (0, 0, 255)
    assert fake_camera.release_count == 1


def test_capture_photo_returns_single_still_and_stops(fake_camera):
    adapter = make_adapter(fake_camera, photo_quality="quality")
    adapter.start()

    image = asyncio.run(adapter.capture_photo())

    assert isinstance(image, CapturedImage)
    assert (image.width, image.height) == (6, 4)
    assert image.quality == "quality"
    assert Image.open(BytesIO(image.data)).format == "JPEG"
    assert adapter.state == CaptureState.CAPTURED
    assert fake_camera.release_count == 1


def test_captured_session_cannot_restart(fake_camera):
    adapter = make_adapter(fake_camera)
    adapter.start()
    asyncio.run(adapter.capture_photo())
    assert not adapter.start()
    assert adapter.state == CaptureState.CAPTURED


def test_capture_rejected_when_not_streaming(fake_camera):
    adapter = make_adapter(fake_camera)
    assert asyncio.run(adapter.capture_photo()) is None
    assert fake_camera.reads == 0


def test_repeated_capture_is_ignored(fake_camera):
    adapter = make_adapter(fake_camera)
    adapter.start()

    async def double_tap():
        return await asyncio.gather(adapter.capture_photo(), adapter.capture_photo())

    first, second = asyncio.run(double_tap())
    assert isinstance(first, CapturedImage)
    assert second is None


def test_capture_failure_releases_camera():
    camera = FakeCamera(fail_read=True)
    adapter = make_adapter(camera)
    adapter.start()

    assert asyncio.run(adapter.capture_photo()) is None
    assert isinstance(adapter.last_error, CaptureFailureError)
    assert adapter.state == CaptureState.IDLE
    assert camera.release_count == 1


def test_unknown_photo_quality_rejected():
    with pytest.raises(ValueError):
        CaptureDeviceAdapter(photo_quality="ultra")


def test_captured_images_get_increasing_sequence():
    data = BytesIO()
    Image.fromarray(np.zeros((2, 2, 3), dtype=np.uint8)).save(data, format="PNG")
    first = CapturedImage.from_bytes(data.getvalue())
    second = CapturedImage.from_bytes(data.getvalue())
    assert second.sequence > first.sequence
