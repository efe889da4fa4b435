from PIL import Image

import core.CaptureDevice as capture_device
from interface.CLIHandler import main
from conftest import FakeCamera


def cli_args(tmp_path, model_path, *extra):
    return [
        "--output", str(tmp_path / "out" / "stylized.jpg"),
        "--model", str(model_path),
        "--config", str(tmp_path / "starrycam.json"),
        *extra,
    ]


def test_cli_stylizes_image_file(tmp_path, scripted_model_path, photo_path):
    exit_code = main(cli_args(tmp_path, scripted_model_path, "--image", str(photo_path)))

    output = tmp_path / "out" / "stylized.jpg"
    assert exit_code == 0
    assert output.exists()
    assert Image.open(output).size == (512, 512)
    assert (tmp_path / "starrycam.json").exists()


def test_cli_takes_photo_with_camera(tmp_path, scripted_model_path, monkeypatch):
    camera = FakeCamera()
    monkeypatch.setattr(capture_device, "open_camera", lambda index: camera)

    exit_code = main(cli_args(tmp_path, scripted_model_path, "--camera", "1"))

    assert exit_code == 0
    assert (tmp_path / "out" / "stylized.jpg").exists()
    assert camera.release_count == 1


def test_cli_without_camera_fails(tmp_path, scripted_model_path, monkeypatch):
    monkeypatch.setattr(capture_device, "open_camera", lambda index: FakeCamera(opened=False))
    assert main(cli_args(tmp_path, scripted_model_path)) == 1


def test_cli_invalid_content(tmp_path, scripted_model_path):
    assert main(cli_args(tmp_path, scripted_model_path, "--image", "invalid_path.jpg")) == 1


def test_cli_missing_model(tmp_path, photo_path):
    exit_code = main(cli_args(tmp_path, tmp_path / "missing.pt", "--image", str(photo_path)))
    assert exit_code == 1
    assert not (tmp_path / "out" / "stylized.jpg").exists()


def test_cli_rejects_bad_config(tmp_path, scripted_model_path, photo_path):
    (tmp_path / "starrycam.json").write_text('{"photo_quality": "ultra"}')
    assert main(cli_args(tmp_path, scripted_model_path, "--image", str(photo_path))) == 1


def test_cli_rejects_wrongly_typed_config(tmp_path, scripted_model_path, photo_path):
    (tmp_path / "starrycam.json").write_text('{"image_size": "512"}')
    assert main(cli_args(tmp_path, scripted_model_path, "--image", str(photo_path))) == 1
