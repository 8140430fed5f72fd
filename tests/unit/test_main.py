"""Unit tests for the command-line entry point."""
import argparse
import json
from unittest.mock import patch

import cv2
import pytest

from coinreader import main as cli
from coinreader.core.entities import CoinSide
from coinreader.services.profile_store import ProfileStore
from coinreader.services.template_manager import deserialize_template_set, serialize_template_set

from conftest import EXPECTED_FACES, compose_column, compose_live_frame, sample_set


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "config.json"
    path.write_text(json.dumps({
        "profiles_dir": str(temp_dir / "profiles"),
        "lock_frames": 4,
        "live_min_interval": 0.2,
    }))
    return str(path)


def write_images(directory, prefix, images):
    paths = []
    for index, image in enumerate(images):
        path = directory / f"{prefix}_{index}.png"
        cv2.imwrite(str(path), image)
        paths.append(str(path))
    return paths


class FakeCapture:
    """Stands in for cv2.VideoCapture over an in-memory list of frames."""

    def __init__(self, frames, fps=4.0):
        self.frames = list(frames)
        self.fps = fps
        self.released = False

    def isOpened(self):
        return True

    def get(self, prop):
        return self.fps if prop == cv2.CAP_PROP_FPS else 0.0

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self):
        self.released = True


class TestParser:

    def test_view_size(self):
        assert cli.parse_view_size("390x844") == (390.0, 844.0)
        assert cli.parse_view_size("390X844") == (390.0, 844.0)

    @pytest.mark.parametrize("value", ["abc", "0x10", "10x-1", "1x2x3"])
    def test_bad_view_size(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            cli.parse_view_size(value)

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_read_arguments(self):
        args = cli.build_parser().parse_args(
            ["--json", "read", "photo.png", "--profile", "p", "--strategy", "slots", "--view-size", "390x844"])
        assert args.json
        assert args.strategy == "slots"
        assert args.view_size == (390.0, 844.0)
        assert args.func is cli.cmd_read


class TestCommands:

    def test_calibrate_then_read(self, temp_dir, config_file, capsys):
        front = write_images(temp_dir, "front", sample_set(CoinSide.FRONT))
        back = write_images(temp_dir, "back", sample_set(CoinSide.BACK))
        assert cli.main(["--config", config_file, "calibrate", "--profile", "desk",
                         "--front", *front, "--back", *back, "--keep-samples"]) == 0
        assert "Profile 'desk' calibrated" in capsys.readouterr().out

        store = ProfileStore(str(temp_dir / "profiles"))
        assert store.exists("desk")
        assert len(store.load_samples("desk")["front"]) == 3

        photo = write_images(temp_dir, "column", [compose_column()])[0]
        assert cli.main(["--config", config_file, "--json", "read", photo, "--profile", "desk"]) == 0
        output = json.loads(capsys.readouterr().out)
        assert [item["position"] for item in output] == [6, 5, 4, 3, 2, 1]
        assert [item["side"] for item in output] == [face.value for face in EXPECTED_FACES]

    def test_recalibrate_from_stored_samples(self, temp_dir, config_file, capsys):
        front = write_images(temp_dir, "front", sample_set(CoinSide.FRONT))
        back = write_images(temp_dir, "back", sample_set(CoinSide.BACK))
        cli.main(["--config", config_file, "calibrate", "--profile", "desk",
                  "--front", *front, "--back", *back, "--keep-samples"])
        capsys.readouterr()

        store = ProfileStore(str(temp_dir / "profiles"))
        store.save("desk", b"stale")
        assert cli.main(["--config", config_file, "recalibrate", "--profile", "desk"]) == 0
        assert "recalibrated from 3 front / 3 back samples" in capsys.readouterr().out
        assert len(deserialize_template_set(store.load_reference_template_set("desk")).front_descriptors) == 3

    def test_recalibrate_without_samples(self, temp_dir, config_file, capsys):
        front = write_images(temp_dir, "front", sample_set(CoinSide.FRONT))
        back = write_images(temp_dir, "back", sample_set(CoinSide.BACK))
        cli.main(["--config", config_file, "calibrate", "--profile", "desk", "--front", *front, "--back", *back])
        assert cli.main(["--config", config_file, "recalibrate", "--profile", "desk"]) == 2
        assert "no stored samples" in capsys.readouterr().err

    def test_unreadable_photo(self, temp_dir, config_file, capsys):
        assert cli.main(["--config", config_file, "read", str(temp_dir / "none.png"), "--profile", "desk"]) == 2
        assert "Could not read image" in capsys.readouterr().err

    def test_missing_profile_is_an_application_error(self, temp_dir, config_file, capsys):
        photo = write_images(temp_dir, "column", [compose_column()])[0]
        assert cli.main(["--config", config_file, "read", photo, "--profile", "nobody"]) == 1
        assert "No templates stored" in capsys.readouterr().err

    def test_replay(self, temp_dir, config_file, live_calibrated, capsys):
        ProfileStore(str(temp_dir / "profiles")).save("live", serialize_template_set(live_calibrated[0]))
        capture = FakeCapture([compose_live_frame() for _ in range(16)])
        with patch("cv2.VideoCapture", return_value=capture):
            code = cli.main(["--config", config_file, "--json", "replay", "clip.mp4", "--profile", "live"])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert [item["side"] for item in output] == [face.value for face in EXPECTED_FACES]
        assert capture.released

    def test_replay_without_a_reading(self, temp_dir, config_file, live_calibrated, capsys):
        ProfileStore(str(temp_dir / "profiles")).save("live", serialize_template_set(live_calibrated[0]))
        capture = FakeCapture([compose_live_frame([None] * 6) for _ in range(3)])
        with patch("cv2.VideoCapture", return_value=capture):
            code = cli.main(["--config", config_file, "replay", "clip.mp4", "--profile", "live"])
        assert code == 1
        assert "No reliable reading" in capsys.readouterr().out
