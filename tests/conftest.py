"""Pytest configuration and shared fixtures for the coin recognition engine.

Provides a synthetic coin renderer (cash coins with a square hole and two
distinguishable faces), column and live-frame composers, configuration
objects and a manual clock for the live session.
"""
import sys
import json
import logging
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

import cv2
import numpy as np
import pytest

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from coinreader.config.settings import Config
from coinreader.core import layout
from coinreader.core.entities import CoinSide, PresenceEvaluation, PresenceMetrics
from coinreader.services.recognition_service import build_engine
from coinreader.services.template_manager import TemplateManager


# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logging.getLogger('PIL').setLevel(logging.WARNING)

BACKGROUND = 225
COIN = 70
HOLE_RATIO = 0.3
SAMPLE_FRAMING = 1.3  # crop side / coin diameter
# coin size in a 360x640 live frame: 80 px slots, 8% inset on each side
LIVE_DIAMETER = 80.0 * (1.0 - 2.0 * 0.08) / SAMPLE_FRAMING

# top slot (position 6) first
EXPECTED_FACES = [CoinSide.FRONT, CoinSide.BACK, CoinSide.BACK, CoinSide.FRONT, CoinSide.FRONT, CoinSide.BACK]


def _pt(x: float, y: float):
    return int(round(x)), int(round(y))


def draw_coin(canvas: np.ndarray, cx: float, cy: float, diameter: float, face: CoinSide,
              coin_value: int = COIN, background: int = BACKGROUND) -> None:
    """Draw a dark cash coin with a light square hole and face markings.

    Front: four small marks on the diagonals. Back: two horizontal bars above
    and below the hole. Neither face touches the hole or the rim.
    """
    radius = diameter / 2.0
    cv2.circle(canvas, _pt(cx, cy), int(round(radius)), (coin_value,) * 3, -1, lineType=cv2.LINE_AA)

    half_hole = diameter * HOLE_RATIO / 2.0
    cv2.rectangle(canvas, _pt(cx - half_hole, cy - half_hole), _pt(cx + half_hole, cy + half_hole),
                  (background,) * 3, -1)

    if face is CoinSide.FRONT:
        offset, half = 0.24 * diameter, 0.04 * diameter
        for sx, sy in ((-1, -1), (1, -1), (-1, 1), (1, 1)):
            mx, my = cx + sx * offset, cy + sy * offset
            cv2.rectangle(canvas, _pt(mx - half, my - half), _pt(mx + half, my + half), (background,) * 3, -1)
    else:
        offset, half_w, half_h = 0.3 * diameter, 0.2 * diameter, 0.04 * diameter
        for sy in (-1, 1):
            my = cy + sy * offset
            cv2.rectangle(canvas, _pt(cx - half_w, my - half_h), _pt(cx + half_w, my + half_h),
                          (background,) * 3, -1)


def render_sample(face: CoinSide, diameter: float = 80.0, brightness: int = 0,
                  shift=(0.0, 0.0)) -> np.ndarray:
    """A calibration photo: one coin, framed like a slot crop."""
    side = int(round(diameter * SAMPLE_FRAMING))
    background = BACKGROUND + brightness
    canvas = np.full((side, side, 3), background, dtype=np.uint8)
    draw_coin(canvas, side / 2.0 + shift[0], side / 2.0 + shift[1], diameter, face,
              coin_value=COIN + brightness, background=background)
    return canvas


def sample_set(face: CoinSide, diameter: float = 80.0) -> List[np.ndarray]:
    variations = [(0, (0.0, 0.0)), (-8, (1.0, 0.0)), (6, (0.0, 1.0))]
    return [render_sample(face, diameter, brightness, shift) for brightness, shift in variations]


def compose_column(faces: Sequence[CoinSide] = EXPECTED_FACES, width: int = 240, height: int = 640,
                   diameter: float = 80.0, pitch: float = 100.0, top: float = 70.0,
                   x_offsets: Optional[Sequence[float]] = None) -> np.ndarray:
    """A free-form photo of six coins stacked top to bottom."""
    image = np.full((height, width, 3), BACKGROUND, dtype=np.uint8)
    for index, face in enumerate(faces):
        dx = x_offsets[index] if x_offsets else 0.0
        draw_coin(image, width / 2.0 + dx, top + index * pitch, diameter, face)
    return image


def compose_live_frame(faces: Sequence[Optional[CoinSide]] = EXPECTED_FACES, width: int = 360,
                       height: int = 640, inset_ratio: float = 0.08) -> np.ndarray:
    """A camera frame with coins sitting in the on-screen slot guides.

    ``None`` leaves that slot empty.
    """
    image = np.full((height, width, 3), BACKGROUND, dtype=np.uint8)
    for slot, face in zip(layout.slots_normalized(width, height), faces):
        if face is None:
            continue
        crop_side = slot.rect.width * (1.0 - 2.0 * inset_ratio)
        diameter = crop_side / SAMPLE_FRAMING
        draw_coin(image, slot.rect.mid_x, slot.rect.mid_y, diameter, face)
    return image


def make_evaluations(present: int = 6, quality: int = 6, energy: float = 0.2,
                     quality_score: float = 0.8) -> List[PresenceEvaluation]:
    """Gate evaluations for six slots, the first ``present`` present, the first ``quality`` high quality."""
    metrics = PresenceMetrics(energy_mean=energy, ring_ratio=0.4, centroid_offset=0.01,
                              quality_score=quality_score)
    evaluations = []
    for index in range(6):
        is_present = index < present
        evaluations.append(PresenceEvaluation(
            position=6 - index,
            metrics=metrics if is_present else PresenceMetrics(0.0, 0.0, 0.0, 0.0),
            is_present=is_present,
            is_high_quality=is_present and index < quality,
        ))
    return evaluations


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config():
    """Default configuration."""
    return Config()


@pytest.fixture
def plain_config():
    """Configuration with the feature-print path disabled."""
    return Config(feature_print_backend="none")


@pytest.fixture
def real_config(temp_dir):
    """A configuration loaded from a JSON file in a temporary directory."""
    config_data = {
        "data_dir": str(temp_dir / "data"),
        "profiles_dir": str(temp_dir / "data" / "profiles"),
        "live_min_interval": 0.2,
        "lock_frames": 4,
        "feature_print_backend": "hog",
    }
    config_file = temp_dir / "config.json"
    with open(config_file, 'w') as f:
        json.dump(config_data, f, indent=2)

    from coinreader.config.settings import load_config
    return load_config(str(config_file))


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture(scope="session")
def front_samples():
    return sample_set(CoinSide.FRONT)


@pytest.fixture(scope="session")
def back_samples():
    return sample_set(CoinSide.BACK)


@pytest.fixture(scope="session")
def calibrated(front_samples, back_samples):
    """(template_set, calibration) built with the default backends."""
    manager = TemplateManager(build_engine(Config()))
    return manager.calibrate(front_samples, back_samples)


@pytest.fixture(scope="session")
def live_calibrated():
    """Templates photographed at the size coins appear in the live slot guides."""
    manager = TemplateManager(build_engine(Config()))
    return manager.calibrate(sample_set(CoinSide.FRONT, LIVE_DIAMETER), sample_set(CoinSide.BACK, LIVE_DIAMETER))


@pytest.fixture(scope="session")
def template_set(calibrated):
    return calibrated[0]


@pytest.fixture(scope="session")
def calibration(calibrated):
    return calibrated[1]


@pytest.fixture
def column_image():
    return compose_column()


@pytest.fixture
def live_frame():
    return compose_live_frame()
