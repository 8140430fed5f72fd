"""Unit tests for coin region detection."""
from unittest.mock import MagicMock

import cv2
import numpy as np
import pytest

from coinreader.config.settings import Config
from coinreader.core.entities import Rect
from coinreader.core.exceptions import ContourExtractionError, DetectionFailure
from coinreader.services.region_detector import (
    RegionDetector, accept_candidates, column_cost, derive_from_hole, hole_scale, select_best_six,
)

from conftest import BACKGROUND, compose_column, compose_live_frame


def column_rects(x=100.0, top=50.0, pitch=100.0, size=80.0):
    return [Rect.square(x, top + i * pitch, size) for i in range(6)]


class TestHoleGeometry:
    """Coin regions implied by a square hole."""

    def test_centered_hole_gives_coin_sized_square(self):
        outer = Rect.square(100, 100, 80)
        hole = Rect.square(100, 100, 24)
        region = derive_from_hole(outer, hole, 400, 400)
        assert region is not None
        assert region.mid_x == pytest.approx(100)
        assert region.width == pytest.approx(80, rel=0.02)

    def test_rejects_off_center_tiny_or_elongated_holes(self):
        outer = Rect.square(100, 100, 80)
        assert derive_from_hole(outer, Rect.square(125, 100, 24), 400, 400) is None
        assert derive_from_hole(outer, Rect.square(100, 100, 6), 400, 400) is None
        assert derive_from_hole(outer, Rect(90, 96, 30, 8), 400, 400) is None

    def test_scale_is_clamped(self):
        assert hole_scale(100.0, 99.0) == pytest.approx(2.6)
        assert hole_scale(10000.0, 1.0) == pytest.approx(4.8)
        assert hole_scale(0.0, 1.0) == pytest.approx(3.4)


class TestCandidateSelection:

    def test_duplicates_are_suppressed(self):
        rects = [Rect.square(100, 100, 80), Rect.square(104, 102, 70), Rect.square(300, 100, 80)]
        kept = accept_candidates(rects, 640, 640)
        assert len(kept) == 2
        assert kept[0].width == pytest.approx(80)

    def test_bad_shapes_are_filtered(self):
        rects = [Rect(10, 10, 80, 20), Rect.square(100, 100, 2), Rect.square(300, 300, 500)]
        assert accept_candidates(rects, 640, 640) == []

    def test_straight_column_is_cheaper(self):
        straight = column_rects()
        crooked = column_rects()
        crooked[2] = crooked[2].offset(60, 0)
        assert column_cost(straight) < column_cost(crooked)

    def test_best_six_drops_the_outlier(self):
        rects = column_rects()
        outlier = Rect.square(400, 260, 80)
        chosen = select_best_six(rects[:3] + [outlier] + rects[3:])
        assert outlier not in chosen
        assert len(chosen) == 6

    def test_six_or_fewer_pass_through(self):
        rects = column_rects()[:4]
        assert select_best_six(rects) == rects


class TestContourStrategy:

    def test_finds_the_column_top_to_bottom(self):
        image = compose_column()
        regions = RegionDetector(Config()).detect(image, "contour")

        assert [r.position for r in regions] == [6, 5, 4, 3, 2, 1]
        mids = [r.rect.mid_y for r in regions]
        assert mids == sorted(mids)
        for region, expected_y in zip(regions, (70, 170, 270, 370, 470, 570)):
            assert region.rect.mid_y == pytest.approx(expected_y, abs=4)
            assert region.rect.mid_x == pytest.approx(120, abs=4)
            assert region.rect.width == pytest.approx(104, abs=10)
            assert region.masked_image is not None
            assert region.normalized_rect.max_x <= 1.0

    def test_tolerates_a_slightly_crooked_column(self):
        image = compose_column(x_offsets=[0, 6, -5, 4, -3, 0])
        regions = RegionDetector(Config()).detect(image, "contour")
        assert len(regions) == 6

    def test_too_few_coins(self):
        image = compose_column(faces=[])
        with pytest.raises(DetectionFailure) as exc_info:
            RegionDetector(Config()).detect(image, "contour")
        assert exc_info.value.found == 0

    def test_backend_errors_become_a_detection_failure(self):
        backend = MagicMock()
        backend.extract_contours.side_effect = ContourExtractionError("broken")
        detector = RegionDetector(Config(), contour_backend=backend)
        with pytest.raises(DetectionFailure):
            detector.detect(compose_column(), "contour")
        # dark-on-light, light-on-dark and the enhanced pass were all tried
        assert backend.extract_contours.call_count == 3

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            RegionDetector(Config()).detect(compose_column(), "hough")


class TestSlotStrategy:

    def test_slots_follow_the_layout(self):
        regions = RegionDetector(Config()).detect(compose_live_frame(), "slots")
        assert [r.position for r in regions] == [6, 5, 4, 3, 2, 1]
        # 80 px slots inset by 8% on each side
        for region in regions:
            assert region.rect.width == pytest.approx(68, abs=1.5)
            assert region.rect.mid_x == pytest.approx(180, abs=1)

    def test_view_size_maps_into_a_larger_image(self):
        frame = cv2.resize(compose_live_frame(), (720, 1280))
        regions = RegionDetector(Config()).detect_slots(frame, view_size=(360, 640))
        assert len(regions) == 6
        assert regions[0].rect.width == pytest.approx(136, abs=3)
        assert regions[0].rect.mid_x == pytest.approx(360, abs=2)

    def test_degenerate_preview_yields_no_slots(self):
        image = np.full((200, 640, 3), BACKGROUND, dtype=np.uint8)
        detector = RegionDetector(Config())
        assert detector.detect_slots(image, view_size=(0.0, 0.0)) == []
        with pytest.raises(DetectionFailure) as exc_info:
            detector.detect(image, "slots", view_size=(0.0, 0.0))
        assert exc_info.value.found == 0

    def test_jittered_crops(self):
        crops = RegionDetector(Config(jitter_offset=4.0)).jittered_crops(compose_live_frame())
        assert sorted(crops) == [1, 2, 3, 4, 5, 6]
        assert all(len(items) == 9 for items in crops.values())

    def test_jitter_never_leaves_the_view(self):
        crops = RegionDetector(Config(jitter_offset=60.0)).jittered_crops(compose_live_frame())
        # the top and bottom slots cannot move 60 points outward
        assert len(crops[6]) < 9
        assert len(crops[1]) < 9
        assert all(items for items in crops.values())
