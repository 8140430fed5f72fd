"""Unit tests for the fixed slot layout."""
import pytest

from coinreader.core import layout


class TestSlots:

    def test_six_slots_top_is_position_six(self):
        slots = layout.slots(400, 800)
        assert [s.position for s in slots] == [6, 5, 4, 3, 2, 1]

    def test_slots_are_centered_and_evenly_spaced(self):
        slots = layout.slots(400, 800)
        assert all(s.rect.mid_x == pytest.approx(200) for s in slots)

        tops = [s.rect.y for s in slots]
        steps = [b - a for a, b in zip(tops, tops[1:])]
        assert steps == pytest.approx([layout.SLOT_SIZE + layout.SLOT_SPACING] * 5)

        column_mid = (slots[0].rect.min_y + slots[-1].rect.max_y) / 2
        assert column_mid == pytest.approx(400)

    def test_column_height(self):
        assert layout.column_height() == pytest.approx(6 * 100 + 5 * 16)


class TestSlotsNormalized:

    def test_column_fills_height(self):
        slots = layout.slots_normalized(360, 640)
        span = slots[-1].rect.max_y - slots[0].rect.min_y
        assert span == pytest.approx(0.85 * 640)
        assert slots[0].rect.width == pytest.approx(80)
        assert slots[0].rect.y == pytest.approx(48)

    def test_narrow_container_limits_slot_width(self):
        slots = layout.slots_normalized(100, 2000)
        assert slots[0].rect.width == pytest.approx(85)
        assert all(s.rect.min_x >= 0 and s.rect.max_x <= 100 for s in slots)

    def test_results_follow_container_size(self):
        small = layout.slots_normalized(360, 640)
        large = layout.slots_normalized(720, 1280)
        assert large[0].rect.width == pytest.approx(2 * small[0].rect.width)
        assert layout.slots_normalized(360, 640) == small
