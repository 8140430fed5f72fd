"""Fixed slot geometry for the six-coin column.

The column is six square slots stacked top to bottom. The top slot holds
position 6 and the bottom slot position 1, matching the order in which the
lines of a reading are built.
"""
from functools import lru_cache
from typing import List, Tuple

from .constants import SLOT_COUNT
from .entities import Rect, Slot

SLOT_SIZE = 100.0
SLOT_SPACING = 16.0
COLUMN_FILL = 0.85


def column_height(slot_size: float = SLOT_SIZE, spacing: float = SLOT_SPACING) -> float:
    return SLOT_COUNT * slot_size + (SLOT_COUNT - 1) * spacing


def slots(width: float, height: float,
          slot_size: float = SLOT_SIZE, spacing: float = SLOT_SPACING) -> List[Slot]:
    """Six slots centered in a container of the given size."""
    start_y = (height - column_height(slot_size, spacing)) / 2.0
    start_x = (width - slot_size) / 2.0
    return [
        Slot(position=SLOT_COUNT - index,
             rect=Rect(start_x, start_y + index * (slot_size + spacing), slot_size, slot_size))
        for index in range(SLOT_COUNT)
    ]


@lru_cache(maxsize=16)
def _fitted_slots(width: float, height: float, fill: float) -> Tuple[Slot, ...]:
    unit = fill * height / column_height()
    if SLOT_SIZE * unit > fill * width:
        unit = fill * width / SLOT_SIZE
    return tuple(slots(width, height, SLOT_SIZE * unit, SLOT_SPACING * unit))


def slots_normalized(width: float, height: float, fill: float = COLUMN_FILL) -> List[Slot]:
    """Slots scaled so the column spans ``fill`` of the container height.

    Slot width never exceeds ``fill`` of the container width. Results are
    cached per container size and regenerated when the size changes.
    """
    return list(_fitted_slots(float(width), float(height), float(fill)))
