"""Domain entities (data-only structures) used across services."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .constants import POSITIONS

BBox = Tuple[int, int, int, int]  # (x1,y1,x2,y2)


def clamp01(value: float) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return min(max(float(value), 0.0), 1.0)


class CoinSide(str, Enum):
    FRONT = "front"
    BACK = "back"
    UNCERTAIN = "uncertain"
    INVALID = "invalid"

    @property
    def is_decisive(self) -> bool:
        return self in (CoinSide.FRONT, CoinSide.BACK)

    @property
    def rank(self) -> int:
        """Preference order used when picking between two outcomes (lower wins)."""
        if self.is_decisive:
            return 0
        return 1 if self is CoinSide.UNCERTAIN else 2

    def inverted(self) -> CoinSide:
        if self is CoinSide.FRONT:
            return CoinSide.BACK
        if self is CoinSide.BACK:
            return CoinSide.FRONT
        return self


class LineValue(str, Enum):
    YIN = "yin"
    YANG = "yang"

    @classmethod
    def for_side(cls, side: CoinSide, default: Optional[LineValue] = None) -> LineValue:
        if side is CoinSide.FRONT:
            return cls.YIN
        if side is CoinSide.BACK:
            return cls.YANG
        return default or cls.YANG


class StabilizerState(str, Enum):
    SEARCHING = "searching"
    LOCKING = "locking"
    LOCKED = "locked"


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned rectangle with a top-left origin."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> Rect:
        return cls(x1, y1, x2 - x1, y2 - y1)

    @classmethod
    def square(cls, center_x: float, center_y: float, side: float) -> Rect:
        return cls(center_x - side / 2.0, center_y - side / 2.0, side, side)

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def mid_x(self) -> float:
        return self.x + self.width / 2.0

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2.0

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def offset(self, dx: float, dy: float) -> Rect:
        return Rect(self.x + dx, self.y + dy, self.width, self.height)

    def inset(self, dx: float, dy: float) -> Rect:
        return Rect(self.x + dx, self.y + dy, self.width - 2 * dx, self.height - 2 * dy)

    def scaled(self, sx: float, sy: Optional[float] = None) -> Rect:
        sy = sx if sy is None else sy
        return Rect(self.x * sx, self.y * sy, self.width * sx, self.height * sy)

    def intersection(self, other: Rect) -> Rect:
        x1 = max(self.min_x, other.min_x)
        y1 = max(self.min_y, other.min_y)
        x2 = min(self.max_x, other.max_x)
        y2 = min(self.max_y, other.max_y)
        if x2 <= x1 or y2 <= y1:
            return Rect(0.0, 0.0, 0.0, 0.0)
        return Rect.from_xyxy(x1, y1, x2, y2)

    def contains(self, other: Rect) -> bool:
        return (other.min_x >= self.min_x and other.min_y >= self.min_y
                and other.max_x <= self.max_x and other.max_y <= self.max_y)

    def integral(self) -> Rect:
        """Smallest rectangle with integer coordinates that contains this one."""
        x1, y1 = math.floor(self.min_x), math.floor(self.min_y)
        x2, y2 = math.ceil(self.max_x), math.ceil(self.max_y)
        return Rect(float(x1), float(y1), float(x2 - x1), float(y2 - y1))

    def normalized(self, width: float, height: float) -> Rect:
        return Rect(self.x / width, self.y / height, self.width / width, self.height / height)

    def as_xyxy(self) -> BBox:
        r = self.integral()
        return int(r.min_x), int(r.min_y), int(r.max_x), int(r.max_y)


@dataclass(slots=True)
class ContourNode:
    """One outline from a contour extraction, bounding box normalized to [0,1]."""
    rect: Rect
    children: List[ContourNode] = field(default_factory=list)

    def walk(self):
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass(frozen=True, slots=True)
class Slot:
    position: int
    rect: Rect


@dataclass(slots=True)
class DetectedRegion:
    image: np.ndarray
    position: int
    rect: Rect  # pixel space
    normalized_rect: Rect
    masked_image: Optional[np.ndarray] = None


@dataclass(frozen=True, slots=True)
class MatchOutcome:
    side: CoinSide
    confidence: float = 0.0

    @classmethod
    def invalid(cls) -> MatchOutcome:
        return cls(CoinSide.INVALID, 0.0)

    @classmethod
    def uncertain(cls, confidence: float = 0.0) -> MatchOutcome:
        return cls(CoinSide.UNCERTAIN, clamp01(confidence))


@dataclass(slots=True)
class CoinResult:
    position: int
    side: CoinSide = CoinSide.INVALID
    confidence: float = 0.0
    line_value: LineValue = LineValue.YANG

    def __post_init__(self):
        if self.position not in POSITIONS:
            raise ValueError(f"Coin position must be between 1 and 6, got {self.position}")
        self.confidence = clamp01(self.confidence)
        self.line_value = LineValue.for_side(self.side, self.line_value)

    @classmethod
    def from_outcome(cls, position: int, outcome: MatchOutcome) -> CoinResult:
        return cls(position=position, side=outcome.side, confidence=outcome.confidence)

    def update(self, side: CoinSide, confidence: float) -> None:
        """Replace the side in place; the line value follows decisive sides only."""
        if side != self.side and side.is_decisive:
            self.line_value = LineValue.for_side(side)
        self.side = side
        self.confidence = clamp01(confidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "side": self.side.value,
            "confidence": round(self.confidence, 4),
            "line_value": self.line_value.value,
        }


def is_complete_reading(results: Sequence[CoinResult]) -> bool:
    """True when the results cover every position exactly once."""
    return len(results) == len(POSITIONS) and sorted(r.position for r in results) == list(POSITIONS)


@dataclass(frozen=True, slots=True, eq=False)
class ReferenceTemplateSet:
    """Per-face reference vectors from calibration samples. Immutable once built."""
    front_descriptors: Tuple[np.ndarray, ...] = ()
    back_descriptors: Tuple[np.ndarray, ...] = ()
    front_feature_prints: Tuple[np.ndarray, ...] = ()
    back_feature_prints: Tuple[np.ndarray, ...] = ()
    descriptor_backend: str = "gradient"
    feature_print_backend: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_descriptors(self) -> bool:
        return bool(self.front_descriptors) and bool(self.back_descriptors)

    @property
    def has_feature_prints(self) -> bool:
        return bool(self.front_feature_prints) and bool(self.back_feature_prints)

    @property
    def is_usable(self) -> bool:
        return self.has_descriptors or self.has_feature_prints


@dataclass(frozen=True, slots=True)
class CalibrationParameters:
    # feature-print (distance) path
    max_match_distance: float = 1.5
    min_distance_gap: float = 0.005
    min_confidence: float = 0.55
    # descriptor (similarity) path
    min_gap: float = 0.05
    min_score: float = 0.55


@dataclass(frozen=True, slots=True)
class PresenceThresholds:
    min_energy: float = 0.02
    min_ring_ratio: float = 0.12
    max_centroid_offset: float = 0.12
    min_quality: float = 0.5

    def relaxed(self, factor: float = 0.8) -> PresenceThresholds:
        return PresenceThresholds(
            min_energy=self.min_energy * factor,
            min_ring_ratio=self.min_ring_ratio * factor,
            max_centroid_offset=self.max_centroid_offset / factor,
            min_quality=self.min_quality * factor,
        )


@dataclass(frozen=True, slots=True)
class PresenceMetrics:
    energy_mean: float
    ring_ratio: float
    centroid_offset: float
    quality_score: float


@dataclass(frozen=True, slots=True)
class PresenceEvaluation:
    position: int
    metrics: Optional[PresenceMetrics]
    is_present: bool
    is_high_quality: bool
    scale: float = 1.0


@dataclass(frozen=True, slots=True)
class LiveSnapshot:
    """Everything observers see after a processed frame."""
    frame_index: int
    detections: Tuple[DetectedRegion, ...] = ()
    results: Tuple[CoinResult, ...] = ()
    status_text: str = ""
    state: StabilizerState = StabilizerState.SEARCHING
    suggest_torch: bool = False
    final_reading: Optional[Tuple[CoinResult, ...]] = None


@dataclass(frozen=True, slots=True, eq=False)
class SessionContext:
    """Explicit matching state handed to every pipeline stage."""
    template_set: Optional[ReferenceTemplateSet] = None
    calibration: CalibrationParameters = field(default_factory=CalibrationParameters)
    invert_sides: bool = False

    @property
    def can_match(self) -> bool:
        return self.template_set is not None and self.template_set.is_usable
