"""Geometry helpers and small statistics used by region detection."""

import math
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.entities import Rect


def center_distance(a: Rect, b: Rect) -> float:
    return math.hypot(a.mid_x - b.mid_x, a.mid_y - b.mid_y)


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def std(values: Sequence[float], center: Optional[float] = None) -> float:
    """Population standard deviation."""
    if not values:
        return 0.0
    mu = mean(values) if center is None else center
    return math.sqrt(sum((v - mu) ** 2 for v in values) / len(values))


def median(values: Iterable[float]) -> Optional[float]:
    ordered = sorted(values)
    if not ordered:
        return None
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2.0


def fit_line_x_over_y(points: Sequence[Tuple[float, float]]) -> Tuple[float, float]:
    """Least-squares fit of x = slope * y + intercept.

    A column of coins is close to vertical, so x is regressed on y. A zero
    denominator (all y equal) yields a vertical line through the mean x.
    """
    n = len(points)
    if n == 0:
        return 0.0, 0.0
    mean_x = sum(p[0] for p in points) / n
    mean_y = sum(p[1] for p in points) / n
    num = sum((p[1] - mean_y) * (p[0] - mean_x) for p in points)
    den = sum((p[1] - mean_y) ** 2 for p in points)
    if den == 0:
        return 0.0, mean_x
    slope = num / den
    return slope, mean_x - slope * mean_y


def clamp_rect(rect: Rect, width: float, height: float) -> Rect:
    """Intersect ``rect`` with the image bounds."""
    return rect.intersection(Rect(0.0, 0.0, float(width), float(height)))


def padded_square(rect: Rect, padding_ratio: float) -> Rect:
    """Square of side max(w, h) * (1 + padding_ratio) around the rect center."""
    side = max(rect.width, rect.height) * (1.0 + padding_ratio)
    return Rect.square(rect.mid_x, rect.mid_y, side)


def map_view_rect_to_image(view_rect: Rect, view_size: Tuple[float, float],
                           image_size: Tuple[float, float]) -> Rect:
    """Map a rect in preview coordinates to image pixels.

    The preview shows the image with aspect-fill: scaled by the larger of the
    two axis ratios and centered, so the overflowing axis is cropped evenly.
    The result is intersected with the image bounds.
    """
    view_w, view_h = view_size
    image_w, image_h = image_size
    if view_w <= 0 or view_h <= 0 or image_w <= 0 or image_h <= 0:
        return Rect(0.0, 0.0, 0.0, 0.0)

    scale = max(view_w / image_w, view_h / image_h)
    offset_x = (image_w * scale - view_w) / 2.0
    offset_y = (image_h * scale - view_h) / 2.0

    mapped = Rect(
        (view_rect.x + offset_x) / scale,
        (view_rect.y + offset_y) / scale,
        view_rect.width / scale,
        view_rect.height / scale,
    )
    return clamp_rect(mapped, image_w, image_h)


def jitter_offsets(distance: float) -> List[Tuple[float, float]]:
    """The 3x3 grid of offsets {-d, 0, +d}^2, unshifted first."""
    steps = (0.0, -distance, distance)
    return [(dx, dy) for dy in steps for dx in steps]
