"""Locates the six coin regions in an image.

Two strategies are available. ``slots`` maps the fixed on-screen column onto
the image and is used when the user aligned the coins against guides.
``contour`` finds coins anywhere in a free-form photo by anchoring on the
square hole at each coin's center.
"""
import itertools
import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..backends.base_backend import ContourBackend
from ..backends.contour_backend import OpenCVContourBackend
from ..config.settings import Config
from ..core import layout
from ..core.constants import SLOT_COUNT
from ..core.entities import ContourNode, DetectedRegion, Rect, Slot
from ..core.exceptions import ContourExtractionError, DetectionFailure
from ..utils.geometry import (
    center_distance, clamp_rect, fit_line_x_over_y, jitter_offsets,
    map_view_rect_to_image, mean, median, padded_square, std,
)
from ..utils.image_utils import apply_circular_mask, crop_image, enhance_for_contours, image_size

logger = logging.getLogger(__name__)

STRATEGIES = ("contour", "slots")

# Hole validity relative to its parent outline
HOLE_AREA_RATIO = (0.04, 0.35)
HOLE_ASPECT = (0.5, 1.5)
HOLE_CENTER_TOLERANCE = 0.2
HOLE_SCALE_RANGE = (2.6, 4.8)

# Standalone blobs used when too few parented holes exist
STANDALONE_AREA = (0.00005, 0.005)
STANDALONE_ASPECT = (0.7, 1.3)
STANDALONE_SCALE = 3.4

# Accepted coin candidates
CANDIDATE_ASPECT = (0.6, 1.4)
CANDIDATE_AREA_RATIO = (0.002, 0.2)
DUPLICATE_DISTANCE_RATIO = 0.3

MAX_COMBINATION_POOL = 14
COST_WEIGHTS = (2.0, 1.4, 1.0, 1.4)  # line, spacing, size, x-spread


def _between(value: float, bounds: Tuple[float, float]) -> bool:
    return bounds[0] < value < bounds[1]


def _aspect(rect: Rect) -> float:
    return rect.width / rect.height if rect.height > 0 else 0.0


def hole_scale(outer_area: float, hole_area: float) -> float:
    """Scale from hole size to coin size, from the parent/hole area ratio."""
    if outer_area <= 0 or hole_area <= 0:
        return STANDALONE_SCALE
    low, high = HOLE_SCALE_RANGE
    return min(max(math.sqrt(outer_area / hole_area), low), high)


def derive_from_hole(outer: Rect, hole: Rect, width: float, height: float) -> Optional[Rect]:
    """Coin region implied by ``hole`` inside ``outer`` (pixel space), or None."""
    if outer.area <= 0 or hole.area <= 0:
        return None
    if not _between(hole.area / outer.area, HOLE_AREA_RATIO):
        return None
    if not _between(_aspect(hole), HOLE_ASPECT):
        return None

    tolerance = HOLE_CENTER_TOLERANCE * min(outer.width, outer.height)
    if abs(hole.mid_x - outer.mid_x) > tolerance or abs(hole.mid_y - outer.mid_y) > tolerance:
        return None

    side = max(hole.width, hole.height) * hole_scale(outer.area, hole.area)
    region = clamp_rect(Rect.square(hole.mid_x, hole.mid_y, side), width, height)
    return None if region.is_empty else region


def hole_candidates(roots: Iterable[ContourNode], width: float, height: float) -> List[Rect]:
    candidates = []
    for root in roots:
        for node in root.walk():
            outer = node.rect.scaled(width, height)
            for child in node.children:
                region = derive_from_hole(outer, child.rect.scaled(width, height), width, height)
                if region is not None:
                    candidates.append(region)
    return candidates


def standalone_hole_candidates(roots: Iterable[ContourNode], width: float, height: float) -> List[Rect]:
    candidates = []
    for root in roots:
        for node in root.walk():
            hole = node.rect.scaled(width, height)
            if not _between(_aspect(hole), STANDALONE_ASPECT):
                continue
            if not _between(node.rect.area, STANDALONE_AREA):
                continue
            side = max(hole.width, hole.height) * STANDALONE_SCALE
            region = clamp_rect(Rect.square(hole.mid_x, hole.mid_y, side), width, height)
            if not region.is_empty:
                candidates.append(region)
    return candidates


def accept_candidates(candidates: Sequence[Rect], width: float, height: float) -> List[Rect]:
    """Shape/size filter followed by duplicate suppression (largest wins)."""
    image_area = float(width) * float(height)
    filtered = [
        c for c in candidates
        if _between(_aspect(c), CANDIDATE_ASPECT) and _between(c.area / image_area, CANDIDATE_AREA_RATIO)
    ]

    kept: List[Rect] = []
    for candidate in sorted(filtered, key=lambda r: r.area, reverse=True):
        limit = DUPLICATE_DISTANCE_RATIO * min(candidate.width, candidate.height)
        if any(center_distance(candidate, other) < limit for other in kept):
            continue
        kept.append(candidate)
    return kept


def column_cost(rects: Sequence[Rect]) -> float:
    """How far a set of regions is from an evenly spaced vertical column of equal coins."""
    ordered = sorted(rects, key=lambda r: r.mid_y)
    sizes = [min(r.width, r.height) for r in ordered]
    mean_size = mean(sizes)
    if mean_size <= 0:
        return math.inf

    points = [(r.mid_x, r.mid_y) for r in ordered]
    slope, intercept = fit_line_x_over_y(points)
    line_deviation = mean([abs(x - (slope * y + intercept)) for x, y in points]) / mean_size

    spacings = [b[1] - a[1] for a, b in zip(points, points[1:])]
    mean_spacing = mean(spacings)
    spacing_score = std(spacings, mean_spacing) / max(mean_spacing, mean_size)

    size_std = std(sizes, mean_size) / mean_size

    xs = [p[0] for p in points]
    x_spread = (max(xs) - min(xs)) / mean_size

    w_line, w_spacing, w_size, w_spread = COST_WEIGHTS
    return (w_line * line_deviation + w_spacing * spacing_score
            + w_size * size_std + w_spread * x_spread)


def select_best_six(candidates: Sequence[Rect]) -> List[Rect]:
    """Pick the six candidates that best form a column.

    The pool is capped at MAX_COMBINATION_POOL candidates closest to the median
    area, which bounds the search at C(14, 6) combinations.
    """
    if len(candidates) <= SLOT_COUNT:
        return list(candidates)

    pool = list(candidates)
    if len(pool) > MAX_COMBINATION_POOL:
        median_area = median(r.area for r in pool)
        pool = sorted(pool, key=lambda r: abs(r.area - median_area))[:MAX_COMBINATION_POOL]

    best: Optional[Tuple[Rect, ...]] = None
    best_cost = math.inf
    for combination in itertools.combinations(pool, SLOT_COUNT):
        cost = column_cost(combination)
        if cost < best_cost:
            best_cost = cost
            best = combination

    logger.debug(f"Best-six selection from {len(pool)} candidates, cost={best_cost:.4f}")
    return list(best) if best is not None else []


class RegionDetector:
    """Produces six DetectedRegions from an image."""

    def __init__(self, config: Optional[Config] = None,
                 contour_backend: Optional[ContourBackend] = None):
        self.config = config or Config()
        self.contour_backend = contour_backend or OpenCVContourBackend(
            {"contour_max_dimension": self.config.contour_max_dimension})

    def detect(self, image: np.ndarray, strategy: str = "contour",
               view_size: Optional[Tuple[float, float]] = None) -> List[DetectedRegion]:
        """Six regions ordered top to bottom as positions 6..1.

        Raises:
            DetectionFailure: Fewer than six regions could be located
            ValueError: Unknown strategy
        """
        if strategy == "contour":
            return self.detect_contours(image)
        if strategy == "slots":
            regions = self.detect_slots(image, view_size)
            if len(regions) < SLOT_COUNT:
                raise DetectionFailure(
                    f"Only {len(regions)} of {SLOT_COUNT} slots fall inside the image", found=len(regions))
            return regions
        raise ValueError(f"Unknown detection strategy: {strategy}")

    # -- slot strategy --------------------------------------------------

    def layout_slots(self, image: np.ndarray,
                     view_size: Optional[Tuple[float, float]] = None) -> Tuple[List[Slot], Tuple[float, float]]:
        view = view_size or image_size(image)
        return layout.slots_normalized(view[0], view[1]), view

    def slot_image_rect(self, slot_rect: Rect, view_size: Tuple[float, float],
                        image_dims: Tuple[float, float]) -> Rect:
        rect = map_view_rect_to_image(slot_rect, view_size, image_dims)
        if rect.is_empty:
            return rect
        inset = min(rect.width, rect.height) * self.config.slot_inset_ratio
        return rect.inset(inset, inset)

    def detect_slots(self, image: np.ndarray,
                     view_size: Optional[Tuple[float, float]] = None) -> List[DetectedRegion]:
        """Crops for every slot that lands inside the image, top slot first."""
        dims = image_size(image)
        slot_list, view = self.layout_slots(image, view_size)

        regions = []
        for slot in slot_list:
            rect = self.slot_image_rect(slot.rect, view, dims)
            crop = crop_image(image, rect) if not rect.is_empty else None
            if crop is None:
                logger.debug(f"Slot {slot.position} maps outside the image")
                continue
            regions.append(DetectedRegion(
                image=crop,
                position=slot.position,
                rect=rect,
                normalized_rect=rect.normalized(*dims),
                masked_image=apply_circular_mask(crop),
            ))
        return regions

    def jittered_crops(self, image: np.ndarray,
                       view_size: Optional[Tuple[float, float]] = None) -> Dict[int, List[np.ndarray]]:
        """Per slot, crops shifted by the jitter grid in view space.

        Offsets that would push the slot outside the view are skipped.
        """
        dims = image_size(image)
        slot_list, view = self.layout_slots(image, view_size)
        bounds = Rect(0.0, 0.0, float(view[0]), float(view[1]))

        crops: Dict[int, List[np.ndarray]] = {}
        for slot in slot_list:
            crops[slot.position] = []
            for dx, dy in jitter_offsets(self.config.jitter_offset):
                shifted = slot.rect.offset(dx, dy)
                if not bounds.contains(shifted):
                    continue
                rect = self.slot_image_rect(shifted, view, dims)
                crop = crop_image(image, rect) if not rect.is_empty else None
                if crop is not None:
                    crops[slot.position].append(crop)
        return crops

    # -- contour strategy -----------------------------------------------

    def _extract(self, image: np.ndarray, dark_on_light: bool, contrast: float) -> List[ContourNode]:
        try:
            return self.contour_backend.extract_contours(image, dark_on_light=dark_on_light, contrast=contrast)
        except ContourExtractionError as e:
            logger.warning(f"Contour pass failed (dark_on_light={dark_on_light}, contrast={contrast}): {e}")
            return []

    def find_candidates(self, image: np.ndarray) -> List[Rect]:
        """Accepted, de-duplicated candidate regions in pixel space."""
        width, height = image_size(image)

        first_pass = self._extract(image, True, 1.0)
        raw = hole_candidates(first_pass, width, height)
        accepted = accept_candidates(raw, width, height)

        if len(accepted) < SLOT_COUNT:
            raw += hole_candidates(self._extract(image, False, 1.0), width, height)
            accepted = accept_candidates(raw, width, height)

        if len(accepted) < SLOT_COUNT:
            enhanced = enhance_for_contours(image)
            raw += hole_candidates(self._extract(enhanced, True, 1.3), width, height)
            accepted = accept_candidates(raw, width, height)

        if len(accepted) < SLOT_COUNT:
            raw += standalone_hole_candidates(first_pass, width, height)
            accepted = accept_candidates(raw, width, height)

        logger.debug(f"Contour detection found {len(accepted)} candidates from {len(raw)} raw regions")
        return accepted

    def detect_contours(self, image: np.ndarray) -> List[DetectedRegion]:
        if image is None or image.size == 0:
            raise DetectionFailure("Empty image", found=0)

        candidates = self.find_candidates(image)
        if len(candidates) < SLOT_COUNT:
            raise DetectionFailure(
                f"Found {len(candidates)} coin candidates, need {SLOT_COUNT}", found=len(candidates))

        width, height = image_size(image)
        selected = select_best_six(candidates)
        padded = [clamp_rect(padded_square(r, self.config.region_padding_ratio), width, height) for r in selected]
        padded.sort(key=lambda r: r.mid_y)

        regions = []
        for index, rect in enumerate(padded):
            crop = crop_image(image, rect)
            if crop is None:
                raise DetectionFailure(f"Region {rect} is empty after clamping", found=len(regions))
            regions.append(DetectedRegion(
                image=crop,
                position=SLOT_COUNT - index,
                rect=rect,
                normalized_rect=rect.normalized(width, height),
                masked_image=apply_circular_mask(crop),
            ))
        logger.info(f"Detected {len(regions)} coin regions")
        return regions
