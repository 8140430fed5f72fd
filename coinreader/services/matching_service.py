"""Per-slot matching: candidates in, one CoinResult per slot out."""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.entities import CoinResult, DetectedRegion, MatchOutcome, SessionContext
from ..core.threading_manager import fan_out
from ..utils.image_utils import apply_circular_mask, prepare_coin_for_matching, zoom_variants
from .consensus import invert_sides, merge_representations, resolve_attempts
from .match_classifier import MatchClassifier
from .similarity_engine import SimilarityEngine

logger = logging.getLogger(__name__)

DEFAULT_ZOOM_SCALES = (1.0, 0.82, 0.68)


def expand_candidates(crops: Sequence[np.ndarray], zoom_scales: Sequence[float] = DEFAULT_ZOOM_SCALES,
                      masked: Optional[Sequence[np.ndarray]] = None) -> List[np.ndarray]:
    """Zoom variants of every raw crop and of its circularly masked copy."""
    candidates: List[np.ndarray] = []
    masked = list(masked) if masked is not None else [apply_circular_mask(c) for c in crops]
    for raw, mask in zip(crops, masked):
        candidates.extend(zoom_variants(raw, zoom_scales))
        candidates.extend(zoom_variants(mask, zoom_scales))
    return candidates


def region_candidates(region: DetectedRegion, zoom_scales: Sequence[float] = DEFAULT_ZOOM_SCALES) -> List[np.ndarray]:
    masked = [region.masked_image] if region.masked_image is not None else None
    return expand_candidates([region.image], zoom_scales, masked)


class MatchingService:
    """Runs descriptor and feature-print matching with slot-level consensus.

    Stateless between calls: everything that changes the answer arrives in
    the SessionContext, so repeated calls with the same inputs agree.
    """

    def __init__(self, engine: Optional[SimilarityEngine] = None, max_workers: int = 6):
        self.engine = engine or SimilarityEngine()
        self.max_workers = max_workers

    def match_candidate(self, image: np.ndarray, context: SessionContext) -> MatchOutcome:
        template_set = context.template_set
        if template_set is None:
            return MatchOutcome.invalid()
        prepared = prepare_coin_for_matching(image)
        if prepared is None:
            return MatchOutcome.invalid()

        classifier = MatchClassifier(context.calibration)
        descriptor = self.engine.match_descriptor(prepared, template_set, classifier)

        feature_print = None
        if self.engine.feature_print_backend is not None and template_set.has_feature_prints:
            feature_print = self.engine.match_feature_print(prepared, template_set, classifier)

        if not template_set.has_descriptors and feature_print is not None:
            return feature_print
        return merge_representations(descriptor, feature_print)

    def resolve_slot(self, candidates: Sequence[np.ndarray], context: SessionContext) -> MatchOutcome:
        outcomes = [self.match_candidate(candidate, context) for candidate in candidates]
        resolved = resolve_attempts(outcomes)
        return MatchClassifier(context.calibration).enforce_floor(resolved)

    def match_slots(self, candidates: Dict[int, Sequence[np.ndarray]],
                    context: SessionContext, apply_inversion: bool = True) -> List[CoinResult]:
        """One result per position, in descending position order (top slot first).

        Pass ``apply_inversion=False`` when the caller inverts later, after smoothing.
        """
        positions = sorted(candidates, reverse=True)

        def work(position: int) -> Tuple[int, MatchOutcome]:
            return position, self.resolve_slot(candidates[position], context)

        results = [CoinResult.from_outcome(position, outcome)
                   for position, outcome in fan_out(work, positions, self.max_workers)]

        if apply_inversion and context.invert_sides:
            invert_sides(results)

        logger.debug("Slot results: " + ", ".join(
            f"{r.position}={r.side.value}:{r.confidence:.2f}" for r in results))
        return results

    def match_regions(self, regions: Sequence[DetectedRegion], context: SessionContext,
                      zoom_scales: Sequence[float] = DEFAULT_ZOOM_SCALES,
                      apply_inversion: bool = True) -> List[CoinResult]:
        return self.match_slots(
            {region.position: region_candidates(region, zoom_scales) for region in regions},
            context, apply_inversion)
