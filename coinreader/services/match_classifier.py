"""Turns a pair of per-face scores into front / back / uncertain / invalid."""
import logging
import math
from typing import Optional, Sequence

from ..core.entities import CalibrationParameters, CoinSide, MatchOutcome, clamp01
from ..utils.geometry import median

logger = logging.getLogger(__name__)

INVALID_MARGIN = 0.08
STRONG_SCORE_MARGIN = 0.10
RELAXED_GAP_FACTOR = 0.7

MIN_GAP_FLOOR = 0.03
MIN_SCORE_FLOOR = 0.55
GAP_SEPARATION_FACTOR = 0.35
MIN_SEPARATION = 0.02


def classify_scores(front_score: float, back_score: float,
                    min_gap: float, min_score: float) -> MatchOutcome:
    """Similarity pair (higher is better) to an outcome.

    Checked in order: unrecognizable, decisive by gap (or a slightly smaller
    gap when the best score is strong), otherwise uncertain. Confidence is the
    best score.
    """
    if not (math.isfinite(front_score) and math.isfinite(back_score)):
        return MatchOutcome.invalid()

    best = max(front_score, back_score)
    gap = abs(front_score - back_score)

    if best < min_score - INVALID_MARGIN:
        return MatchOutcome.invalid()

    side = CoinSide.FRONT if front_score >= back_score else CoinSide.BACK
    if gap >= min_gap or (best >= min_score + STRONG_SCORE_MARGIN and gap >= RELAXED_GAP_FACTOR * min_gap):
        return MatchOutcome(side, clamp01(best))
    return MatchOutcome.uncertain(best)


def classify_distances(front_distance: float, back_distance: float,
                       calibration: CalibrationParameters) -> MatchOutcome:
    """Distance pair (lower is better) to an outcome.

    The confidence of the nearer face is ``1 - d_near / (d_front + d_back)``.
    """
    if not (math.isfinite(front_distance) and math.isfinite(back_distance)):
        return MatchOutcome.invalid()

    total = front_distance + back_distance
    if total <= 0:
        return MatchOutcome.invalid()

    nearest = min(front_distance, back_distance)
    if nearest > calibration.max_match_distance:
        return MatchOutcome.invalid()

    side = CoinSide.FRONT if front_distance <= back_distance else CoinSide.BACK
    confidence = 1.0 - nearest / total

    if abs(front_distance - back_distance) < calibration.min_distance_gap:
        return MatchOutcome.uncertain(confidence)
    if confidence < calibration.min_confidence:
        return MatchOutcome.uncertain(confidence)
    return MatchOutcome(side, clamp01(confidence))


def apply_confidence_floor(outcome: MatchOutcome, floor: float) -> MatchOutcome:
    if outcome.side.is_decisive and outcome.confidence < floor:
        return MatchOutcome.uncertain(outcome.confidence)
    return outcome


def similarity_thresholds(intra: Sequence[float], inter: Sequence[float]):
    """(min_gap, min_score) from intra-face and cross-face similarities."""
    intra_median = median(intra)
    inter_median = median(inter)
    defaults = CalibrationParameters()
    if intra_median is None or inter_median is None:
        return defaults.min_gap, defaults.min_score

    separation = max(intra_median - inter_median, MIN_SEPARATION)
    min_gap = max(MIN_GAP_FLOOR, GAP_SEPARATION_FACTOR * separation)
    min_score = max(MIN_SCORE_FLOOR, (intra_median + inter_median) / 2.0)
    return min_gap, min_score


def distance_thresholds(intra: Sequence[float], inter: Sequence[float]):
    """(max_match_distance, min_distance_gap, min_confidence) from distance statistics."""
    intra_median = median(intra)
    inter_median = median(inter)
    defaults = CalibrationParameters()
    if intra_median is None or inter_median is None:
        return defaults.max_match_distance, defaults.min_distance_gap, defaults.min_confidence

    separation = max(inter_median - intra_median, 0.0)
    max_match_distance = max(1.5 * inter_median, 2.0 * intra_median, 0.05)
    min_distance_gap = max(0.005, 0.1 * separation)

    spread = intra_median + inter_median
    min_confidence = 0.5 + 0.35 * separation / spread if spread > 0 else defaults.min_confidence
    min_confidence = min(max(min_confidence, 0.52), 0.60)
    return max_match_distance, min_distance_gap, min_confidence


def build_calibration(descriptor_intra: Sequence[float] = (), descriptor_inter: Sequence[float] = (),
                      print_intra: Sequence[float] = (), print_inter: Sequence[float] = ()) -> CalibrationParameters:
    min_gap, min_score = similarity_thresholds(descriptor_intra, descriptor_inter)
    max_distance, min_distance_gap, min_confidence = distance_thresholds(print_intra, print_inter)
    calibration = CalibrationParameters(
        max_match_distance=max_distance,
        min_distance_gap=min_distance_gap,
        min_confidence=min_confidence,
        min_gap=min_gap,
        min_score=min_score,
    )
    logger.info(f"Calibration: min_gap={min_gap:.3f} min_score={min_score:.3f} "
                f"max_distance={max_distance:.3f} min_confidence={min_confidence:.3f}")
    return calibration


class MatchClassifier:
    """Classifier bound to one set of calibration parameters."""

    def __init__(self, calibration: Optional[CalibrationParameters] = None):
        self.calibration = calibration or CalibrationParameters()

    def classify_similarities(self, front_score: float, back_score: float) -> MatchOutcome:
        return classify_scores(front_score, back_score, self.calibration.min_gap, self.calibration.min_score)

    def classify_distances(self, front_distance: float, back_distance: float) -> MatchOutcome:
        return classify_distances(front_distance, back_distance, self.calibration)

    def enforce_floor(self, outcome: MatchOutcome) -> MatchOutcome:
        return apply_confidence_floor(outcome, self.calibration.min_confidence)
