"""Fuses many noisy classification attempts into one answer per slot."""
import logging
from typing import Iterable, List, Optional, Sequence

from ..core.entities import CoinResult, CoinSide, MatchOutcome, clamp01
from ..utils.geometry import mean

logger = logging.getLogger(__name__)

MIN_DECISIVE_CONFIDENCE = 0.62
MIN_EVIDENCE_MARGIN = 0.12
MIN_SUPPORT = 2

# cross-representation merge
FEATURE_PRINT_LEAD = 0.10
DESCRIPTOR_LEAD = 0.14
DESCRIPTOR_ALONE_CONFIDENCE = 0.82

# reliability of a whole reading
RELIABLE_MEAN_CONFIDENCE = 0.66
WEAK_SLOT_CONFIDENCE = 0.57
MAX_WEAK_SLOTS = 1


def reliability_adjusted(outcome: MatchOutcome,
                         min_confidence: float = MIN_DECISIVE_CONFIDENCE) -> MatchOutcome:
    """Downgrade a weak decisive outcome to uncertain."""
    if outcome.side.is_decisive and outcome.confidence < min_confidence:
        return MatchOutcome.uncertain(outcome.confidence)
    return MatchOutcome(outcome.side, clamp01(outcome.confidence))


def resolve_candidate_evidence(front_evidence: float, back_evidence: float,
                               front_count: int, back_count: int,
                               min_margin: float = MIN_EVIDENCE_MARGIN,
                               min_support: int = MIN_SUPPORT) -> MatchOutcome:
    total = front_evidence + back_evidence
    if total <= 0:
        return MatchOutcome.uncertain()

    if front_evidence >= back_evidence:
        side, winner, support = CoinSide.FRONT, front_evidence, front_count
    else:
        side, winner, support = CoinSide.BACK, back_evidence, back_count

    margin = abs(front_evidence - back_evidence) / total
    if margin >= min_margin and support >= min_support:
        return MatchOutcome(side, clamp01(winner / total))
    return MatchOutcome.uncertain(winner / total)


def resolve_attempts(outcomes: Iterable[MatchOutcome]) -> MatchOutcome:
    """Consensus over every attempt made for one slot.

    With no decisive evidence at all the slot is uncertain if any attempt was
    uncertain, otherwise invalid.
    """
    front_evidence = back_evidence = 0.0
    front_count = back_count = 0
    saw_uncertain = False

    for outcome in outcomes:
        adjusted = reliability_adjusted(outcome)
        if adjusted.side is CoinSide.FRONT:
            front_evidence += adjusted.confidence
            front_count += 1
        elif adjusted.side is CoinSide.BACK:
            back_evidence += adjusted.confidence
            back_count += 1
        elif adjusted.side is CoinSide.UNCERTAIN:
            saw_uncertain = True

    if front_evidence + back_evidence <= 0:
        return MatchOutcome.uncertain() if saw_uncertain else MatchOutcome.invalid()
    return resolve_candidate_evidence(front_evidence, back_evidence, front_count, back_count)


def merge_representations(descriptor: MatchOutcome, feature_print: Optional[MatchOutcome]) -> MatchOutcome:
    """Merge the descriptor and feature-print answers for one crop.

    ``feature_print`` is None when that path is not configured, in which case
    the descriptor answer stands on its own.
    """
    if feature_print is None:
        return descriptor

    if descriptor.side.is_decisive and feature_print.side.is_decisive:
        if descriptor.side is feature_print.side:
            return MatchOutcome(descriptor.side, (descriptor.confidence + feature_print.confidence) / 2.0)
        if feature_print.confidence - descriptor.confidence >= FEATURE_PRINT_LEAD:
            return feature_print
        if descriptor.confidence - feature_print.confidence >= DESCRIPTOR_LEAD:
            return descriptor
        return MatchOutcome.uncertain(max(descriptor.confidence, feature_print.confidence))

    if descriptor.side.is_decisive:
        if descriptor.confidence >= DESCRIPTOR_ALONE_CONFIDENCE:
            return descriptor
        return MatchOutcome.uncertain(descriptor.confidence)

    if feature_print.side.is_decisive:
        return feature_print

    if descriptor.side.rank != feature_print.side.rank:
        return descriptor if descriptor.side.rank < feature_print.side.rank else feature_print
    return descriptor if descriptor.confidence >= feature_print.confidence else feature_print


def invert_sides(results: Sequence[CoinResult]) -> None:
    """Swap front and back in place on decisive results."""
    for result in results:
        if result.side.is_decisive:
            result.update(result.side.inverted(), result.confidence)


def is_reliable(results: Sequence[CoinResult]) -> bool:
    """Whether a six-slot reading is trustworthy enough to surface as final."""
    if not results or any(not r.side.is_decisive for r in results):
        return False
    confidences: List[float] = [r.confidence for r in results]
    weak = sum(1 for c in confidences if c < WEAK_SLOT_CONFIDENCE)
    return mean(confidences) >= RELIABLE_MEAN_CONFIDENCE and weak <= MAX_WEAK_SLOTS
