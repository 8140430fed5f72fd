"""Per-slot majority smoothing of decisive results across frames."""
import logging
from collections import deque
from typing import Deque, Dict, List, Sequence, Tuple

from ..core.entities import CoinResult, CoinSide, MatchOutcome

logger = logging.getLogger(__name__)

MIN_SMOOTHED_DELTA = 0.15
MIN_SMOOTHED_CONFIDENCE = 0.58


def resolve_smoothed_scores(front_score: float, back_score: float,
                            min_delta: float = MIN_SMOOTHED_DELTA,
                            min_confidence: float = MIN_SMOOTHED_CONFIDENCE) -> MatchOutcome:
    """Majority side from accumulated scores.

    The delta is normalized by the dominant score and the confidence is the
    dominant share of the total. Only a close race that is also weak is
    reported as uncertain.
    """
    total = front_score + back_score
    if total <= 0:
        return MatchOutcome.uncertain()

    dominant = max(front_score, back_score)
    side = CoinSide.FRONT if front_score >= back_score else CoinSide.BACK
    confidence = dominant / total
    delta = abs(front_score - back_score) / dominant

    if delta < min_delta and confidence < min_confidence:
        return MatchOutcome.uncertain(confidence)
    return MatchOutcome(side, confidence)


class CoinResultSmoother:
    """Sliding window of decisive (side, confidence) samples per position."""

    def __init__(self, window_size: int = 8, minimum_samples: int = 4):
        self.window_size = max(int(window_size), 1)
        self.minimum_samples = max(int(minimum_samples), 1)
        self._history: Dict[int, Deque[Tuple[CoinSide, float]]] = {}

    def reset(self) -> None:
        self._history.clear()

    def sample_count(self, position: int) -> int:
        return len(self._history.get(position, ()))

    def add(self, results: Sequence[CoinResult]) -> List[CoinResult]:
        """Record this frame's results and replace them in place with the smoothed answer.

        Positions with fewer than ``minimum_samples`` decisive samples keep the
        frame's own result.
        """
        for result in results:
            history = self._history.setdefault(result.position, deque(maxlen=self.window_size))
            if result.side.is_decisive:
                history.append((result.side, result.confidence))

            if len(history) < self.minimum_samples:
                continue

            front = sum(conf for side, conf in history if side is CoinSide.FRONT)
            back = sum(conf for side, conf in history if side is CoinSide.BACK)
            if front + back <= 0:
                continue

            smoothed = resolve_smoothed_scores(front, back)
            result.update(smoothed.side, smoothed.confidence)
        return list(results)
