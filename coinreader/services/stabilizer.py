"""Live-frame state machine: Searching -> Locking -> Locked."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config.settings import Config
from ..core.constants import SLOT_COUNT
from ..core.entities import CoinResult, PresenceEvaluation, StabilizerState
from ..utils.geometry import mean
from .result_smoother import CoinResultSmoother

logger = logging.getLogger(__name__)

LOW_LIGHT_MIN_PRESENT = 4


@dataclass(slots=True)
class StabilizerUpdate:
    state: StabilizerState
    lock_count: int
    present_count: int
    quality_count: int
    quality_ready: bool
    suggest_torch: bool

    @property
    def should_match(self) -> bool:
        return self.state is StabilizerState.LOCKED


class TemporalStabilizer:
    """Accumulates per-frame gate evaluations and owns the smoothing window.

    Only the live worker mutates this object; it has no locking of its own.
    """

    def __init__(self, config: Optional[Config] = None):
        config = config or Config()
        self.required_frames = int(config.lock_frames)
        self.low_light_frames = int(config.low_light_frames)
        self.low_light_energy = float(config.low_light_energy)
        self.low_light_quality = float(config.low_light_quality)
        self.smoother = CoinResultSmoother(config.smoothing_window, config.smoothing_min_samples)

        self.lock_count = 0
        self.low_light_count = 0
        self.suggest_torch = False
        self.state = StabilizerState.SEARCHING

    def reset(self) -> None:
        self.lock_count = 0
        self.low_light_count = 0
        self.suggest_torch = False
        self.state = StabilizerState.SEARCHING
        self.smoother.reset()

    def _update_low_light(self, evaluations: Sequence[PresenceEvaluation],
                          present_count: int, quality_count: int) -> None:
        metrics = [e.metrics for e in evaluations if e.metrics is not None]
        energy = mean([m.energy_mean for m in metrics])
        quality = mean([m.quality_score for m in metrics])

        dim = (present_count >= LOW_LIGHT_MIN_PRESENT and quality_count < SLOT_COUNT
               and energy < self.low_light_energy and quality < self.low_light_quality)
        if dim:
            self.low_light_count = min(self.low_light_count + 1, self.low_light_frames)
        else:
            self.low_light_count = max(self.low_light_count - 1, 0)

        # on at the threshold, off only once the counter has drained
        if self.low_light_count >= self.low_light_frames:
            self.suggest_torch = True
        elif self.low_light_count == 0:
            self.suggest_torch = False

    def update(self, evaluations: Sequence[PresenceEvaluation]) -> StabilizerUpdate:
        present_count = sum(1 for e in evaluations if e.is_present)
        quality_count = sum(1 for e in evaluations if e.is_high_quality)
        quality_ready = quality_count >= SLOT_COUNT

        previous = self.state
        if quality_ready:
            self.lock_count = min(self.lock_count + 1, self.required_frames)
        else:
            self.lock_count = 0

        if self.lock_count >= self.required_frames:
            self.state = StabilizerState.LOCKED
        elif self.lock_count > 0:
            self.state = StabilizerState.LOCKING
        else:
            self.state = StabilizerState.SEARCHING

        if previous is StabilizerState.LOCKED and self.state is not StabilizerState.LOCKED:
            logger.info("Lock lost, clearing smoothing window")
            self.smoother.reset()
        elif previous is not StabilizerState.LOCKED and self.state is StabilizerState.LOCKED:
            logger.info(f"Locked after {self.required_frames} quality frames")

        self._update_low_light(evaluations, present_count, quality_count)

        return StabilizerUpdate(
            state=self.state,
            lock_count=self.lock_count,
            present_count=present_count,
            quality_count=quality_count,
            quality_ready=quality_ready,
            suggest_torch=self.suggest_torch,
        )

    def smooth(self, results: Sequence[CoinResult]) -> List[CoinResult]:
        return self.smoother.add(results)
