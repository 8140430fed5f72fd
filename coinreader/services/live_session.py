"""Live camera session: throttled frame intake, stabilizer and published snapshots."""
import logging
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from ..config.settings import Config
from ..core.constants import SLOT_COUNT
from ..core.entities import (CalibrationParameters, CoinResult, DetectedRegion, LiveSnapshot, MatchOutcome,
                             ReferenceTemplateSet, SessionContext, StabilizerState, is_complete_reading)
from ..core.logging_config import CorrelationContext
from ..core.threading_manager import WorkerPool
from .consensus import invert_sides, is_reliable
from .match_classifier import MatchClassifier
from .recognition_service import CoinRecognizer
from .stabilizer import StabilizerUpdate, TemporalStabilizer

logger = logging.getLogger(__name__)

STATUS_NO_TEMPLATES = "Calibrate the coin faces first"
STATUS_NO_COINS = "Place six coins in the guides"
STATUS_LOW_LIGHT = "Too dark, turn on the torch"
STATUS_MATCHING = "Matching coins..."
STATUS_RECOGNISED = "Coins recognised"


def build_status(update: StabilizerUpdate, required_frames: int, can_match: bool,
                 results: Sequence[CoinResult]) -> str:
    """Human-readable status line for one processed frame."""
    if not can_match:
        return STATUS_NO_TEMPLATES
    if update.present_count == 0:
        return STATUS_NO_COINS
    if update.suggest_torch and update.state is not StabilizerState.LOCKED:
        return STATUS_LOW_LIGHT
    if update.present_count < SLOT_COUNT:
        return f"{update.present_count} of {SLOT_COUNT} coins found"
    if update.state is StabilizerState.SEARCHING:
        return f"{SLOT_COUNT} coins found, hold the camera steady"
    if update.state is StabilizerState.LOCKING:
        return f"Locking ({update.lock_count}/{required_frames})"
    if not results:
        return STATUS_MATCHING
    unresolved = sum(1 for r in results if not r.side.is_decisive)
    if unresolved:
        return f"{unresolved} coin{'s' if unresolved != 1 else ''} uncertain, adjust the light or angle"
    if is_reliable(results):
        return STATUS_RECOGNISED
    return STATUS_MATCHING


class LiveSession:
    """Drives recognition from a push-based frame source.

    ``handle_frame`` never blocks: a frame is accepted only if the minimum
    interval has elapsed and no frame is in flight, otherwise it is dropped.
    Accepted frames run on a single worker. Stabilizer and smoothing state
    only change under the session lock, and a result computed before a
    reset or profile change is discarded instead of published.
    """

    def __init__(self, config: Optional[Config] = None,
                 recognizer: Optional[CoinRecognizer] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or Config()
        self.recognizer = recognizer or CoinRecognizer(self.config)
        self.stabilizer = TemporalStabilizer(self.config)
        self.min_interval = float(self.config.live_min_interval)
        self._clock = clock

        self._lock = threading.Lock()
        self._worker = WorkerPool("live", max_workers=1)
        self._listeners: List[Callable[[LiveSnapshot], None]] = []

        self._context = SessionContext(invert_sides=self.config.invert_sides)
        self._preview_size: Optional[Tuple[float, float]] = None
        self._enabled = True
        self._in_flight = False
        self._last_accepted: Optional[float] = None
        self._generation = 0
        self._frame_index = 0
        self._final_reading: Optional[Tuple[CoinResult, ...]] = None
        self._snapshot = LiveSnapshot(frame_index=0, status_text=STATUS_NO_TEMPLATES)

    # -- observable state ---------------------------------------------------

    @property
    def snapshot(self) -> LiveSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def detections(self) -> Tuple[DetectedRegion, ...]:
        return self.snapshot.detections

    @property
    def results(self) -> Tuple[CoinResult, ...]:
        return self.snapshot.results

    @property
    def status_text(self) -> str:
        return self.snapshot.status_text

    @property
    def suggest_torch(self) -> bool:
        return self.snapshot.suggest_torch

    @property
    def state(self) -> StabilizerState:
        return self.snapshot.state

    @property
    def final_reading(self) -> Optional[Tuple[CoinResult, ...]]:
        return self.snapshot.final_reading

    @property
    def context(self) -> SessionContext:
        with self._lock:
            return self._context

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def add_listener(self, callback: Callable[[LiveSnapshot], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[LiveSnapshot], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # -- controls -------------------------------------------------------------

    def update_profile(self, template_set: Optional[ReferenceTemplateSet],
                       calibration: Optional[CalibrationParameters] = None) -> None:
        """Switch to another template set; everything accumulated so far is dropped."""
        context = self.recognizer.context_for(template_set, calibration, self.context.invert_sides)
        with self._lock:
            self._context = context
        logger.info(f"Live session profile updated (templates={'yes' if context.can_match else 'no'})")
        self.reset()

    def set_invert_sides(self, invert: bool) -> None:
        with self._lock:
            self._context = replace(self._context, invert_sides=bool(invert))

    def set_preview_size(self, size: Optional[Tuple[float, float]]) -> None:
        with self._lock:
            self._preview_size = tuple(size) if size else None

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            changed = self._enabled != bool(enabled)
            self._enabled = bool(enabled)
        if changed and not enabled:
            self.reset()

    def reset(self) -> None:
        """Zero every counter and clear the smoothing window now."""
        with self._lock:
            self._generation += 1
            self.stabilizer.reset()
            self._final_reading = None
            self._last_accepted = None
            status = STATUS_NO_TEMPLATES if not self._context.can_match else STATUS_NO_COINS
            self._snapshot = LiveSnapshot(frame_index=self._frame_index, status_text=status)
            snapshot = self._snapshot
        logger.debug("Live session reset")
        self._notify(snapshot)

    # -- frame intake ---------------------------------------------------------

    def handle_frame(self, frame: np.ndarray) -> bool:
        """Offer a frame. Returns True when it was accepted for processing."""
        if frame is None or frame.size == 0:
            return False
        now = self._clock()
        with self._lock:
            if not self._enabled or self._in_flight:
                return False
            if self._last_accepted is not None and now - self._last_accepted < self.min_interval:
                return False
            self._in_flight = True
            self._last_accepted = now
            self._frame_index += 1
            frame_index = self._frame_index
            generation = self._generation

        try:
            self._worker.submit(self._process_frame, frame.copy(), frame_index, generation)
        except RuntimeError:
            with self._lock:
                self._in_flight = False
            raise
        return True

    def _is_current(self, generation: int) -> bool:
        return self._enabled and generation == self._generation

    def _process_frame(self, frame: np.ndarray, frame_index: int, generation: int) -> None:
        with CorrelationContext(f"frame-{frame_index}"):
            try:
                self._run_pipeline(frame, frame_index, generation)
            except Exception:
                logger.exception(f"Live frame {frame_index} failed")
            finally:
                with self._lock:
                    self._in_flight = False

    def _run_pipeline(self, frame: np.ndarray, frame_index: int, generation: int) -> None:
        detector = self.recognizer.detector
        with self._lock:
            preview_size = self._preview_size
        regions = detector.detect_slots(frame, preview_size)
        evaluations = self.recognizer.gate.evaluate_regions(regions)

        with self._lock:
            if not self._is_current(generation):
                logger.debug(f"Discarding frame {frame_index} from a previous session state")
                return
            update = self.stabilizer.update(evaluations)
            if update.state is not StabilizerState.LOCKED:
                self._final_reading = None
            context = self._context

        results: List[CoinResult] = []
        if update.should_match and context.can_match and len(regions) == SLOT_COUNT:
            raw = self.recognizer.matching.match_regions(
                regions, context, self.recognizer.zoom_scales, apply_inversion=False)
            with self._lock:
                if not self._is_current(generation):
                    logger.debug(f"Discarding match results of frame {frame_index}")
                    return
                results = self.stabilizer.smooth(raw)

            classifier = MatchClassifier(context.calibration)
            for result in results:
                floored = classifier.enforce_floor(MatchOutcome(result.side, result.confidence))
                result.update(floored.side, floored.confidence)
            if context.invert_sides:
                invert_sides(results)

        status = build_status(update, self.stabilizer.required_frames, context.can_match, results)
        with self._lock:
            if not self._is_current(generation):
                return
            if (self._final_reading is None and results
                    and is_complete_reading(results) and is_reliable(results)):
                self._final_reading = tuple(replace(r) for r in results)
                logger.info("Final reading: " + ", ".join(
                    f"{r.position}={r.side.value}:{r.confidence:.2f}" for r in results))
            snapshot = LiveSnapshot(
                frame_index=frame_index,
                detections=tuple(regions),
                results=tuple(results),
                status_text=status,
                state=update.state,
                suggest_torch=update.suggest_torch,
                final_reading=self._final_reading,
            )
            self._snapshot = snapshot
        self._notify(snapshot)

    def _notify(self, snapshot: LiveSnapshot) -> None:
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning(f"Live listener {callback!r} failed: {e}")

    # -- lifecycle ------------------------------------------------------------

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self._worker.wait_until_idle(timeout)

    def close(self) -> None:
        self.set_enabled(False)
        self._worker.shutdown(wait=True)
        stats = self._worker.get_stats()
        logger.info(f"Live session closed: {stats['completed_tasks']} frames analysed, "
                    f"{stats['failed_tasks']} failed, avg {stats['avg_task_seconds']:.3f}s")
