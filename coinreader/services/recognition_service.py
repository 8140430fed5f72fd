"""One-shot recognition: detect, gate and classify a single photo."""
import itertools
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..backends import GradientDescriptorBackend, create_feature_print_backend
from ..config.settings import Config
from ..core.constants import SLOT_COUNT
from ..core.entities import (CalibrationParameters, CoinResult, DetectedRegion, PresenceEvaluation,
                             ReferenceTemplateSet, SessionContext)
from ..core.exceptions import GateFailure
from ..core.logging_config import CorrelationContext
from .matching_service import MatchingService, expand_candidates, region_candidates
from .presence_gate import PresenceGate
from .region_detector import RegionDetector
from .similarity_engine import SimilarityEngine
from .template_manager import TemplateManager

logger = logging.getLogger(__name__)


def build_engine(config: Config) -> SimilarityEngine:
    """Similarity engine with the backends named in the configuration."""
    backend_config = config.to_dict()
    return SimilarityEngine(
        GradientDescriptorBackend(backend_config),
        create_feature_print_backend(config.feature_print_backend, backend_config),
    )


class CoinRecognizer:
    """Wires detector, gate and matcher together for photo mode.

    Every submitted photo is processed once, synchronously, with no frame-drop
    policy. The live session reuses the same collaborators.
    """

    def __init__(self, config: Optional[Config] = None,
                 detector: Optional[RegionDetector] = None,
                 gate: Optional[PresenceGate] = None,
                 engine: Optional[SimilarityEngine] = None):
        self.config = config or Config()
        self.detector = detector or RegionDetector(self.config)
        self.gate = gate or PresenceGate(self.config)
        self.engine = engine or build_engine(self.config)
        self.matching = MatchingService(self.engine, max_workers=self.config.match_workers)
        self.templates = TemplateManager(self.engine)
        self._photo_counter = itertools.count(1)

    @property
    def zoom_scales(self) -> Tuple[float, ...]:
        return tuple(self.config.zoom_scales)

    def context_for(self, template_set: Optional[ReferenceTemplateSet],
                    calibration: Optional[CalibrationParameters] = None,
                    invert_sides: Optional[bool] = None) -> SessionContext:
        """Matching state for a template set, deriving calibration when none is given."""
        if calibration is None and template_set is not None and template_set.is_usable:
            calibration = self.templates.calibration_for(template_set)
        return SessionContext(
            template_set=template_set,
            calibration=calibration or CalibrationParameters(),
            invert_sides=self.config.invert_sides if invert_sides is None else invert_sides,
        )

    def detect(self, image: np.ndarray, strategy: str = "contour",
               view_size: Optional[Tuple[float, float]] = None) -> List[DetectedRegion]:
        return self.detector.detect(image, strategy, view_size)

    def gate_regions(self, regions: Sequence[DetectedRegion]) -> List[PresenceEvaluation]:
        """Presence evaluations for the regions.

        Raises:
            GateFailure: Fewer than six regions are present
        """
        evaluations = self.gate.evaluate_regions(regions)
        passing = [e.position for e in evaluations if e.is_present]
        for evaluation in evaluations:
            if evaluation.metrics is not None:
                m = evaluation.metrics
                logger.debug(f"Slot {evaluation.position}: energy={m.energy_mean:.3f} ring={m.ring_ratio:.3f} "
                             f"offset={m.centroid_offset:.3f} quality={m.quality_score:.2f} "
                             f"present={evaluation.is_present}")
        if len(passing) < SLOT_COUNT:
            raise GateFailure(f"Only {len(passing)} of {SLOT_COUNT} coins passed the presence check",
                              passing_positions=passing)
        return evaluations

    def classify(self, regions: Sequence[DetectedRegion], template_set: ReferenceTemplateSet,
                 calibration: Optional[CalibrationParameters] = None,
                 invert_sides: Optional[bool] = None) -> List[CoinResult]:
        """One result per region, top slot first. Repeated calls agree."""
        context = self.context_for(template_set, calibration, invert_sides)
        return self.matching.match_regions(regions, context, self.zoom_scales)

    def classify_candidates(self, candidates: Dict[int, Sequence[np.ndarray]],
                            template_set: ReferenceTemplateSet,
                            calibration: Optional[CalibrationParameters] = None,
                            invert_sides: Optional[bool] = None) -> List[CoinResult]:
        context = self.context_for(template_set, calibration, invert_sides)
        return self.matching.match_slots(candidates, context)

    def recognize(self, image: np.ndarray, template_set: ReferenceTemplateSet,
                  strategy: str = "contour",
                  view_size: Optional[Tuple[float, float]] = None,
                  calibration: Optional[CalibrationParameters] = None,
                  invert_sides: Optional[bool] = None,
                  require_presence: bool = True) -> List[CoinResult]:
        """Detect, gate and classify one photo.

        Raises:
            DetectionFailure: Fewer than six regions were found
            GateFailure: Regions were found but not all hold a coin
        """
        with CorrelationContext(f"photo-{next(self._photo_counter)}"):
            regions = self.detect(image, strategy, view_size)
            if require_presence:
                self.gate_regions(regions)

            if strategy == "slots":
                crops = self.detector.jittered_crops(image, view_size)
                candidates = {position: expand_candidates(items, self.zoom_scales)
                              for position, items in crops.items() if items}
                for region in regions:
                    if region.position not in candidates:
                        candidates[region.position] = region_candidates(region, self.zoom_scales)
                results = self.classify_candidates(candidates, template_set, calibration, invert_sides)
            else:
                results = self.classify(regions, template_set, calibration, invert_sides)

            logger.info("Photo reading: " + ", ".join(f"{r.position}={r.side.value}" for r in results))
            return results

    def shutdown(self) -> None:
        self.templates.shutdown()
