"""Cheap texture statistics that decide whether a region holds a coin."""
import logging
from typing import List, Optional, Sequence

import cv2
import numpy as np

from ..config.settings import Config
from ..core.entities import DetectedRegion, PresenceEvaluation, PresenceMetrics, PresenceThresholds
from ..utils.image_utils import center_crop, to_gray

logger = logging.getLogger(__name__)

RING_INNER = 0.32
RING_OUTER = 0.50

# normalizers for the combined quality score
ENERGY_SCALE = 0.08
RING_SCALE = 0.30
OFFSET_SCALE = 0.25


class PresenceGate:
    """Classifies a crop as empty, present, or present and high quality.

    One contract serves both live and photo flows: the unified thresholds
    from configuration, with per-slot overrides layered on top.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.patch_size = int(self.config.presence_patch_size)
        self._ring, self._xs, self._ys = self._build_grids(self.patch_size)

    @staticmethod
    def _build_grids(size: int):
        coords = np.arange(size, dtype=np.float32) + 0.5
        xs, ys = np.meshgrid(coords, coords)
        center = size / 2.0
        radius = np.hypot(xs - center, ys - center) / size
        ring = (radius >= RING_INNER) & (radius <= RING_OUTER)
        return ring, xs, ys

    def measure(self, image: np.ndarray) -> Optional[PresenceMetrics]:
        if image is None or image.size == 0:
            return None

        gray = to_gray(image)
        patch = cv2.resize(gray, (self.patch_size, self.patch_size), interpolation=cv2.INTER_AREA)
        patch = patch.astype(np.float32) / 255.0

        gx = cv2.Sobel(patch, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(patch, cv2.CV_32F, 0, 1, ksize=3)
        magnitude = np.clip(cv2.magnitude(gx, gy) / 4.0, 0.0, 1.0)

        # border pixels see the replicated edge, not the image
        magnitude[0, :] = 0.0
        magnitude[-1, :] = 0.0
        magnitude[:, 0] = 0.0
        magnitude[:, -1] = 0.0

        interior = magnitude[1:-1, 1:-1]
        energy_mean = float(interior.mean())
        total = float(magnitude.sum())

        if total <= 1e-9:
            return PresenceMetrics(energy_mean=0.0, ring_ratio=0.0, centroid_offset=0.0, quality_score=0.0)

        ring_ratio = float(magnitude[self._ring].sum()) / total
        cx = float((magnitude * self._xs).sum()) / total
        cy = float((magnitude * self._ys).sum()) / total
        center = self.patch_size / 2.0
        centroid_offset = float(np.hypot(cx - center, cy - center)) / self.patch_size

        quality = (0.4 * min(energy_mean / ENERGY_SCALE, 1.0)
                   + 0.4 * min(ring_ratio / RING_SCALE, 1.0)
                   + 0.2 * max(0.0, 1.0 - centroid_offset / OFFSET_SCALE))

        return PresenceMetrics(
            energy_mean=energy_mean,
            ring_ratio=ring_ratio,
            centroid_offset=centroid_offset,
            quality_score=quality,
        )

    @staticmethod
    def judge(metrics: Optional[PresenceMetrics], thresholds: PresenceThresholds):
        """(is_present, is_high_quality) for the given metrics."""
        if metrics is None:
            return False, False
        present = metrics.energy_mean >= thresholds.min_energy and metrics.ring_ratio >= thresholds.min_ring_ratio
        high_quality = (present
                        and metrics.centroid_offset <= thresholds.max_centroid_offset
                        and metrics.quality_score >= thresholds.min_quality)
        return present, high_quality

    def evaluate(self, image: np.ndarray, position: int,
                 thresholds: Optional[PresenceThresholds] = None) -> PresenceEvaluation:
        """Full-scale check, then a relaxed retry on a tighter centre crop."""
        thresholds = thresholds or self.config.slot_presence_thresholds(position)

        metrics = self.measure(image)
        present, high_quality = self.judge(metrics, thresholds)
        if present or image is None or image.size == 0:
            return PresenceEvaluation(position, metrics, present, high_quality, 1.0)

        scale = self.config.presence_retry_scale
        retry_metrics = self.measure(center_crop(image, scale))
        retry_present, retry_quality = self.judge(
            retry_metrics, thresholds.relaxed(self.config.presence_relax_factor))
        if retry_present:
            logger.debug(f"Slot {position} passed presence on relaxed retry at scale {scale}")
            return PresenceEvaluation(position, retry_metrics, True, retry_quality, scale)

        return PresenceEvaluation(position, metrics, False, False, 1.0)

    def evaluate_regions(self, regions: Sequence[DetectedRegion]) -> List[PresenceEvaluation]:
        return [self.evaluate(region.image, region.position) for region in regions]
