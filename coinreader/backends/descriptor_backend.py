"""Gradient-magnitude descriptor computed locally with OpenCV."""
import logging
from typing import Any, Dict, Optional

import cv2
import numpy as np

from .base_backend import EmbeddingBackend
from ..core.exceptions import EmbeddingError
from ..utils.image_utils import square_center_crop, to_gray

logger = logging.getLogger(__name__)


class GradientDescriptorBackend(EmbeddingBackend):
    """Unit-length Sobel magnitude map of the coin face.

    The map is restricted to a disk inside the crop so that the mask border
    applied during preparation never contributes. Comparison is cosine
    similarity; ``distance`` is ``1 - similarity``.
    """

    name = "gradient"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.size = int(self.config.get("descriptor_size", 48))
        self.radius_ratio = float(self.config.get("descriptor_radius_ratio", 0.42))
        self._disk = self._build_disk(self.size, self.radius_ratio)
        self.is_loaded = True
        self.model_info = {"size": self.size}

    @staticmethod
    def _build_disk(size: int, radius_ratio: float) -> np.ndarray:
        disk = np.zeros((size, size), dtype=np.float32)
        cv2.circle(disk, (size // 2, size // 2), int(round(size * radius_ratio)), 1.0, thickness=-1)
        return disk

    def embed(self, image: np.ndarray) -> np.ndarray:
        if image is None or image.size == 0:
            raise EmbeddingError("Empty image")

        gray = to_gray(square_center_crop(image))
        small = cv2.resize(gray, (self.size, self.size), interpolation=cv2.INTER_AREA)
        small = cv2.GaussianBlur(small.astype(np.float32) / 255.0, (3, 3), 0)

        gx = cv2.Sobel(small, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(small, cv2.CV_32F, 0, 1, ksize=3)
        magnitude = cv2.magnitude(gx, gy) * self._disk

        vector = magnitude.ravel()
        norm = float(np.linalg.norm(vector))
        if not np.isfinite(norm) or norm < 1e-6:
            raise EmbeddingError("Image has no gradient structure")
        return (vector / norm).astype(np.float32)

    def similarity(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(np.clip(np.dot(a, b), -1.0, 1.0))

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return 1.0 - self.similarity(a, b)
