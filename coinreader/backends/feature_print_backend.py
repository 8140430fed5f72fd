"""HOG feature prints: the default opaque embedding for the distance path."""
import logging
from typing import Any, Dict, Optional

import cv2
import numpy as np

from .base_backend import EmbeddingBackend
from ..core.exceptions import EmbeddingError
from ..utils.image_utils import to_gray

logger = logging.getLogger(__name__)


class HOGFeaturePrintBackend(EmbeddingBackend):
    """L2-normalized histogram-of-oriented-gradients vector with Euclidean distance."""

    name = "hog"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.window = int(self.config.get("hog_window", 64))
        self._hog = cv2.HOGDescriptor((self.window, self.window), (16, 16), (8, 8), (8, 8), 9)
        self.is_loaded = True
        self.model_info = {"window": self.window, "length": int(self._hog.getDescriptorSize())}

    def embed(self, image: np.ndarray) -> np.ndarray:
        if image is None or image.size == 0:
            raise EmbeddingError("Empty image")
        try:
            gray = cv2.resize(to_gray(image), (self.window, self.window), interpolation=cv2.INTER_AREA)
            vector = self._hog.compute(gray)
        except cv2.error as e:
            raise EmbeddingError(f"HOG computation failed: {e}") from e

        if vector is None or vector.size == 0:
            raise EmbeddingError("HOG produced no vector")
        vector = np.asarray(vector, dtype=np.float32).ravel()
        norm = float(np.linalg.norm(vector))
        if not np.isfinite(norm) or norm < 1e-6:
            raise EmbeddingError("Image has no gradient structure")
        return vector / norm

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(np.linalg.norm(a - b))
