"""Feature prints from an Ultralytics YOLO model's embedding output."""
import logging
from typing import Any, Dict, Optional

import numpy as np

from .base_backend import EmbeddingBackend
from ..core.exceptions import EmbeddingError, ModelError
from ..utils.image_utils import to_bgr

logger = logging.getLogger(__name__)

# Try to import ultralytics
HAS_ULTRALYTICS = False
try:
    from ultralytics import YOLO
    HAS_ULTRALYTICS = True
except ImportError:
    HAS_ULTRALYTICS = False


class YoloFeaturePrintBackend(EmbeddingBackend):
    """Opaque feature prints via ``YOLO.embed``.

    The model is loaded on first use so that constructing a session never
    blocks on a weights download.
    """

    name = "yolo"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.model = None
        self.model_path: str = self.config.get("yolo_model", "yolov8n-cls.pt")
        self._load_error: Optional[ModelError] = None

    def load_model(self, model_path_or_name: Optional[str] = None) -> bool:
        """Load a YOLO model from path or model name."""
        if not HAS_ULTRALYTICS:
            raise ModelError("Ultralytics not installed. Cannot use YOLO feature prints.")

        model_path_or_name = model_path_or_name or self.model_path
        try:
            self.model = YOLO(model_path_or_name)
        except Exception as e:
            self.is_loaded = False
            raise ModelError(f"Failed to load YOLO model {model_path_or_name}: {e}") from e

        self.model_path = model_path_or_name
        self._load_error = None
        self.is_loaded = True
        self.model_info = {
            'backend': 'ultralytics',
            'model_path': model_path_or_name,
            'device': str(self.model.device) if hasattr(self.model, 'device') else 'unknown',
        }
        logger.info(f"Loaded YOLO embedding model: {model_path_or_name}")
        return True

    def _ensure_model(self) -> None:
        """Load on first use; a failed load is remembered and not retried."""
        if self._load_error is not None:
            raise EmbeddingError(f"YOLO model unavailable: {self._load_error}")
        try:
            self.load_model()
        except ModelError as e:
            self._load_error = e
            logger.warning(f"YOLO feature prints disabled: {e}")
            raise EmbeddingError(f"YOLO model unavailable: {e}") from e

    def embed(self, image: np.ndarray) -> np.ndarray:
        if image is None or image.size == 0:
            raise EmbeddingError("Empty image")
        if not self.is_loaded or self.model is None:
            self._ensure_model()

        try:
            outputs = self.model.embed(to_bgr(image), verbose=False)
        except Exception as e:
            raise EmbeddingError(f"YOLO embedding failed: {e}") from e

        if not outputs:
            raise EmbeddingError("YOLO returned no embedding")
        vector = outputs[0]
        if hasattr(vector, "cpu"):
            vector = vector.cpu().numpy()
        vector = np.asarray(vector, dtype=np.float32).ravel()
        norm = float(np.linalg.norm(vector))
        if not np.isfinite(norm) or norm < 1e-9:
            raise EmbeddingError("YOLO embedding is degenerate")
        return vector / norm

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(np.linalg.norm(a - b))

    def unload_model(self) -> None:
        if self.model is not None:
            del self.model
            self.model = None
        super().unload_model()
