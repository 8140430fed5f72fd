"""Base interfaces for the external vision primitives."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import numpy as np

from ..core.entities import ContourNode


class BaseBackend(ABC):
    """Abstract base class for vision backends."""

    name: str = "base"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.is_loaded = False
        self.model_info: Dict[str, Any] = {}

    def get_backend_info(self) -> Dict[str, Any]:
        return {"name": self.name, "loaded": self.is_loaded, **self.model_info}


class ContourBackend(BaseBackend):
    """Produces a tree of outlines for an image."""

    @abstractmethod
    def extract_contours(self, image: np.ndarray, dark_on_light: bool = True,
                         contrast: float = 1.0) -> List[ContourNode]:
        """Return the top-level outlines with their nested children.

        Bounding boxes are normalized to [0,1] with a top-left origin.

        Raises:
            ContourExtractionError: If the primitive fails on this image
        """
        pass


class EmbeddingBackend(BaseBackend):
    """Maps an image to a fixed-length vector with a distance between vectors."""

    @abstractmethod
    def embed(self, image: np.ndarray) -> np.ndarray:
        """Return a float32 vector for a prepared BGR coin crop.

        Raises:
            EmbeddingError: If no vector can be produced
        """
        pass

    @abstractmethod
    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        """Non-negative distance; smaller means more alike."""
        pass

    def is_model_loaded(self) -> bool:
        return self.is_loaded

    def unload_model(self) -> None:
        self.is_loaded = False
        self.model_info = {}
