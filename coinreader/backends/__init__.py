"""Backend implementations for the external vision primitives."""
from typing import Any, Dict, Optional

from .base_backend import BaseBackend, ContourBackend, EmbeddingBackend
from .contour_backend import OpenCVContourBackend
from .descriptor_backend import GradientDescriptorBackend
from .feature_print_backend import HOGFeaturePrintBackend
from .yolo_backend import YoloFeaturePrintBackend

FEATURE_PRINT_BACKENDS = {
    "hog": HOGFeaturePrintBackend,
    "yolo": YoloFeaturePrintBackend,
}


def create_feature_print_backend(name: str, config: Optional[Dict[str, Any]] = None) -> Optional[EmbeddingBackend]:
    """Instantiate a feature-print backend by name; ``none`` disables the path."""
    if not name or name == "none":
        return None
    try:
        backend_cls = FEATURE_PRINT_BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unknown feature-print backend: {name}") from None
    return backend_cls(config)


__all__ = [
    "BaseBackend", "ContourBackend", "EmbeddingBackend",
    "OpenCVContourBackend", "GradientDescriptorBackend",
    "HOGFeaturePrintBackend", "YoloFeaturePrintBackend",
    "FEATURE_PRINT_BACKENDS", "create_feature_print_backend",
]
