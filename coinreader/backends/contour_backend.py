"""Contour extraction with OpenCV."""
import logging
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

from .base_backend import ContourBackend
from ..core.entities import ContourNode, Rect
from ..core.exceptions import ContourExtractionError
from ..utils.image_utils import resize_image, to_gray

logger = logging.getLogger(__name__)


class OpenCVContourBackend(ContourBackend):
    """Otsu-thresholded contour tree over a downscaled grayscale image."""

    name = "opencv"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.max_dimension = int(self.config.get("contour_max_dimension", 640))
        self.min_contour_pixels = int(self.config.get("min_contour_pixels", 3))
        self.is_loaded = True
        self.model_info = {"max_dimension": self.max_dimension}

    def _binarize(self, gray: np.ndarray, dark_on_light: bool, contrast: float) -> np.ndarray:
        if contrast != 1.0:
            # scale around mid-gray so contrast does not also shift brightness
            gray = cv2.convertScaleAbs(gray, alpha=contrast, beta=128.0 * (1.0 - contrast))
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        mode = cv2.THRESH_BINARY_INV if dark_on_light else cv2.THRESH_BINARY
        _, binary = cv2.threshold(blurred, 0, 255, mode + cv2.THRESH_OTSU)
        return binary

    def extract_contours(self, image: np.ndarray, dark_on_light: bool = True,
                         contrast: float = 1.0) -> List[ContourNode]:
        if image is None or image.size == 0:
            raise ContourExtractionError("Empty image")

        try:
            gray = to_gray(resize_image(image, self.max_dimension, self.max_dimension))
            binary = self._binarize(gray, dark_on_light, contrast)
            contours, hierarchy = cv2.findContours(binary, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)
        except cv2.error as e:
            raise ContourExtractionError(f"Contour extraction failed: {e}") from e

        if hierarchy is None or len(contours) == 0:
            return []

        h, w = binary.shape[:2]
        hierarchy = hierarchy[0]
        nodes: List[Optional[ContourNode]] = []
        for contour in contours:
            x, y, bw, bh = cv2.boundingRect(contour)
            if bw < self.min_contour_pixels or bh < self.min_contour_pixels:
                nodes.append(None)
                continue
            nodes.append(ContourNode(rect=Rect(x / w, y / h, bw / w, bh / h)))

        roots: List[ContourNode] = []
        for index, node in enumerate(nodes):
            if node is None:
                continue
            # hierarchy row: [next, previous, first_child, parent]
            parent = int(hierarchy[index][3])
            while parent >= 0 and nodes[parent] is None:
                parent = int(hierarchy[parent][3])
            if parent < 0:
                roots.append(node)
            else:
                nodes[parent].children.append(node)

        logger.debug(f"Extracted {len(contours)} contours ({len(roots)} top-level), "
                     f"dark_on_light={dark_on_light}, contrast={contrast}")
        return roots
