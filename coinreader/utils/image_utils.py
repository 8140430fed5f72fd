"""Image processing utilities."""

import os
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageEnhance

from ..core.entities import Rect


def read_image(path: str) -> Optional[np.ndarray]:
    """Read a BGR image; works with non-ASCII paths. None if missing or undecodable."""
    if not os.path.isfile(path):
        return None
    data = np.fromfile(path, dtype=np.uint8)
    if data.size == 0:
        return None
    return cv2.imdecode(data, cv2.IMREAD_COLOR)


def write_image(path: str, image: np.ndarray) -> bool:
    ext = "." + path.rsplit(".", 1)[-1] if "." in path else ".png"
    ok, buffer = cv2.imencode(ext, image)
    if not ok:
        return False
    buffer.tofile(path)
    return True


def resize_image(image: np.ndarray, max_width: int = 960, max_height: int = 720) -> np.ndarray:
    """Resize image while maintaining aspect ratio."""
    h, w = image.shape[:2]

    if w <= max_width and h <= max_height:
        return image

    scale = min(max_width / w, max_height / h)
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))

    return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


def crop_image(image: np.ndarray, rect: Rect) -> Optional[np.ndarray]:
    """Crop the integral pixel rect, clipped to the image. None when nothing remains."""
    h, w = image.shape[:2]
    x1, y1, x2, y2 = rect.as_xyxy()

    x1 = max(0, min(x1, w))
    y1 = max(0, min(y1, h))
    x2 = max(x1, min(x2, w))
    y2 = max(y1, min(y2, h))

    if x2 - x1 < 2 or y2 - y1 < 2:
        return None
    return image[y1:y2, x1:x2].copy()


def center_crop(image: np.ndarray, scale: float) -> np.ndarray:
    """Crop the centered region covering ``scale`` of each side."""
    if scale >= 1.0:
        return image
    h, w = image.shape[:2]
    new_w = max(2, int(round(w * scale)))
    new_h = max(2, int(round(h * scale)))
    x1 = (w - new_w) // 2
    y1 = (h - new_h) // 2
    return image[y1:y1 + new_h, x1:x1 + new_w].copy()


def square_center_crop(image: np.ndarray) -> np.ndarray:
    h, w = image.shape[:2]
    side = min(h, w)
    x1 = (w - side) // 2
    y1 = (h - side) // 2
    return image[y1:y1 + side, x1:x1 + side]


def zoom_variants(image: np.ndarray, scales: Sequence[float]) -> List[np.ndarray]:
    return [center_crop(image, s) for s in scales]


def apply_circular_mask(image: np.ndarray, radius_ratio: float = 0.5, fill: int = 0) -> np.ndarray:
    """Keep the inscribed disk and paint everything outside it with ``fill``."""
    h, w = image.shape[:2]
    mask = np.zeros((h, w), dtype=np.uint8)
    radius = int(round(min(h, w) * radius_ratio))
    cv2.circle(mask, (w // 2, h // 2), radius, 255, thickness=-1)
    out = np.full_like(image, fill)
    out[mask > 0] = image[mask > 0]
    return out


def apply_color_controls(image: np.ndarray, contrast: float = 1.0, brightness: float = 0.0,
                         saturation: Optional[float] = None) -> np.ndarray:
    """Contrast/brightness/saturation adjustment on a BGR image.

    ``brightness`` is an additive shift in [-1, 1] of the full intensity range,
    ``contrast`` and ``saturation`` are multiplicative factors.
    """
    rgb = cv2.cvtColor(to_bgr(image), cv2.COLOR_BGR2RGB)
    pil_image = Image.fromarray(rgb)

    if contrast != 1.0:
        pil_image = ImageEnhance.Contrast(pil_image).enhance(contrast)
    if saturation is not None and saturation != 1.0:
        pil_image = ImageEnhance.Color(pil_image).enhance(saturation)

    out = np.asarray(pil_image, dtype=np.int16)
    if brightness:
        out = out + int(round(brightness * 255))
    out = np.clip(out, 0, 255).astype(np.uint8)
    return cv2.cvtColor(out, cv2.COLOR_RGB2BGR)


def enhance_for_contours(image: np.ndarray) -> np.ndarray:
    """Grayscale, contrast-boosted copy used by the last contour pass."""
    return apply_color_controls(image, contrast=1.6, brightness=0.05, saturation=0.0)


def color_variants(image: np.ndarray) -> List[np.ndarray]:
    """The processed image plus a brighter-punchier and a flatter-darker copy."""
    return [
        image,
        apply_color_controls(image, contrast=1.25, brightness=0.04),
        apply_color_controls(image, contrast=0.9, brightness=-0.04),
    ]


def rotated_variants(image: np.ndarray) -> List[np.ndarray]:
    return [
        image,
        cv2.rotate(image, cv2.ROTATE_90_CLOCKWISE),
        cv2.rotate(image, cv2.ROTATE_180),
        cv2.rotate(image, cv2.ROTATE_90_COUNTERCLOCKWISE),
    ]


def prepare_coin_for_matching(image: np.ndarray, size: int = 128) -> Optional[np.ndarray]:
    """Square, resized, circularly masked BGR crop fed to every embedder."""
    if image is None or image.size == 0:
        return None
    square = square_center_crop(to_bgr(image))
    if square.shape[0] < 4:
        return None
    interpolation = cv2.INTER_AREA if square.shape[0] > size else cv2.INTER_LINEAR
    resized = cv2.resize(square, (size, size), interpolation=interpolation)
    return apply_circular_mask(resized)


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """(width, height)"""
    h, w = image.shape[:2]
    return w, h
