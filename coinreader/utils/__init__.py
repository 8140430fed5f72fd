"""Utility functions package."""

from .geometry import (
    center_distance, mean, std, median, fit_line_x_over_y,
    clamp_rect, padded_square, map_view_rect_to_image, jitter_offsets
)
from .image_utils import (
    read_image, write_image, resize_image, to_gray, crop_image, center_crop,
    apply_circular_mask, apply_color_controls, prepare_coin_for_matching
)

__all__ = [
    "center_distance", "mean", "std", "median", "fit_line_x_over_y",
    "clamp_rect", "padded_square", "map_view_rect_to_image", "jitter_offsets",
    "read_image", "write_image", "resize_image", "to_gray", "crop_image", "center_crop",
    "apply_circular_mask", "apply_color_controls", "prepare_coin_for_matching",
]
