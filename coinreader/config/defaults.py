"""Default configuration values."""

from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    # Storage
    "data_dir": "data",
    "profiles_dir": "data/profiles",
    "default_profile": "default",

    # Live session
    "live_min_interval": 0.15,  # seconds between processed frames
    "lock_frames": 6,
    "smoothing_window": 8,
    "smoothing_min_samples": 4,
    "invert_sides": False,

    # Low-light suggestion
    "low_light_frames": 8,
    "low_light_energy": 0.11,
    "low_light_quality": 0.60,

    # Presence / quality gate
    "presence_patch_size": 96,
    "presence_min_energy": 0.02,
    "presence_min_ring_ratio": 0.12,
    "presence_max_centroid_offset": 0.12,
    "presence_min_quality": 0.50,
    "presence_relax_factor": 0.8,
    "presence_retry_scale": 0.75,
    # {"<position>": {"min_energy": ..., ...}} per-slot threshold overrides
    "slot_presence_overrides": {},

    # Region detection
    "slot_inset_ratio": 0.08,
    "jitter_offset": 16.0,  # view points
    "zoom_scales": [1.0, 0.82, 0.68],
    "contour_max_dimension": 640,
    "region_padding_ratio": 0.3,

    # Matching
    "descriptor_size": 48,
    "feature_print_backend": "hog",  # hog | yolo | none
    "yolo_model": "yolov8n-cls.pt",
    "match_workers": 6,

    # Debug and Logging Settings
    "debug": False,
    "log_level": "INFO",
    "log_dir": "logs",
    "enable_file_logging": False,
    "structured_logging": False,
}
