"""Configuration dataclass and loading utilities.

Provides a strongly-typed configuration object that can be injected into
services instead of relying on a global module-level dictionary.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
import json, os, logging
from .defaults import DEFAULT_CONFIG
from .env_config import load_environment_config, EnvironmentConfig, EnvironmentError
from ..core.entities import PresenceThresholds

_INTERNAL_FIELDS = ('extra', '_environment_config')


@dataclass(slots=True)
class Config:
    # Storage
    data_dir: str = DEFAULT_CONFIG["data_dir"]
    profiles_dir: str = DEFAULT_CONFIG["profiles_dir"]
    default_profile: str = DEFAULT_CONFIG["default_profile"]

    # Live session
    live_min_interval: float = DEFAULT_CONFIG["live_min_interval"]
    lock_frames: int = DEFAULT_CONFIG["lock_frames"]
    smoothing_window: int = DEFAULT_CONFIG["smoothing_window"]
    smoothing_min_samples: int = DEFAULT_CONFIG["smoothing_min_samples"]
    invert_sides: bool = DEFAULT_CONFIG["invert_sides"]

    # Low-light suggestion
    low_light_frames: int = DEFAULT_CONFIG["low_light_frames"]
    low_light_energy: float = DEFAULT_CONFIG["low_light_energy"]
    low_light_quality: float = DEFAULT_CONFIG["low_light_quality"]

    # Presence / quality gate
    presence_patch_size: int = DEFAULT_CONFIG["presence_patch_size"]
    presence_min_energy: float = DEFAULT_CONFIG["presence_min_energy"]
    presence_min_ring_ratio: float = DEFAULT_CONFIG["presence_min_ring_ratio"]
    presence_max_centroid_offset: float = DEFAULT_CONFIG["presence_max_centroid_offset"]
    presence_min_quality: float = DEFAULT_CONFIG["presence_min_quality"]
    presence_relax_factor: float = DEFAULT_CONFIG["presence_relax_factor"]
    presence_retry_scale: float = DEFAULT_CONFIG["presence_retry_scale"]
    slot_presence_overrides: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: dict(DEFAULT_CONFIG["slot_presence_overrides"]))

    # Region detection
    slot_inset_ratio: float = DEFAULT_CONFIG["slot_inset_ratio"]
    jitter_offset: float = DEFAULT_CONFIG["jitter_offset"]
    zoom_scales: List[float] = field(default_factory=lambda: list(DEFAULT_CONFIG["zoom_scales"]))
    contour_max_dimension: int = DEFAULT_CONFIG["contour_max_dimension"]
    region_padding_ratio: float = DEFAULT_CONFIG["region_padding_ratio"]

    # Matching
    descriptor_size: int = DEFAULT_CONFIG["descriptor_size"]
    feature_print_backend: str = DEFAULT_CONFIG["feature_print_backend"]
    yolo_model: str = DEFAULT_CONFIG["yolo_model"]
    match_workers: int = DEFAULT_CONFIG["match_workers"]

    # Debug and Logging Settings
    debug: bool = DEFAULT_CONFIG["debug"]
    log_level: str = DEFAULT_CONFIG["log_level"]
    log_dir: str = DEFAULT_CONFIG["log_dir"]
    enable_file_logging: bool = DEFAULT_CONFIG["enable_file_logging"]
    structured_logging: bool = DEFAULT_CONFIG["structured_logging"]

    _environment_config: Optional[EnvironmentConfig] = None

    # Arbitrary extra values retained for forward compatibility
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        extra = d.pop("extra", {})
        d.pop("_environment_config", None)
        d.update(extra)
        return d

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, self.extra.get(key, default))

    def presence_thresholds(self) -> PresenceThresholds:
        return PresenceThresholds(
            min_energy=self.presence_min_energy,
            min_ring_ratio=self.presence_min_ring_ratio,
            max_centroid_offset=self.presence_max_centroid_offset,
            min_quality=self.presence_min_quality,
        )

    def slot_presence_thresholds(self, position: int) -> PresenceThresholds:
        """Unified thresholds with any per-slot override applied on top."""
        base = self.presence_thresholds()
        override = self.slot_presence_overrides.get(str(position)) or {}
        if not override:
            return base
        values = {
            "min_energy": base.min_energy,
            "min_ring_ratio": base.min_ring_ratio,
            "max_centroid_offset": base.max_centroid_offset,
            "min_quality": base.min_quality,
        }
        for key, value in override.items():
            if key in values:
                values[key] = float(value)
            else:
                logging.warning(f"Unknown presence override '{key}' for slot {position}")
        return PresenceThresholds(**values)


def load_config(path: str = "config.json", env_file: Optional[str] = None) -> Config:
    """Load configuration from a JSON file with environment overrides.

    Args:
        path: Path to config.json file
        env_file: Path to .env file (optional)

    Returns:
        Config: Loaded and validated configuration. A missing or malformed
        file falls back to defaults.
    """
    data: Dict[str, Any] = {}
    env_config: Optional[EnvironmentConfig] = None

    try:
        env_config = load_environment_config(env_file)
    except EnvironmentError as e:
        logging.warning(f"Environment configuration failed: {e}")

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded_data = json.load(f)
            if loaded_data is None:
                logging.warning(f"Configuration file '{path}' is empty, using defaults")
            elif not isinstance(loaded_data, dict):
                logging.error(f"Configuration file '{path}' does not contain a valid JSON object, using defaults")
            else:
                data = loaded_data
                logging.info(f"Successfully loaded configuration from '{path}'")
        except json.JSONDecodeError as e:
            logging.error(f"Failed to parse JSON configuration file '{path}': {e}. Using defaults.")
        except PermissionError:
            logging.error(f"Permission denied reading configuration file '{path}'. Using defaults.")
        except OSError as e:
            logging.error(f"Unexpected error loading configuration file '{path}': {e}. Using defaults.")
    else:
        logging.info(f"Configuration file '{path}' does not exist. Using defaults.")

    merged = {**DEFAULT_CONFIG, **data}

    if env_config:
        merged = _apply_environment_overrides(merged, env_config)

    _validate_path_settings(merged)
    merged = _sanitize_config_values(merged)

    extra = {k: v for k, v in merged.items() if k not in Config.__annotations__}
    if extra:
        logging.info(f"Found extra configuration keys: {list(extra.keys())}")

    try:
        cfg = Config(**{k: merged[k] for k in Config.__annotations__
                        if k not in _INTERNAL_FIELDS and k in merged}, extra=extra)
    except TypeError as e:
        logging.error(f"Failed to create configuration object: {e}. Falling back to pure defaults.")
        cfg = Config()

    cfg._environment_config = env_config
    return cfg


def save_config(cfg: Config, path: str = "config.json") -> None:
    """Save configuration to JSON, keeping a backup of the previous file."""
    backup_path = f"{path}.backup"
    try:
        if os.path.exists(path):
            try:
                with open(path, "r", encoding="utf-8") as src, open(backup_path, "w", encoding="utf-8") as dst:
                    dst.write(src.read())
                logging.debug(f"Created backup configuration at '{backup_path}'")
            except OSError as e:
                logging.warning(f"Failed to create configuration backup: {e}")

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(cfg.to_dict(), f, indent=2, ensure_ascii=False)
        logging.info(f"Configuration saved successfully to '{path}'")

        if os.path.exists(backup_path):
            try:
                os.remove(backup_path)
            except OSError:
                logging.debug(f"Keeping configuration backup '{backup_path}'")

    except PermissionError:
        logging.error(f"Permission denied writing configuration file '{path}'")
    except OSError as e:
        logging.error(f"OS error saving configuration file '{path}': {e}")


def _validate_path_settings(config_dict: Dict[str, Any]) -> None:
    """Replace empty or non-string path settings with their defaults."""
    for key in ('data_dir', 'profiles_dir', 'log_dir'):
        if key in config_dict:
            path_value = config_dict[key]
            if not isinstance(path_value, str):
                logging.warning(f"Path setting '{key}' is not a string: {type(path_value)}. Using default.")
                config_dict[key] = DEFAULT_CONFIG[key]
            elif not path_value.strip():
                logging.warning(f"Path setting '{key}' is empty. Using default.")
                config_dict[key] = DEFAULT_CONFIG[key]


def _apply_environment_overrides(config_dict: Dict[str, Any], env_config: EnvironmentConfig) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration."""
    config_dict.update(env_config.overrides)

    if env_config.debug_logging:
        config_dict["debug"] = True
        config_dict["log_level"] = "DEBUG"

    logging.debug("Applied environment variable overrides to configuration")
    return config_dict


# key -> (min, max)
NUMERIC_RANGES: Dict[str, tuple] = {
    'live_min_interval': (0.0, 5.0),
    'lock_frames': (1, 60),
    'smoothing_window': (1, 64),
    'smoothing_min_samples': (1, 64),
    'low_light_frames': (1, 120),
    'low_light_energy': (0.0, 1.0),
    'low_light_quality': (0.0, 1.0),
    'presence_patch_size': (16, 512),
    'presence_min_energy': (0.0, 1.0),
    'presence_min_ring_ratio': (0.0, 1.0),
    'presence_max_centroid_offset': (0.0, 1.0),
    'presence_min_quality': (0.0, 1.0),
    'presence_relax_factor': (0.1, 1.0),
    'presence_retry_scale': (0.1, 1.0),
    'slot_inset_ratio': (0.0, 0.45),
    'jitter_offset': (0.0, 200.0),
    'contour_max_dimension': (64, 4096),
    'region_padding_ratio': (0.0, 2.0),
    'descriptor_size': (16, 256),
    'match_workers': (1, 32),
}

FEATURE_PRINT_BACKENDS = ('hog', 'yolo', 'none')


def _sanitize_config_values(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Replace out-of-range or mistyped values with defaults, logging each one."""
    sanitized = config_dict.copy()

    for key, (min_val, max_val) in NUMERIC_RANGES.items():
        value = sanitized.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logging.warning(f"Value {key}={value!r} is not numeric, using default")
            sanitized[key] = DEFAULT_CONFIG[key]
        elif not (min_val <= value <= max_val):
            logging.warning(f"Value {key}={value} out of range [{min_val}, {max_val}], using default")
            sanitized[key] = DEFAULT_CONFIG[key]

    if sanitized.get('smoothing_min_samples', 0) > sanitized.get('smoothing_window', 0):
        logging.warning("smoothing_min_samples exceeds smoothing_window, using defaults for both")
        sanitized['smoothing_window'] = DEFAULT_CONFIG['smoothing_window']
        sanitized['smoothing_min_samples'] = DEFAULT_CONFIG['smoothing_min_samples']

    backend = str(sanitized.get('feature_print_backend', '')).lower()
    if backend not in FEATURE_PRINT_BACKENDS:
        logging.warning(f"Unknown feature_print_backend '{backend}', using default")
        backend = DEFAULT_CONFIG['feature_print_backend']
    sanitized['feature_print_backend'] = backend

    scales = sanitized.get('zoom_scales')
    if (not isinstance(scales, list) or not scales
            or not all(isinstance(s, (int, float)) and 0.1 <= s <= 1.0 for s in scales)):
        logging.warning(f"Invalid zoom_scales {scales!r}, using default")
        sanitized['zoom_scales'] = list(DEFAULT_CONFIG['zoom_scales'])

    overrides = sanitized.get('slot_presence_overrides')
    if not isinstance(overrides, dict):
        logging.warning("slot_presence_overrides must be an object, ignoring")
        sanitized['slot_presence_overrides'] = {}

    return sanitized
