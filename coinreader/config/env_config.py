"""Environment variable overrides for the configuration file.

Every variable is prefixed with ``COINREADER_``. Values are validated before
they are applied; anything that does not parse is logged and ignored so a bad
shell export never prevents the reader from starting.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

ENV_PREFIX = "COINREADER_"

_TRUE_VALUES = ('true', '1', 'yes', 'on')


@dataclass(frozen=True)
class EnvironmentConfig:
    """Immutable set of overrides read from the environment."""

    overrides: Dict[str, Any] = field(default_factory=dict)
    debug_logging: bool = False

    @property
    def has_overrides(self) -> bool:
        return bool(self.overrides)


class EnvironmentError(Exception):
    """Raised when an environment variable cannot be interpreted."""
    pass


class EnvironmentValidator:
    """Validates environment variable values."""

    @classmethod
    def sanitize_path(cls, path: str) -> str:
        if not path or not path.strip():
            raise EnvironmentError("Path cannot be empty")

        dangerous_patterns = ['`', ';', '|', '&', '<', '>', '"', "'"]
        for pattern in dangerous_patterns:
            if pattern in path:
                raise EnvironmentError(f"Path contains dangerous pattern: {pattern}")

        return os.path.normpath(path.strip())

    @classmethod
    def validate_numeric_range(cls, value: Union[str, int, float],
                               min_val: Optional[Union[int, float]] = None,
                               max_val: Optional[Union[int, float]] = None,
                               value_type: type = int) -> Union[int, float]:
        """Parse ``value`` as ``value_type`` and check it against the bounds.

        Raises:
            EnvironmentError: If the value does not parse or is out of range
        """
        try:
            numeric_value = value_type(value)
        except (ValueError, TypeError):
            raise EnvironmentError(f"Invalid {value_type.__name__} value: {value}")

        if min_val is not None and numeric_value < min_val:
            raise EnvironmentError(f"Value {numeric_value} below minimum {min_val}")

        if max_val is not None and numeric_value > max_val:
            raise EnvironmentError(f"Value {numeric_value} above maximum {max_val}")

        return numeric_value

    @classmethod
    def parse_bool(cls, value: str) -> bool:
        return value.strip().lower() in _TRUE_VALUES


# key -> (parser kind, min, max)
ENV_OVERRIDES: Dict[str, tuple] = {
    "data_dir": ("path", None, None),
    "profiles_dir": ("path", None, None),
    "default_profile": ("str", None, None),
    "live_min_interval": ("float", 0.0, 5.0),
    "lock_frames": ("int", 1, 60),
    "smoothing_window": ("int", 1, 64),
    "smoothing_min_samples": ("int", 1, 64),
    "invert_sides": ("bool", None, None),
    "feature_print_backend": ("str", None, None),
    "yolo_model": ("str", None, None),
    "match_workers": ("int", 1, 32),
    "log_level": ("str", None, None),
    "log_dir": ("path", None, None),
}


def load_env_file(env_path: Optional[str] = None) -> Dict[str, str]:
    """Load KEY=VALUE pairs from a .env file, if one exists."""
    if env_path is None:
        env_path = ".env"

    env_vars: Dict[str, str] = {}
    env_file_path = Path(env_path)

    if not env_file_path.exists():
        logger.debug(f"Environment file {env_path} not found, using system environment only")
        return env_vars

    try:
        with open(env_file_path, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue

                if '=' in line:
                    key, value = line.split('=', 1)
                    value = value.strip()
                    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                        value = value[1:-1]
                    env_vars[key.strip()] = value
                else:
                    logger.warning(f"Invalid line format in {env_path}:{line_num}: {line}")

        logger.info(f"Loaded {len(env_vars)} variables from {env_path}")
    except OSError as e:
        logger.error(f"Error reading environment file {env_path}: {e}")

    return env_vars


def get_env_var(key: str, default: Optional[str] = None,
                env_vars: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Look ``key`` up in the loaded .env values, then in the process environment."""
    if env_vars and key in env_vars:
        return env_vars[key]
    return os.getenv(key, default)


def _parse_override(name: str, raw: str, kind: str, min_val, max_val) -> Any:
    validator = EnvironmentValidator
    if kind == "path":
        return validator.sanitize_path(raw)
    if kind == "bool":
        return validator.parse_bool(raw)
    if kind == "int":
        return validator.validate_numeric_range(raw, min_val, max_val, int)
    if kind == "float":
        return validator.validate_numeric_range(raw, min_val, max_val, float)
    if not raw.strip():
        raise EnvironmentError(f"{name} cannot be empty")
    return raw.strip()


def load_environment_config(env_file_path: Optional[str] = None) -> EnvironmentConfig:
    """Collect validated ``COINREADER_*`` overrides.

    Invalid individual values are skipped with a warning.
    """
    env_vars = load_env_file(env_file_path)
    overrides: Dict[str, Any] = {}

    for key, (kind, min_val, max_val) in ENV_OVERRIDES.items():
        name = f"{ENV_PREFIX}{key.upper()}"
        raw = get_env_var(name, env_vars=env_vars)
        if raw is None:
            continue
        try:
            overrides[key] = _parse_override(name, raw, kind, min_val, max_val)
        except EnvironmentError as e:
            logger.warning(f"Ignoring {name}: {e}")

    debug_raw = get_env_var(f"{ENV_PREFIX}DEBUG", "false", env_vars=env_vars)
    debug_logging = EnvironmentValidator.parse_bool(debug_raw or "false")

    if overrides:
        logger.info(f"Environment overrides applied for: {sorted(overrides)}")

    return EnvironmentConfig(overrides=overrides, debug_logging=debug_logging)


__all__ = [
    "ENV_PREFIX",
    "EnvironmentConfig",
    "EnvironmentError",
    "EnvironmentValidator",
    "load_environment_config",
    "load_env_file",
    "get_env_var",
]
