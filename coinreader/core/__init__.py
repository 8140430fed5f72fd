"""Core domain entities and constants."""

from .entities import (
    CoinResult, CoinSide, LineValue, Rect, DetectedRegion, ReferenceTemplateSet,
    CalibrationParameters, PresenceThresholds, SessionContext, LiveSnapshot, StabilizerState,
)
from .exceptions import (
    ApplicationError, ConfigError, DetectionFailure, GateFailure, CalibrationFailure,
    TemplateDataError, BackendError, ModelError,
)
from .constants import APP_NAME, VERSION, SLOT_COUNT, SUPPORTED_IMAGE_FORMATS

__all__ = [
    "CoinResult", "CoinSide", "LineValue", "Rect", "DetectedRegion", "ReferenceTemplateSet",
    "CalibrationParameters", "PresenceThresholds", "SessionContext", "LiveSnapshot", "StabilizerState",
    "ApplicationError", "ConfigError", "DetectionFailure", "GateFailure", "CalibrationFailure",
    "TemplateDataError", "BackendError", "ModelError",
    "APP_NAME", "VERSION", "SLOT_COUNT", "SUPPORTED_IMAGE_FORMATS",
]
