"""Custom exceptions for the application."""
from typing import Sequence


class ApplicationError(Exception):
    """Base application error."""
    pass


class ConfigError(ApplicationError):
    """Configuration-related errors."""
    pass


class DetectionFailure(ApplicationError):
    """Fewer than six coin regions could be located in an image."""

    def __init__(self, message: str, found: int = 0):
        super().__init__(message)
        self.found = found


class GateFailure(ApplicationError):
    """Regions were located but not all of them look like a coin."""

    def __init__(self, message: str, passing_positions: Sequence[int] = ()):
        super().__init__(message)
        self.passing_positions = tuple(passing_positions)


class CalibrationFailure(ApplicationError):
    """Template generation produced no usable descriptor for a face."""
    pass


class TemplateDataError(ApplicationError):
    """A stored template blob could not be decoded."""
    pass


class BackendError(ApplicationError):
    """Base class for failures inside an external vision primitive."""
    pass


class ContourExtractionError(BackendError):
    """Contour extraction failed for an image."""
    pass


class EmbeddingError(BackendError):
    """An embedder could not produce a vector for an image."""
    pass


class ModelError(BackendError):
    """Model loading errors."""
    pass
