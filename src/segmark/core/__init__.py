"""Core settings, errors, logging and cancellation for segmark."""

from .cancellation import CancellationToken
from .config import Settings, get_settings, settings
from .exceptions import (
    ConversionCancelledError,
    ExternalServiceError,
    FailedConversionAttempt,
    FileConversionError,
    MissingDependencyError,
    SegmarkException,
    UnsupportedFormatError,
    ValidationError,
)
from .logging import configure_logging

__all__ = [
    "CancellationToken",
    "Settings",
    "get_settings",
    "settings",
    "ConversionCancelledError",
    "ExternalServiceError",
    "FailedConversionAttempt",
    "FileConversionError",
    "MissingDependencyError",
    "SegmarkException",
    "UnsupportedFormatError",
    "ValidationError",
    "configure_logging",
]
