"""Custom exceptions for segmark."""
import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

if TYPE_CHECKING:
    from segmark.detection.stream_info import StreamInfo


class SegmarkException(Exception):
    """Base exception for segmark."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_type: str = "internal_error"
    ):
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        super().__init__(self.message)


class ValidationError(SegmarkException):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400, error_type="validation_error")


class MissingDependencyError(SegmarkException):
    """Raised when an optional library needed by a converter is not installed."""

    def __init__(self, message: str, dependency: Optional[str] = None):
        self.dependency = dependency
        super().__init__(message, status_code=501, error_type="missing_dependency")


class ExternalServiceError(SegmarkException):
    """Raised when an external provider call fails."""

    def __init__(self, message: str, service: str):
        self.service = service
        super().__init__(
            f"{service} error: {message}",
            status_code=502,
            error_type="external_service_error"
        )


@dataclass(frozen=True)
class FailedConversionAttempt:
    """One converter that accepted (or was asked about) a candidate and failed."""

    converter: Any
    stream_info: "StreamInfo"
    error: Optional[BaseException] = None

    @property
    def converter_name(self) -> str:
        return getattr(self.converter, "name", type(self.converter).__name__)

    def describe(self) -> str:
        descriptor = self.stream_info.describe() if self.stream_info is not None else "unknown input"
        if self.error is None:
            return f"{self.converter_name} ({descriptor})"
        return f"{self.converter_name} ({descriptor}): {type(self.error).__name__}: {self.error}"


class FileConversionError(SegmarkException):
    """Raised when a selected converter began conversion but could not complete."""

    def __init__(
        self,
        message: str,
        attempts: Optional[Sequence[FailedConversionAttempt]] = None,
        format_name: Optional[str] = None,
    ):
        self.attempts: List[FailedConversionAttempt] = list(attempts or [])
        self.format_name = format_name
        if self.attempts:
            details = "\n".join(f" - {attempt.describe()}" for attempt in self.attempts)
            message = f"{message}\nAttempts:\n{details}"
        super().__init__(message, status_code=422, error_type="file_conversion_error")


class UnsupportedFormatError(SegmarkException):
    """Raised when no registered converter accepts the input."""

    def __init__(self, message: str, attempts: Optional[Sequence[FailedConversionAttempt]] = None):
        self.attempts: List[FailedConversionAttempt] = list(attempts or [])
        super().__init__(message, status_code=415, error_type="unsupported_format")


class ConversionCancelledError(asyncio.CancelledError):
    """Raised when a conversion observes its cancellation token.

    A subclass of ``asyncio.CancelledError``; ``except Exception`` does not
    catch it.
    """
