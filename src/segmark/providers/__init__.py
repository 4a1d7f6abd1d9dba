"""External analysis providers."""

from .base import (
    ConversionProviders,
    DocumentImageResult,
    DocumentIntelligenceProvider,
    DocumentIntelligenceRequest,
    DocumentIntelligenceResult,
    DocumentPageResult,
    DocumentTableResult,
    ImageUnderstandingProvider,
    ImageUnderstandingRequest,
    ImageUnderstandingResult,
    MediaTranscriptionProvider,
    MediaTranscriptionRequest,
    MediaTranscriptionResult,
    TranscriptSegment,
)

__all__ = [
    "ConversionProviders",
    "DocumentImageResult",
    "DocumentIntelligenceProvider",
    "DocumentIntelligenceRequest",
    "DocumentIntelligenceResult",
    "DocumentPageResult",
    "DocumentTableResult",
    "ImageUnderstandingProvider",
    "ImageUnderstandingRequest",
    "ImageUnderstandingResult",
    "MediaTranscriptionProvider",
    "MediaTranscriptionRequest",
    "MediaTranscriptionResult",
    "TranscriptSegment",
]
