"""Contracts for external analysis providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, BinaryIO, Dict, List, Optional

from segmark.detection.stream_info import StreamInfo


@dataclass
class DocumentPageResult:
    """Text of one analyzed page plus the tables and images it references."""
    page_number: int
    text: str = ""
    table_indices: List[int] = field(default_factory=list)
    image_indices: List[int] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class DocumentTableResult:
    page_number: int
    rows: List[List[str]] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class DocumentImageResult:
    page_number: Optional[int]
    content: bytes
    content_type: str = "image/png"
    caption: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class DocumentIntelligenceResult:
    """Layout analysis of a whole document.

    Page text may carry ``{{TABLE:i}}`` tokens referring to ``tables[i]``.
    """
    pages: List[DocumentPageResult] = field(default_factory=list)
    tables: List[DocumentTableResult] = field(default_factory=list)
    images: List[DocumentImageResult] = field(default_factory=list)


@dataclass
class DocumentIntelligenceRequest:
    pages: Optional[List[int]] = None
    locale: Optional[str] = None


@dataclass
class ImageUnderstandingResult:
    caption: Optional[str] = None
    text: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    objects: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ImageUnderstandingRequest:
    prompt: Optional[str] = None
    language: Optional[str] = None
    context: Optional[str] = None


@dataclass
class TranscriptSegment:
    text: str
    start: Optional[timedelta] = None
    end: Optional[timedelta] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class MediaTranscriptionResult:
    segments: List[TranscriptSegment] = field(default_factory=list)
    language: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class MediaTranscriptionRequest:
    language: Optional[str] = None


class DocumentIntelligenceProvider(ABC):
    """Layout/OCR analysis service for paged documents."""

    name: str = "document-intelligence"

    @abstractmethod
    async def analyze(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        request: Optional[DocumentIntelligenceRequest] = None,
    ) -> Optional[DocumentIntelligenceResult]:
        """Analyze a document.

        Returns:
            The analysis, or ``None`` when the provider cannot handle the input.
        """


class ImageUnderstandingProvider(ABC):
    """Captioning/OCR service for single images."""

    name: str = "image-understanding"

    @abstractmethod
    async def analyze(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        request: Optional[ImageUnderstandingRequest] = None,
    ) -> Optional[ImageUnderstandingResult]:
        """Describe an image, or return ``None`` when nothing could be derived."""


class MediaTranscriptionProvider(ABC):
    """Speech-to-text service for audio streams."""

    name: str = "media-transcription"

    @abstractmethod
    async def transcribe(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        request: Optional[MediaTranscriptionRequest] = None,
    ) -> Optional[MediaTranscriptionResult]:
        """Transcribe an audio stream, or return ``None`` when unavailable."""


@dataclass
class ConversionProviders:
    """Optional providers available to a conversion call."""
    document_intelligence: Optional[DocumentIntelligenceProvider] = None
    image_understanding: Optional[ImageUnderstandingProvider] = None
    media_transcription: Optional[MediaTranscriptionProvider] = None

    @classmethod
    def none(cls) -> 'ConversionProviders':
        return cls()

    def describe(self) -> Dict[str, Any]:
        return {
            "document_intelligence": _provider_name(self.document_intelligence),
            "image_understanding": _provider_name(self.image_understanding),
            "media_transcription": _provider_name(self.media_transcription),
        }


def _provider_name(provider: Any) -> Optional[str]:
    if provider is None:
        return None
    return getattr(provider, "name", type(provider).__name__)
