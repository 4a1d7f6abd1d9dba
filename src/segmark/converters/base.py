"""Base class and shared helpers for document converters."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Dict, Optional, Sequence, Tuple

import structlog

from segmark.detection.stream_info import StreamInfo
from segmark.models import ConversionArtifacts, DocumentConverterResult, DocumentSegment
from segmark.services.composer import SegmentMarkdownComposer
from segmark.services.context import ConversionContext

logger = structlog.get_logger(__name__)


class BaseConverter(ABC):
    """Abstract base class for all document converters.

    Converters are selected by the registry, never subclassed for behavior.
    ``priority`` orders them: lower values are tried first.
    """

    name: str = "base"
    priority: float = 0.0
    supported_extensions: Tuple[str, ...] = ()
    supported_mime_types: Tuple[str, ...] = ()

    def accepts_input(self, stream_info: StreamInfo) -> bool:
        """Check whether the descriptor alone suggests this converter.

        Args:
            stream_info: Declared or sniffed stream descriptor

        Returns:
            True if the extension or MIME type is supported
        """
        extension = stream_info.resolve_extension()
        if extension and extension in self.supported_extensions:
            return True

        mime_type = stream_info.resolve_mime_type()
        if not mime_type:
            return False
        for supported in self.supported_mime_types:
            if supported.endswith('/') and mime_type.startswith(supported):
                return True
            if mime_type == supported:
                return True
        return False

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        """Stream-aware acceptance check; defaults to ``accepts_input``.

        Implementations may read from the stream; the caller rewinds it.
        """
        return self.accepts_input(stream_info)

    @abstractmethod
    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        """Convert a document to Markdown.

        Args:
            stream: Seekable binary stream positioned at the start
            stream_info: Descriptor of the stream
            context: Per-call options, providers and resources

        Returns:
            DocumentConverterResult with composed Markdown, segments and artifacts

        Raises:
            FileConversionError: If the document cannot be converted
        """

    def build_result(
        self,
        segments: Sequence[DocumentSegment],
        artifacts: Optional[ConversionArtifacts],
        stream_info: StreamInfo,
        context: ConversionContext,
        title_hint: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DocumentConverterResult:
        """Compose the final Markdown and wrap everything in a result."""
        artifacts = artifacts or ConversionArtifacts()
        composed = SegmentMarkdownComposer.compose(
            segments,
            artifacts,
            stream_info,
            context.options,
            title_hint=title_hint,
        )
        result_metadata = {"converter": self.name}
        result_metadata.update(metadata or {})
        return DocumentConverterResult(
            markdown=composed.markdown,
            title=composed.title,
            segments=segments,
            artifacts=artifacts,
            metadata=result_metadata,
        )

    @staticmethod
    async def run_blocking(func, *args, **kwargs):
        """Run a blocking parser call in a worker thread."""
        return await asyncio.to_thread(func, *args, **kwargs)

    @staticmethod
    def read_all(stream: BinaryIO) -> bytes:
        stream.seek(0)
        return stream.read()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority!r})"
