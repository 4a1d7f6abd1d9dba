"""Plain text and Markdown passthrough converter."""

from typing import BinaryIO

import structlog

from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import DocumentConverterResult, DocumentSegment, SegmentType
from segmark.services.context import ConversionContext
from segmark.utils.encoding import charset_from_bom, decode_bytes

from .base import BaseConverter

logger = structlog.get_logger(__name__)


class PlainTextConverter(BaseConverter):
    """Generic fallback for anything textual; Markdown passes through unchanged."""

    name = "text"
    priority = 10
    supported_extensions = ('.txt', '.text', '.log', '.md', '.markdown')
    supported_mime_types = ('text/', 'application/markdown')

    def accepts_input(self, stream_info: StreamInfo) -> bool:
        if stream_info.charset:
            return True
        return super().accepts_input(stream_info)

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        if not self.accepts_input(stream_info):
            return False
        sample = stream.read(4096)
        # NUL bytes only show up in text with a UTF-16/32 byte order mark
        return b'\x00' not in sample or charset_from_bom(sample) is not None

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        text, encoding = decode_bytes(self.read_all(stream), stream_info.charset)
        text = text.replace('\r\n', '\n').replace('\r', '\n')

        segments = []
        if text.strip():
            segments.append(DocumentSegment(
                markdown=text,
                type=SegmentType.SECTION,
                number=1,
                source=stream_info.resolve_file_name() or stream_info.url,
            ))

        is_markdown = stream_info.resolve_mime_type() == mime.MARKDOWN
        logger.debug("Text decoded", encoding=encoding, characters=len(text), markdown=is_markdown)
        return self.build_result(segments, None, stream_info, context, metadata={"encoding": encoding})
