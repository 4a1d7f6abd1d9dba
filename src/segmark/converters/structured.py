"""JSON and XML converters."""

import json
import re
from pathlib import PurePosixPath
from typing import BinaryIO, List, Optional

import structlog
from bs4 import BeautifulSoup, CData, Comment, NavigableString, Tag

from segmark.core.exceptions import FileConversionError
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import DocumentConverterResult, DocumentSegment, SegmentType
from segmark.services.context import ConversionContext
from segmark.utils.encoding import decode_bytes

from .base import BaseConverter

logger = structlog.get_logger(__name__)

JSON_LINES_EXTENSIONS = ('.jsonl', '.ndjson')

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')


def _stem(stream_info: StreamInfo) -> Optional[str]:
    name = stream_info.resolve_file_name()
    if not name:
        return None
    return PurePosixPath(name.replace('\\', '/')).stem or None


def _leading_char(stream: BinaryIO, size: int = 1024) -> str:
    sample = stream.read(size)
    text, _ = decode_bytes(sample)
    stripped = text.lstrip()
    return stripped[:1]


class JsonConverter(BaseConverter):
    """Pretty-prints JSON (and JSON Lines) into a fenced code block."""

    name = "json"
    priority = 0
    supported_extensions = ('.json',) + JSON_LINES_EXTENSIONS
    supported_mime_types = (mime.JSON, 'application/x-ndjson', 'application/ld+json')

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        if not self.accepts_input(stream_info):
            return False
        return _leading_char(stream) in ('{', '[')

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        text, _ = decode_bytes(self.read_all(stream), stream_info.charset)
        title = _stem(stream_info) or "JSON Document"
        if not text.strip():
            return self.build_result([], None, stream_info, context, title_hint=title)

        try:
            if stream_info.resolve_extension() in JSON_LINES_EXTENSIONS:
                body = self.format_json_lines(text)
            else:
                body = "```json\n" + json.dumps(json.loads(text), indent=2, ensure_ascii=False) + "\n```"
        except json.JSONDecodeError as e:
            raise FileConversionError(f"Invalid JSON format: {str(e)}", format_name="json") from e

        segment = DocumentSegment(
            markdown=f"# {title}\n\n{body}",
            type=SegmentType.SECTION,
            number=1,
            label=title,
            source=stream_info.resolve_file_name() or stream_info.url,
        )
        return self.build_result([segment], None, stream_info, context, title_hint=title)

    @staticmethod
    def format_json_lines(text: str) -> str:
        """One fenced block per line; lines that fail to parse are kept verbatim."""
        blocks = []
        for number, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                pretty = json.dumps(json.loads(line), indent=2, ensure_ascii=False)
                blocks.append(f"## Line {number}\n\n```json\n{pretty}\n```")
            except json.JSONDecodeError:
                blocks.append(f"## Line {number} (Invalid JSON)\n\n```\n{line}\n```")
        return "\n\n".join(blocks)


def format_element_name(name: str) -> str:
    """``orderLine`` -> ``Order Line``."""
    if not name:
        return name
    spaced = _CAMEL_BOUNDARY.sub(' ', name)
    return spaced[:1].upper() + spaced[1:]


class XmlConverter(BaseConverter):
    """Renders the element tree of an XML document as headings and lists."""

    name = "xml"
    priority = 0
    supported_extensions = ('.xml',)
    supported_mime_types = (mime.XML, 'text/xml')

    TITLE_ELEMENTS = ('title', 'name', 'label', 'header', 'h1')

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        if not self.accepts_input(stream_info):
            return False
        return _leading_char(stream) == '<'

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        text, _ = decode_bytes(self.read_all(stream), stream_info.charset)
        if not text.strip():
            return self.build_result([], None, stream_info, context)

        soup = await self.run_blocking(BeautifulSoup, text, 'xml')
        root = next((child for child in soup.children if isinstance(child, Tag)), None)
        if root is None:
            raise FileConversionError("Invalid XML format: no root element", format_name="xml")

        title = self.extract_title(soup) or _stem(stream_info)
        lines: List[str] = []
        if title:
            lines.append(f"# {title}")
        self._render(root, lines, 0)

        segment = DocumentSegment(
            markdown="\n\n".join(lines),
            type=SegmentType.SECTION,
            number=1,
            label=title,
            source=stream_info.resolve_file_name() or stream_info.url,
        )
        return self.build_result([segment], None, stream_info, context, title_hint=title)

    @classmethod
    def extract_title(cls, soup: BeautifulSoup) -> Optional[str]:
        for name in cls.TITLE_ELEMENTS:
            element = soup.find(name)
            if element is not None:
                text = element.get_text(" ", strip=True)
                if text:
                    return text
        return None

    def _render(self, node, lines: List[str], depth: int) -> None:
        if isinstance(node, CData):
            value = str(node).strip()
            if value:
                lines.append(f"```\n{value}\n```")
            return
        if isinstance(node, Comment):
            value = str(node).strip()
            if value:
                lines.append(f"<!-- {value} -->")
            return
        if isinstance(node, NavigableString):
            value = str(node).strip()
            if value:
                lines.append(value)
            return
        if not isinstance(node, Tag):
            return

        label = format_element_name(node.name)
        if depth <= 3:
            lines.append(f"{'#' * min(depth + 2, 6)} {label}")
        else:
            lines.append(f"**{label}**")

        if node.attrs:
            lines.append("\n".join(f"- **{format_element_name(key)}**: {value}" for key, value in node.attrs.items()))

        for child in node.children:
            self._render(child, lines, depth + 1)
