"""HTML to Markdown converter."""

from dataclasses import dataclass
from typing import BinaryIO, List, Optional

import structlog
from bs4 import BeautifulSoup, Comment
from markdownify import MarkdownConverter

from segmark.core.exceptions import FileConversionError
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import ConversionArtifacts, DocumentConverterResult, DocumentSegment, SegmentType, TableArtifact
from segmark.services.context import ConversionContext
from segmark.services.tables import ExpandableCell, TableReconciler
from segmark.utils.encoding import decode_bytes
from segmark.utils.text import TextSanitizer

from .base import BaseConverter

logger = structlog.get_logger(__name__)

REMOVED_TAGS = ['script', 'style', 'noscript', 'template', 'iframe', 'object', 'embed', 'svg', 'canvas']


class HtmlMarkdownConverter(MarkdownConverter):
    """markdownify converter with reconciled tables and fenced code blocks."""

    def __init__(self, reconciler: Optional[TableReconciler] = None, **options):
        options.setdefault('heading_style', 'ATX')
        options.setdefault('bullets', '-')
        super().__init__(**options)
        self.reconciler = reconciler or TableReconciler()
        self.tables: List[List[List[str]]] = []

    def convert_table(self, el, text, parent_tags):
        cells = []
        for tr in el.find_all('tr'):
            if tr.find_parent('table') is not el:
                continue
            row = []
            for cell in tr.find_all(['th', 'td'], recursive=False):
                span = cell.get('colspan', '1')
                row.append(ExpandableCell(
                    text=cell.get_text(" ", strip=True),
                    grid_span=int(span) if str(span).isdigit() else 1,
                ))
            if row:
                cells.append(row)

        rows = self.reconciler.normalize(self.reconciler.expand_spans(cells), propagate=False)
        if not rows:
            return super().convert_table(el, text, parent_tags)

        self.tables.append(rows)
        return f"\n\n{self.reconciler.to_markdown(rows)}\n\n"

    def convert_pre(self, el, text, parent_tags):
        code = el.find('code')
        language = ''
        if code is not None:
            for css_class in code.get('class', []):
                if css_class.startswith('language-'):
                    language = css_class[len('language-'):]
                    break
                if css_class.startswith('lang-'):
                    language = css_class[len('lang-'):]
                    break
        body = (code or el).get_text().strip('\n')
        return f"\n\n```{language}\n{body}\n```\n\n"


@dataclass
class HtmlConversion:
    markdown: str
    title: Optional[str] = None
    tables: Optional[List[List[List[str]]]] = None


def clean_html(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove scripts, styles and comments in place."""
    for tag in soup(REMOVED_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda value: isinstance(value, Comment)):
        comment.extract()
    return soup


def convert_html_string(html: str, reconciler: Optional[TableReconciler] = None) -> HtmlConversion:
    """Convert an HTML document or fragment to Markdown.

    Args:
        html: HTML markup
        reconciler: Table reconciler for ``<table>`` elements

    Returns:
        HtmlConversion with the Markdown, the ``<title>`` text and the tables found
    """
    soup = clean_html(BeautifulSoup(html or "", 'lxml'))

    title = None
    if soup.title is not None and soup.title.string:
        title = TextSanitizer.normalize(soup.title.string) or None

    body = soup.body or soup
    converter = HtmlMarkdownConverter(reconciler=reconciler)
    markdown = TextSanitizer.normalize(converter.convert_soup(body))
    return HtmlConversion(markdown=markdown, title=title, tables=converter.tables)


class HtmlConverter(BaseConverter):
    """Converts HTML pages into a single SECTION segment."""

    name = "html"
    priority = 0
    supported_extensions = ('.html', '.htm', '.xhtml')
    supported_mime_types = (mime.HTML, mime.XHTML)

    def __init__(self, reconciler: Optional[TableReconciler] = None):
        self.reconciler = reconciler or TableReconciler()

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        html, encoding = decode_bytes(self.read_all(stream), stream_info.charset)

        try:
            converted = await self.run_blocking(convert_html_string, html, self.reconciler)
        except Exception as e:
            logger.error("HTML conversion failed",
                         file_name=stream_info.file_name,
                         error=str(e),
                         error_type=type(e).__name__)
            raise FileConversionError(f"Failed to convert HTML: {str(e)}", format_name="html") from e

        source = stream_info.resolve_file_name() or stream_info.url
        artifacts = ConversionArtifacts()
        for index, rows in enumerate(converted.tables or [], start=1):
            artifacts.tables.append(TableArtifact(rows=rows, source=source, label=f"Table {index}"))

        segments = []
        if converted.markdown:
            segments.append(DocumentSegment(
                markdown=converted.markdown,
                type=SegmentType.SECTION,
                number=1,
                label=converted.title,
                source=source,
            ))

        logger.debug("HTML converted", encoding=encoding, tables=len(artifacts.tables))
        return self.build_result(segments, artifacts, stream_info, context, title_hint=converted.title)
