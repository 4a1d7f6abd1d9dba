"""Word (DOCX) to Markdown converter."""

import io
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

import structlog

from segmark.core.exceptions import FileConversionError, MissingDependencyError, SegmarkException
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import (
    ConversionArtifacts,
    DocumentConverterResult,
    ImageArtifact,
    MetadataKeys,
    TableArtifact,
)
from segmark.services.context import ConversionContext
from segmark.services.images import get_image_enricher, place_image
from segmark.services.intelligence import run_document_intelligence
from segmark.services.pages import ExtractionResult, PageMap
from segmark.services.tables import ExpandableCell, TableReconciler
from segmark.utils.text import TextSanitizer, extract_title, format_emphasis

from .base import BaseConverter

logger = structlog.get_logger(__name__)

try:
    from docx import Document
    from docx.oxml.ns import qn
    from docx.text.paragraph import Paragraph
    from docx.text.run import Run
    DOCX_AVAILABLE = True
except ImportError:
    DOCX_AVAILABLE = False
    logger.warning("python-docx not available, Word document processing disabled")

_VML_IMAGEDATA = "{urn:schemas-microsoft-com:vml}imagedata"


@dataclass
class _TextToken:
    text: str
    bold: bool
    italic: bool


@dataclass
class _ParagraphResult:
    markdown: str = ""
    raw_text: str = ""
    heading: Optional[str] = None
    images: List[ImageArtifact] = field(default_factory=list)


def count_page_breaks(element) -> int:
    """Explicit page breaks plus rendered page breaks inside ``element``."""
    rendered = sum(1 for _ in element.iter(qn('w:lastRenderedPageBreak')))
    explicit = sum(1 for br in element.iter(qn('w:br')) if br.get(qn('w:type')) == 'page')
    return rendered + explicit


def heading_level(style_name: Optional[str]) -> int:
    """Markdown heading level for a paragraph style, 0 for body text."""
    if not style_name:
        return 0
    name = style_name.strip().lower()
    if name == 'title':
        return 1
    if not name.startswith('heading'):
        return 0
    suffix = name[len('heading'):].strip()
    if not suffix.isdigit():
        return 1
    return min(max(int(suffix), 1), 6)


class DocxConverter(BaseConverter):
    """Converts Word documents page by page.

    Page numbers follow explicit page breaks and the page breaks Word
    recorded when the document was last rendered.
    """

    name = "docx"
    priority = 210
    supported_extensions = ('.docx',)
    supported_mime_types = (mime.DOCX,)

    def __init__(self, reconciler: Optional[TableReconciler] = None):
        self.reconciler = reconciler or TableReconciler()

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        if not self.accepts_input(stream_info):
            return False
        return stream.read(4) == b'PK\x03\x04'

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        """Convert a Word document.

        Args:
            stream: DOCX byte stream
            stream_info: Descriptor of the stream
            context: Conversion context

        Returns:
            DocumentConverterResult with one PAGE segment per page
        """
        if not DOCX_AVAILABLE:
            raise MissingDependencyError("python-docx is required for DOCX conversion", dependency="python-docx")

        logger.info("Starting Word document conversion",
                    file_name=stream_info.file_name,
                    document_intelligence=context.document_intelligence_enabled)

        try:
            data = self.read_all(stream)
            doc = await self.run_blocking(Document, io.BytesIO(data))
            properties = self._core_properties(doc)

            extraction = None
            strategy = "embedded"
            if context.document_intelligence_enabled:
                extraction = await run_document_intelligence(
                    io.BytesIO(data), stream_info, context, reconciler=self.reconciler
                )
                if extraction is not None:
                    strategy = "document-intelligence"
            if extraction is None:
                extraction = await self._extract_embedded(doc, stream_info, context)
        except SegmarkException:
            raise
        except Exception as e:
            logger.error("Word document conversion failed",
                         file_name=stream_info.file_name,
                         error=str(e),
                         error_type=type(e).__name__)
            raise FileConversionError(f"Failed to convert Word document: {str(e)}", format_name="docx") from e

        metadata = extraction.artifacts.metadata
        for key, value in properties.items():
            metadata.setdefault(key, value)
        metadata.setdefault(MetadataKeys.DOCUMENT_PAGES, str(extraction.page_count))

        title = properties.get(MetadataKeys.DOCUMENT_TITLE) or extraction.title or extract_title(extraction.raw_text)

        logger.info("Word document conversion completed",
                    strategy=strategy,
                    pages=extraction.page_count,
                    tables=len(extraction.artifacts.tables),
                    images=len(extraction.artifacts.images))

        return self.build_result(
            extraction.segments,
            extraction.artifacts,
            stream_info,
            context,
            title_hint=title,
            metadata={"strategy": strategy},
        )

    @staticmethod
    def _core_properties(doc) -> Dict[str, str]:
        props = doc.core_properties
        values = {
            MetadataKeys.DOCUMENT_TITLE: props.title,
            MetadataKeys.DOCUMENT_AUTHOR: props.author,
            MetadataKeys.DOCUMENT_SUBJECT: props.subject,
            MetadataKeys.DOCUMENT_CREATED: props.created.isoformat() if props.created else None,
            MetadataKeys.DOCUMENT_MODIFIED: props.modified.isoformat() if props.modified else None,
        }
        return {key: str(value).strip() for key, value in values.items() if value and str(value).strip()}

    async def _extract_embedded(
        self,
        doc,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> ExtractionResult:
        source = stream_info.resolve_file_name() or stream_info.url
        pages = PageMap()
        artifacts = ConversionArtifacts()
        raw_text: List[str] = []
        first_heading: Optional[str] = None
        page_number = 1

        for child in doc.element.body.iterchildren():
            context.check_cancelled()
            breaks = count_page_breaks(child)

            if child.tag == qn('w:p'):
                result = await self._convert_paragraph(Paragraph(child, doc), doc, page_number, stream_info, context)
                pages.get(page_number)
                pages.append(page_number, result.markdown)
                if result.raw_text:
                    raw_text.append(result.raw_text)
                if first_heading is None and result.heading:
                    first_heading = result.heading
                for artifact in result.images:
                    pages.add_image(page_number, artifact)
                    artifacts.images.append(artifact)
            elif child.tag == qn('w:tbl'):
                pages.get(page_number)
                markdown = self._convert_table(child, doc, page_number, breaks, source, artifacts)
                pages.append(page_number, markdown)

            page_number += breaks

        segments = pages.flush(source, artifacts)
        return ExtractionResult(
            segments=segments,
            artifacts=artifacts,
            raw_text="\n".join(raw_text),
            title=first_heading,
        )

    async def _convert_paragraph(
        self,
        paragraph,
        doc,
        page_number: int,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> _ParagraphResult:
        style_name = paragraph.style.name if paragraph.style is not None else None
        level = heading_level(style_name)
        is_list = level == 0 and self._is_list_paragraph(paragraph, style_name)

        parts: List[Any] = []
        images: List[ImageArtifact] = []
        placeholders: List[str] = []

        for run_element in self._iter_runs(paragraph._p):
            run = Run(run_element, paragraph)
            bold, italic = bool(run.bold), bool(run.italic)
            for item in run_element.iterchildren():
                if item.tag == qn('w:t'):
                    self._append_text(parts, item.text or "", bold, italic)
                elif item.tag == qn('w:tab'):
                    self._append_text(parts, "\t", bold, italic)
                elif item.tag == qn('w:br') and item.get(qn('w:type')) in (None, 'textWrapping'):
                    self._append_text(parts, "\n", bold, italic)
                elif item.tag in (qn('w:drawing'), qn('w:pict')):
                    for artifact in await self._create_images(item, doc, page_number, stream_info, context):
                        placeholder = await place_image(artifact, context, f"Image (page {page_number})")
                        parts.append(placeholder)
                        placeholders.append(placeholder)
                        images.append(artifact)

        text_parts = []
        lines = []
        for part in parts:
            if isinstance(part, _TextToken):
                text_parts.append(part.text if level else format_emphasis(part.text, part.bold, part.italic))
                continue
            text = "".join(text_parts).strip()
            if text:
                lines.append(text)
            text_parts = []
            lines.append(part)
        tail = "".join(text_parts).strip()
        if tail:
            lines.append(tail)

        plain = "".join(part.text for part in parts if isinstance(part, _TextToken)).strip()
        if not lines:
            return _ParagraphResult()

        heading = None
        if level and plain:
            heading = TextSanitizer.normalize(plain)
            lines = [f"{'#' * level} {heading}"] + placeholders
        elif is_list and lines[0] not in placeholders:
            lines[0] = f"- {lines[0]}"

        return _ParagraphResult(
            markdown="\n\n".join(lines),
            raw_text=plain,
            heading=heading,
            images=images,
        )

    @staticmethod
    def _append_text(parts: List[Any], text: str, bold: bool, italic: bool) -> None:
        if not text:
            return
        if parts and isinstance(parts[-1], _TextToken) and parts[-1].bold == bold and parts[-1].italic == italic:
            parts[-1].text += text
            return
        parts.append(_TextToken(text, bold, italic))

    @staticmethod
    def _iter_runs(p_element):
        for child in p_element.iterchildren():
            if child.tag == qn('w:r'):
                yield child
            elif child.tag in (qn('w:hyperlink'), qn('w:ins'), qn('w:smartTag')):
                yield from child.iterchildren(qn('w:r'))

    @staticmethod
    def _is_list_paragraph(paragraph, style_name: Optional[str]) -> bool:
        if style_name and 'list' in style_name.lower():
            return True
        return paragraph._p.find(f"{qn('w:pPr')}/{qn('w:numPr')}") is not None

    async def _create_images(
        self,
        element,
        doc,
        page_number: int,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> List[ImageArtifact]:
        relationship_ids = [blip.get(qn('r:embed')) for blip in element.iter(qn('a:blip'))]
        relationship_ids.extend(data.get(qn('r:id')) for data in element.iter(_VML_IMAGEDATA))

        related = doc.part.related_parts
        source = stream_info.resolve_file_name() or stream_info.url
        enricher = get_image_enricher()
        artifacts = []

        for rid in relationship_ids:
            part = related.get(rid) if rid else None
            if part is None or not getattr(part, "content_type", "").startswith("image/"):
                continue
            artifact = ImageArtifact(
                data=part.blob,
                content_type=part.content_type,
                page_number=page_number,
                source=source,
                metadata={MetadataKeys.PAGE: str(page_number)},
            )
            await enricher.enrich(artifact, stream_info, context, location=f"page {page_number}")
            artifacts.append(artifact)
        return artifacts

    def _read_table_cells(self, tbl, doc) -> Tuple[List[List[ExpandableCell]], int]:
        grid = tbl.find(qn('w:tblGrid'))
        column_count = len(grid.findall(qn('w:gridCol'))) if grid is not None else 0

        table = []
        for tr in tbl.iterchildren(qn('w:tr')):
            row = []
            for tc in tr.iterchildren(qn('w:tc')):
                span = 1
                v_merge = None
                tc_pr = tc.find(qn('w:tcPr'))
                if tc_pr is not None:
                    grid_span = tc_pr.find(qn('w:gridSpan'))
                    if grid_span is not None and (grid_span.get(qn('w:val')) or '').isdigit():
                        span = int(grid_span.get(qn('w:val')))
                    merge = tc_pr.find(qn('w:vMerge'))
                    if merge is not None:
                        v_merge = merge.get(qn('w:val')) or 'continue'
                row.append(ExpandableCell(text=self._cell_text(tc, doc), grid_span=span, v_merge=v_merge))
            table.append(row)
        return table, column_count

    @staticmethod
    def _cell_text(tc, doc) -> str:
        paragraphs: List[str] = []
        for p in tc.iterchildren(qn('w:p')):
            text = TextSanitizer.normalize(Paragraph(p, doc).text)
            if text and (not paragraphs or paragraphs[-1] != text):
                paragraphs.append(text)
        return TextSanitizer.normalize("\n".join(paragraphs), collapse=False)

    def _convert_table(
        self,
        tbl,
        doc,
        page_number: int,
        breaks: int,
        source: Optional[str],
        artifacts: ConversionArtifacts,
    ) -> str:
        cells, column_count = self._read_table_cells(tbl, doc)
        rows = self.reconciler.normalize(self.reconciler.expand_spans(cells, column_count or None))
        if not rows:
            return ""

        page_end = page_number + breaks
        page_range = str(page_number) if page_end == page_number else f"{page_number}-{page_end}"
        table_index = len(artifacts.tables) + 1
        markdown = self.reconciler.to_markdown(rows, cell_break="<br />")

        metadata = {
            MetadataKeys.TABLE_INDEX: str(table_index),
            MetadataKeys.TABLE_PAGE_START: str(page_number),
            MetadataKeys.TABLE_PAGE_END: str(page_end),
            MetadataKeys.TABLE_PAGE_RANGE: page_range,
            MetadataKeys.PAGE: str(page_number),
        }
        if breaks:
            comment = f"<!-- Table spans pages {page_range} -->"
            metadata[MetadataKeys.TABLE_COMMENT] = comment
            markdown = f"{comment}\n{markdown}"

        artifacts.tables.append(TableArtifact(
            rows=rows,
            page_number=page_number,
            source=source,
            label=f"Table {table_index}",
            metadata=metadata,
        ))
        return markdown
