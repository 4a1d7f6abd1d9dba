"""PDF to Markdown converter with layout-analysis, embedded-text and OCR strategies."""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Tuple

import structlog

from segmark.core.exceptions import FileConversionError, MissingDependencyError, SegmarkException
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import (
    ConversionArtifacts,
    DocumentConverterResult,
    ImageArtifact,
    MetadataKeys,
    MetadataValues,
    PdfConversionMode,
    TableArtifact,
)
from segmark.services.context import ConversionContext
from segmark.services.images import get_image_enricher, place_image
from segmark.services.intelligence import run_document_intelligence
from segmark.services.pages import ExtractionResult, PageMap, table_token
from segmark.services.source import materialize_source
from segmark.services.tables import MergedTable, TableFragment, TableReconciler
from segmark.utils.text import convert_text_to_markdown, extract_title

from .base import BaseConverter

logger = structlog.get_logger(__name__)

try:
    import fitz  # PyMuPDF
    PYMUPDF_AVAILABLE = True
except ImportError:
    PYMUPDF_AVAILABLE = False
    logger.warning("PyMuPDF not available, PDF conversion disabled")

try:
    import pdfplumber
    PDFPLUMBER_AVAILABLE = True
except ImportError:
    PDFPLUMBER_AVAILABLE = False
    logger.warning("pdfplumber not available, PDF tables will be read as text")

BBox = Tuple[float, float, float, float]

# Share of a text block's area that must fall inside a table to treat it as table text.
TABLE_OVERLAP_RATIO = 0.5


@dataclass
class _TextBlock:
    bbox: BBox
    text: str


@dataclass
class _ImageBlock:
    bbox: BBox
    data: bytes
    content_type: str


@dataclass
class _PageLayout:
    number: int
    height: float
    blocks: List[object] = field(default_factory=list)


def _overlap_ratio(block: BBox, table: BBox) -> float:
    x0, y0 = max(block[0], table[0]), max(block[1], table[1])
    x1, y1 = min(block[2], table[2]), min(block[3], table[3])
    if x1 <= x0 or y1 <= y0:
        return 0.0
    area = max((block[2] - block[0]) * (block[3] - block[1]), 1e-6)
    return (x1 - x0) * (y1 - y0) / area


def _span_text(block: dict) -> str:
    lines = []
    for line in block.get("lines", []):
        text = "".join(span.get("text", "") for span in line.get("spans", []))
        lines.append(text.rstrip())
    return "\n".join(lines).strip()


class PdfConverter(BaseConverter):
    """Converts PDF documents page by page.

    Strategies, in order: document intelligence (when a provider is
    configured), page rasterization with OCR (when pages are treated as
    images), then embedded text with PyMuPDF and tables with pdfplumber.
    """

    name = "pdf"
    priority = 200
    supported_extensions = ('.pdf',)
    supported_mime_types = (mime.PDF, 'application/x-pdf')

    def __init__(self, reconciler: Optional[TableReconciler] = None):
        self.reconciler = reconciler or TableReconciler()

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        if not self.accepts_input(stream_info):
            return False
        header = stream.read(1024)
        return b'%PDF' in header

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
        mode: Optional[PdfConversionMode] = None,
    ) -> DocumentConverterResult:
        """Convert a PDF document.

        Args:
            stream: PDF byte stream
            stream_info: Descriptor of the stream
            context: Conversion context
            mode: Per-call override of the extraction strategy

        Returns:
            DocumentConverterResult with one PAGE segment per page
        """
        if not PYMUPDF_AVAILABLE:
            raise MissingDependencyError("PyMuPDF is required for PDF conversion", dependency="PyMuPDF")

        if mode is not None and mode is not PdfConversionMode.AUTO:
            context = replace(context, options=context.options.with_pdf_mode(mode))

        logger.info("Starting PDF conversion",
                    file_name=stream_info.file_name,
                    treat_pages_as_images=context.options.pdf.treat_pages_as_images,
                    document_intelligence=context.document_intelligence_enabled)

        try:
            async with materialize_source(stream, ".pdf") as path:
                extraction, strategy = await self._extract(stream, path, stream_info, context)
        except SegmarkException:
            raise
        except Exception as e:
            logger.error("PDF conversion failed",
                         file_name=stream_info.file_name,
                         error=str(e),
                         error_type=type(e).__name__)
            raise FileConversionError(f"Failed to convert PDF file: {str(e)}", format_name="pdf") from e

        extraction.artifacts.metadata.setdefault(MetadataKeys.DOCUMENT_PAGES, str(extraction.page_count))
        title = extract_title(extraction.raw_text)

        logger.info("PDF conversion completed",
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

    async def _extract(
        self,
        stream: BinaryIO,
        path: Path,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> Tuple[ExtractionResult, str]:
        treat_pages_as_images = context.options.pdf.treat_pages_as_images

        if context.document_intelligence_enabled and not treat_pages_as_images:
            extraction = await self._extract_with_document_intelligence(stream, path, stream_info, context)
            if extraction is not None:
                return extraction, "document-intelligence"

        if treat_pages_as_images:
            extraction = await self._try_extract_rendered_pages(path, stream_info, context)
            if extraction is not None and extraction.page_count:
                return extraction, "rendered-pages"
            logger.warning("Page rendering produced no pages, using embedded text")

        extraction = await self._extract_embedded(path, stream_info, context)
        if not extraction.raw_text.strip() and not extraction.artifacts.tables:
            logger.info("PDF has no embedded text, rendering pages for OCR")
            rendered = await self._try_extract_rendered_pages(path, stream_info, context)
            if rendered is not None and rendered.page_count:
                return rendered, "rendered-pages"
        return extraction, "embedded-text"

    async def _try_extract_rendered_pages(
        self,
        path: Path,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> Optional[ExtractionResult]:
        """Rendered-page extraction, or ``None`` when rasterization fails."""
        try:
            return await self._extract_rendered_pages(path, stream_info, context)
        except SegmarkException:
            raise
        except Exception as e:
            logger.warning("Page rendering failed, keeping text-only output",
                           file_name=stream_info.file_name,
                           error=str(e),
                           error_type=type(e).__name__)
            return None

    async def _extract_with_document_intelligence(
        self,
        stream: BinaryIO,
        path: Path,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> Optional[ExtractionResult]:
        async def render_snapshot(page_number: int) -> Optional[bytes]:
            try:
                pages = await self.run_blocking(
                    self._render_pages, path, context.options.pdf.render_dpi, [page_number]
                )
            except Exception as e:
                logger.warning("Page snapshot failed",
                               page=page_number,
                               error=str(e),
                               error_type=type(e).__name__)
                return None
            return pages[0] if pages else None

        return await run_document_intelligence(
            stream,
            stream_info,
            context,
            snapshot_renderer=render_snapshot,
            reconciler=self.reconciler,
        )

    @staticmethod
    def _render_pages(path: Path, dpi: int, page_numbers: Optional[List[int]] = None) -> List[bytes]:
        zoom = dpi / 72.0
        rendered = []
        with fitz.open(str(path)) as doc:
            numbers = page_numbers or list(range(1, doc.page_count + 1))
            for number in numbers:
                if not 1 <= number <= doc.page_count:
                    continue
                pix = doc[number - 1].get_pixmap(matrix=fitz.Matrix(zoom, zoom))
                rendered.append(pix.tobytes("png"))
        return rendered

    async def _extract_rendered_pages(
        self,
        path: Path,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> ExtractionResult:
        images = await self.run_blocking(self._render_pages, path, context.options.pdf.render_dpi)
        source = stream_info.resolve_file_name() or stream_info.url
        enricher = get_image_enricher()
        pages = PageMap()
        artifacts = ConversionArtifacts()
        raw_text = []

        rendered = [
            ImageArtifact(
                data=data,
                content_type=mime.PNG,
                page_number=number,
                source=source,
                label=f"PDF page {number}",
                metadata={MetadataKeys.PAGE: str(number), MetadataKeys.SNAPSHOT: MetadataValues.TRUE},
            )
            for number, data in enumerate(images, start=1)
        ]
        await enricher.enrich_all(
            [(artifact, f"page {artifact.page_number}") for artifact in rendered], stream_info, context
        )

        for artifact in rendered:
            context.check_cancelled()
            number = artifact.page_number
            pages.append(number, await place_image(artifact, context, f"PDF page {number}"))
            if artifact.raw_text:
                pages.append(number, convert_text_to_markdown(artifact.raw_text))
                raw_text.append(artifact.raw_text)
            pages.add_image(number, artifact)
            artifacts.images.append(artifact)

        segments = pages.flush(source, artifacts)
        return ExtractionResult(segments=segments, artifacts=artifacts, raw_text="\n\n".join(raw_text))

    @staticmethod
    def _read_layout(path: Path) -> List[_PageLayout]:
        layouts = []
        with fitz.open(str(path)) as doc:
            for index, page in enumerate(doc):
                layout = _PageLayout(number=index + 1, height=page.rect.height)
                try:
                    blocks = page.get_text("dict", flags=fitz.TEXTFLAGS_DICT | fitz.TEXT_PRESERVE_IMAGES)["blocks"]
                except Exception as e:
                    logger.warning("Image extraction failed, reading text only",
                                   page=index + 1,
                                   error=str(e))
                    blocks = page.get_text("dict", flags=fitz.TEXTFLAGS_TEXT)["blocks"]

                for block in blocks:
                    bbox = tuple(block.get("bbox", (0, 0, 0, 0)))
                    if block.get("type") == 0:
                        text = _span_text(block)
                        if text:
                            layout.blocks.append(_TextBlock(bbox=bbox, text=text))
                    elif block.get("type") == 1 and block.get("image"):
                        content_type = mime.get_mime_type(block.get("ext") or "png") or mime.PNG
                        layout.blocks.append(_ImageBlock(bbox=bbox, data=block["image"], content_type=content_type))
                layouts.append(layout)
        return layouts

    @staticmethod
    def _read_tables(path: Path) -> List[Tuple[TableFragment, BBox]]:
        if not PDFPLUMBER_AVAILABLE:
            return []

        fragments = []
        with pdfplumber.open(str(path)) as pdf:
            for index, page in enumerate(pdf.pages):
                found = sorted(page.find_tables(), key=lambda t: t.bbox[1])
                for position, table in enumerate(found):
                    rows = table.extract()
                    if not rows:
                        continue
                    fragment = TableFragment(
                        rows=[[cell if cell is not None else "" for cell in row] for row in rows],
                        page_number=index + 1,
                        top=table.bbox[1],
                        bottom=table.bbox[3],
                        page_height=page.height,
                        first_on_page=position == 0,
                        last_on_page=position == len(found) - 1,
                    )
                    fragments.append((fragment, tuple(table.bbox)))
        return fragments

    async def _extract_embedded(
        self,
        path: Path,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> ExtractionResult:
        layouts = await self.run_blocking(self._read_layout, path)
        try:
            located = await self.run_blocking(self._read_tables, path)
        except Exception as e:
            logger.warning("Table detection failed, continuing without tables", error=str(e))
            located = []

        fragments = [fragment for fragment, _ in located]
        merged = self.reconciler.merge_continuations(
            [replace(fragment, rows=self.reconciler.normalize(fragment.rows, propagate=False)) for fragment in fragments]
        )
        owner: Dict[int, Tuple[int, MergedTable]] = {}
        for table_index, table in enumerate(merged):
            for fragment_index in table.fragment_indices:
                owner[fragment_index] = (table_index, table)

        source = stream_info.resolve_file_name() or stream_info.url
        enricher = get_image_enricher()
        pages = PageMap()
        artifacts = ConversionArtifacts()
        raw_text: List[str] = []

        block_images: Dict[int, ImageArtifact] = {}
        for layout in layouts:
            for block in layout.blocks:
                if isinstance(block, _ImageBlock):
                    block_images[id(block)] = ImageArtifact(
                        data=block.data,
                        content_type=block.content_type,
                        page_number=layout.number,
                        source=source,
                        metadata={MetadataKeys.PAGE: str(layout.number)},
                    )
        await enricher.enrich_all(
            [(artifact, f"page {artifact.page_number}") for artifact in block_images.values()],
            stream_info,
            context,
        )

        for layout in layouts:
            context.check_cancelled()
            number = layout.number
            page_tables = [
                (fragment_index, bbox)
                for fragment_index, (fragment, bbox) in enumerate(located)
                if fragment.page_number == number and fragment_index in owner
            ]
            placed = set()
            parts: List[str] = []
            page_images: List[ImageArtifact] = []

            for block in layout.blocks:
                if isinstance(block, _TextBlock):
                    inside = next(
                        (idx for idx, bbox in page_tables if _overlap_ratio(block.bbox, bbox) >= TABLE_OVERLAP_RATIO),
                        None,
                    )
                    if inside is not None:
                        if inside not in placed:
                            placed.add(inside)
                            parts.append(table_token(inside))
                        continue
                    raw_text.append(block.text)
                    markdown = convert_text_to_markdown(block.text)
                    if markdown:
                        parts.append(markdown)
                else:
                    artifact = block_images[id(block)]
                    parts.append(await place_image(artifact, context, f"Image (page {number})"))
                    page_images.append(artifact)

            for fragment_index, _ in page_tables:
                if fragment_index not in placed:
                    parts.append(table_token(fragment_index))

            pages.get(number)
            pages.append(number, "\n\n".join(parts))
            for artifact in page_images:
                pages.add_image(number, artifact)
                artifacts.images.append(artifact)

            for fragment_index, _ in page_tables:
                table_index, table = owner[fragment_index]
                token = table_token(fragment_index)
                if fragment_index != table.fragment_indices[0]:
                    pages.place(number, token,
                                f"<!-- Table {table_index + 1} continues from page {table.page_start} -->")
                    continue
                pages.place(number, token, self._render_table(table_index, table, source, artifacts))

        segments = pages.flush(source, artifacts)
        return ExtractionResult(segments=segments, artifacts=artifacts, raw_text="\n".join(raw_text))

    def _render_table(
        self,
        table_index: int,
        table: MergedTable,
        source: Optional[str],
        artifacts: ConversionArtifacts,
    ) -> str:
        rows = self.reconciler.normalize(table.rows)
        if not rows:
            return ""

        markdown = self.reconciler.to_markdown(rows)
        metadata = {
            MetadataKeys.TABLE_INDEX: str(table_index + 1),
            MetadataKeys.TABLE_PAGE_START: str(table.page_start),
            MetadataKeys.TABLE_PAGE_END: str(table.page_end),
            MetadataKeys.TABLE_PAGE_RANGE: table.page_range,
            MetadataKeys.PAGE: str(table.page_start),
        }
        if table.spans_pages:
            comment = f"<!-- Table spans pages {table.page_range} -->"
            metadata[MetadataKeys.TABLE_COMMENT] = comment
            markdown = f"{comment}\n{markdown}"

        artifacts.tables.append(TableArtifact(
            rows=rows,
            page_number=table.page_start,
            source=source,
            label=f"Table {table_index + 1}",
            metadata=metadata,
        ))
        return markdown
