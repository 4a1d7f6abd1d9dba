"""PowerPoint (PPTX) to Markdown converter."""

import io
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import BinaryIO, List, Optional

import structlog

from segmark.core.exceptions import FileConversionError, MissingDependencyError, SegmarkException
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import (
    ConversionArtifacts,
    DocumentConverterResult,
    DocumentSegment,
    ImageArtifact,
    MetadataKeys,
    SegmentType,
    TableArtifact,
    TextArtifact,
)
from segmark.services.context import ConversionContext
from segmark.services.images import get_image_enricher, place_image
from segmark.services.tables import TableReconciler
from segmark.utils.text import TextSanitizer, extract_title, format_emphasis

from .base import BaseConverter

logger = structlog.get_logger(__name__)

try:
    from pptx import Presentation
    from pptx.enum.shapes import PP_PLACEHOLDER
    from pptx.shapes.group import GroupShape
    from pptx.shapes.picture import Picture
    PPTX_AVAILABLE = True
except ImportError:
    PPTX_AVAILABLE = False
    logger.warning("python-pptx not available, PowerPoint processing disabled")


@dataclass
class _SlideContent:
    blocks: List[str] = field(default_factory=list)
    text: List[str] = field(default_factory=list)
    images: List[ImageArtifact] = field(default_factory=list)
    tables: List[List[List[str]]] = field(default_factory=list)
    title: Optional[str] = None


class PptxConverter(BaseConverter):
    """Converts each slide into a SLIDE segment."""

    name = "pptx"
    priority = 230
    supported_extensions = ('.pptx',)
    supported_mime_types = (mime.PPTX,)

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
        if not PPTX_AVAILABLE:
            raise MissingDependencyError("python-pptx is required for PPTX conversion", dependency="python-pptx")

        logger.info("Starting PowerPoint conversion", file_name=stream_info.file_name)

        try:
            presentation = await self.run_blocking(Presentation, io.BytesIO(self.read_all(stream)))
            segments, artifacts, first_title, raw_text = await self._convert_presentation(
                presentation, stream_info, context
            )
        except SegmarkException:
            raise
        except Exception as e:
            logger.error("PowerPoint conversion failed",
                         file_name=stream_info.file_name,
                         error=str(e),
                         error_type=type(e).__name__)
            raise FileConversionError(f"Failed to convert PowerPoint file: {str(e)}", format_name="pptx") from e

        properties = presentation.core_properties
        if properties.author:
            artifacts.metadata[MetadataKeys.DOCUMENT_AUTHOR] = properties.author

        title = (
            (properties.title or "").strip()
            or first_title
            or extract_title(raw_text)
            or self._title_from_name(stream_info)
        )

        logger.info("PowerPoint conversion completed",
                    slides=len(segments),
                    images=len(artifacts.images),
                    tables=len(artifacts.tables))

        return self.build_result(segments, artifacts, stream_info, context, title_hint=title)

    @staticmethod
    def _title_from_name(stream_info: StreamInfo) -> str:
        name = stream_info.resolve_file_name()
        if not name:
            return "PowerPoint Presentation"
        return PurePosixPath(name.replace('\\', '/')).stem or "PowerPoint Presentation"

    async def _convert_presentation(self, presentation, stream_info: StreamInfo, context: ConversionContext):
        source = stream_info.resolve_file_name() or stream_info.url
        segments: List[DocumentSegment] = []
        artifacts = ConversionArtifacts()
        first_title: Optional[str] = None
        raw_text: List[str] = []

        for number, slide in enumerate(presentation.slides, start=1):
            context.check_cancelled()
            content = _SlideContent()

            title_shape = slide.shapes.title
            if title_shape is not None and title_shape.has_text_frame:
                content.title = TextSanitizer.normalize(title_shape.text_frame.text) or None

            for shape in slide.shapes:
                if title_shape is not None and shape.shape_id == title_shape.shape_id:
                    continue
                await self._convert_shape(shape, number, content, stream_info, context)

            blocks = [f"## Slide {number}"]
            if content.title:
                blocks.append(f"### {content.title}")
                first_title = first_title or content.title
            blocks.extend(content.blocks)

            notes = self._notes_text(slide)
            if notes:
                blocks.append(f"### Notes\n\n{notes}")

            markdown = "\n\n".join(blocks)
            segment_index = len(segments)
            segments.append(DocumentSegment(
                markdown=markdown,
                type=SegmentType.SLIDE,
                number=number,
                label=f"Slide {number}",
                source=source,
                additional_metadata={MetadataKeys.SLIDE: str(number)},
            ))

            slide_text = "\n".join(filter(None, [content.title] + content.text + [notes]))
            raw_text.append(slide_text)
            artifacts.text_blocks.append(TextArtifact(
                text=slide_text,
                page_number=number,
                source=source,
                label=f"Slide {number}",
            ))
            for artifact in content.images:
                artifact.segment_index = segment_index
                artifact.metadata[MetadataKeys.IMAGE_SEGMENT_INDEX] = str(segment_index)
                artifacts.images.append(artifact)
            for rows in content.tables:
                artifacts.tables.append(TableArtifact(
                    rows=rows,
                    page_number=number,
                    source=source,
                    label=f"Table {len(artifacts.tables) + 1}",
                    metadata={MetadataKeys.SLIDE: str(number)},
                ))

        return segments, artifacts, first_title, "\n".join(raw_text)

    async def _convert_shape(
        self,
        shape,
        number: int,
        content: _SlideContent,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> None:
        if isinstance(shape, GroupShape):
            for child in shape.shapes:
                await self._convert_shape(child, number, content, stream_info, context)
            return

        if isinstance(shape, Picture):
            artifact = await self._picture_artifact(shape, number, len(content.images) + 1, stream_info, context)
            if artifact is not None:
                content.blocks.append(await place_image(artifact, context, f"Slide {number}", inline=True))
                content.images.append(artifact)
            return

        if getattr(shape, "has_table", False) and shape.has_table:
            rows = self.reconciler.normalize([[cell.text for cell in row.cells] for row in shape.table.rows])
            if rows:
                content.blocks.append(self.reconciler.to_markdown(rows))
                content.tables.append(rows)
            return

        if getattr(shape, "has_text_frame", False) and shape.has_text_frame:
            text = self._text_frame_markdown(shape)
            if text:
                content.blocks.append(text)
                content.text.append(TextSanitizer.normalize(shape.text_frame.text))

    @staticmethod
    def _is_bulleted(shape) -> bool:
        if not shape.is_placeholder:
            return False
        return shape.placeholder_format.type in (PP_PLACEHOLDER.BODY, PP_PLACEHOLDER.OBJECT)

    def _text_frame_markdown(self, shape) -> str:
        bulleted = self._is_bulleted(shape)
        lines = []
        for paragraph in shape.text_frame.paragraphs:
            if paragraph.runs:
                text = "".join(
                    format_emphasis(run.text, bool(run.font.bold), bool(run.font.italic))
                    for run in paragraph.runs
                )
            else:
                text = paragraph.text
            text = TextSanitizer.normalize(text)
            if not text:
                continue
            if bulleted or paragraph.level > 0:
                text = f"- {text}"
            lines.append(text)
        return "\n".join(lines)

    async def _picture_artifact(
        self,
        shape,
        number: int,
        image_number: int,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> Optional[ImageArtifact]:
        try:
            image = shape.image
        except (AttributeError, KeyError, ValueError) as e:
            logger.debug("Skipping picture without embedded image", slide=number, error=str(e))
            return None

        artifact = ImageArtifact(
            data=image.blob,
            content_type=image.content_type or mime.PNG,
            source=stream_info.resolve_file_name() or stream_info.url,
            label=(shape.name or "").strip() or f"Slide {number} Image {image_number}",
            metadata={MetadataKeys.SLIDE: str(number)},
        )
        await get_image_enricher().enrich(artifact, stream_info, context, location=f"slide {number}")
        return artifact

    @staticmethod
    def _notes_text(slide) -> Optional[str]:
        if not slide.has_notes_slide:
            return None
        frame = slide.notes_slide.notes_text_frame
        if frame is None:
            return None
        return TextSanitizer.normalize(frame.text) or None
