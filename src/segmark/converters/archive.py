"""ZIP archive converter: every entry is converted by the other registered converters."""

import io
import zipfile
from datetime import datetime
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, BinaryIO, List, Optional

import structlog

from segmark.core.config import settings
from segmark.core.exceptions import FileConversionError, UnsupportedFormatError
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import (
    ConversionArtifacts,
    DocumentConverterResult,
    DocumentSegment,
    MetadataKeys,
    SegmentType,
    TableArtifact,
    TextArtifact,
)
from segmark.services.composer import SegmentMarkdownComposer
from segmark.services.context import ConversionContext
from segmark.utils.text import format_file_size

from .base import BaseConverter

if TYPE_CHECKING:
    from .registry import DocumentConverter

logger = structlog.get_logger(__name__)

EMPTY_FILE = "*Empty file*"
NOTHING_PROCESSED = "*No files could be processed from this archive.*"
NO_CONTENT = "*File processed but no content extracted*"


class ZipConverter(BaseConverter):
    """Converts each archive entry with the owning registry, excluding itself."""

    name = "zip"
    priority = 400
    supported_extensions = ('.zip',)
    supported_mime_types = (mime.ZIP, 'application/x-zip-compressed')

    def __init__(self, registry: 'DocumentConverter', max_entry_size: Optional[int] = None):
        self.registry = registry
        self.max_entry_size = max_entry_size or settings.max_zip_entry_size

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        if not self.accepts_input(stream_info):
            return False
        return stream.read(4) in (b'PK\x03\x04', b'PK\x05\x06')

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        archive_name = stream_info.resolve_file_name() or "archive"
        logger.info("Starting archive conversion", file_name=archive_name)

        try:
            archive = zipfile.ZipFile(io.BytesIO(self.read_all(stream)))
        except zipfile.BadZipFile as e:
            raise FileConversionError(f"Invalid ZIP file format: {str(e)}", format_name="zip") from e

        source = stream_info.resolve_file_name() or stream_info.url
        segments: List[DocumentSegment] = []
        artifacts = ConversionArtifacts()
        processed = 0

        with archive:
            entries = sorted(
                (info for info in archive.infolist() if not info.is_dir()),
                key=lambda info: info.filename,
            )
            for info in entries:
                context.check_cancelled()
                body, succeeded = await self._convert_entry(archive, info, context, artifacts)
                if succeeded:
                    processed += 1

                markdown = f"{self.entry_header(info)}\n\n{body}"
                metadata = {
                    MetadataKeys.ENTRY: info.filename,
                    MetadataKeys.SIZE_BYTES: str(info.file_size),
                    MetadataKeys.ARCHIVE: archive_name,
                }
                timestamp = self.entry_timestamp(info)
                if timestamp is not None:
                    metadata[MetadataKeys.LAST_MODIFIED_UTC] = timestamp.isoformat()
                segments.append(DocumentSegment(
                    markdown=markdown,
                    type=SegmentType.SECTION,
                    number=len(segments) + 1,
                    label=info.filename,
                    source=source,
                    additional_metadata=metadata,
                ))
                artifacts.text_blocks.append(TextArtifact(text=body, source=source, label=info.filename))

        title = f"Content from {archive_name}"
        if processed:
            header = f"# {title} ({processed} of {len(entries)} files processed)"
        else:
            header = f"# {title}\n\n{NOTHING_PROCESSED}"
        segments.insert(0, DocumentSegment(
            markdown=header,
            type=SegmentType.METADATA,
            label="Archive",
            source=source,
        ))

        logger.info("Archive conversion completed",
                    entries=len(entries),
                    processed=processed)
        return self.build_result(
            segments,
            artifacts,
            stream_info,
            context,
            title_hint=title,
            metadata={"entries": len(entries), "processed": processed},
        )

    async def _convert_entry(
        self,
        archive: zipfile.ZipFile,
        info: zipfile.ZipInfo,
        context: ConversionContext,
        artifacts: ConversionArtifacts,
    ):
        """Return the entry body and whether it was converted."""
        if info.file_size == 0:
            return EMPTY_FILE, False
        if info.file_size > self.max_entry_size:
            return f"*File too large to process ({format_file_size(info.file_size)})*", False

        entry_path = PurePosixPath(info.filename)
        extension = entry_path.suffix.lower() or None
        entry_info = StreamInfo(file_name=entry_path.name, extension=extension)

        try:
            data = await self.run_blocking(archive.read, info)
            result = await self.registry.convert_nested(io.BytesIO(data), entry_info, context, exclude=[self])
        except UnsupportedFormatError:
            return f"*No converter available for file type: {extension or 'unknown'}*", False
        except Exception as e:
            logger.warning("Archive entry failed",
                           entry=info.filename,
                           error=str(e),
                           error_type=type(e).__name__)
            return f"*Error processing file: {str(e)}*", False

        for table in result.artifacts.tables:
            metadata = dict(table.metadata)
            metadata[MetadataKeys.ENTRY] = info.filename
            artifacts.tables.append(TableArtifact(
                rows=table.rows,
                page_number=table.page_number,
                source=info.filename,
                label=table.label,
                metadata=metadata,
            ))

        body = SegmentMarkdownComposer.render_segments(result.segments, annotate=False)
        return body or NO_CONTENT, True

    @classmethod
    def entry_header(cls, info: zipfile.ZipInfo) -> str:
        lines = [f"## File: {info.filename}", ""]
        lines.append(f"**Size:** {format_file_size(info.file_size)}")
        timestamp = cls.entry_timestamp(info)
        if timestamp is not None:
            lines.append(f"**Last Modified:** {timestamp.strftime('%Y-%m-%d %H:%M:%S')}")
        return "\n".join(lines)

    @staticmethod
    def entry_timestamp(info: zipfile.ZipInfo) -> Optional[datetime]:
        """The entry's DOS timestamp, or ``None`` when the stored date is invalid."""
        try:
            return datetime(*info.date_time)
        except ValueError:
            logger.debug("Invalid archive entry timestamp", entry=info.filename, date_time=info.date_time)
            return None
