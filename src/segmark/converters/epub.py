"""EPUB to Markdown converter."""

import io
import posixpath
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import BinaryIO, Dict, List, Optional
from urllib.parse import unquote

import structlog
from bs4 import BeautifulSoup

from segmark.core.exceptions import FileConversionError, SegmarkException
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
from segmark.services.context import ConversionContext
from segmark.services.tables import TableReconciler
from segmark.utils.encoding import decode_bytes

from .base import BaseConverter
from .web import convert_html_string

logger = structlog.get_logger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
CONTENT_MEDIA_TYPES = ('application/xhtml+xml', 'text/html')
CONTENT_EXTENSIONS = ('.xhtml', '.html', '.htm')

# Dublin Core element -> metadata key suffix
DC_FIELDS = (
    ('title', 'title'),
    ('creator', 'author'),
    ('language', 'language'),
    ('publisher', 'publisher'),
    ('date', 'date'),
    ('description', 'description'),
    ('identifier', 'identifier'),
)


@dataclass
class EpubPackage:
    """Parsed OPF package: Dublin Core metadata and spine documents in reading order."""
    metadata: Dict[str, str] = field(default_factory=dict)
    spine: List[str] = field(default_factory=list)


def read_package(archive: zipfile.ZipFile) -> EpubPackage:
    """Locate the OPF through ``container.xml`` and read metadata and spine.

    Archives without a usable container fall back to every XHTML entry in
    name order.
    """
    names = set(archive.namelist())
    opf_path = None
    if CONTAINER_PATH in names:
        container = BeautifulSoup(archive.read(CONTAINER_PATH), 'xml')
        rootfile = container.find('rootfile')
        if rootfile is not None and rootfile.get('full-path'):
            opf_path = rootfile['full-path']

    if not opf_path or opf_path not in names:
        logger.warning("EPUB package document not found, using archive order", opf_path=opf_path)
        return EpubPackage(spine=sorted(
            name for name in names if name.lower().endswith(CONTENT_EXTENSIONS)
        ))

    opf = BeautifulSoup(archive.read(opf_path), 'xml')
    package = EpubPackage()

    metadata_element = opf.find('metadata')
    if metadata_element is not None:
        for element_name, key in DC_FIELDS:
            values = [
                element.get_text(" ", strip=True)
                for element in metadata_element.find_all(element_name)
            ]
            values = [value for value in values if value]
            if values:
                package.metadata[key] = ", ".join(values) if key == 'author' else values[0]

    base = posixpath.dirname(opf_path)
    manifest = {}
    for item in opf.find_all('item'):
        if item.get('id') and item.get('href'):
            manifest[item['id']] = (
                posixpath.normpath(posixpath.join(base, unquote(item['href']))),
                item.get('media-type', ''),
            )

    for itemref in opf.find_all('itemref'):
        entry = manifest.get(itemref.get('idref'))
        if entry is None:
            continue
        href, media_type = entry
        if media_type in CONTENT_MEDIA_TYPES or href.lower().endswith(CONTENT_EXTENSIONS):
            package.spine.append(href)
    return package


def format_metadata_key(key: str) -> str:
    return key[:1].upper() + key[1:]


class EpubConverter(BaseConverter):
    """Emits a METADATA segment followed by one CHAPTER segment per spine document."""

    name = "epub"
    priority = 250
    supported_extensions = ('.epub',)
    supported_mime_types = (mime.EPUB,)

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
        logger.info("Starting EPUB conversion", file_name=stream_info.file_name)

        try:
            archive = zipfile.ZipFile(io.BytesIO(self.read_all(stream)))
        except zipfile.BadZipFile as e:
            raise FileConversionError(f"Invalid EPUB file: {str(e)}", format_name="epub") from e

        with archive:
            try:
                package = await self.run_blocking(read_package, archive)
                segments, artifacts = await self._convert_chapters(archive, package, stream_info, context)
            except SegmarkException:
                raise
            except Exception as e:
                logger.error("EPUB conversion failed",
                             file_name=stream_info.file_name,
                             error=str(e),
                             error_type=type(e).__name__)
                raise FileConversionError(f"Failed to convert EPUB file: {str(e)}", format_name="epub") from e

        for key, value in package.metadata.items():
            artifacts.metadata[f"{MetadataKeys.EPUB_PREFIX}{key}"] = value

        title = package.metadata.get('title') or self._title_from_name(stream_info)
        logger.info("EPUB conversion completed",
                    chapters=sum(1 for s in segments if s.type == SegmentType.CHAPTER),
                    tables=len(artifacts.tables))
        return self.build_result(segments, artifacts, stream_info, context, title_hint=title)

    async def _convert_chapters(
        self,
        archive: zipfile.ZipFile,
        package: EpubPackage,
        stream_info: StreamInfo,
        context: ConversionContext,
    ):
        source = stream_info.resolve_file_name() or stream_info.url
        segments: List[DocumentSegment] = []
        artifacts = ConversionArtifacts()

        metadata_lines = [
            f"**{format_metadata_key(key)}:** {value}"
            for key, value in package.metadata.items() if value
        ]
        if metadata_lines:
            segments.append(DocumentSegment(
                markdown="\n".join(metadata_lines),
                type=SegmentType.METADATA,
                label="Metadata",
                source=source,
                additional_metadata={f"{MetadataKeys.EPUB_PREFIX}{k}": v for k, v in package.metadata.items()},
            ))

        names = set(archive.namelist())
        number = 0
        for href in package.spine:
            context.check_cancelled()
            if href not in names:
                logger.debug("Spine entry missing from archive", entry=href)
                continue

            html, _ = decode_bytes(archive.read(href))
            converted = await self.run_blocking(convert_html_string, html, self.reconciler)
            if not converted.markdown:
                continue

            number += 1
            label = converted.title or f"Section {number}"
            segments.append(DocumentSegment(
                markdown=converted.markdown,
                type=SegmentType.CHAPTER,
                number=number,
                label=label,
                source=source,
                additional_metadata={"epub.section": href},
            ))
            artifacts.text_blocks.append(TextArtifact(
                text=converted.markdown,
                page_number=number,
                source=source,
                label=label,
            ))
            for rows in converted.tables or []:
                artifacts.tables.append(TableArtifact(
                    rows=rows,
                    page_number=number,
                    source=source,
                    label=f"Table {len(artifacts.tables) + 1}",
                    metadata={"epub.section": href},
                ))

        return segments, artifacts

    @staticmethod
    def _title_from_name(stream_info: StreamInfo) -> Optional[str]:
        name = stream_info.resolve_file_name()
        if not name:
            return None
        return PurePosixPath(name.replace('\\', '/')).stem or None
