"""Standalone image converter: metadata, EXIF summary and provider description."""

import io
from pathlib import PurePosixPath
from typing import BinaryIO, Dict, List, Optional

import structlog
from PIL import ExifTags, Image, UnidentifiedImageError

from segmark.core.exceptions import FileConversionError
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import (
    ConversionArtifacts,
    DocumentConverterResult,
    DocumentSegment,
    ImageArtifact,
    MetadataKeys,
    SegmentType,
)
from segmark.services.context import ConversionContext
from segmark.services.images import get_image_enricher, place_image

from .base import BaseConverter

logger = structlog.get_logger(__name__)

EXIF_FIELDS = (
    'ImageDescription',
    'Artist',
    'Copyright',
    'Make',
    'Model',
    'DateTime',
    'DateTimeOriginal',
    'Software',
)

NO_METADATA = "*No image metadata available.*"


def read_image_metadata(data: bytes) -> Dict[str, str]:
    """Dimensions, format, mode and the EXIF fields worth showing.

    Raises:
        UnidentifiedImageError: If Pillow cannot open the bytes
    """
    with Image.open(io.BytesIO(data)) as img:
        width, height = img.size
        metadata = {
            'ImageSize': f"{width}x{height}",
            'Format': img.format or "unknown",
            'Mode': img.mode,
        }
        exif = img.getexif()
        for tag_id, value in exif.items():
            tag = ExifTags.TAGS.get(tag_id, str(tag_id))
            if tag not in EXIF_FIELDS:
                continue
            if isinstance(value, bytes):
                value = value.decode('utf-8', errors='ignore')
            value = str(value).strip().strip('\x00')
            if value:
                metadata[tag] = value
    return metadata


class ImageConverter(BaseConverter):
    """Emits one IMAGE segment describing the picture."""

    name = "image"
    priority = 0
    supported_extensions = ('.png', '.jpg', '.jpeg', '.gif', '.webp', '.bmp', '.tif', '.tiff')
    supported_mime_types = ('image/',)

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        data = self.read_all(stream)
        try:
            metadata = await self.run_blocking(read_image_metadata, data)
        except (UnidentifiedImageError, OSError) as e:
            logger.error("Image could not be read",
                         file_name=stream_info.file_name,
                         error=str(e),
                         error_type=type(e).__name__)
            raise FileConversionError(f"Failed to read image: {str(e)}", format_name="image") from e

        source = stream_info.resolve_file_name() or stream_info.url
        content_type = stream_info.resolve_mime_type()
        if not content_type or not content_type.startswith('image/'):
            content_type = Image.MIME.get(metadata['Format']) or mime.OCTET_STREAM

        artifact = ImageArtifact(
            data=data,
            content_type=content_type,
            source=source,
            label=self._title_from_name(stream_info),
            metadata={f"image.{key}": value for key, value in metadata.items()},
        )
        await get_image_enricher().enrich(artifact, stream_info, context, location="standalone image")
        placeholder = await place_image(artifact, context)
        artifact.segment_index = 0
        artifact.metadata[MetadataKeys.IMAGE_SEGMENT_INDEX] = "0"

        segment = DocumentSegment(
            markdown=self.render(metadata, artifact, placeholder),
            type=SegmentType.IMAGE,
            number=1,
            label=artifact.caption or artifact.label,
            source=source,
        )
        artifacts = ConversionArtifacts(images=[artifact])

        title = (
            metadata.get('ImageDescription')
            or artifact.caption
            or self._title_from_name(stream_info)
        )
        logger.debug("Image converted",
                     size=metadata.get('ImageSize'),
                     format=metadata.get('Format'),
                     enriched=MetadataKeys.PROVIDER in artifact.metadata)
        return self.build_result([segment], artifacts, stream_info, context, title_hint=title)

    @staticmethod
    def render(metadata: Dict[str, str], artifact: ImageArtifact, placeholder: str) -> str:
        blocks: List[str] = [placeholder]
        if metadata:
            blocks.append("\n".join(f"{key}: {value}" for key, value in metadata.items()))
        else:
            blocks.append(NO_METADATA)

        description = [part for part in (artifact.caption, artifact.detailed_description) if part]
        if description:
            blocks.append("### Image Description\n\n" + "\n\n".join(description))
        if artifact.raw_text:
            blocks.append(f"### Extracted Text\n\n{artifact.raw_text}")
        return "\n\n".join(blocks)

    @staticmethod
    def _title_from_name(stream_info: StreamInfo) -> Optional[str]:
        name = stream_info.resolve_file_name()
        if not name:
            return None
        return PurePosixPath(name.replace('\\', '/')).stem or None
