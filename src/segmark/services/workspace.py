"""On-disk workspace for persisted conversion artifacts."""

import asyncio
import re
import shutil
import uuid
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional

import aiofiles
import structlog

from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import ArtifactStorageOptions, ImageArtifact, MetadataKeys

logger = structlog.get_logger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r'[^A-Za-z0-9._-]+')

IMAGE_EXTENSIONS = {
    mime.PNG: ".png",
    mime.JPEG: ".jpg",
    "image/jpg": ".jpg",
    mime.GIF: ".gif",
    mime.BMP: ".bmp",
    mime.WEBP: ".webp",
    mime.TIFF: ".tiff",
    "image/tif": ".tiff",
}


def sanitize_stem(value: Optional[str], default: str = "document") -> str:
    if not value or not value.strip():
        return default
    sanitized = _UNSAFE_NAME_CHARS.sub('_', value.strip()).strip('_')
    return sanitized or default


class ArtifactWorkspace:
    """Directory holding images, the source copy and the Markdown of one conversion.

    Use as an async context manager; the directory is removed on exit unless
    ``keep`` is set.
    """

    def __init__(self, root_directory: str, stream_info: StreamInfo, keep: bool = False):
        self.stream_info = stream_info
        candidate = stream_info.resolve_file_name() or stream_info.url
        self.stem = sanitize_stem(PurePosixPath(candidate).stem if candidate else None)
        self.directory = Path(root_directory) / f"{self.stem}-{uuid.uuid4().hex[:8]}"
        self.keep = keep
        self._image_counter = 0
        self._lock = asyncio.Lock()

    @classmethod
    def from_options(cls, options: ArtifactStorageOptions, stream_info: StreamInfo) -> Optional['ArtifactWorkspace']:
        if not options.enabled or not options.root_directory:
            return None
        return cls(options.root_directory, stream_info, keep=options.keep_workspace)

    async def __aenter__(self) -> 'ArtifactWorkspace':
        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)
        logger.debug("Created artifact workspace", path=str(self.directory))
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.keep:
            logger.info("Keeping artifact workspace", path=str(self.directory))
            return
        await asyncio.to_thread(shutil.rmtree, self.directory, True)
        logger.debug("Removed artifact workspace", path=str(self.directory))

    async def persist_bytes(self, file_name: str, data: bytes) -> Path:
        if not file_name or ".." in file_name or "/" in file_name or "\\" in file_name:
            raise ValueError(f"Invalid filename: {file_name}")
        destination = self.directory / file_name
        async with aiofiles.open(destination, "wb") as f:
            await f.write(data)
        return destination

    async def persist_text(self, file_name: str, content: str, encoding: str = "utf-8") -> Path:
        return await self.persist_bytes(file_name, (content or "").encode(encoding))

    async def persist_image(self, artifact: ImageArtifact) -> Path:
        """Write an image and record its location on the artifact."""
        async with self._lock:
            self._image_counter += 1
            index = self._image_counter

        extension = IMAGE_EXTENSIONS.get((artifact.content_type or "").lower(), ".bin")
        file_name = f"{self.stem}_{index:04d}{extension}"
        destination = await self.persist_bytes(file_name, artifact.data)

        artifact.file_path = str(destination)
        artifact.relative_path = file_name
        artifact.metadata[MetadataKeys.ARTIFACT_PATH] = str(destination)
        artifact.metadata[MetadataKeys.ARTIFACT_FILE_NAME] = file_name
        artifact.metadata[MetadataKeys.ARTIFACT_RELATIVE_PATH] = file_name

        logger.debug("Persisted image artifact", file_name=file_name, size=len(artifact.data))
        return destination

    async def copy_source(self, stream: BinaryIO) -> Path:
        """Copy the source document into the workspace, restoring the stream position."""
        file_name = self.stream_info.resolve_file_name() or f"{self.stem}{self.stream_info.extension or ''}"
        file_name = sanitize_stem(file_name, default="source")
        position = stream.tell()
        stream.seek(0)
        data = await asyncio.to_thread(stream.read)
        stream.seek(position)
        return await self.persist_bytes(file_name, data)

    async def persist_markdown(self, markdown: str) -> Path:
        return await self.persist_text(f"{self.stem}.md", markdown)
