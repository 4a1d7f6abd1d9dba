"""Converter registry and the main conversion entry points."""

import io
import shutil
import tempfile
from contextlib import AsyncExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, List, Optional, Union
from urllib.parse import urlparse
from urllib.request import url2pathname

import structlog

from segmark.core import cancellation
from segmark.core.cancellation import CancellationToken
from segmark.core.exceptions import (
    FailedConversionAttempt,
    FileConversionError,
    UnsupportedFormatError,
    ValidationError,
)
from segmark.detection.guesser import StreamInfoGuesser
from segmark.detection.stream_info import StreamInfo
from segmark.models import ArtifactStorageOptions, DocumentConverterResult, MetadataKeys, SegmentOptions
from segmark.providers.base import ConversionProviders
from segmark.services.context import ConversionContext
from segmark.services.workspace import ArtifactWorkspace

from .base import BaseConverter

logger = structlog.get_logger(__name__)

ConvertibleSource = Union[str, Path, bytes, bytearray, BinaryIO]

_SPOOL_MAX_SIZE = 8 * 1024 * 1024


@dataclass(frozen=True)
class ConverterRegistration:
    converter: BaseConverter
    priority: float
    order: int


class DocumentConverter:
    """Selects and runs the converter for a stream.

    Registrations are tried in ``(priority, registration order)`` order for
    every candidate descriptor produced by content sniffing.
    """

    def __init__(
        self,
        options: Optional[SegmentOptions] = None,
        storage: Optional[ArtifactStorageOptions] = None,
        providers: Optional[ConversionProviders] = None,
        enable_builtins: bool = True,
        guesser: Optional[StreamInfoGuesser] = None,
    ):
        self.options = options or SegmentOptions.default()
        self.storage = storage or ArtifactStorageOptions.default()
        self.providers = providers or ConversionProviders()
        self.guesser = guesser or StreamInfoGuesser()
        self._registrations: List[ConverterRegistration] = []
        self._order = 0
        self._builtins_enabled = False
        if enable_builtins:
            self.enable_builtins()

    @property
    def registrations(self) -> List[ConverterRegistration]:
        return list(self._registrations)

    @property
    def converters(self) -> List[BaseConverter]:
        return [registration.converter for registration in self._registrations]

    def register_converter(self, converter: BaseConverter, priority: Optional[float] = None) -> ConverterRegistration:
        """Register a converter.

        Args:
            converter: Converter instance
            priority: Overrides the converter's own priority

        Returns:
            The registration entry

        Raises:
            ValueError: If the same instance is already registered
        """
        if any(registration.converter is converter for registration in self._registrations):
            raise ValueError(f"Converter {converter.name} is already registered")

        registration = ConverterRegistration(
            converter=converter,
            priority=converter.priority if priority is None else float(priority),
            order=self._order,
        )
        self._order += 1
        self._registrations.append(registration)
        self._registrations.sort(key=lambda r: (r.priority, r.order))

        logger.debug("Registered converter", converter=converter.name, priority=registration.priority)
        return registration

    def enable_builtins(self) -> None:
        """Register the builtin converters. Calling this more than once is a no-op."""
        if self._builtins_enabled:
            return
        self._builtins_enabled = True

        from .archive import ZipConverter
        from .audio import AudioConverter
        from .delimited import CsvConverter
        from .eml import EmlConverter
        from .epub import EpubConverter
        from .excel import XlsxConverter
        from .image import ImageConverter
        from .pdf import PdfConverter
        from .presentation import PptxConverter
        from .structured import JsonConverter, XmlConverter
        from .text import PlainTextConverter
        from .web import HtmlConverter
        from .word import DocxConverter

        builtins = [
            PdfConverter(),
            DocxConverter(),
            XlsxConverter(),
            PptxConverter(),
            EmlConverter(),
            EpubConverter(),
            ZipConverter(self),
            HtmlConverter(),
            JsonConverter(),
            CsvConverter(),
            XmlConverter(),
            ImageConverter(),
            AudioConverter(),
            PlainTextConverter(),
        ]
        for converter in builtins:
            self.register_converter(converter)

        logger.info("Registered builtin converters", count=len(builtins))

    async def convert(
        self,
        source: ConvertibleSource,
        stream_info: Optional[StreamInfo] = None,
        **kwargs,
    ) -> DocumentConverterResult:
        """Convert a local path, ``file://`` URI, bytes or binary stream.

        Keyword arguments are passed to ``convert_stream``.
        """
        if isinstance(source, (bytes, bytearray)):
            return await self.convert_stream(io.BytesIO(bytes(source)), stream_info, **kwargs)

        if isinstance(source, (str, Path)):
            path = self._resolve_local_path(source)
            path_info = StreamInfo(local_path=str(path), file_name=path.name, extension=path.suffix or None)
            if stream_info is not None:
                path_info = path_info.copy_and_update(stream_info)
            with open(path, "rb") as handle:
                return await self.convert_stream(handle, path_info, **kwargs)

        if hasattr(source, "read"):
            return await self.convert_stream(source, stream_info, **kwargs)

        raise ValidationError(f"Unsupported source type: {type(source).__name__}")

    @staticmethod
    def _resolve_local_path(source: Union[str, Path]) -> Path:
        if isinstance(source, str):
            parsed = urlparse(source)
            if parsed.scheme == "file":
                source = url2pathname(parsed.path)
            elif parsed.scheme in ("http", "https"):
                raise ValidationError(f"Remote sources must be fetched by the caller: {source}")
        path = Path(source)
        if not path.exists():
            raise ValidationError(f"File not found: {path}")
        if not path.is_file():
            raise ValidationError(f"Path is not a file: {path}")
        return path

    async def convert_stream(
        self,
        stream: BinaryIO,
        stream_info: Optional[StreamInfo] = None,
        *,
        options: Optional[SegmentOptions] = None,
        storage: Optional[ArtifactStorageOptions] = None,
        providers: Optional[ConversionProviders] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DocumentConverterResult:
        """Convert a binary stream with the first converter that succeeds.

        Args:
            stream: Binary stream; non-seekable streams are buffered first
            stream_info: Declared descriptor (MIME type, extension, names)
            options: Segment options for this call
            storage: Artifact storage options for this call
            providers: Providers for this call
            cancel_token: Token observed between pages, entries and provider calls

        Returns:
            DocumentConverterResult from the winning converter

        Raises:
            UnsupportedFormatError: If no converter accepts the stream
            FileConversionError: If converters accepted the stream but all failed
            ConversionCancelledError: If the token is cancelled
        """
        storage = storage or self.storage
        token = cancel_token or cancellation.NONE

        async with AsyncExitStack() as stack:
            if not _is_seekable(stream):
                stream = stack.enter_context(_buffer_stream(stream))

            candidates = self.guesser.guess(stream, stream_info or StreamInfo())
            workspace = ArtifactWorkspace.from_options(storage, candidates[0])
            if workspace is not None:
                await stack.enter_async_context(workspace)

            context = ConversionContext(
                options=options or self.options,
                storage=storage,
                providers=providers or self.providers,
                cancel_token=token,
                workspace=workspace,
            )

            source_path = None
            if workspace is not None and storage.copy_source_document:
                source_path = await workspace.copy_source(stream)
                logger.debug("Copied source document", path=str(source_path))

            result = await self.dispatch(stream, candidates, context)

            if workspace is not None:
                result.artifact_directory = str(workspace.directory)
                result.metadata[MetadataKeys.WORKSPACE_DIRECTORY] = str(workspace.directory)
                if source_path is not None:
                    result.metadata[MetadataKeys.WORKSPACE_SOURCE_FILE] = str(source_path)
                if storage.persist_markdown:
                    markdown_path = await workspace.persist_markdown(result.markdown)
                    result.metadata[MetadataKeys.WORKSPACE_MARKDOWN_FILE] = str(markdown_path)
            return result

    async def convert_nested(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
        exclude: Iterable[BaseConverter] = (),
    ) -> DocumentConverterResult:
        """Convert an embedded stream (archive entry, attachment) within an outer call."""
        candidates = self.guesser.guess(stream, stream_info)
        return await self.dispatch(stream, candidates, context, exclude=exclude)

    async def dispatch(
        self,
        stream: BinaryIO,
        candidates: List[StreamInfo],
        context: ConversionContext,
        exclude: Iterable[BaseConverter] = (),
    ) -> DocumentConverterResult:
        excluded = [converter for converter in exclude]
        attempts: List[FailedConversionAttempt] = []
        failures: List[FailedConversionAttempt] = []
        tried: List[str] = []

        for info in candidates:
            for registration in self._registrations:
                converter = registration.converter
                if any(converter is other for other in excluded):
                    continue
                context.check_cancelled()
                if converter.name not in tried:
                    tried.append(converter.name)

                try:
                    stream.seek(0)
                    if not converter.accepts_input(info):
                        attempts.append(FailedConversionAttempt(converter, info))
                        continue
                    stream.seek(0)
                    if not converter.accepts(stream, info):
                        attempts.append(FailedConversionAttempt(converter, info))
                        continue
                except Exception as e:
                    logger.warning("Converter acceptance check failed",
                                   converter=converter.name,
                                   stream_info=info.describe(),
                                   error=str(e),
                                   error_type=type(e).__name__)
                    attempts.append(FailedConversionAttempt(converter, info, e))
                    continue

                try:
                    stream.seek(0)
                    result = await converter.convert(stream, info, context)
                except Exception as e:
                    logger.warning("Converter failed, trying next",
                                   converter=converter.name,
                                   stream_info=info.describe(),
                                   error=str(e),
                                   error_type=type(e).__name__)
                    failure = FailedConversionAttempt(converter, info, e)
                    attempts.append(failure)
                    failures.append(failure)
                    continue

                logger.info("Document converted",
                            converter=converter.name,
                            stream_info=info.describe(),
                            segments=len(result.segments))
                return result

        if failures:
            error = FileConversionError(
                f"Conversion failed for {candidates[0].describe()}",
                attempts=failures,
            )
            raise error from failures[-1].error

        first = candidates[0]
        message = (
            f"No converter accepted the input (extension={first.resolve_extension() or 'unknown'}, "
            f"mime={first.resolve_mime_type() or 'unknown'}). Tried: {', '.join(tried) or 'none'}"
        )
        raise UnsupportedFormatError(message, attempts=attempts)


def _is_seekable(stream: BinaryIO) -> bool:
    try:
        return bool(stream.seekable())
    except (AttributeError, ValueError):
        return False


@contextmanager
def _buffer_stream(stream: BinaryIO) -> Iterator[BinaryIO]:
    """Copy a forward-only stream into a spooled temporary file."""
    buffer = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE)
    try:
        shutil.copyfileobj(stream, buffer)
        buffer.seek(0)
        yield buffer
    finally:
        buffer.close()
