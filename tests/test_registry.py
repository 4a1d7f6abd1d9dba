"""Tests for converter registration, dispatch and fallback."""

import io

import pytest

from segmark.converters.base import BaseConverter
from segmark.converters.registry import DocumentConverter
from segmark.core.cancellation import CancellationToken
from segmark.core.exceptions import (
    ConversionCancelledError,
    FileConversionError,
    UnsupportedFormatError,
    ValidationError,
)
from segmark.detection.stream_info import StreamInfo
from segmark.models import ArtifactStorageOptions, DocumentSegment, MetadataKeys, SegmentType


class RecordingConverter(BaseConverter):
    """Accepts ``.rec`` streams and records every call."""

    supported_extensions = ('.rec',)

    def __init__(self, name, priority=0.0, error=None, calls=None):
        self.name = name
        self.priority = priority
        self.error = error
        self.calls = calls if calls is not None else []

    async def convert(self, stream, stream_info, context):
        self.calls.append(self.name)
        data = stream.read()
        if self.error is not None:
            raise self.error
        segment = DocumentSegment(markdown=data.decode("utf-8"), type=SegmentType.SECTION, number=1)
        return self.build_result([segment], None, stream_info, context)


class ForwardOnlyStream(io.RawIOBase):
    """A readable stream that cannot seek."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def readinto(self, b):
        chunk = self._buffer.read(len(b))
        b[:len(chunk)] = chunk
        return len(chunk)


def empty_registry(**kwargs):
    return DocumentConverter(enable_builtins=False, storage=ArtifactStorageOptions(), **kwargs)


class TestRegistration:
    """Ordering of registered converters."""

    def test_sorted_by_priority_then_registration_order(self):
        """Lower priorities first; ties keep registration order."""
        registry = empty_registry()
        late = RecordingConverter("late", priority=5)
        first_tie = RecordingConverter("first-tie", priority=1)
        second_tie = RecordingConverter("second-tie", priority=1)
        for converter in (late, first_tie, second_tie):
            registry.register_converter(converter)

        assert [c.name for c in registry.converters] == ["first-tie", "second-tie", "late"]

    def test_priority_override(self):
        """An explicit priority replaces the converter's own."""
        registry = empty_registry()
        registry.register_converter(RecordingConverter("a", priority=1))
        registry.register_converter(RecordingConverter("b", priority=9), priority=0)
        assert [c.name for c in registry.converters] == ["b", "a"]

    def test_duplicate_registration_rejected(self):
        """The same instance cannot be registered twice."""
        registry = empty_registry()
        converter = RecordingConverter("a")
        registry.register_converter(converter)
        with pytest.raises(ValueError):
            registry.register_converter(converter)

    def test_builtin_priorities(self, converter):
        """Container formats come after the generic converters and before archives."""
        names = [c.name for c in converter.converters]
        assert names.index("text") < names.index("pdf") < names.index("docx") < names.index("zip")
        assert names[-1] == "zip"

    def test_enable_builtins_is_idempotent(self, converter):
        """Builtins are registered once."""
        count = len(converter.converters)
        converter.enable_builtins()
        assert len(converter.converters) == count


@pytest.mark.asyncio
class TestDispatch:
    """Selecting and running converters."""

    async def test_falls_back_to_next_converter(self):
        """A failing converter hands over to the next accepting one."""
        calls = []
        registry = empty_registry()
        registry.register_converter(RecordingConverter("broken", priority=0, error=RuntimeError("boom"), calls=calls))
        registry.register_converter(RecordingConverter("working", priority=1, calls=calls))

        result = await registry.convert(b"payload", StreamInfo(extension=".rec"))

        assert calls == ["broken", "working"]
        assert result.metadata["converter"] == "working"
        assert "payload" in result.markdown

    async def test_each_converter_sees_rewound_stream(self):
        """The stream is rewound before every attempt."""
        registry = empty_registry()
        registry.register_converter(RecordingConverter("broken", error=RuntimeError("boom")))
        registry.register_converter(RecordingConverter("working", priority=1))

        result = await registry.convert(b"full content", StreamInfo(extension=".rec"))

        assert result.segments[0].markdown == "full content"

    async def test_all_failures_raise_file_conversion_error(self):
        """When every accepting converter fails all attempts are reported."""
        registry = empty_registry()
        registry.register_converter(RecordingConverter("one", error=RuntimeError("first failure")))
        registry.register_converter(RecordingConverter("two", priority=1, error=ValueError("second failure")))

        with pytest.raises(FileConversionError) as exc_info:
            await registry.convert(b"x", StreamInfo(extension=".rec"))

        error = exc_info.value
        assert [attempt.converter_name for attempt in error.attempts] == ["one", "two"]
        assert "first failure" in str(error)
        assert "second failure" in str(error)

    async def test_unsupported_input_names_every_converter(self, converter):
        """The error lists every converter that was consulted."""
        with pytest.raises(UnsupportedFormatError) as exc_info:
            await converter.convert(b"\x00\x01\x02\x03", StreamInfo(file_name="blob.bin"))

        message = str(exc_info.value)
        for registered in converter.converters:
            assert registered.name in message
        assert "extension=.bin" in message

    async def test_unsupported_is_not_a_conversion_failure(self):
        """Rejection and failure are different errors."""
        registry = empty_registry()
        registry.register_converter(RecordingConverter("rec"))

        with pytest.raises(UnsupportedFormatError) as exc_info:
            await registry.convert(b"x", StreamInfo(extension=".other"))
        assert not isinstance(exc_info.value, FileConversionError)

    async def test_non_seekable_stream_is_buffered(self):
        """Forward-only streams are copied before dispatch."""
        registry = empty_registry()
        registry.register_converter(RecordingConverter("broken", error=RuntimeError("boom")))
        registry.register_converter(RecordingConverter("working", priority=1))

        result = await registry.convert(ForwardOnlyStream(b"streamed"), StreamInfo(extension=".rec"))

        assert result.segments[0].markdown == "streamed"

    async def test_cancellation_propagates(self):
        """A cancelled token stops dispatch instead of falling back."""
        token = CancellationToken()
        token.cancel("user abort")
        registry = empty_registry()
        registry.register_converter(RecordingConverter("rec"))

        with pytest.raises(ConversionCancelledError):
            await registry.convert(b"x", StreamInfo(extension=".rec"), cancel_token=token)

    async def test_cancellation_inside_converter_is_not_a_fallback(self):
        """A converter observing cancellation ends the call."""
        calls = []
        registry = empty_registry()
        registry.register_converter(RecordingConverter("cancelled", error=ConversionCancelledError("stop"), calls=calls))
        registry.register_converter(RecordingConverter("never", priority=1, calls=calls))

        with pytest.raises(ConversionCancelledError):
            await registry.convert(b"x", StreamInfo(extension=".rec"))
        assert calls == ["cancelled"]

    async def test_convert_local_path(self, converter, tmp_path):
        """Paths and file URIs are opened and named."""
        path = tmp_path / "notes.txt"
        path.write_text("Hello path", encoding="utf-8")

        result = await converter.convert(str(path))
        from_uri = await converter.convert(path.as_uri())

        assert "Hello path" in result.markdown
        assert result.title == "Hello path"
        assert 'fileName: "notes.txt"' in from_uri.markdown

    async def test_missing_path_is_validation_error(self, converter, tmp_path):
        """Nonexistent files are rejected before dispatch."""
        with pytest.raises(ValidationError):
            await converter.convert(tmp_path / "missing.pdf")

    async def test_remote_urls_are_rejected(self, converter):
        """Fetching is the caller's job."""
        with pytest.raises(ValidationError):
            await converter.convert("https://example.com/file.pdf")

    async def test_workspace_persists_markdown(self, tmp_path):
        """With storage enabled the Markdown and source copy are written and kept."""
        storage = ArtifactStorageOptions(
            enabled=True,
            root_directory=str(tmp_path),
            copy_source_document=True,
            persist_markdown=True,
            keep_workspace=True,
        )
        registry = empty_registry()
        registry.register_converter(RecordingConverter("rec"))

        result = await registry.convert(b"kept", StreamInfo(file_name="doc.rec"), storage=storage)

        directory = result.artifact_directory
        assert directory is not None
        assert result.metadata[MetadataKeys.WORKSPACE_DIRECTORY] == directory
        with open(result.metadata[MetadataKeys.WORKSPACE_MARKDOWN_FILE], encoding="utf-8") as handle:
            assert handle.read() == result.markdown
        with open(result.metadata[MetadataKeys.WORKSPACE_SOURCE_FILE], "rb") as handle:
            assert handle.read() == b"kept"

    async def test_workspace_removed_unless_kept(self, tmp_path):
        """Temporary workspaces are deleted after the call."""
        storage = ArtifactStorageOptions(enabled=True, root_directory=str(tmp_path))
        registry = empty_registry()
        registry.register_converter(RecordingConverter("rec"))

        await registry.convert(b"gone", StreamInfo(file_name="doc.rec"), storage=storage)

        assert list(tmp_path.iterdir()) == []
