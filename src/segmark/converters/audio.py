"""Audio converter: tag metadata plus provider transcription."""

import asyncio
import io
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import PurePosixPath
from typing import BinaryIO, Dict, List, Optional, Sequence

import mutagen
import structlog
from mutagen import MutagenError

from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import (
    ConversionArtifacts,
    DocumentConverterResult,
    DocumentSegment,
    MetadataKeys,
    SegmentType,
    TextArtifact,
)
from segmark.providers.base import MediaTranscriptionRequest, MediaTranscriptionResult, TranscriptSegment
from segmark.services.composer import format_time
from segmark.services.context import ConversionContext

from .base import BaseConverter

logger = structlog.get_logger(__name__)

NO_METADATA = "*No audio metadata available.*"

# easy-tag name -> display label
TAG_FIELDS = (
    ('title', 'Title'),
    ('artist', 'Artist'),
    ('album', 'Album'),
    ('albumartist', 'Album Artist'),
    ('genre', 'Genre'),
    ('date', 'Date'),
    ('tracknumber', 'Track'),
    ('composer', 'Composer'),
)


@dataclass
class AudioMetadata:
    tags: Dict[str, str] = field(default_factory=dict)
    duration: Optional[timedelta] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None

    @property
    def title(self) -> Optional[str]:
        return self.tags.get('Title')

    def to_markdown(self) -> str:
        lines = [f"{label}: {value}" for label, value in self.tags.items()]
        if self.duration is not None:
            lines.append(f"Duration: {format_time(self.duration)}")
        if self.bitrate:
            lines.append(f"Bitrate: {self.bitrate // 1000} kbps")
        if self.sample_rate:
            lines.append(f"Sample Rate: {self.sample_rate} Hz")
        if self.channels:
            lines.append(f"Channels: {self.channels}")
        return "\n".join(lines)


def read_audio_metadata(data: bytes) -> AudioMetadata:
    """Read tags and stream properties with mutagen; unknown formats give empty metadata."""
    metadata = AudioMetadata()
    try:
        audio = mutagen.File(io.BytesIO(data), easy=True)
    except MutagenError as e:
        logger.debug("Could not read audio metadata", error=str(e))
        return metadata
    if audio is None:
        return metadata

    tags = audio.tags or {}
    for key, label in TAG_FIELDS:
        values = tags.get(key)
        if values:
            value = ", ".join(str(v).strip() for v in values if str(v).strip())
            if value:
                metadata.tags[label] = value

    info = getattr(audio, 'info', None)
    if info is not None:
        length = getattr(info, 'length', None)
        if length:
            metadata.duration = timedelta(seconds=float(length))
        metadata.bitrate = getattr(info, 'bitrate', None) or None
        metadata.sample_rate = getattr(info, 'sample_rate', None) or None
        metadata.channels = getattr(info, 'channels', None) or None
    return metadata


def group_transcript(
    segments: Sequence[TranscriptSegment],
    segment_duration: timedelta,
) -> List[List[TranscriptSegment]]:
    """Bucket transcript pieces into windows of ``segment_duration``.

    A piece belongs to the window its start falls in. Pieces without a start
    time stay with the preceding piece.
    """
    groups: List[List[TranscriptSegment]] = []
    current_bucket: Optional[int] = None
    for piece in segments:
        if not (piece.text or "").strip():
            continue
        if piece.start is None:
            bucket = current_bucket if current_bucket is not None else 0
        else:
            bucket = int(piece.start / segment_duration)
        if not groups or bucket != current_bucket:
            groups.append([])
            current_bucket = bucket
        groups[-1].append(piece)
    return groups


class AudioConverter(BaseConverter):
    """Emits a metadata segment followed by timed AUDIO transcript segments."""

    name = "audio"
    priority = 0
    supported_extensions = ('.mp3', '.wav', '.m4a', '.ogg', '.oga', '.flac', '.aac', '.opus')
    supported_mime_types = ('audio/',)

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        data = self.read_all(stream)
        metadata = await self.run_blocking(read_audio_metadata, data)
        source = stream_info.resolve_file_name() or stream_info.url

        segments: List[DocumentSegment] = []
        metadata_markdown = metadata.to_markdown()
        segments.append(DocumentSegment(
            markdown=metadata_markdown or NO_METADATA,
            type=SegmentType.METADATA,
            label="Metadata",
            source=source,
        ))

        artifacts = ConversionArtifacts()
        if metadata.duration is not None:
            artifacts.metadata[MetadataKeys.AUDIO_DURATION] = format_time(metadata.duration)

        transcription = await self._transcribe(data, stream_info, context)
        if transcription is not None:
            if transcription.language:
                artifacts.metadata[MetadataKeys.AUDIO_LANGUAGE] = transcription.language
            timed = self.build_transcript_segments(
                transcription.segments,
                context.options.audio.segment_duration,
                source,
                metadata.duration,
            )
            if timed:
                segments.append(DocumentSegment(
                    markdown="### Audio Transcript",
                    type=SegmentType.SECTION,
                    label="Audio Transcript",
                    source=source,
                ))
                segments.extend(timed)

        for segment in segments:
            artifacts.text_blocks.append(TextArtifact(
                text=segment.markdown,
                page_number=segment.number,
                source=source,
                label=segment.label,
            ))

        title = metadata.title or self._title_from_name(stream_info)
        logger.info("Audio conversion completed",
                    duration=artifacts.metadata.get(MetadataKeys.AUDIO_DURATION),
                    transcript_segments=sum(1 for s in segments if s.type == SegmentType.AUDIO))
        return self.build_result(segments, artifacts, stream_info, context, title_hint=title)

    async def _transcribe(
        self,
        data: bytes,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> Optional[MediaTranscriptionResult]:
        provider = context.providers.media_transcription
        if provider is None:
            return None

        context.check_cancelled()
        audio_info = stream_info.with_(mime_type=stream_info.resolve_mime_type() or mime.MP3)
        try:
            result = await asyncio.wait_for(
                provider.transcribe(io.BytesIO(data), audio_info, MediaTranscriptionRequest()),
                timeout=context.provider_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Audio transcription timed out", timeout=context.provider_timeout)
            return None
        except Exception as e:
            logger.warning("Audio transcription failed, keeping metadata only",
                           provider=getattr(provider, "name", type(provider).__name__),
                           error=str(e),
                           error_type=type(e).__name__)
            return None

        if result is None or not result.segments:
            return None
        return result

    @staticmethod
    def build_transcript_segments(
        pieces: Sequence[TranscriptSegment],
        segment_duration: timedelta,
        source: Optional[str],
        total_duration: Optional[timedelta] = None,
    ) -> List[DocumentSegment]:
        segments = []
        for number, group in enumerate(group_transcript(pieces, segment_duration), start=1):
            starts = [piece.start for piece in group if piece.start is not None]
            ends = [piece.end for piece in group if piece.end is not None]
            start = min(starts) if starts else None
            end = max(ends) if ends else None
            if start is not None and end is not None and end < start:
                end = start

            metadata = {"segment": str(number)}
            if total_duration is not None:
                metadata["totalDuration"] = format_time(total_duration)
            for piece in group:
                for key, value in (piece.metadata or {}).items():
                    metadata.setdefault(key, value)

            segments.append(DocumentSegment(
                markdown=" ".join(piece.text.strip() for piece in group),
                type=SegmentType.AUDIO,
                number=number,
                label=f"Segment {number}",
                start_time=start,
                end_time=end,
                source=source,
                additional_metadata=metadata,
            ))
        return segments

    @staticmethod
    def _title_from_name(stream_info: StreamInfo) -> Optional[str]:
        name = stream_info.resolve_file_name()
        if not name:
            return None
        return PurePosixPath(name.replace('\\', '/')).stem or None
