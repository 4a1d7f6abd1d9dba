"""Deterministic composition of segments into the final Markdown document."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath
from typing import Any, List, Mapping, Optional, Sequence

from segmark.detection.stream_info import StreamInfo
from segmark.models import ConversionArtifacts, DocumentSegment, SegmentOptions, SegmentType
from segmark.utils.text import TextSanitizer, normalize_title

NUMBER_TAGS = {
    SegmentType.PAGE: "page",
    SegmentType.SLIDE: "slide",
    SegmentType.SHEET: "sheet",
    SegmentType.TABLE: "table",
    SegmentType.SECTION: "section",
    SegmentType.CHAPTER: "chapter",
    SegmentType.IMAGE: "image",
    SegmentType.METADATA: "meta",
}


@dataclass(frozen=True)
class ComposedMarkdown:
    markdown: str
    title: Optional[str]


class SegmentMarkdownComposer:
    """Renders front matter, segments and a trailing metadata comment.

    Composition is pure: the same inputs (including ``generated_at``) always
    produce the same text.
    """

    @classmethod
    def compose(
        cls,
        segments: Sequence[DocumentSegment],
        artifacts: Optional[ConversionArtifacts],
        stream_info: StreamInfo,
        options: Optional[SegmentOptions] = None,
        title_hint: Optional[str] = None,
        generated_at: Optional[datetime] = None,
    ) -> ComposedMarkdown:
        """Compose the final Markdown.

        Args:
            segments: Ordered segments; their order is kept as is.
            artifacts: Artifacts supplying image/table counts and document metadata.
            stream_info: Descriptor of the source document.
            options: Segment options; controls per-segment annotations.
            title_hint: Title chosen by the converter, if any.
            generated_at: Timestamp written to the front matter.

        Returns:
            The Markdown text and the title that was used.
        """
        segments = [segment for segment in (segments or []) if segment is not None]
        artifacts = artifacts or ConversionArtifacts.empty()
        options = options or SegmentOptions()
        generated_at = generated_at or datetime.now(timezone.utc)

        title = (
            normalize_title(title_hint)
            or cls.extract_title(segments)
            or cls.title_from_stream_info(stream_info)
        )

        blocks = [cls.front_matter(title, stream_info, artifacts, segments, generated_at)]

        body = cls.render_segments(segments, options.include_segment_metadata_in_markdown)
        if body:
            blocks.append(body)

        comment = cls.document_metadata_comment(artifacts.metadata)
        if comment:
            blocks.append(comment)

        return ComposedMarkdown(markdown="\n\n".join(blocks).rstrip(), title=title)

    @classmethod
    def front_matter(
        cls,
        title: Optional[str],
        stream_info: StreamInfo,
        artifacts: ConversionArtifacts,
        segments: Sequence[DocumentSegment],
        generated_at: datetime,
    ) -> str:
        if generated_at.tzinfo is not None:
            generated_at = generated_at.astimezone(timezone.utc)

        lines = ["---"]
        cls._yaml(lines, "title", title)
        cls._yaml(lines, "source", stream_info.url or stream_info.local_path or stream_info.file_name)
        cls._yaml(lines, "mimeType", stream_info.resolve_mime_type() or stream_info.mime_type)
        cls._yaml(lines, "fileName", stream_info.file_name)
        cls._yaml(lines, "generated", generated_at.strftime("%Y-%m-%dT%H:%M:%SZ"))

        page_count = sum(1 for segment in segments if segment.type == SegmentType.PAGE)
        if page_count:
            cls._yaml(lines, "pages", str(page_count))
        if artifacts.images:
            cls._yaml(lines, "images", str(len(artifacts.images)))
        if artifacts.tables:
            cls._yaml(lines, "tables", str(len(artifacts.tables)))

        lines.append("---")
        return "\n".join(lines)

    @staticmethod
    def _yaml(lines: List[str], key: str, value: Optional[str]) -> None:
        if value is None or not str(value).strip():
            return
        escaped = str(value).replace('"', '\\"').replace('\r\n', ' ').replace('\r', ' ').replace('\n', ' ')
        lines.append(f'{key}: "{escaped.strip()}"')

    @classmethod
    def render_segments(cls, segments: Sequence[DocumentSegment], annotate: bool) -> str:
        rendered = []
        for segment in segments:
            content = TextSanitizer.normalize(segment.markdown, trim=True)
            if not content:
                continue
            if annotate:
                annotation = cls.build_annotation(segment)
                if annotation:
                    content = f"{annotation}\n{content}"
            rendered.append(content)
        return "\n\n".join(rendered)

    @staticmethod
    def document_metadata_comment(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
        if not metadata:
            return None
        entries = sorted(
            (
                (str(key).strip(), str(value).strip())
                for key, value in metadata.items()
                if key is not None and value is not None and str(key).strip() and str(value).strip()
            ),
            key=lambda item: item[0].lower(),
        )
        if not entries:
            return None
        lines = ["<!-- Document metadata:"]
        lines.extend(f"{key}: {value}" for key, value in entries)
        lines.append("-->")
        return "\n".join(lines)

    @staticmethod
    def title_from_stream_info(stream_info: StreamInfo) -> Optional[str]:
        for candidate in (stream_info.file_name, stream_info.local_path):
            if candidate and candidate.strip():
                return PurePosixPath(candidate.strip().replace('\\', '/')).stem
        if stream_info.url and stream_info.url.strip():
            return stream_info.url.strip()
        return None

    @classmethod
    def extract_title(cls, segments: Sequence[DocumentSegment]) -> Optional[str]:
        """First heading, or first ordinary line, of the first non-image segment with text."""
        for segment in segments:
            if segment.type == SegmentType.IMAGE or not segment.markdown.strip():
                continue

            inside_comment = False
            for line in segment.markdown.splitlines():
                trimmed = line.strip()
                if not trimmed:
                    continue
                if inside_comment:
                    if "-->" in trimmed:
                        inside_comment = False
                    continue
                if trimmed.startswith("<!--"):
                    inside_comment = "-->" not in trimmed
                    continue
                if cls._is_image_placeholder(trimmed):
                    continue
                if trimmed.startswith("#"):
                    return trimmed.lstrip("#").strip()
                if not trimmed.startswith(">"):
                    return trimmed
        return None

    @staticmethod
    def _is_image_placeholder(value: str) -> bool:
        if value.startswith("!["):
            return True
        return value.lstrip(">").lstrip().lower().startswith("**image")

    @classmethod
    def build_annotation(cls, segment: DocumentSegment) -> Optional[str]:
        tags = []
        if segment.number is not None:
            tags.append(f"{NUMBER_TAGS.get(segment.type, 'segment')}:{segment.number}")

        if segment.type == SegmentType.AUDIO:
            if segment.start_time is not None and segment.end_time is not None:
                tags.append(f"timecode:{format_time(segment.start_time)}-{format_time(segment.end_time)}")
            elif segment.start_time is not None:
                tags.append(f"timecode:{format_time(segment.start_time)}")
        else:
            if segment.start_time is not None:
                tags.append(f"start:{format_time(segment.start_time)}")
            if segment.end_time is not None:
                tags.append(f"end:{format_time(segment.end_time)}")

        if segment.label and segment.label.strip():
            tags.append(f"label:{sanitize_tag(segment.label)}")
        if segment.source and segment.source.strip():
            tags.append(f"source:{sanitize_tag(segment.source)}")

        for key, value in segment.additional_metadata.items():
            if not key.strip() or not value.strip():
                continue
            key = sanitize_tag(key)
            prefix = f"{key}:".lower()
            if any(tag.lower().startswith(prefix) for tag in tags):
                continue
            tags.append(f"{key}:{sanitize_tag(value)}")

        if not tags:
            return None
        return " ".join(f"[{tag}]" for tag in tags)


def format_time(value: timedelta) -> str:
    total = int(value.total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours >= 1:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def sanitize_tag(value: str) -> str:
    chars = []
    for ch in value.strip():
        if ch.isspace():
            chars.append('_')
        elif ch in '[]:':
            chars.append('-')
        else:
            chars.append(ch)
    return "".join(chars)
