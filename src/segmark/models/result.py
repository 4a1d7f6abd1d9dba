"""Result of a document conversion."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from .artifacts import ConversionArtifacts
from .segments import DocumentSegment, SegmentType


@dataclass
class DocumentConverterResult:
    """Final markdown plus the segments and artifacts it was composed from."""

    markdown: str
    title: Optional[str] = None
    segments: Sequence[DocumentSegment] = field(default_factory=tuple)
    artifacts: ConversionArtifacts = field(default_factory=ConversionArtifacts)
    metadata: Dict[str, Any] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    artifact_directory: Optional[str] = None

    def __post_init__(self):
        if self.markdown is None:
            raise ValueError("markdown is required")
        self.segments: Tuple[DocumentSegment, ...] = tuple(self.segments or ())

    @property
    def text_content(self) -> str:
        return self.markdown

    @property
    def page_count(self) -> int:
        return sum(1 for segment in self.segments if segment.type == SegmentType.PAGE)

    @property
    def word_count(self) -> int:
        return len(self.markdown.split()) if self.markdown else 0

    def __str__(self) -> str:
        return self.markdown
