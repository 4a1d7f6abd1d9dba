"""Ordered output units produced by converters."""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class SegmentType(Enum):
    """Kinds of segment a converter can emit."""
    UNKNOWN = "unknown"
    PAGE = "page"
    SLIDE = "slide"
    SHEET = "sheet"
    SECTION = "section"
    TABLE = "table"
    CHAPTER = "chapter"
    AUDIO = "audio"
    IMAGE = "image"
    METADATA = "metadata"


@dataclass(frozen=True)
class DocumentSegment:
    """Immutable unit of composed output.

    A segment's position in its owning list is its only ordering signal.
    ``additional_metadata`` is copied on construction and exposed read-only.
    """

    markdown: str
    type: SegmentType = SegmentType.UNKNOWN
    number: Optional[int] = None
    label: Optional[str] = None
    start_time: Optional[timedelta] = None
    end_time: Optional[timedelta] = None
    source: Optional[str] = None
    additional_metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.markdown is None:
            raise ValueError("Segment markdown is required")
        if not isinstance(self.markdown, str):
            raise TypeError(f"Segment markdown must be str, got {type(self.markdown).__name__}")
        if not isinstance(self.type, SegmentType):
            raise TypeError(f"Segment type must be SegmentType, got {type(self.type).__name__}")
        if self.number is not None and self.number < 0:
            raise ValueError(f"Segment number must not be negative, got {self.number}")
        if self.start_time is not None and self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("Segment end_time must not precede start_time")

        metadata = {str(key): str(value) for key, value in (self.additional_metadata or {}).items()}
        object.__setattr__(self, 'additional_metadata', MappingProxyType(metadata))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentSegment):
            return NotImplemented
        return (
            self.markdown == other.markdown
            and self.type == other.type
            and self.number == other.number
            and self.label == other.label
            and self.start_time == other.start_time
            and self.end_time == other.end_time
            and self.source == other.source
            and dict(self.additional_metadata) == dict(other.additional_metadata)
        )

    def __hash__(self) -> int:
        return hash((
            self.markdown,
            self.type,
            self.number,
            self.label,
            self.start_time,
            self.end_time,
            self.source,
            tuple(sorted(self.additional_metadata.items())),
        ))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "markdown": self.markdown,
            "type": self.type.value,
            "number": self.number,
            "label": self.label,
            "start_time": self.start_time.total_seconds() if self.start_time is not None else None,
            "end_time": self.end_time.total_seconds() if self.end_time is not None else None,
            "source": self.source,
            "metadata": dict(self.additional_metadata),
        }
