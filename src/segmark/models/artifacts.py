"""Raw extraction results collected alongside segments."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class TextArtifact:
    """Plain text extracted for one page or section."""
    text: str
    page_number: Optional[int] = None
    source: Optional[str] = None
    label: Optional[str] = None


@dataclass
class TableArtifact:
    """A reconciled table matrix.

    Cells are stored unescaped; Markdown escaping happens only at render time.
    """
    rows: List[List[str]]
    page_number: Optional[int] = None
    source: Optional[str] = None
    label: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not self.rows:
            raise ValueError("TableArtifact requires at least one row")
        self.rows = [[str(cell) for cell in row] for row in self.rows]

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.rows), default=0)


class ImageArtifact:
    """An embedded or rendered image.

    ``placeholder_markdown`` and ``segment_index`` are write-once: they are set
    when the image is bound into the segment stream and never reassigned.
    """

    def __init__(
        self,
        data: bytes,
        content_type: Optional[str] = None,
        page_number: Optional[int] = None,
        source: Optional[str] = None,
        label: Optional[str] = None,
        raw_text: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        if data is None:
            raise ValueError("ImageArtifact requires image data")
        self.data = bytes(data)
        self.content_type = content_type or "application/octet-stream"
        self.page_number = page_number
        self.source = source
        self.label = label
        self.raw_text = raw_text
        self.metadata: Dict[str, str] = dict(metadata or {})
        self.detailed_description: Optional[str] = None
        self.file_path: Optional[str] = None
        self.relative_path: Optional[str] = None
        self._placeholder_markdown: Optional[str] = None
        self._segment_index: Optional[int] = None

    @property
    def placeholder_markdown(self) -> Optional[str]:
        return self._placeholder_markdown

    @placeholder_markdown.setter
    def placeholder_markdown(self, value: str) -> None:
        if self._placeholder_markdown is not None:
            raise ValueError("Image placeholder has already been assigned")
        self._placeholder_markdown = value

    @property
    def segment_index(self) -> Optional[int]:
        return self._segment_index

    @segment_index.setter
    def segment_index(self, value: int) -> None:
        if self._segment_index is not None:
            raise ValueError("Image segment index has already been assigned")
        if value < 0:
            raise ValueError(f"Segment index must not be negative, got {value}")
        self._segment_index = value

    @property
    def caption(self) -> Optional[str]:
        return self.metadata.get("caption")

    def __repr__(self) -> str:
        return (
            f"ImageArtifact(content_type={self.content_type!r}, page_number={self.page_number!r}, "
            f"label={self.label!r}, size={len(self.data)}, segment_index={self._segment_index!r})"
        )


@dataclass
class ConversionArtifacts:
    """Text blocks, tables and images gathered during one conversion."""
    text_blocks: List[TextArtifact] = field(default_factory=list)
    tables: List[TableArtifact] = field(default_factory=list)
    images: List[ImageArtifact] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> 'ConversionArtifacts':
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (self.text_blocks or self.tables or self.images or self.metadata)
