"""Per-page accumulation of Markdown and images."""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from segmark.models import (
    ConversionArtifacts,
    DocumentSegment,
    ImageArtifact,
    MetadataKeys,
    SegmentType,
    TextArtifact,
)

_TOKEN_PATTERN = re.compile(r'\{\{(?:TABLE|IMAGE):\d+\}\}')


def table_token(index: int) -> str:
    return f"{{{{TABLE:{index}}}}}"


def image_token(index: int) -> str:
    return f"{{{{IMAGE:{index}}}}}"


def strip_unresolved_tokens(text: str) -> str:
    """Remove table and image tokens that were never substituted."""
    if not text:
        return ""
    return _TOKEN_PATTERN.sub("", text)


@dataclass
class PageAccumulator:
    markdown: str = ""
    images: List[ImageArtifact] = field(default_factory=list)
    has_snapshot: bool = False

    def append(self, text: Optional[str]) -> None:
        if not text or not text.strip():
            return
        text = text.strip("\n")
        self.markdown = f"{self.markdown}\n\n{text}" if self.markdown else text

    def replace_once(self, token: str, replacement: str) -> bool:
        if token not in self.markdown:
            return False
        self.markdown = self.markdown.replace(token, replacement, 1)
        return True


@dataclass
class ExtractionResult:
    """Segments and artifacts produced by one extraction strategy."""
    segments: List[DocumentSegment]
    artifacts: ConversionArtifacts
    raw_text: str = ""
    title: Optional[str] = None

    @property
    def page_count(self) -> int:
        return sum(1 for segment in self.segments if segment.type == SegmentType.PAGE)


class PageMap:
    """Page buffers keyed by page number and emitted in page order."""

    def __init__(self):
        self._pages: Dict[int, PageAccumulator] = {}

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, page_number: int) -> bool:
        return page_number in self._pages

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._pages))

    def get(self, page_number: int) -> PageAccumulator:
        if page_number < 1:
            raise ValueError(f"Page numbers start at 1, got {page_number}")
        accumulator = self._pages.get(page_number)
        if accumulator is None:
            accumulator = PageAccumulator()
            self._pages[page_number] = accumulator
        return accumulator

    def append(self, page_number: int, text: Optional[str]) -> None:
        self.get(page_number).append(text)

    def replace_placeholder(self, page_number: int, token: str, replacement: str) -> bool:
        """Replace the first occurrence of ``token`` on a page.

        Returns:
            False if the page does not contain the token.
        """
        accumulator = self._pages.get(page_number)
        if accumulator is None:
            return False
        return accumulator.replace_once(token, replacement)

    def place(self, page_number: int, token: str, replacement: str) -> None:
        """Substitute ``token``, or append ``replacement`` when the token is absent."""
        if not self.replace_placeholder(page_number, token, replacement):
            self.append(page_number, replacement)

    def add_image(self, page_number: int, artifact: ImageArtifact) -> None:
        accumulator = self.get(page_number)
        accumulator.images.append(artifact)
        if artifact.metadata.get(MetadataKeys.SNAPSHOT) == "true":
            accumulator.has_snapshot = True

    def flush(
        self,
        source: Optional[str],
        artifacts: ConversionArtifacts,
        segment_offset: int = 0,
    ) -> List[DocumentSegment]:
        """Emit one PAGE segment per page and bind page images to them.

        Args:
            source: Source identifier recorded on every segment.
            artifacts: Receives one text artifact per page.
            segment_offset: Index of the first emitted segment in the final list.

        Returns:
            The page segments in page order.
        """
        segments: List[DocumentSegment] = []
        for page_number in self:
            accumulator = self._pages[page_number]
            text = strip_unresolved_tokens(accumulator.markdown).strip()
            if not text:
                text = f"<!-- Page {page_number} contained layout-only content -->"

            segment_index = segment_offset + len(segments)
            segments.append(DocumentSegment(
                markdown=text,
                type=SegmentType.PAGE,
                number=page_number,
                label=f"Page {page_number}",
                source=source,
                additional_metadata={MetadataKeys.PAGE: str(page_number)},
            ))
            artifacts.text_blocks.append(TextArtifact(
                text=text,
                page_number=page_number,
                source=source,
                label=f"Page {page_number}",
            ))
            for image in accumulator.images:
                image.segment_index = segment_index
                image.metadata[MetadataKeys.IMAGE_SEGMENT_INDEX] = str(segment_index)
        return segments
