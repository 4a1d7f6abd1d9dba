"""Table reconciliation: rectangular matrices from ragged, merged or split tables."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import structlog

logger = structlog.get_logger(__name__)

Rows = List[List[str]]


@dataclass
class ExpandableCell:
    """A table cell as declared in OOXML, before span expansion.

    ``v_merge`` is ``None`` for an unmerged cell, ``"restart"`` for the cell
    that opens a vertical merge and ``"continue"`` for cells that continue it.
    """
    text: str = ""
    grid_span: int = 1
    v_merge: Optional[str] = None

    @property
    def is_merge_continuation(self) -> bool:
        return self.v_merge is not None and self.v_merge.lower() == "continue"


@dataclass
class TableFragment:
    """A table piece found on one page, positioned by its bounding box."""
    rows: Rows
    page_number: int
    top: Optional[float] = None
    bottom: Optional[float] = None
    page_height: Optional[float] = None
    first_on_page: bool = True
    last_on_page: bool = True
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class MergedTable:
    """One logical table assembled from one or more fragments."""
    rows: Rows
    page_start: int
    page_end: int
    fragment_indices: List[int] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def page_range(self) -> str:
        if self.page_start == self.page_end:
            return str(self.page_start)
        return f"{self.page_start}-{self.page_end}"

    @property
    def spans_pages(self) -> bool:
        return self.page_end > self.page_start


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class TableReconciler:
    """Normalizes tabular data and renders it as a Markdown table."""

    def __init__(self, edge_ratio: float = 0.3):
        # Fraction of the page height that counts as "top" or "bottom".
        self.edge_ratio = edge_ratio

    def normalize(
        self,
        rows: Optional[Sequence[Sequence[Optional[str]]]],
        column_count: Optional[int] = None,
        propagate: bool = True,
    ) -> Rows:
        """Produce a rectangular matrix from ragged rows.

        Args:
            rows: Extracted rows, possibly of different widths.
            column_count: Explicit grid width (OOXML ``tblGrid``). Defaults to
                the widest row.
            propagate: Fill blank cells from the nearest value above,
                starting at the first data row.

        Returns:
            The normalized matrix, or ``[]`` when nothing remains.
        """
        if not rows:
            return []

        matrix = [
            [str(cell).strip() if cell is not None else "" for cell in row]
            for row in rows
        ]
        width = max(column_count or 0, max((len(row) for row in matrix), default=0))
        if width == 0:
            return []
        for row in matrix:
            row.extend([""] * (width - len(row)))
            del row[width:]

        while matrix and all(_is_blank(cell) for cell in matrix[0]):
            matrix.pop(0)
        while matrix and all(_is_blank(cell) for cell in matrix[-1]):
            matrix.pop()
        if not matrix:
            return []

        used = max(
            (index + 1 for row in matrix for index, cell in enumerate(row) if not _is_blank(cell)),
            default=0,
        )
        if used < width:
            matrix = [row[:used] for row in matrix]

        if propagate:
            self.propagate(matrix)
        return matrix

    @staticmethod
    def propagate(rows: Rows, start_row: int = 1) -> Rows:
        """Fill blank cells with the last non-blank value above them, in place.

        The header row (index 0 by default) neither receives nor seeds values.
        """
        if len(rows) <= start_row:
            return rows

        column_count = len(rows[start_row])
        for col in range(column_count):
            last_value: Optional[str] = None
            for row in rows[start_row:]:
                if col >= len(row):
                    continue
                value = row[col]
                if _is_blank(value):
                    if not _is_blank(last_value):
                        row[col] = last_value
                else:
                    last_value = value
        return rows

    @staticmethod
    def expand_spans(table: Sequence[Sequence[ExpandableCell]], column_count: Optional[int] = None) -> Rows:
        """Expand horizontal spans and vertical merges into plain rows.

        Args:
            table: Rows of declared cells.
            column_count: Grid width. Defaults to the widest sum of spans.

        Returns:
            Rows exactly ``column_count`` wide.
        """
        if not table:
            return []

        if not column_count:
            column_count = max(
                (sum(max(1, cell.grid_span) for cell in row) for row in table),
                default=0,
            )

        merge_track: Dict[int, str] = {}
        expanded: Rows = []
        for row in table:
            out = [""] * column_count
            col = 0
            for cell in row:
                text = cell.text or ""
                if cell.is_merge_continuation and col in merge_track:
                    text = merge_track[col]
                elif not _is_blank(text):
                    merge_track[col] = text
                else:
                    merge_track.pop(col, None)

                for _ in range(max(1, cell.grid_span)):
                    if col >= column_count:
                        break
                    out[col] = text
                    col += 1
            expanded.append(out)
        return expanded

    def _continues(self, previous: TableFragment, fragment: TableFragment) -> bool:
        if fragment.page_number != previous.page_number + 1:
            return False
        if not fragment.first_on_page or not previous.last_on_page:
            return False
        if _width(fragment.rows) != _width(previous.rows):
            return False
        if fragment.top is not None and fragment.page_height:
            if fragment.top > fragment.page_height * self.edge_ratio:
                return False
        if previous.bottom is not None and previous.page_height:
            if previous.bottom < previous.page_height * (1 - self.edge_ratio):
                return False
        return True

    def merge_continuations(self, fragments: Sequence[TableFragment]) -> List[MergedTable]:
        """Join table fragments that continue across consecutive pages.

        Fragments must be in document order. A continuation's repeated header
        row is dropped; a first row with a blank first cell is treated as the
        remainder of the previous page's last row and joined onto it.
        Fragments should not be propagated yet, since propagation would hide
        split rows.
        """
        merged: List[MergedTable] = []
        previous: Optional[TableFragment] = None

        for index, fragment in enumerate(fragments):
            rows = [list(row) for row in fragment.rows]
            if not rows:
                continue

            if previous is not None and merged and self._continues(previous, fragment):
                current = merged[-1]
                if rows and rows[0] == current.rows[0]:
                    rows = rows[1:]
                if rows and _is_blank(rows[0][0]) and len(current.rows) > 1:
                    split = rows.pop(0)
                    last = current.rows[-1]
                    for col, text in enumerate(split):
                        if _is_blank(text):
                            continue
                        last[col] = f"{last[col]} {text}".strip() if not _is_blank(last[col]) else text
                current.rows.extend(rows)
                current.page_end = fragment.page_number
                current.fragment_indices.append(index)
                logger.debug(
                    "Merged table continuation",
                    page=fragment.page_number,
                    page_start=current.page_start,
                )
            else:
                merged.append(MergedTable(
                    rows=rows,
                    page_start=fragment.page_number,
                    page_end=fragment.page_number,
                    fragment_indices=[index],
                    metadata=dict(fragment.metadata),
                ))
            previous = fragment

        return merged

    @staticmethod
    def escape_cell(text: Optional[str], cell_break: str = " ") -> str:
        if _is_blank(text):
            return ""
        value = text.replace("|", "\\|").replace("\r\n", "\n")
        value = value.replace("\n", cell_break).replace("\r", cell_break)
        return value.strip()

    @classmethod
    def to_markdown(cls, rows: Optional[Sequence[Sequence[str]]], cell_break: str = " ") -> str:
        """Render a matrix as a pipe table; the first row is the header."""
        if not rows:
            return ""

        def render(row: Sequence[str]) -> str:
            cells = " | ".join(cls.escape_cell(cell, cell_break) for cell in row)
            return f"| {cells} |"

        header = rows[0]
        lines = [render(header), "| " + " | ".join("---" for _ in header) + " |"]
        lines.extend(render(row) for row in rows[1:])
        return "\n".join(lines)


def _width(rows: Sequence[Sequence[str]]) -> int:
    return max((len(row) for row in rows), default=0)
