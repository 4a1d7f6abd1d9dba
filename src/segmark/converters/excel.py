"""Excel (XLSX) to Markdown converter."""

import io
from datetime import date, datetime, time
from pathlib import PurePosixPath
from typing import Any, BinaryIO, List, Optional

import structlog

from segmark.core.exceptions import FileConversionError, MissingDependencyError, SegmarkException
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import (
    ConversionArtifacts,
    DocumentConverterResult,
    DocumentSegment,
    MetadataKeys,
    SegmentType,
    TableArtifact,
    TextArtifact,
)
from segmark.services.context import ConversionContext
from segmark.services.tables import TableReconciler

from .base import BaseConverter

logger = structlog.get_logger(__name__)

try:
    import openpyxl
    EXCEL_AVAILABLE = True
except ImportError:
    EXCEL_AVAILABLE = False
    logger.warning("openpyxl not available, Excel processing disabled")

NO_DATA = "*No data found*"


def format_cell_value(value: Any, formula: Any = None) -> str:
    """Render a cell value the way it reads in the spreadsheet.

    Args:
        value: Cached value (``data_only`` workbook)
        formula: Value of the same cell in the formula workbook

    Returns:
        Text for the Markdown table cell
    """
    if value is None:
        if isinstance(formula, str) and formula.startswith('='):
            return formula.strip()
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.strftime("%Y-%m-%d")
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class XlsxConverter(BaseConverter):
    """Converts each worksheet into a SHEET segment holding one table."""

    name = "xlsx"
    priority = 220
    supported_extensions = ('.xlsx', '.xlsm')
    supported_mime_types = (mime.XLSX, 'application/vnd.ms-excel.sheet.macroenabled.12')

    def __init__(self, reconciler: Optional[TableReconciler] = None):
        self.reconciler = reconciler or TableReconciler()

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        if not self.accepts_input(stream_info):
            return False
        return stream.read(4) == b'PK\x03\x04'

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        if not EXCEL_AVAILABLE:
            raise MissingDependencyError("openpyxl is required for XLSX conversion", dependency="openpyxl")

        logger.info("Starting Excel conversion", file_name=stream_info.file_name)

        try:
            data = self.read_all(stream)
            values = await self.run_blocking(openpyxl.load_workbook, io.BytesIO(data), data_only=True)
            formulas = await self.run_blocking(openpyxl.load_workbook, io.BytesIO(data), data_only=False)
            segments, artifacts = self._convert_workbook(values, formulas, stream_info, context)
        except SegmarkException:
            raise
        except Exception as e:
            logger.error("Excel conversion failed",
                         file_name=stream_info.file_name,
                         error=str(e),
                         error_type=type(e).__name__)
            raise FileConversionError(f"Failed to convert Excel workbook: {str(e)}", format_name="xlsx") from e

        title = (values.properties.title or "").strip() or self._title_from_name(stream_info)
        if values.properties.creator:
            artifacts.metadata[MetadataKeys.DOCUMENT_AUTHOR] = values.properties.creator

        logger.info("Excel conversion completed",
                    sheets=len(segments),
                    tables=len(artifacts.tables))

        return self.build_result(segments, artifacts, stream_info, context, title_hint=title)

    @staticmethod
    def _title_from_name(stream_info: StreamInfo) -> str:
        name = stream_info.resolve_file_name()
        if not name:
            return "Excel Document"
        return PurePosixPath(name.replace('\\', '/')).stem or "Excel Document"

    def _convert_workbook(self, values, formulas, stream_info: StreamInfo, context: ConversionContext):
        source = stream_info.resolve_file_name() or stream_info.url
        segments: List[DocumentSegment] = []
        artifacts = ConversionArtifacts()

        for index, sheet in enumerate(values.worksheets, start=1):
            context.check_cancelled()
            name = sheet.title or f"Sheet {index}"
            formula_sheet = formulas[sheet.title] if sheet.title in formulas.sheetnames else None
            rows = self.reconciler.normalize(self._read_sheet(sheet, formula_sheet), propagate=False)

            metadata = {MetadataKeys.SHEET: str(index), MetadataKeys.SHEET_NAME: name}
            if rows:
                body = self.reconciler.to_markdown(rows)
                artifacts.tables.append(TableArtifact(
                    rows=rows,
                    source=source,
                    label=name,
                    metadata=dict(metadata),
                ))
            else:
                body = NO_DATA

            markdown = f"## {name}\n\n{body}"
            segments.append(DocumentSegment(
                markdown=markdown,
                type=SegmentType.SHEET,
                number=index,
                label=name,
                source=source,
                additional_metadata=metadata,
            ))
            artifacts.text_blocks.append(TextArtifact(text=markdown, page_number=index, source=source, label=name))

        return segments, artifacts

    @staticmethod
    def _read_sheet(sheet, formula_sheet=None) -> List[List[str]]:
        if sheet.max_row < 1 or sheet.max_column < 1:
            return []

        grid = []
        for row in sheet.iter_rows(min_row=1, max_row=sheet.max_row, max_col=sheet.max_column):
            cells = []
            for cell in row:
                formula = None
                if cell.value is None and formula_sheet is not None:
                    formula = formula_sheet.cell(row=cell.row, column=cell.column).value
                cells.append(format_cell_value(cell.value, formula))
            grid.append(cells)

        for merged in sheet.merged_cells.ranges:
            top_left = grid[merged.min_row - 1][merged.min_col - 1]
            for r in range(merged.min_row - 1, min(merged.max_row, len(grid))):
                for c in range(merged.min_col - 1, min(merged.max_col, len(grid[r]))):
                    grid[r][c] = top_left

        return grid
