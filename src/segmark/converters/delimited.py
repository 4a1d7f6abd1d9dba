"""CSV and TSV to Markdown table converter."""

import csv
import io
from pathlib import PurePosixPath
from typing import BinaryIO, List, Optional

import structlog

from segmark.core.exceptions import FileConversionError
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import ConversionArtifacts, DocumentConverterResult, DocumentSegment, SegmentType, TableArtifact
from segmark.services.context import ConversionContext
from segmark.services.tables import TableReconciler
from segmark.utils.encoding import decode_bytes

from .base import BaseConverter

logger = structlog.get_logger(__name__)

TAB_EXTENSIONS = ('.tsv', '.tab')
SNIFF_SAMPLE = 8192


class CsvConverter(BaseConverter):
    """Renders a delimited file as one Markdown table; the first row is the header."""

    name = "csv"
    priority = 0
    supported_extensions = ('.csv',) + TAB_EXTENSIONS
    supported_mime_types = (mime.CSV, mime.TSV, 'application/csv')

    def __init__(self, reconciler: Optional[TableReconciler] = None):
        self.reconciler = reconciler or TableReconciler()

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        text, _ = decode_bytes(self.read_all(stream), stream_info.charset)
        title = self._title_from_name(stream_info)

        try:
            rows = self.read_rows(text, self.detect_delimiter(text, stream_info))
        except csv.Error as e:
            logger.error("CSV parsing failed",
                         file_name=stream_info.file_name,
                         error=str(e),
                         error_type=type(e).__name__)
            raise FileConversionError(f"Failed to convert CSV file: {str(e)}", format_name="csv") from e

        rows = self.reconciler.normalize(rows, propagate=False)
        if not rows:
            return self.build_result([], None, stream_info, context, title_hint=title)

        source = stream_info.resolve_file_name() or stream_info.url
        artifacts = ConversionArtifacts()
        artifacts.tables.append(TableArtifact(rows=rows, source=source, label=title))

        segment = DocumentSegment(
            markdown=self.reconciler.to_markdown(rows),
            type=SegmentType.TABLE,
            number=1,
            label=title,
            source=source,
        )
        logger.debug("Delimited file converted", rows=len(rows), columns=len(rows[0]))
        return self.build_result([segment], artifacts, stream_info, context, title_hint=title)

    @staticmethod
    def detect_delimiter(text: str, stream_info: StreamInfo) -> str:
        """Tab for TSV descriptors, otherwise whatever ``csv.Sniffer`` finds, defaulting to a comma."""
        if stream_info.resolve_extension() in TAB_EXTENSIONS or stream_info.resolve_mime_type() == mime.TSV:
            return '\t'
        try:
            return csv.Sniffer().sniff(text[:SNIFF_SAMPLE], delimiters=',;\t|').delimiter
        except csv.Error:
            return ','

    @staticmethod
    def read_rows(text: str, delimiter: str) -> List[List[str]]:
        reader = csv.reader(io.StringIO(text, newline=''), delimiter=delimiter)
        return [[cell.strip() for cell in row] for row in reader if row]

    @staticmethod
    def _title_from_name(stream_info: StreamInfo) -> Optional[str]:
        name = stream_info.resolve_file_name()
        if not name:
            return None
        return PurePosixPath(name.replace('\\', '/')).stem or None
