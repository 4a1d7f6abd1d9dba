"""RFC 822 email (EML) to Markdown converter."""

import re
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from pathlib import PurePosixPath
from typing import BinaryIO, List, NamedTuple, Optional

import structlog

from segmark.core.exceptions import FileConversionError, SegmarkException
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
from segmark.services.context import ConversionContext
from segmark.services.tables import TableReconciler
from segmark.utils.text import TextSanitizer, escape_markdown, format_file_size

from .base import BaseConverter
from .web import convert_html_string

logger = structlog.get_logger(__name__)

_HEADER_LINE = re.compile(rb'^[A-Za-z][A-Za-z0-9-]*:')


class Attachment(NamedTuple):
    name: str
    content_type: str
    size: str


def _part_text(part: EmailMessage) -> str:
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode('utf-8', errors='replace')


class EmlConverter(BaseConverter):
    """Renders headers, body and attachment list of a single message."""

    name = "eml"
    priority = 240
    supported_extensions = ('.eml',)
    supported_mime_types = (mime.EML, 'message/email', 'application/email', 'text/email')

    def __init__(self, reconciler: Optional[TableReconciler] = None):
        self.reconciler = reconciler or TableReconciler()

    def accepts(self, stream: BinaryIO, stream_info: StreamInfo) -> bool:
        if not self.accepts_input(stream_info):
            return False
        return bool(_HEADER_LINE.match(stream.read(1024).lstrip()))

    async def convert(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> DocumentConverterResult:
        logger.info("Starting email conversion", file_name=stream_info.file_name)

        try:
            message = await self.run_blocking(BytesParser(policy=policy.default).parsebytes, self.read_all(stream))
            markdown, attachments = await self.run_blocking(self.render_message, message)
        except SegmarkException:
            raise
        except Exception as e:
            logger.error("Email conversion failed",
                         file_name=stream_info.file_name,
                         error=str(e),
                         error_type=type(e).__name__)
            raise FileConversionError(f"Failed to convert EML file: {str(e)}", format_name="eml") from e

        source = stream_info.resolve_file_name() or stream_info.url
        title = self.extract_title(message) or self._title_from_name(stream_info)
        artifacts = ConversionArtifacts()
        segments = []

        markdown = TextSanitizer.normalize(markdown)
        if markdown:
            segments.append(DocumentSegment(
                markdown=markdown,
                type=SegmentType.SECTION,
                number=1,
                label=title,
                source=source,
            ))
            artifacts.text_blocks.append(TextArtifact(text=markdown, page_number=1, source=source, label=title))

        for key, header in (
            (MetadataKeys.EMAIL_SUBJECT, 'subject'),
            (MetadataKeys.EMAIL_FROM, 'from'),
            (MetadataKeys.EMAIL_TO, 'to'),
            (MetadataKeys.EMAIL_DATE, 'date'),
        ):
            value = message.get(header)
            if value:
                artifacts.metadata[key] = str(value).strip()
        artifacts.metadata[MetadataKeys.EMAIL_ATTACHMENTS] = str(len(attachments))
        if attachments:
            artifacts.metadata[MetadataKeys.EMAIL_ATTACHMENT_NAMES] = "; ".join(a.name for a in attachments)

        logger.info("Email conversion completed", attachments=len(attachments))
        return self.build_result(segments, artifacts, stream_info, context, title_hint=title)

    def render_message(self, message: EmailMessage):
        """Build the Markdown body; returns ``(markdown, attachments)``."""
        lines = ["# Email", ""]
        for label, header in (
            ("Subject", 'subject'),
            ("From", 'from'),
            ("To", 'to'),
            ("CC", 'cc'),
        ):
            value = message.get(header)
            if value and str(value).strip():
                lines.append(f"**{label}:** {escape_markdown(str(value).strip())}")

        date_header = message.get('date')
        if date_header:
            date = getattr(date_header, 'datetime', None)
            formatted = date.strftime("%Y-%m-%d %H:%M:%S %z") if date is not None else str(date_header)
            lines.append(f"**Date:** {formatted}")

        message_id = message.get('message-id')
        if message_id:
            lines.append(f"**Message-ID:** {escape_markdown(str(message_id).strip())}")

        blocks = ["\n".join(lines)]

        body = self.extract_body(message)
        if body.strip():
            blocks.append(f"## Message Content\n\n{body.strip()}")

        attachments = self.extract_attachments(message)
        if attachments:
            items = "\n".join(
                f"- **{escape_markdown(a.name)}** ({a.content_type}) - {a.size}" for a in attachments
            )
            blocks.append(f"## Attachments\n\n{items}")

        return "\n\n".join(blocks), attachments

    def extract_body(self, message: EmailMessage) -> str:
        """HTML bodies go through the HTML converter; plain text is escaped."""
        html_part = message.get_body(preferencelist=('html',))
        if html_part is not None:
            html = _part_text(html_part)
            if html.strip():
                try:
                    return convert_html_string(html, self.reconciler).markdown
                except Exception as e:
                    logger.warning("HTML body could not be converted, using raw text",
                                   error=str(e),
                                   error_type=type(e).__name__)
                    return escape_markdown(html)

        text_part = message.get_body(preferencelist=('plain',))
        if text_part is not None:
            return escape_markdown(_part_text(text_part))
        return ""

    @staticmethod
    def extract_attachments(message: EmailMessage) -> List[Attachment]:
        attachments = []
        for part in message.iter_attachments():
            payload = part.get_payload(decode=True)
            attachments.append(Attachment(
                name=part.get_filename() or part.get_param('name') or "Unknown",
                content_type=part.get_content_type() or mime.OCTET_STREAM,
                size=format_file_size(len(payload)) if payload is not None else "Unknown size",
            ))
        return attachments

    @staticmethod
    def extract_title(message: EmailMessage) -> Optional[str]:
        subject = message.get('subject')
        if subject and str(subject).strip():
            return str(subject).strip()
        sender = message.get('from')
        if sender and str(sender).strip():
            return f"Email from {str(sender).strip()}"
        return None

    @staticmethod
    def _title_from_name(stream_info: StreamInfo) -> str:
        name = stream_info.resolve_file_name()
        if not name:
            return "Email Message"
        return PurePosixPath(name.replace('\\', '/')).stem or "Email Message"
