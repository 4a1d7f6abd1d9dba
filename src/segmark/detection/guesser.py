"""Content sniffing for input streams."""

import codecs
from typing import BinaryIO, List, Optional, Tuple

import structlog

from segmark.core.config import settings
from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo

logger = structlog.get_logger(__name__)

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
ZIP_CONTAINER_EXTENSIONS = ('.docx', '.pptx', '.xlsx', '.epub')

_BOMS = (
    (codecs.BOM_UTF32_BE, 'utf-32-be'),
    (codecs.BOM_UTF32_LE, 'utf-32-le'),
    (codecs.BOM_UTF8, 'utf-8'),
    (codecs.BOM_UTF16_BE, 'utf-16-be'),
    (codecs.BOM_UTF16_LE, 'utf-16-le'),
)


def read_sample(stream: BinaryIO, size: Optional[int] = None) -> bytes:
    """Read up to ``size`` bytes from the start and restore the stream position."""
    size = size or settings.sniff_sample_size
    position = stream.tell()
    try:
        stream.seek(0)
        return stream.read(size) or b''
    finally:
        stream.seek(position)


def detect_bom(sample: bytes) -> Optional[str]:
    for bom, encoding in _BOMS:
        if sample.startswith(bom):
            return encoding
    return None


def decode_sample(sample: bytes) -> Tuple[Optional[str], str]:
    """Decode a sample as text using its BOM, or UTF-8 otherwise."""
    if not sample:
        return None, ''
    encoding = detect_bom(sample)
    try:
        # A sample may end mid-character; ignore the tail.
        text = sample.decode(encoding or 'utf-8', errors='strict' if encoding else 'ignore')
    except UnicodeDecodeError:
        return encoding, ''
    if text.startswith('\ufeff'):
        text = text[1:]
    return encoding, text


def looks_like_html(text: str) -> bool:
    trimmed = text.lstrip().lower()
    return trimmed.startswith(('<!doctype html', '<html', '<head', '<body'))


def looks_like_json(text: str) -> bool:
    stripped = text.lstrip()
    return bool(stripped) and stripped[0] in '{['


def looks_like_xml(text: str) -> bool:
    trimmed = text.lstrip()
    if trimmed.lower().startswith('<?xml'):
        return True
    return trimmed.startswith('<') and '>' in trimmed


def looks_like_csv(text: str) -> bool:
    lines = text.split('\n')
    if len(lines) < 2:
        return False

    def count_separators(line: str) -> int:
        return sum(1 for ch in line if ch in ',;\t')

    return count_separators(lines[0]) > 0 and count_separators(lines[1]) > 0


def _codec_name(charset: str) -> str:
    try:
        return codecs.lookup(charset).name
    except LookupError:
        return charset.lower()


def is_plain_text(text: str) -> bool:
    if not text:
        return False
    for ch in text[:1024]:
        if ch in '\r\n\t':
            continue
        if ord(ch) < 32 or ord(ch) == 127:
            return False
    return True


class StreamInfoGuesser:
    """Produce candidate descriptors for a stream, most confident first."""

    def __init__(self, sample_size: Optional[int] = None):
        self.sample_size = sample_size or settings.sniff_sample_size

    def guess(self, stream: BinaryIO, base_info: Optional[StreamInfo] = None) -> List[StreamInfo]:
        base_info = base_info or StreamInfo()
        extension = base_info.resolve_extension()
        normalized = base_info.with_(
            mime_type=mime.normalize_mime(base_info.mime_type) or mime.get_mime_type(extension),
            extension=extension or mime.get_extension(base_info.mime_type),
            charset=base_info.charset or mime.charset_from_mime(base_info.mime_type),
            file_name=base_info.file_name or base_info.resolve_file_name(),
        )

        sample = read_sample(stream, self.sample_size)
        content_guess = self.guess_from_content(sample, normalized)
        if content_guess is None:
            return [normalized]

        merged = normalized.copy_and_update(content_guess)
        if self.is_compatible(normalized, content_guess):
            return [merged]

        logger.debug(
            "Content sniffing disagrees with declared type",
            declared=normalized.describe(),
            sniffed=content_guess.describe(),
        )
        return [normalized, merged]

    def guess_from_content(self, sample: bytes, base_info: StreamInfo) -> Optional[StreamInfo]:
        if not sample:
            return None

        if sample.startswith(b'%PDF'):
            return StreamInfo(mime_type=mime.PDF, extension='.pdf')

        if sample.startswith(b'PK') and len(sample) > 4:
            extension = self._zip_extension(base_info)
            return StreamInfo(mime_type=mime.get_mime_type(extension) or mime.ZIP, extension=extension)

        if sample.startswith(PNG_SIGNATURE):
            return StreamInfo(mime_type=mime.PNG, extension='.png')

        if sample.startswith(b'\xff\xd8\xff'):
            return StreamInfo(mime_type=mime.JPEG, extension='.jpg')

        if sample[:6] in (b'GIF87a', b'GIF89a'):
            return StreamInfo(mime_type=mime.GIF, extension='.gif')

        if sample[:4] == b'RIFF' and sample[8:12] == b'WEBP':
            return StreamInfo(mime_type=mime.WEBP, extension='.webp')

        if sample[:4] == b'RIFF' and sample[8:12] == b'WAVE':
            return StreamInfo(mime_type=mime.WAV, extension='.wav')

        if sample.startswith(b'ID3') or (
            detect_bom(sample) is None and len(sample) > 1 and sample[0] == 0xFF and sample[1] & 0xE0 == 0xE0
        ):
            return StreamInfo(mime_type=mime.MP3, extension='.mp3')

        encoding, text = decode_sample(sample)
        if not is_plain_text(text):
            return None

        if looks_like_html(text):
            return StreamInfo(mime_type=mime.HTML, extension='.html', charset=encoding)
        if looks_like_json(text):
            return StreamInfo(mime_type=mime.JSON, extension='.json', charset=encoding)
        if looks_like_xml(text):
            return StreamInfo(mime_type=mime.XML, extension='.xml', charset=encoding)
        if looks_like_csv(text):
            return StreamInfo(mime_type=mime.CSV, extension='.csv', charset=encoding)
        return StreamInfo(mime_type=mime.TEXT, extension='.txt', charset=encoding)

    @staticmethod
    def is_compatible(base_info: StreamInfo, candidate: StreamInfo) -> bool:
        if base_info.mime_type and candidate.mime_type and base_info.mime_type != candidate.mime_type:
            return False
        if base_info.extension and candidate.extension and base_info.extension != candidate.extension:
            return False
        if base_info.charset and candidate.charset and _codec_name(base_info.charset) != _codec_name(candidate.charset):
            return False
        return True

    @staticmethod
    def _zip_extension(base_info: StreamInfo) -> str:
        extension = base_info.resolve_extension()
        if extension in ZIP_CONTAINER_EXTENSIONS:
            return extension
        return '.zip'
