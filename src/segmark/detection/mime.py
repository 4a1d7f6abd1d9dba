"""Extension and MIME type mapping."""

import mimetypes
from typing import Dict, Optional

OCTET_STREAM = "application/octet-stream"

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
EPUB = "application/epub+zip"
ZIP = "application/zip"
EML = "message/rfc822"
HTML = "text/html"
XHTML = "application/xhtml+xml"
JSON = "application/json"
XML = "application/xml"
CSV = "text/csv"
TSV = "text/tab-separated-values"
TEXT = "text/plain"
MARKDOWN = "text/markdown"
PNG = "image/png"
JPEG = "image/jpeg"
GIF = "image/gif"
WEBP = "image/webp"
BMP = "image/bmp"
TIFF = "image/tiff"
MP3 = "audio/mpeg"
WAV = "audio/wav"
M4A = "audio/mp4"
OGG = "audio/ogg"
FLAC = "audio/flac"

EXTENSION_TO_MIME: Dict[str, str] = {
    '.pdf': PDF,
    '.docx': DOCX,
    '.xlsx': XLSX,
    '.pptx': PPTX,
    '.epub': EPUB,
    '.zip': ZIP,
    '.eml': EML,
    '.htm': HTML,
    '.html': HTML,
    '.xhtml': XHTML,
    '.json': JSON,
    '.jsonl': JSON,
    '.ndjson': JSON,
    '.xml': XML,
    '.rss': "application/rss+xml",
    '.atom': "application/atom+xml",
    '.csv': CSV,
    '.tsv': TSV,
    '.tab': TSV,
    '.txt': TEXT,
    '.text': TEXT,
    '.log': TEXT,
    '.md': MARKDOWN,
    '.markdown': MARKDOWN,
    '.png': PNG,
    '.jpg': JPEG,
    '.jpeg': JPEG,
    '.gif': GIF,
    '.webp': WEBP,
    '.bmp': BMP,
    '.tif': TIFF,
    '.tiff': TIFF,
    '.mp3': MP3,
    '.wav': WAV,
    '.m4a': M4A,
    '.ogg': OGG,
    '.flac': FLAC,
}

# Preferred extension when several map to the same MIME type.
MIME_TO_EXTENSION: Dict[str, str] = {
    PDF: '.pdf',
    DOCX: '.docx',
    XLSX: '.xlsx',
    PPTX: '.pptx',
    EPUB: '.epub',
    ZIP: '.zip',
    EML: '.eml',
    HTML: '.html',
    XHTML: '.xhtml',
    JSON: '.json',
    XML: '.xml',
    CSV: '.csv',
    TSV: '.tsv',
    TEXT: '.txt',
    MARKDOWN: '.md',
    PNG: '.png',
    JPEG: '.jpg',
    GIF: '.gif',
    WEBP: '.webp',
    BMP: '.bmp',
    TIFF: '.tiff',
    MP3: '.mp3',
    WAV: '.wav',
    M4A: '.m4a',
    OGG: '.ogg',
    FLAC: '.flac',
}

MIME_ALIASES: Dict[str, str] = {
    'application/x-pdf': PDF,
    'application/x-zip-compressed': ZIP,
    'application/x-zip': ZIP,
    'text/xml': XML,
    'text/json': JSON,
    'text/x-markdown': MARKDOWN,
    'application/csv': CSV,
    'image/jpg': JPEG,
    'image/pjpeg': JPEG,
    'audio/x-wav': WAV,
    'audio/wave': WAV,
    'audio/x-m4a': M4A,
    'audio/mp3': MP3,
}


def normalize_extension(extension: Optional[str]) -> Optional[str]:
    """Lowercase an extension and ensure it has a leading dot."""
    if not extension or not extension.strip():
        return None
    extension = extension.strip().lower()
    if not extension.startswith('.'):
        extension = f'.{extension}'
    return extension


def normalize_mime(mime_type: Optional[str]) -> Optional[str]:
    """Lowercase a MIME type, strip parameters and collapse known aliases."""
    if not mime_type or not mime_type.strip():
        return None
    base = mime_type.split(';', 1)[0].strip().lower()
    if not base:
        return None
    return MIME_ALIASES.get(base, base)


def get_mime_type(extension: Optional[str]) -> Optional[str]:
    extension = normalize_extension(extension)
    if extension is None:
        return None
    mime_type = EXTENSION_TO_MIME.get(extension)
    if mime_type is None:
        mime_type, _ = mimetypes.guess_type(f"file{extension}", strict=False)
    return normalize_mime(mime_type)


def get_extension(mime_type: Optional[str]) -> Optional[str]:
    mime_type = normalize_mime(mime_type)
    if mime_type is None:
        return None
    extension = MIME_TO_EXTENSION.get(mime_type)
    if extension is None:
        extension = mimetypes.guess_extension(mime_type, strict=False)
    return normalize_extension(extension)


def charset_from_mime(mime_type: Optional[str]) -> Optional[str]:
    """Return the ``charset=`` parameter of a Content-Type value, if any."""
    if not mime_type or ';' not in mime_type:
        return None
    for parameter in mime_type.split(';')[1:]:
        key, _, value = parameter.partition('=')
        if key.strip().lower() == 'charset' and value.strip():
            return value.strip().strip('"').lower()
    return None
