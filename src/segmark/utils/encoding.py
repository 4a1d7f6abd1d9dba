"""Byte-to-text decoding for textual converters."""

import codecs
from typing import Optional, Tuple

import structlog
from charset_normalizer import from_bytes

logger = structlog.get_logger(__name__)

_BOMS = (
    (codecs.BOM_UTF8, 'utf-8-sig'),
    (codecs.BOM_UTF32_LE, 'utf-32'),
    (codecs.BOM_UTF32_BE, 'utf-32'),
    (codecs.BOM_UTF16_LE, 'utf-16'),
    (codecs.BOM_UTF16_BE, 'utf-16'),
)


def charset_from_bom(data: bytes) -> Optional[str]:
    for bom, encoding in _BOMS:
        if data.startswith(bom):
            return encoding
    return None


def decode_bytes(data: bytes, declared_charset: Optional[str] = None) -> Tuple[str, str]:
    """Decode ``data`` to text.

    The byte order mark wins, then the declared charset, then
    charset-normalizer detection, then UTF-8 with replacement characters.

    Args:
        data: Raw bytes.
        declared_charset: Charset from the stream descriptor, if any.

    Returns:
        The decoded text and the encoding that was used.
    """
    if not data:
        return "", declared_charset or "utf-8"

    encoding = charset_from_bom(data)
    if encoding:
        return data.decode(encoding), encoding

    if declared_charset:
        try:
            return data.decode(declared_charset), declared_charset
        except (LookupError, UnicodeDecodeError) as e:
            logger.debug("Declared charset did not decode, detecting",
                         charset=declared_charset,
                         error=str(e))

    try:
        data.decode('utf-8')
        return data.decode('utf-8'), 'utf-8'
    except UnicodeDecodeError:
        pass

    match = from_bytes(data).best()
    if match is not None and match.encoding:
        return str(match), match.encoding

    logger.warning("Could not detect text encoding, decoding as UTF-8 with replacements")
    return data.decode('utf-8', errors='replace'), 'utf-8'
