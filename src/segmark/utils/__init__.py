"""Text helpers shared by converters and the composer."""

from .text import (
    TextSanitizer,
    convert_text_to_markdown,
    escape_markdown,
    extract_title,
    format_emphasis,
    format_file_size,
    is_likely_header,
    normalize_title,
)

__all__ = [
    "TextSanitizer",
    "convert_text_to_markdown",
    "escape_markdown",
    "extract_title",
    "format_emphasis",
    "format_file_size",
    "is_likely_header",
    "normalize_title",
]
