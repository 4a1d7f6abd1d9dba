"""Text normalization and plain-text to Markdown heuristics."""

import re
from typing import Optional

_SPACE_EQUIVALENTS = str.maketrans({
    '\t': ' ',
    '\u00a0': ' ',
    '\u202f': ' ',
    '\u2007': ' ',
})

_INVISIBLE = dict.fromkeys(map(ord, '\u200b\u200c\u200d\u2060\ufeff\u00ad'))

_SPACE_RUN = re.compile(r' {2,}')
_SPACE_BEFORE_NEWLINE = re.compile(r' +\n')
_SPACE_AFTER_NEWLINE = re.compile(r'\n +')
_BLANK_LINE_RUN = re.compile(r'\n{3,}')

_NUMBERED_ITEM = re.compile(r'^(\d+)\.?\s+(.*)$')
_LIST_MARKERS = ('•', '-', '*')


class TextSanitizer:
    """Normalizes whitespace and invisible characters in extracted text."""

    @staticmethod
    def normalize(value: Optional[str], trim: bool = True, collapse: bool = True) -> str:
        """Normalize ``value`` for Markdown output.

        Args:
            value: Raw text. ``None`` and the literal ``"null"`` become empty.
            trim: Strip leading and trailing whitespace.
            collapse: Collapse repeated spaces and limit blank-line runs to one.

        Returns:
            The normalized text.
        """
        if value is None:
            return ''

        text = value.replace('\r\n', '\n').replace('\r', '\n')
        text = text.translate(_SPACE_EQUIVALENTS).translate(_INVISIBLE)

        if collapse:
            text = _SPACE_RUN.sub(' ', text)
            text = _SPACE_BEFORE_NEWLINE.sub('\n', text)
            text = _SPACE_AFTER_NEWLINE.sub('\n', text)
            text = _BLANK_LINE_RUN.sub('\n\n', text)

        if trim:
            text = text.strip()
        elif not text.strip():
            text = ''

        if text.strip().lower() == 'null':
            return ''
        return text


def is_likely_header(line: str) -> bool:
    """Short, mostly upper-case lines without trailing punctuation read as headings."""
    if len(line) > 80 or line.endswith('.') or line.endswith(','):
        return False
    upper = sum(1 for ch in line if ch.isupper())
    lower = sum(1 for ch in line if ch.islower())
    return upper > lower and upper > 2


def is_list_item(line: str) -> bool:
    if line.startswith(_LIST_MARKERS):
        return True
    return _NUMBERED_ITEM.match(line) is not None


def convert_list_item(line: str) -> str:
    if line.startswith('•'):
        return line.replace('•', '-')
    match = _NUMBERED_ITEM.match(line)
    if match:
        return f"{match.group(1)}. {match.group(2)}"
    return line


def convert_text_to_markdown(text: Optional[str]) -> str:
    """Apply light Markdown structure to plain extracted text.

    Upper-case lines become ``##`` headings, ``•`` bullets become ``-`` and
    numbered items are normalized to ``N. text``. Horizontal rules are kept.
    """
    if not text or not text.strip():
        return ''

    lines = []
    for line in text.split('\n'):
        trimmed = line.strip()
        if not trimmed:
            lines.append('')
        elif trimmed == '---':
            lines.append('\n---\n')
        elif is_likely_header(trimmed):
            lines.append(f"## {trimmed}")
            lines.append('')
        elif is_list_item(trimmed):
            lines.append(convert_list_item(trimmed))
        else:
            lines.append(trimmed)

    return '\n'.join(lines).strip()


def extract_title(text: Optional[str]) -> Optional[str]:
    """Pick a plausible title from the first ten non-empty lines of ``text``."""
    if not text or not text.strip():
        return None

    lines = [line for line in text.split('\n') if line]
    for line in lines[:10]:
        trimmed = line.strip()
        if 5 < len(trimmed) < 100 and 'Page ' not in trimmed and not trimmed.isdigit():
            return trimmed
    return None


def normalize_title(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    normalized = ' '.join(value.replace('\r\n', '\n').replace('\r', '\n').split('\n')).strip()
    return normalized or None


def format_emphasis(text: str, bold: bool, italic: bool) -> str:
    """Wrap ``text`` in emphasis markers, keeping surrounding whitespace outside."""
    core = text.strip()
    if not core or not (bold or italic):
        return text
    leading = text[:len(text) - len(text.lstrip())]
    trailing = text[len(text.rstrip()):]
    if bold and italic:
        core = f"***{core}***"
    elif bold:
        core = f"**{core}**"
    else:
        core = f"*{core}*"
    return f"{leading}{core}{trailing}"


def format_file_size(size: int) -> str:
    """``1536`` -> ``1.5 KB``."""
    units = ("bytes", "KB", "MB", "GB")
    value = float(size)
    order = 0
    while value >= 1024 and order < len(units) - 1:
        value /= 1024
        order += 1
    text = f"{value:.2f}".rstrip('0').rstrip('.')
    return f"{text} {units[order]}"


def escape_markdown(text: Optional[str]) -> str:
    """Escape the characters that would turn plain text into emphasis or code."""
    if not text:
        return ""
    return text.replace('\\', '\\\\').replace('`', '\\`').replace('*', '\\*').replace('_', '\\_')
