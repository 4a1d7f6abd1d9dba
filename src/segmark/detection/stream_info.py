"""Descriptor for an input byte stream."""

from dataclasses import dataclass, fields, replace
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

from segmark.detection import mime


def _extension_of(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    suffix = PurePosixPath(name.replace('\\', '/')).suffix
    return mime.normalize_extension(suffix)


@dataclass(frozen=True)
class StreamInfo:
    """Hints about a stream: declared MIME type, extension, name and origin."""

    mime_type: Optional[str] = None
    extension: Optional[str] = None
    charset: Optional[str] = None
    file_name: Optional[str] = None
    local_path: Optional[str] = None
    url: Optional[str] = None

    def __post_init__(self):
        if self.extension is not None:
            object.__setattr__(self, 'extension', mime.normalize_extension(self.extension))
        if self.charset is not None:
            object.__setattr__(self, 'charset', self.charset.strip().lower() or None)

    def with_(self, **changes) -> 'StreamInfo':
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def copy_and_update(self, other: Optional['StreamInfo'] = None, **changes) -> 'StreamInfo':
        """Overlay the non-empty fields of ``other`` (and ``changes``) onto a copy."""
        updates = {}
        if other is not None:
            for item in fields(other):
                value = getattr(other, item.name)
                if value is not None:
                    updates[item.name] = value
        updates.update({key: value for key, value in changes.items() if value is not None})
        return replace(self, **updates)

    def resolve_mime_type(self) -> Optional[str]:
        """Normalized MIME type, falling back to the one implied by the extension."""
        return mime.normalize_mime(self.mime_type) or mime.get_mime_type(self.resolve_extension())

    def resolve_extension(self) -> Optional[str]:
        """Extension, falling back to the file name, local path or URL path."""
        if self.extension:
            return self.extension
        for candidate in (self.file_name, self.local_path, self._url_path()):
            extension = _extension_of(candidate)
            if extension:
                return extension
        return None

    def resolve_file_name(self) -> Optional[str]:
        for candidate in (self.file_name, self.local_path, self._url_path()):
            if candidate:
                name = PurePosixPath(candidate.replace('\\', '/')).name
                if name:
                    return name
        return None

    def describe(self) -> str:
        parts = []
        if self.file_name:
            parts.append(f"file={self.file_name}")
        if self.extension:
            parts.append(f"ext={self.extension}")
        if self.mime_type:
            parts.append(f"mime={self.mime_type}")
        return ", ".join(parts) or "no descriptor"

    def _url_path(self) -> Optional[str]:
        if not self.url:
            return None
        return unquote(urlparse(self.url).path) or None
