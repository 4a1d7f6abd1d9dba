"""Markdown placeholders for image artifacts."""

import base64
import posixpath
from typing import Optional
from urllib.parse import quote

from segmark.models import ImageArtifact, MetadataKeys
from segmark.utils.text import TextSanitizer


class ImagePlaceholderFormatter:
    """Builds the Markdown that stands in for an image in the page text."""

    @classmethod
    def build(
        cls,
        image: ImageArtifact,
        summary: Optional[str] = None,
        context: Optional[str] = None,
    ) -> str:
        """Build a placeholder for ``image``.

        Args:
            image: The artifact being placed.
            summary: Caption or description to use as alt text.
            context: Location label such as ``"Image (page 3)"``, prefixed to
                the summary.

        Returns:
            ``![alt](path)`` when the image was persisted, else ``**Image:** alt``.
        """
        if image is None:
            raise ValueError("image is required")

        summary = TextSanitizer.normalize(summary or image.caption)
        context = TextSanitizer.normalize(context)
        alt_text = cls.resolve_alt_text(image, summary, context)

        target = cls.resolve_target(image)
        if target:
            return f"![{cls.escape_alt_text(alt_text)}]({quote(target, safe='/')})"
        return f"**Image:** {alt_text}"

    @classmethod
    def build_data_uri(cls, image: ImageArtifact, alt_text: Optional[str] = None) -> str:
        """Inline placeholder carrying the image bytes as a base64 data URI."""
        alt = cls.escape_alt_text(alt_text or cls.resolve_alt_text(image, TextSanitizer.normalize(image.caption), ""))
        encoded = base64.b64encode(image.data).decode('ascii')
        return f"![{alt}](data:{image.content_type};base64,{encoded})"

    @classmethod
    def resolve_alt_text(cls, image: ImageArtifact, summary: str, context: str) -> str:
        if not summary:
            return cls.default_label(image)
        if context:
            return f"{context}: {summary}"
        return summary

    @staticmethod
    def default_label(image: ImageArtifact) -> str:
        if image.page_number is not None:
            return f"Image on page {image.page_number}"
        page = (image.metadata.get(MetadataKeys.PAGE) or "").strip()
        if page:
            return f"Image on page {page}"
        if image.label and image.label.strip():
            return image.label
        return "Image"

    @staticmethod
    def resolve_target(image: ImageArtifact) -> Optional[str]:
        for key in (MetadataKeys.ARTIFACT_RELATIVE_PATH, MetadataKeys.ARTIFACT_FILE_NAME):
            value = image.metadata.get(key)
            if value and value.strip():
                return _normalize_path(value)

        if image.relative_path:
            return _normalize_path(image.relative_path)

        for path in (image.file_path, image.metadata.get(MetadataKeys.ARTIFACT_PATH)):
            if path and path.strip():
                name = posixpath.basename(_normalize_path(path))
                return name or _normalize_path(path)
        return None

    @staticmethod
    def escape_alt_text(value: Optional[str]) -> str:
        if not value or not value.strip():
            return "Image"
        escaped = []
        for ch in value:
            if ch in '[]\\':
                escaped.append('\\' + ch)
            elif ch in '\r\n':
                escaped.append(' ')
            else:
                escaped.append(ch)
        return ''.join(escaped).strip()


def _normalize_path(value: str) -> str:
    return value.replace('\\', '/').strip()
