"""Image enrichment through the configured image-understanding provider."""

import asyncio
import io
from typing import List, Optional, Sequence, Tuple

import structlog

from segmark.detection import mime
from segmark.detection.stream_info import StreamInfo
from segmark.models import ImageArtifact, MetadataKeys
from segmark.providers.base import DocumentImageResult, ImageUnderstandingRequest, ImageUnderstandingResult
from segmark.services.context import ConversionContext
from segmark.services.placeholders import ImagePlaceholderFormatter

logger = structlog.get_logger(__name__)


class ImageEnricher:
    """Merges provider captions and OCR text into image artifacts.

    Provider failures, timeouts and empty answers leave the artifact as it
    was; only cancellation propagates.
    """

    async def enrich(
        self,
        artifact: ImageArtifact,
        stream_info: StreamInfo,
        context: ConversionContext,
        location: Optional[str] = None,
    ) -> bool:
        """Enrich ``artifact`` in place.

        Args:
            artifact: Image to describe.
            stream_info: Descriptor of the document the image came from.
            context: Conversion context holding the provider and semaphore.
            location: Human readable position, passed to the provider.

        Returns:
            True if the provider contributed anything.
        """
        context.check_cancelled()
        if not context.image_understanding_enabled:
            return False

        provider = context.providers.image_understanding
        image_info = StreamInfo(
            mime_type=artifact.content_type,
            extension=mime.get_extension(artifact.content_type),
            file_name=stream_info.file_name,
            url=stream_info.url,
        )
        request = ImageUnderstandingRequest(context=location)

        async with context.image_semaphore:
            context.check_cancelled()
            try:
                result = await asyncio.wait_for(
                    provider.analyze(io.BytesIO(artifact.data), image_info, request),
                    timeout=context.provider_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Image understanding timed out",
                               page=artifact.page_number,
                               timeout=context.provider_timeout)
                return False
            except Exception as e:
                logger.warning("Image understanding failed",
                               page=artifact.page_number,
                               error=str(e),
                               error_type=type(e).__name__)
                return False

        if result is None:
            return False
        return self.apply(artifact, result, provider_name=getattr(provider, "name", type(provider).__name__),
                          include_details=context.options.image.enable_ai_enrichment)

    async def enrich_all(
        self,
        items: Sequence[Tuple[ImageArtifact, Optional[str]]],
        stream_info: StreamInfo,
        context: ConversionContext,
    ) -> List[bool]:
        """Enrich ``(artifact, location)`` pairs concurrently.

        At most ``max_parallel_image_analysis`` provider calls run at once.
        """
        return await asyncio.gather(*(
            self.enrich(artifact, stream_info, context, location=location)
            for artifact, location in items
        ))

    @staticmethod
    def apply(
        artifact: ImageArtifact,
        result: ImageUnderstandingResult,
        provider_name: str,
        include_details: bool = True,
    ) -> bool:
        changed = False
        caption = (result.caption or "").strip()
        text = (result.text or "").strip()

        if caption:
            artifact.metadata[MetadataKeys.CAPTION] = caption
            artifact.label = caption
            changed = True
        if text:
            artifact.metadata[MetadataKeys.OCR_TEXT] = text
            artifact.raw_text = text
            changed = True

        if include_details and (result.tags or result.objects):
            details = []
            if result.tags:
                details.append(f"Tags: {', '.join(result.tags)}")
            if result.objects:
                details.append(f"Objects: {', '.join(result.objects)}")
            artifact.detailed_description = "\n".join(details)
            changed = True

        for key, value in (result.metadata or {}).items():
            if value is not None and str(value).strip():
                artifact.metadata.setdefault(f"image.{key}", str(value))

        if changed:
            artifact.metadata[MetadataKeys.PROVIDER] = provider_name
        return changed


_enricher = ImageEnricher()


def get_image_enricher() -> ImageEnricher:
    return _enricher


async def create_image_artifact(
    image: DocumentImageResult,
    stream_info: StreamInfo,
    context: ConversionContext,
    page_number: Optional[int] = None,
) -> ImageArtifact:
    """Turn a layout-analysis image into an enriched artifact."""
    page = image.page_number if image.page_number is not None else page_number
    caption = (image.caption or "").strip() or None

    metadata = {str(k): str(v) for k, v in (image.metadata or {}).items()}
    if page is not None:
        metadata[MetadataKeys.PAGE] = str(page)
    if caption:
        metadata[MetadataKeys.CAPTION] = caption

    artifact = ImageArtifact(
        data=image.content,
        content_type=image.content_type,
        page_number=page,
        source=stream_info.resolve_file_name() or stream_info.url,
        label=caption or (f"Image on page {page}" if page is not None else None),
        raw_text=metadata.get(MetadataKeys.OCR_TEXT),
        metadata=metadata,
    )
    location = f"page {page}" if page is not None else None
    await _enricher.enrich(artifact, stream_info, context, location=location)
    return artifact


async def place_image(
    artifact: ImageArtifact,
    context: ConversionContext,
    label_context: Optional[str] = None,
    inline: bool = False,
) -> str:
    """Persist ``artifact`` when a workspace is active and assign its placeholder.

    Args:
        artifact: Enriched image.
        context: Conversion context.
        label_context: Location prefix for the alt text, e.g. ``"Image (page 2)"``.
        inline: Embed the bytes as a data URI when nothing is persisted.

    Returns:
        The placeholder Markdown.
    """
    if context.workspace is not None:
        await context.workspace.persist_image(artifact)
        placeholder = ImagePlaceholderFormatter.build(artifact, artifact.caption, label_context)
    elif inline:
        alt = ImagePlaceholderFormatter.resolve_alt_text(
            artifact, artifact.caption or "", label_context or ""
        )
        placeholder = ImagePlaceholderFormatter.build_data_uri(artifact, alt)
    else:
        placeholder = ImagePlaceholderFormatter.build(artifact, artifact.caption, label_context)

    artifact.placeholder_markdown = placeholder
    return placeholder
