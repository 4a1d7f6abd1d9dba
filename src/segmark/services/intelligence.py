"""Segments and artifacts from a document-intelligence layout analysis."""

import asyncio
from typing import Awaitable, BinaryIO, Callable, Dict, List, Optional

import structlog

from segmark.detection.stream_info import StreamInfo
from segmark.models import ConversionArtifacts, ImageArtifact, MetadataKeys, MetadataValues, TableArtifact
from segmark.providers.base import DocumentIntelligenceResult
from segmark.services.context import ConversionContext
from segmark.services.images import create_image_artifact, get_image_enricher, place_image
from segmark.services.pages import ExtractionResult, PageMap, image_token, table_token
from segmark.services.tables import TableReconciler

logger = structlog.get_logger(__name__)

SnapshotRenderer = Callable[[int], Awaitable[Optional[bytes]]]


def _table_page_references(analysis: DocumentIntelligenceResult) -> Dict[int, List[int]]:
    references: Dict[int, List[int]] = {}
    for page in analysis.pages:
        for index in dict.fromkeys(page.table_indices):
            if 0 <= index < len(analysis.tables):
                references.setdefault(index, []).append(page.page_number)
    return references


async def build_from_analysis(
    analysis: DocumentIntelligenceResult,
    stream_info: StreamInfo,
    context: ConversionContext,
    snapshot_renderer: Optional[SnapshotRenderer] = None,
    provider_name: Optional[str] = None,
    reconciler: Optional[TableReconciler] = None,
) -> ExtractionResult:
    """Assemble page segments from a layout analysis.

    Page text may reference tables with ``{{TABLE:i}}`` and images with
    ``{{IMAGE:i}}``. A table referenced from several pages is rendered once,
    on the first of them; later references become a continuation comment.

    Args:
        analysis: Provider output.
        stream_info: Descriptor of the analyzed document.
        context: Conversion context.
        snapshot_renderer: Renders a page to PNG bytes, used when pages are
            treated as images.
        provider_name: Recorded in the artifact metadata.
        reconciler: Table reconciler to use.

    Returns:
        The page segments, artifacts and concatenated raw text.
    """
    reconciler = reconciler or TableReconciler()
    source = stream_info.resolve_file_name() or stream_info.url
    pages = PageMap()
    artifacts = ConversionArtifacts()
    raw_text: List[str] = []

    references = _table_page_references(analysis)
    rendered_tables: Dict[int, int] = {}
    placed_images = set()

    for page in sorted(analysis.pages, key=lambda p: p.page_number):
        context.check_cancelled()
        number = page.page_number
        pages.get(number)
        pages.append(number, page.text)
        if page.text and page.text.strip():
            raw_text.append(page.text.strip())

        for index in dict.fromkeys(page.table_indices):
            if not 0 <= index < len(analysis.tables):
                logger.warning("Page references unknown table", page=number, table_index=index)
                continue

            token = table_token(index)
            if index in rendered_tables:
                first_page = rendered_tables[index]
                pages.place(number, token, f"<!-- Table {index + 1} continues from page {first_page} -->")
                continue

            table = analysis.tables[index]
            rows = reconciler.normalize(table.rows)
            if not rows:
                pages.replace_placeholder(number, token, "")
                continue
            rendered_tables[index] = number

            referencing = references.get(index, [number])
            page_start, page_end = min(referencing), max(referencing)
            page_range = str(page_start) if page_start == page_end else f"{page_start}-{page_end}"

            comment = (table.metadata.get(MetadataKeys.TABLE_COMMENT) or "").strip()
            if not comment and page_end > page_start:
                comment = f"<!-- Table spans pages {page_range} -->"

            markdown = reconciler.to_markdown(rows)
            pages.place(number, token, f"{comment}\n{markdown}" if comment else markdown)

            metadata = {str(k): str(v) for k, v in table.metadata.items()}
            metadata.update({
                MetadataKeys.TABLE_INDEX: str(index + 1),
                MetadataKeys.TABLE_PAGE_START: str(page_start),
                MetadataKeys.TABLE_PAGE_END: str(page_end),
                MetadataKeys.TABLE_PAGE_RANGE: page_range,
                MetadataKeys.PAGE: str(number),
            })
            if comment:
                metadata[MetadataKeys.TABLE_COMMENT] = comment
            artifacts.tables.append(TableArtifact(
                rows=rows,
                page_number=number,
                source=source,
                label=f"Table {index + 1}",
                metadata=metadata,
            ))

        for index in dict.fromkeys(page.image_indices):
            if not 0 <= index < len(analysis.images) or index in placed_images:
                continue
            placed_images.add(index)
            artifact = await create_image_artifact(analysis.images[index], stream_info, context, page_number=number)
            placeholder = await place_image(artifact, context, f"Image (page {number})")
            pages.place(number, image_token(index), placeholder)
            pages.add_image(number, artifact)
            artifacts.images.append(artifact)

    for index, image in enumerate(analysis.images):
        if index in placed_images or image.page_number is None or image.page_number not in pages:
            continue
        context.check_cancelled()
        number = image.page_number
        artifact = await create_image_artifact(image, stream_info, context)
        pages.append(number, await place_image(artifact, context, f"Image (page {number})"))
        pages.add_image(number, artifact)
        artifacts.images.append(artifact)

    if context.options.pdf.treat_pages_as_images and snapshot_renderer is not None:
        await _append_snapshots(pages, artifacts, stream_info, context, snapshot_renderer, source)

    segments = pages.flush(source, artifacts)
    artifacts.metadata[MetadataKeys.DOCUMENT_INTELLIGENCE_PROVIDER] = (
        provider_name or MetadataValues.PROVIDER_DOCUMENT_INTELLIGENCE
    )
    artifacts.metadata[MetadataKeys.DOCUMENT_PAGES] = str(len(segments))

    logger.info("Built segments from layout analysis",
                pages=len(segments),
                tables=len(artifacts.tables),
                images=len(artifacts.images))

    return ExtractionResult(segments=segments, artifacts=artifacts, raw_text="\n\n".join(raw_text))


async def _append_snapshots(
    pages: PageMap,
    artifacts: ConversionArtifacts,
    stream_info: StreamInfo,
    context: ConversionContext,
    renderer: SnapshotRenderer,
    source: Optional[str],
) -> None:
    enricher = get_image_enricher()
    for number in list(pages):
        context.check_cancelled()
        accumulator = pages.get(number)
        if accumulator.images:
            continue

        data = await renderer(number)
        if not data:
            continue

        artifact = ImageArtifact(
            data=data,
            content_type="image/png",
            page_number=number,
            source=source,
            label=f"Page {number} snapshot",
            metadata={MetadataKeys.PAGE: str(number), MetadataKeys.SNAPSHOT: MetadataValues.TRUE},
        )
        await enricher.enrich(artifact, stream_info, context, location=f"page {number}")
        pages.append(number, await place_image(artifact, context, f"Image (page {number})"))
        pages.add_image(number, artifact)
        artifacts.images.append(artifact)


async def run_document_intelligence(
    stream: BinaryIO,
    stream_info: StreamInfo,
    context: ConversionContext,
    snapshot_renderer: Optional[SnapshotRenderer] = None,
    reconciler: Optional[TableReconciler] = None,
) -> Optional[ExtractionResult]:
    """Analyze ``stream`` with the configured provider and build page segments.

    Returns:
        ``None`` when the provider raised, returned nothing or returned no
        pages, so the caller can fall back to its own extraction.
    """
    provider = context.providers.document_intelligence
    if provider is None:
        return None

    provider_name = getattr(provider, "name", type(provider).__name__)
    context.check_cancelled()
    try:
        stream.seek(0)
        analysis = await asyncio.wait_for(
            provider.analyze(stream, stream_info),
            timeout=context.provider_timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("Document intelligence timed out, falling back",
                       provider=provider_name,
                       timeout=context.provider_timeout)
        return None
    except Exception as e:
        logger.warning("Document intelligence failed, falling back",
                       provider=provider_name,
                       error=str(e),
                       error_type=type(e).__name__)
        return None

    if analysis is None or not analysis.pages:
        logger.info("Document intelligence returned no pages, falling back", provider=provider_name)
        return None

    return await build_from_analysis(
        analysis,
        stream_info,
        context,
        snapshot_renderer=snapshot_renderer,
        provider_name=provider_name,
        reconciler=reconciler,
    )
