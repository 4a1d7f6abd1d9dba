"""Tests for the PDF converter strategies."""

import io

import pytest

from segmark.converters.pdf import PdfConverter, _overlap_ratio
from segmark.detection.stream_info import StreamInfo
from segmark.models import (
    ArtifactStorageOptions,
    MetadataKeys,
    PdfConversionMode,
    PdfSegmentOptions,
    SegmentOptions,
    SegmentType,
)
from segmark.providers.base import (
    ConversionProviders,
    DocumentIntelligenceResult,
    DocumentPageResult,
    ImageUnderstandingResult,
)
from segmark.services.context import ConversionContext
from segmark.services.source import materialize_source

from stubs import StubDocumentIntelligence, StubImageUnderstanding


def provider_context(options, **providers):
    return ConversionContext(
        options=options,
        storage=ArtifactStorageOptions(),
        providers=ConversionProviders(**providers),
    )


def ocr_provider():
    return StubImageUnderstanding(ImageUnderstandingResult(text="SCANNED INVOICE\nTotal due 42"))


class TestOverlap:
    """Text-in-table detection."""

    def test_overlap_ratio(self):
        """The share of the block inside the table is returned."""
        assert _overlap_ratio((0, 0, 10, 10), (0, 0, 10, 10)) == 1.0
        assert _overlap_ratio((0, 0, 10, 10), (5, 0, 20, 10)) == 0.5
        assert _overlap_ratio((0, 0, 10, 10), (20, 20, 30, 30)) == 0.0


@pytest.mark.asyncio
class TestPdfConverter:
    """Embedded text, layout analysis and rendered pages."""

    async def test_embedded_text(self, converter, pdf_bytes):
        """Each page becomes a PAGE segment with Markdown structure."""
        result = await converter.convert(pdf_bytes, StreamInfo(file_name="summary.pdf"))

        assert result.metadata["converter"] == "pdf"
        assert result.metadata["strategy"] == "embedded-text"
        assert [s.type for s in result.segments] == [SegmentType.PAGE, SegmentType.PAGE]
        assert [s.number for s in result.segments] == [1, 2]
        assert "## QUARTERLY SUMMARY" in result.segments[0].markdown
        assert "Revenue grew in every region." in result.segments[0].markdown
        assert result.segments[1].markdown == "Second page body."
        assert result.title == "QUARTERLY SUMMARY"
        assert 'pages: "2"' in result.markdown
        assert result.artifacts.metadata[MetadataKeys.DOCUMENT_PAGES] == "2"

    async def test_document_intelligence_first(self, options, pdf_bytes):
        """A layout provider is used when configured."""
        provider = StubDocumentIntelligence(DocumentIntelligenceResult(
            pages=[DocumentPageResult(page_number=1, text="From the layout service")],
        ))
        context = provider_context(options, document_intelligence=provider)

        result = await PdfConverter().convert(io.BytesIO(pdf_bytes), StreamInfo(file_name="a.pdf"), context)

        assert result.metadata["strategy"] == "document-intelligence"
        assert result.segments[0].markdown == "From the layout service"
        assert provider.calls == 1

    async def test_document_intelligence_failure_falls_back(self, options, pdf_bytes):
        """Provider errors fall back to the embedded text."""
        provider = StubDocumentIntelligence(error=RuntimeError("service down"))
        context = provider_context(options, document_intelligence=provider)

        result = await PdfConverter().convert(io.BytesIO(pdf_bytes), StreamInfo(file_name="a.pdf"), context)

        assert result.metadata["strategy"] == "embedded-text"
        assert provider.calls == 1

    async def test_blank_pdf_is_rendered_for_ocr(self, options, blank_pdf_bytes):
        """Pages without a text layer are rasterized and read by the image provider."""
        provider = ocr_provider()
        context = provider_context(options, image_understanding=provider)

        result = await PdfConverter().convert(io.BytesIO(blank_pdf_bytes), StreamInfo(file_name="scan.pdf"), context)

        assert result.metadata["strategy"] == "rendered-pages"
        assert result.segments[0].markdown == (
            "**Image:** Image on page 1\n\n## SCANNED INVOICE\n\nTotal due 42"
        )
        image = result.artifacts.images[0]
        assert image.content_type == "image/png"
        assert image.metadata[MetadataKeys.SNAPSHOT] == "true"
        assert image.segment_index == 0
        assert provider.contexts == ["page 1"]
        assert result.title == "SCANNED INVOICE"

    async def test_blank_pdf_without_provider(self, context, blank_pdf_bytes):
        """Without OCR the rendered page is still represented."""
        result = await PdfConverter().convert(io.BytesIO(blank_pdf_bytes), StreamInfo(file_name="scan.pdf"), context)

        assert result.metadata["strategy"] == "rendered-pages"
        assert result.segments[0].markdown == "**Image:** Image on page 1"

    async def test_rendered_page_mode_skips_layout_service(self, options, pdf_bytes):
        """Treating pages as images bypasses document intelligence."""
        layout = StubDocumentIntelligence(DocumentIntelligenceResult(
            pages=[DocumentPageResult(page_number=1, text="unused")],
        ))
        context = provider_context(options, document_intelligence=layout, image_understanding=ocr_provider())

        result = await PdfConverter().convert(
            io.BytesIO(pdf_bytes), StreamInfo(file_name="a.pdf"), context,
            mode=PdfConversionMode.RENDERED_PAGE_OCR,
        )

        assert result.metadata["strategy"] == "rendered-pages"
        assert layout.calls == 0
        assert len(result.artifacts.images) == 2
        assert "Total due 42" in result.segments[1].markdown

    async def test_embedded_mode_ignores_page_option(self, pdf_bytes):
        """An explicit embedded-text mode overrides the page option."""
        options = SegmentOptions(pdf=PdfSegmentOptions(treat_pages_as_images=True))
        context = provider_context(options)

        result = await PdfConverter().convert(
            io.BytesIO(pdf_bytes), StreamInfo(file_name="a.pdf"), context,
            mode=PdfConversionMode.EMBEDDED_TEXT,
        )

        assert result.metadata["strategy"] == "embedded-text"


def crashing_renderer(*args, **kwargs):
    raise RuntimeError("rasterizer crashed")


@pytest.mark.asyncio
class TestRenderingFailures:
    """Rasterization errors degrade to text instead of failing the document."""

    async def test_page_images_fall_back_to_embedded_text(self, monkeypatch, pdf_bytes):
        """Treating pages as images falls through to the text layer."""
        monkeypatch.setattr(PdfConverter, "_render_pages", staticmethod(crashing_renderer))
        options = SegmentOptions(pdf=PdfSegmentOptions(treat_pages_as_images=True))

        result = await PdfConverter().convert(
            io.BytesIO(pdf_bytes), StreamInfo(file_name="a.pdf"), provider_context(options, image_understanding=ocr_provider())
        )

        assert result.metadata["strategy"] == "embedded-text"
        assert result.segments[1].markdown == "Second page body."
        assert result.artifacts.images == []

    async def test_scanned_pdf_keeps_text_only_result(self, monkeypatch, options, blank_pdf_bytes):
        """A PDF without text and without renderable pages still converts."""
        monkeypatch.setattr(PdfConverter, "_render_pages", staticmethod(crashing_renderer))

        result = await PdfConverter().convert(
            io.BytesIO(blank_pdf_bytes), StreamInfo(file_name="scan.pdf"), provider_context(options)
        )

        assert result.metadata["strategy"] == "embedded-text"
        assert result.artifacts.images == []

    async def test_snapshot_failure_skips_page_image(self, monkeypatch, pdf_bytes):
        """Layout results keep their text when the page snapshot cannot be drawn."""
        monkeypatch.setattr(PdfConverter, "_render_pages", staticmethod(crashing_renderer))
        options = SegmentOptions(pdf=PdfSegmentOptions(treat_pages_as_images=True))
        layout = StubDocumentIntelligence(DocumentIntelligenceResult(
            pages=[DocumentPageResult(page_number=1, text="Layout text")],
        ))
        context = provider_context(options, document_intelligence=layout)
        stream = io.BytesIO(pdf_bytes)

        async with materialize_source(stream, ".pdf") as path:
            extraction = await PdfConverter()._extract_with_document_intelligence(
                stream, path, StreamInfo(file_name="a.pdf"), context
            )

        assert extraction.segments[0].markdown == "Layout text"
        assert extraction.artifacts.images == []


@pytest.mark.asyncio
class TestEmbeddedLayout:
    """Tables and pictures placed where they occur on the page."""

    async def test_table_replaces_its_text_blocks(self, converter, split_table_pdf_bytes):
        """The table is rendered after the paragraph that precedes it."""
        result = await converter.convert(split_table_pdf_bytes, StreamInfo(file_name="figures.pdf"))

        page = result.segments[0].markdown
        table = "| Region | Amount |\n| --- | --- |\n| North | 10 |"
        assert page.index("Quarterly figures follow.") < page.index(table)
        assert "Region" not in page.replace(table, "")

    async def test_split_row_merged_across_pages(self, converter, split_table_pdf_bytes):
        """A table continued on the next page becomes one artifact spanning both pages."""
        result = await converter.convert(split_table_pdf_bytes, StreamInfo(file_name="figures.pdf"))

        assert len(result.artifacts.tables) == 1
        table = result.artifacts.tables[0]
        assert table.metadata[MetadataKeys.TABLE_PAGE_RANGE] == "1-2"
        assert table.rows == [
            ["Region", "Amount"],
            ["North", "10"],
            ["Notes", "first half second half"],
            ["South", "20"],
        ]
        assert "<!-- Table spans pages 1-2 -->" in result.segments[0].markdown

        second = result.segments[1].markdown
        assert second.index("<!-- Table 1 continues from page 1 -->") < second.index("End of report.")
        assert "{{TABLE:" not in result.markdown
        assert result.markdown.count("| Notes | first half second half |") == 1

    async def test_picture_between_paragraphs(self, converter, image_pdf_bytes):
        """Embedded pictures keep their position in the reading order."""
        result = await converter.convert(image_pdf_bytes, StreamInfo(file_name="chart.pdf"))

        page = result.segments[0].markdown
        assert page.index("Before the chart.") < page.index("**Image:** Image on page 1") < page.index("After the chart.")
        image = result.artifacts.images[0]
        assert image.page_number == 1
        assert image.segment_index == 0
        assert "{{IMAGE:" not in result.markdown


@pytest.mark.asyncio
class TestParallelEnrichment:
    """Rendered pages share the image-analysis limit."""

    @pytest.mark.parametrize("limit", [1, 2])
    async def test_pages_analyzed_up_to_limit(self, pdf_bytes, limit):
        """Both pages are in flight together only when the limit allows it."""
        provider = StubImageUnderstanding(ImageUnderstandingResult(text="Total due 42"), delay=0.05)
        context = provider_context(SegmentOptions(max_parallel_image_analysis=limit), image_understanding=provider)

        result = await PdfConverter().convert(
            io.BytesIO(pdf_bytes), StreamInfo(file_name="a.pdf"), context,
            mode=PdfConversionMode.RENDERED_PAGE_OCR,
        )

        assert provider.calls == 2
        assert provider.peak == limit
        assert sorted(provider.contexts) == ["page 1", "page 2"]
        assert [image.page_number for image in result.artifacts.images] == [1, 2]


class TestPdfAcceptance:
    """Signature checks."""

    def test_requires_pdf_header(self):
        """A .pdf name alone is not enough."""
        converter = PdfConverter()
        info = StreamInfo(extension=".pdf")
        assert not converter.accepts(io.BytesIO(b"plain text"), info)
        assert converter.accepts(io.BytesIO(b"%PDF-1.7\n"), info)
