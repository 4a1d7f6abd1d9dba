"""Tests for the bundled image providers."""

import io
from unittest.mock import Mock, patch

import pytest

from segmark.core.config import Settings
from segmark.core.exceptions import ExternalServiceError, MissingDependencyError
from segmark.detection.stream_info import StreamInfo
from segmark.providers.gemini import GeminiImageUnderstandingProvider, _split_list, parse_sections
from segmark.providers.tesseract import TesseractImageUnderstandingProvider, join_confident_words


class TestGeminiSections:
    """Sectioned model answers."""

    def test_named_sections(self):
        """Each section keeps its text; TEXT keeps line breaks."""
        answer = "CAPTION: A bar chart\nTEXT: Line one\nLine two\nTAGS: chart, sales\nOBJECTS: None"
        sections = parse_sections(answer)

        assert sections["caption"] == "A bar chart"
        assert sections["text"] == "Line one\nLine two"
        assert _split_list(sections["tags"]) == ["chart", "sales"]
        assert _split_list(sections["objects"]) == []

    def test_preamble_becomes_caption(self):
        """Lines before the first section are treated as the caption."""
        sections = parse_sections("A scanned receipt\nTEXT: none")

        assert sections["caption"] == "A scanned receipt"
        assert sections["text"] == ""

    def test_unknown_labels_are_content(self):
        """Colons in ordinary lines do not start a section."""
        sections = parse_sections("TEXT: Total: 42\nNote: paid")
        assert sections["text"] == "Total: 42\nNote: paid"


class TestTesseractWords:
    """Rebuilding lines from word boxes."""

    def test_low_confidence_words_dropped(self):
        """Words at or below the threshold and empty boxes are skipped."""
        data = {
            'conf': ['-1', '95', '90', '20', 'x', '88'],
            'text': ['', 'Hello', 'world', 'noise', 'bad', 'Next'],
            'block_num': [1, 1, 1, 1, 1, 1],
            'par_num': [1, 1, 1, 1, 1, 1],
            'line_num': [0, 1, 1, 1, 1, 2],
        }
        assert join_confident_words(data, 30) == "Hello world\nNext"

    def test_nothing_confident(self):
        assert join_confident_words({'conf': ['10'], 'text': ['a'], 'block_num': [1], 'par_num': [1], 'line_num': [1]}, 30) == ""


class TestProviderAvailability:
    """Optional libraries and configuration."""

    def test_tesseract_requires_pytesseract(self):
        with patch("segmark.providers.tesseract.TESSERACT_AVAILABLE", False):
            with pytest.raises(MissingDependencyError):
                TesseractImageUnderstandingProvider()

    def test_gemini_requires_library(self):
        with patch("segmark.providers.gemini.GEMINI_AVAILABLE", False):
            with pytest.raises(MissingDependencyError):
                GeminiImageUnderstandingProvider(Settings(gemini_api_key="key"))

    def test_gemini_requires_api_key(self):
        """A missing key is reported before the client is configured."""
        with patch("segmark.providers.gemini.GEMINI_AVAILABLE", True):
            with pytest.raises(ExternalServiceError, match="API key"):
                GeminiImageUnderstandingProvider(Settings(gemini_api_key=None))


@pytest.mark.asyncio
class TestTesseractProvider:
    """OCR calls with a mocked pytesseract."""

    async def test_analyze_uses_configured_language(self, png_bytes):
        """Words come back as text and the language reaches Tesseract."""
        ocr = Mock()
        ocr.image_to_data.return_value = {
            'conf': ['91', '87'],
            'text': ['Invoice', '42'],
            'block_num': [1, 1],
            'par_num': [1, 1],
            'line_num': [1, 1],
        }
        with patch("segmark.providers.tesseract.TESSERACT_AVAILABLE", True), \
                patch("segmark.providers.tesseract.pytesseract", ocr, create=True):
            provider = TesseractImageUnderstandingProvider(Settings(tesseract_language="deu"))
            result = await provider.analyze(io.BytesIO(png_bytes), StreamInfo(file_name="scan.png"))

        assert result.text == "Invoice 42"
        assert result.caption is None
        assert result.metadata == {"language": "deu"}
        assert ocr.image_to_data.call_args.kwargs["config"] == "--psm 3 -l deu"

    async def test_ocr_failure_is_external_error(self, png_bytes):
        ocr = Mock()
        ocr.image_to_data.side_effect = RuntimeError("tesseract not found")
        with patch("segmark.providers.tesseract.TESSERACT_AVAILABLE", True), \
                patch("segmark.providers.tesseract.pytesseract", ocr, create=True):
            provider = TesseractImageUnderstandingProvider(Settings())
            with pytest.raises(ExternalServiceError):
                await provider.analyze(io.BytesIO(png_bytes), StreamInfo(file_name="scan.png"))
