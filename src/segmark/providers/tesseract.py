"""OCR-only image understanding through Tesseract."""

import asyncio
import io
from typing import BinaryIO, Optional

import structlog
from PIL import Image

from segmark.core.config import Settings, settings as default_settings
from segmark.core.exceptions import ExternalServiceError, MissingDependencyError
from segmark.detection.stream_info import StreamInfo
from segmark.providers.base import (
    ImageUnderstandingProvider,
    ImageUnderstandingRequest,
    ImageUnderstandingResult,
)

logger = structlog.get_logger(__name__)

try:
    import pytesseract
    TESSERACT_AVAILABLE = True
except ImportError:
    TESSERACT_AVAILABLE = False
    logger.warning("pytesseract not available, Tesseract OCR disabled")


class TesseractImageUnderstandingProvider(ImageUnderstandingProvider):
    """Extracts the text in an image. Produces no caption."""

    name = "tesseract"

    def __init__(
        self,
        config: Optional[Settings] = None,
        psm: int = 3,
        confidence_threshold: int = 30,
    ):
        if not TESSERACT_AVAILABLE:
            raise MissingDependencyError("pytesseract is required for OCR", dependency="pytesseract")
        config = config or default_settings
        self.language = config.tesseract_language
        self.psm = psm
        self.confidence_threshold = confidence_threshold

    async def analyze(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        request: Optional[ImageUnderstandingRequest] = None,
    ) -> Optional[ImageUnderstandingResult]:
        language = (request.language if request and request.language else self.language)

        try:
            with Image.open(io.BytesIO(stream.read())) as img:
                if img.mode != "RGB":
                    img = img.convert("RGB")

                logger.debug("Extracting text with Tesseract",
                             language=language,
                             psm=self.psm)

                data = await asyncio.to_thread(
                    pytesseract.image_to_data,
                    img,
                    config=f'--psm {self.psm} -l {language}',
                    output_type=pytesseract.Output.DICT
                )
        except Exception as e:
            logger.error("Tesseract OCR failed", error=str(e))
            raise ExternalServiceError(f"Tesseract OCR failed: {str(e)}", "tesseract")

        text = join_confident_words(data, self.confidence_threshold)
        if not text:
            return None

        return ImageUnderstandingResult(text=text, metadata={"language": language})


def join_confident_words(data: dict, confidence_threshold: int) -> str:
    """Rebuild lines from ``image_to_data`` output, keeping confident words."""
    lines = {}
    for i, conf in enumerate(data.get('conf', [])):
        try:
            confidence = float(conf)
        except (TypeError, ValueError):
            continue
        if confidence <= confidence_threshold:
            continue
        word = str(data['text'][i]).strip()
        if not word:
            continue
        key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
        lines.setdefault(key, []).append(word)

    return "\n".join(" ".join(words) for _, words in sorted(lines.items()))
