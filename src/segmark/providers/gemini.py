"""Image understanding through Google Gemini vision models."""

import asyncio
import io
from typing import BinaryIO, Dict, List, Optional

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
    import google.generativeai as genai
    GEMINI_AVAILABLE = True
except ImportError:
    GEMINI_AVAILABLE = False
    logger.warning("google-generativeai not available, Gemini image understanding disabled")

DEFAULT_PROMPT = """
Analyze this image and answer in exactly these sections:

CAPTION: one or two sentences describing the image
TEXT: all readable text in the image, top to bottom, or "None"
TAGS: comma-separated keywords
OBJECTS: comma-separated list of the main objects, people or items
"""

_SECTIONS = ("caption", "text", "tags", "objects")


class GeminiImageUnderstandingProvider(ImageUnderstandingProvider):
    """Captions images and transcribes visible text with a Gemini model."""

    name = "gemini"

    def __init__(self, config: Optional[Settings] = None, model_name: Optional[str] = None):
        config = config or default_settings
        if not GEMINI_AVAILABLE:
            raise MissingDependencyError(
                "google-generativeai is required for Gemini image understanding",
                dependency="google-generativeai",
            )
        if not config.gemini_api_key:
            raise ExternalServiceError("Gemini API key not configured", "gemini")

        genai.configure(api_key=config.gemini_api_key)
        self.model_name = model_name or config.gemini_vision_model
        self._model = genai.GenerativeModel(self.model_name)

    async def analyze(
        self,
        stream: BinaryIO,
        stream_info: StreamInfo,
        request: Optional[ImageUnderstandingRequest] = None,
    ) -> Optional[ImageUnderstandingResult]:
        prompt = (request.prompt if request and request.prompt else DEFAULT_PROMPT).strip()
        if request and request.context:
            prompt = f"{prompt}\n\nThe image appears in: {request.context}"

        try:
            data = stream.read()
            with Image.open(io.BytesIO(data)) as img:
                if img.mode != "RGB":
                    img = img.convert("RGB")

                logger.debug("Analyzing image with Gemini",
                             model=self.model_name,
                             file_name=stream_info.file_name)

                response = await asyncio.to_thread(
                    self._model.generate_content,
                    [prompt, img]
                )
        except Exception as e:
            logger.error("Gemini image analysis failed",
                         model=self.model_name,
                         error=str(e))
            raise ExternalServiceError(f"Image analysis failed: {str(e)}", "gemini")

        answer = response.text.strip() if getattr(response, "text", None) else ""
        if not answer:
            return None

        sections = parse_sections(answer)
        return ImageUnderstandingResult(
            caption=sections["caption"] or None,
            text=sections["text"] or None,
            tags=_split_list(sections["tags"]),
            objects=_split_list(sections["objects"]),
            metadata={"model": self.model_name},
        )


def parse_sections(answer: str) -> Dict[str, str]:
    """Split a sectioned model answer into its named parts.

    Lines before the first recognised section are treated as the caption.
    """
    content = {section: "" for section in _SECTIONS}
    current = "caption"

    for line in answer.split('\n'):
        stripped = line.strip()
        if not stripped:
            continue

        head, sep, rest = stripped.partition(':')
        key = head.strip().strip('*').strip().lower()
        if sep and key in content:
            current = key
            stripped = rest.strip()
            if not stripped:
                continue

        if content[current]:
            joiner = '\n' if current == "text" else ' '
            content[current] += joiner + stripped
        else:
            content[current] = stripped

    if content["text"].lower() in ("none", "no text detected"):
        content["text"] = ""
    return content


def _split_list(value: str) -> List[str]:
    if not value or value.lower() == "none":
        return []
    return [item.strip() for item in value.split(',') if item.strip()]
