"""Configuration options for a conversion call."""

from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from typing import Optional

from segmark.core.config import Settings, settings as default_settings


class PdfConversionMode(Enum):
    """Per-call override of the PDF extraction strategy."""
    AUTO = "auto"
    EMBEDDED_TEXT = "embedded_text"
    RENDERED_PAGE_OCR = "rendered_page_ocr"


@dataclass(frozen=True)
class AudioSegmentOptions:
    segment_duration: timedelta = timedelta(minutes=1)

    def __post_init__(self):
        if self.segment_duration <= timedelta(0):
            raise ValueError("segment_duration must be positive")


@dataclass(frozen=True)
class ImageSegmentOptions:
    enable_document_intelligence: bool = True
    enable_image_understanding_provider: bool = True
    enable_ai_enrichment: bool = True


@dataclass(frozen=True)
class PdfSegmentOptions:
    treat_pages_as_images: bool = False
    render_dpi: int = 144

    def __post_init__(self):
        if self.render_dpi <= 0:
            raise ValueError(f"render_dpi must be positive, got {self.render_dpi}")


@dataclass(frozen=True)
class SegmentOptions:
    """Options controlling segmentation, enrichment and annotation."""

    include_segment_metadata_in_markdown: bool = False
    audio: AudioSegmentOptions = field(default_factory=AudioSegmentOptions)
    image: ImageSegmentOptions = field(default_factory=ImageSegmentOptions)
    pdf: PdfSegmentOptions = field(default_factory=PdfSegmentOptions)
    max_parallel_image_analysis: int = 4

    def __post_init__(self):
        if self.max_parallel_image_analysis <= 0:
            raise ValueError(
                f"max_parallel_image_analysis must be positive, got {self.max_parallel_image_analysis}"
            )

    @classmethod
    def default(cls, config: Optional[Settings] = None) -> 'SegmentOptions':
        """Build options from settings (environment / .env)."""
        config = config or default_settings
        return cls(
            include_segment_metadata_in_markdown=config.include_segment_metadata_in_markdown,
            audio=AudioSegmentOptions(segment_duration=timedelta(seconds=config.audio_segment_seconds)),
            image=ImageSegmentOptions(
                enable_document_intelligence=config.document_intelligence_enabled,
                enable_image_understanding_provider=config.image_understanding_enabled,
                enable_ai_enrichment=config.ai_enrichment_enabled,
            ),
            pdf=PdfSegmentOptions(
                treat_pages_as_images=config.pdf_treat_pages_as_images,
                render_dpi=config.pdf_render_dpi,
            ),
            max_parallel_image_analysis=config.max_parallel_image_analysis,
        )

    def with_pdf_mode(self, mode: Optional[PdfConversionMode]) -> 'SegmentOptions':
        if mode is None or mode is PdfConversionMode.AUTO:
            return self
        treat_pages_as_images = mode is PdfConversionMode.RENDERED_PAGE_OCR
        return replace(self, pdf=replace(self.pdf, treat_pages_as_images=treat_pages_as_images))


@dataclass(frozen=True)
class ArtifactStorageOptions:
    """Where (and whether) images, the source copy and the markdown are written."""

    enabled: bool = False
    root_directory: Optional[str] = None
    copy_source_document: bool = False
    persist_markdown: bool = False
    keep_workspace: bool = False

    @classmethod
    def default(cls, config: Optional[Settings] = None) -> 'ArtifactStorageOptions':
        config = config or default_settings
        return cls(
            enabled=bool(config.workspace_root),
            root_directory=config.workspace_root,
            keep_workspace=config.keep_workspace,
        )
