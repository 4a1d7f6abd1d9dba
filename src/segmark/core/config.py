from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import structlog

logger = structlog.get_logger(__name__)


class Settings(BaseSettings):
    # Logging Configuration
    log_level: str = "INFO"
    log_format: str = "console"  # json or console
    log_file: Optional[str] = None
    log_max_size: str = "10MB"
    log_backup_count: int = 5
    log_rotation: str = "size"  # daily, weekly, hourly, size

    # Stream detection
    sniff_sample_size: int = 16 * 1024

    # Archive limits
    max_zip_entry_size: int = 50 * 1024 * 1024  # 50MB

    # Segment composition
    include_segment_metadata_in_markdown: bool = False
    audio_segment_seconds: int = 60

    # Image analysis
    image_understanding_enabled: bool = True
    document_intelligence_enabled: bool = True
    ai_enrichment_enabled: bool = True
    max_parallel_image_analysis: int = 4
    provider_timeout: float = 60.0

    # PDF processing
    pdf_treat_pages_as_images: bool = False
    pdf_render_dpi: int = 144

    # Artifact workspace
    workspace_root: Optional[str] = None
    keep_workspace: bool = False

    # Optional providers
    gemini_api_key: Optional[str] = None
    gemini_vision_model: str = "gemini-1.5-flash"
    tesseract_language: str = "eng"

    model_config = SettingsConfigDict(
        env_prefix="SEGMARK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("max_parallel_image_analysis", "audio_segment_seconds", "pdf_render_dpi")
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value


settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
