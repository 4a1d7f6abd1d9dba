"""Per-call state shared by the converters of one conversion."""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from segmark.core import cancellation
from segmark.core.cancellation import CancellationToken
from segmark.core.config import settings
from segmark.models import ArtifactStorageOptions, SegmentOptions
from segmark.providers.base import ConversionProviders
from segmark.services.workspace import ArtifactWorkspace


@dataclass
class ConversionContext:
    """Options, providers and resources for one conversion call.

    ``image_semaphore`` bounds concurrent image enrichment within the call.
    """
    options: SegmentOptions = field(default_factory=SegmentOptions.default)
    storage: ArtifactStorageOptions = field(default_factory=ArtifactStorageOptions)
    providers: ConversionProviders = field(default_factory=ConversionProviders)
    cancel_token: CancellationToken = cancellation.NONE
    workspace: Optional[ArtifactWorkspace] = None
    provider_timeout: Optional[float] = None
    image_semaphore: asyncio.Semaphore = field(init=False)

    def __post_init__(self):
        self.image_semaphore = asyncio.Semaphore(self.options.max_parallel_image_analysis)
        if self.provider_timeout is None:
            self.provider_timeout = settings.provider_timeout

    def check_cancelled(self) -> None:
        self.cancel_token.raise_if_cancelled()

    @property
    def image_understanding_enabled(self) -> bool:
        return (
            self.providers.image_understanding is not None
            and self.options.image.enable_image_understanding_provider
        )

    @property
    def document_intelligence_enabled(self) -> bool:
        return (
            self.providers.document_intelligence is not None
            and self.options.image.enable_document_intelligence
        )

    @property
    def persists_images(self) -> bool:
        return self.workspace is not None
