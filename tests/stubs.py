"""Provider stubs used across the test suite."""

import asyncio
from typing import BinaryIO, Optional

from segmark.detection.stream_info import StreamInfo
from segmark.providers.base import (
    DocumentIntelligenceProvider,
    DocumentIntelligenceResult,
    ImageUnderstandingProvider,
    ImageUnderstandingResult,
    MediaTranscriptionProvider,
    MediaTranscriptionResult,
)


class StubDocumentIntelligence(DocumentIntelligenceProvider):
    name = "stub-layout"

    def __init__(self, result: Optional[DocumentIntelligenceResult] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls = 0

    async def analyze(self, stream: BinaryIO, stream_info: StreamInfo, request=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class StubImageUnderstanding(ImageUnderstandingProvider):
    name = "stub-vision"

    def __init__(
        self,
        result: Optional[ImageUnderstandingResult] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0
        self.contexts = []
        self.active = 0
        self.peak = 0

    async def analyze(self, stream: BinaryIO, stream_info: StreamInfo, request=None):
        self.calls += 1
        self.contexts.append(request.context if request else None)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if self.error is not None:
            raise self.error
        return self.result


class StubTranscription(MediaTranscriptionProvider):
    name = "stub-speech"

    def __init__(self, result: Optional[MediaTranscriptionResult] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls = 0

    async def transcribe(self, stream: BinaryIO, stream_info: StreamInfo, request=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result
