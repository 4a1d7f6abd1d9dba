"""segmark: document to Markdown conversion.

segmark converts PDF, Office (DOCX, XLSX, PPTX), EPUB, email, HTML, CSV,
JSON, XML, images, audio and ZIP archives into Markdown. Every conversion
returns the composed Markdown together with the ordered segments (pages,
slides, sheets, chapters, timed audio windows) and the artifacts (text
blocks, reconciled tables, images) it was built from.

## Usage

```python
from segmark import DocumentConverter

converter = DocumentConverter()
result = await converter.convert("report.pdf")

print(result.title)
for segment in result.segments:
    print(segment.type, segment.number, segment.label)
```

Optional providers plug in layout analysis, image captioning/OCR and
transcription:

```python
from segmark import ConversionProviders, DocumentConverter
from segmark.providers.tesseract import TesseractImageUnderstandingProvider

converter = DocumentConverter(
    providers=ConversionProviders(image_understanding=TesseractImageUnderstandingProvider()),
)
```

## Configuration

Defaults come from ``SEGMARK_*`` environment variables (or ``.env``), see
``segmark.core.config.Settings``.
"""

from .converters import BaseConverter, DocumentConverter
from .core import (
    CancellationToken,
    ConversionCancelledError,
    FileConversionError,
    MissingDependencyError,
    SegmarkException,
    UnsupportedFormatError,
    configure_logging,
    settings,
)
from .detection import StreamInfo
from .models import (
    ArtifactStorageOptions,
    ConversionArtifacts,
    DocumentConverterResult,
    DocumentSegment,
    ImageArtifact,
    MetadataKeys,
    PdfConversionMode,
    SegmentOptions,
    SegmentType,
    TableArtifact,
    TextArtifact,
)
from .providers import ConversionProviders

__version__ = "0.1.0"

__all__ = [
    "BaseConverter",
    "DocumentConverter",
    "CancellationToken",
    "ConversionCancelledError",
    "FileConversionError",
    "MissingDependencyError",
    "SegmarkException",
    "UnsupportedFormatError",
    "configure_logging",
    "settings",
    "StreamInfo",
    "ArtifactStorageOptions",
    "ConversionArtifacts",
    "DocumentConverterResult",
    "DocumentSegment",
    "ImageArtifact",
    "MetadataKeys",
    "PdfConversionMode",
    "SegmentOptions",
    "SegmentType",
    "TableArtifact",
    "TextArtifact",
    "ConversionProviders",
]
