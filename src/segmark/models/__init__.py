"""Data model shared by every converter."""

from .artifacts import ConversionArtifacts, ImageArtifact, TableArtifact, TextArtifact
from .metadata_keys import MetadataKeys, MetadataValues
from .options import (
    ArtifactStorageOptions,
    AudioSegmentOptions,
    ImageSegmentOptions,
    PdfConversionMode,
    PdfSegmentOptions,
    SegmentOptions,
)
from .result import DocumentConverterResult
from .segments import DocumentSegment, SegmentType

__all__ = [
    "ConversionArtifacts",
    "ImageArtifact",
    "TableArtifact",
    "TextArtifact",
    "MetadataKeys",
    "MetadataValues",
    "ArtifactStorageOptions",
    "AudioSegmentOptions",
    "ImageSegmentOptions",
    "PdfConversionMode",
    "PdfSegmentOptions",
    "SegmentOptions",
    "DocumentConverterResult",
    "DocumentSegment",
    "SegmentType",
]
