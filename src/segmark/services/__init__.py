"""Services shared by the converters: tables, images, pages and composition."""

from .composer import ComposedMarkdown, SegmentMarkdownComposer
from .context import ConversionContext
from .images import ImageEnricher, create_image_artifact, place_image
from .intelligence import build_from_analysis, run_document_intelligence
from .pages import ExtractionResult, PageAccumulator, PageMap, strip_unresolved_tokens, table_token
from .placeholders import ImagePlaceholderFormatter
from .source import materialize_source
from .tables import ExpandableCell, MergedTable, TableFragment, TableReconciler
from .workspace import ArtifactWorkspace

__all__ = [
    "ComposedMarkdown",
    "SegmentMarkdownComposer",
    "ConversionContext",
    "ImageEnricher",
    "create_image_artifact",
    "place_image",
    "build_from_analysis",
    "run_document_intelligence",
    "ExtractionResult",
    "PageAccumulator",
    "PageMap",
    "strip_unresolved_tokens",
    "table_token",
    "ImagePlaceholderFormatter",
    "materialize_source",
    "ExpandableCell",
    "MergedTable",
    "TableFragment",
    "TableReconciler",
    "ArtifactWorkspace",
]
