"""Tag compatibility, filtering and co-occurrence analysis."""

from docselect.tags.compatibility import TagCompatibilityMatrix
from docselect.tags.filter import TagBasedDocumentFilter
from docselect.tags.models import FilterOptions, FilterResult, TagGrouping

__all__ = [
    "FilterOptions",
    "FilterResult",
    "TagBasedDocumentFilter",
    "TagCompatibilityMatrix",
    "TagGrouping",
]
