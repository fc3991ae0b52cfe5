"""Document dependency graph: construction, cycles, ordering and conflicts."""

from docselect.graph.models import (
    DependencyGraph,
    ResolutionOptions,
    ResolutionResult,
    TopologicalOrder,
)
from docselect.graph.resolver import DependencyGraphResolver

__all__ = [
    "DependencyGraph",
    "DependencyGraphResolver",
    "ResolutionOptions",
    "ResolutionResult",
    "TopologicalOrder",
]
