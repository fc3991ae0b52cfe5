"""Dependency graph and resolution result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import networkx as nx
from pydantic import BaseModel, Field

from docselect.exceptions import GraphError
from docselect.models import ConflictResolution, Document, Severity


class EdgeKind(str, Enum):
    PREREQUISITE = "prerequisite"
    REFERENCE = "reference"


class IssueKind(str, Enum):
    MALFORMED_ENTRY = "malformed-entry"
    DUPLICATE_ID = "duplicate-id"
    UNSATISFIED_DEPENDENCY = "unsatisfied-dependency"


class MissingReference(BaseModel):
    """A relation pointing at an id that is not in the pool."""

    source_id: str
    target_id: str
    relation: str  # prerequisite | reference | conflict | complement | followup


class ResolutionIssue(BaseModel):
    kind: IssueKind
    document_id: str
    related_id: str | None = None
    relation: str | None = None
    message: str = ""


class ConflictPair(BaseModel):
    """An undirected declared conflict, collected once per pair."""

    first: str
    second: str
    severity: Severity | None = None
    reason: str = ""

    @property
    def ids(self) -> tuple[str, str]:
        return (self.first, self.second)


@dataclass
class DependencyGraph:
    """Documents as nodes, `prereq -> doc` and `ref -> doc` edges.

    Nodes are document ids; the Document is stored as the `document` node
    attribute. Edge attributes: `kind`, `importance`, `weight`.
    """

    graph: nx.DiGraph = field(default_factory=nx.DiGraph)
    missing_references: list[MissingReference] = field(default_factory=list)
    errors: list[ResolutionIssue] = field(default_factory=list)
    conflicts: list[ConflictPair] = field(default_factory=list)

    @property
    def nodes(self) -> list[str]:
        return list(self.graph.nodes)

    @property
    def edges(self) -> dict[str, dict]:
        """Edges keyed "from->to"."""
        return {f"{u}->{v}": dict(data) for u, v, data in self.graph.edges(data=True)}

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self.graph

    def document(self, doc_id: str) -> Document:
        if doc_id not in self.graph:
            raise GraphError(f"Document '{doc_id}' is not in the graph")
        return self.graph.nodes[doc_id]["document"]

    def documents(self, ids: list[str] | None = None) -> list[Document]:
        ids = self.nodes if ids is None else ids
        return [self.document(i) for i in ids if i in self.graph]

    def prerequisites_of(self, doc_id: str) -> list[str]:
        return [
            u for u in self.graph.predecessors(doc_id)
            if self.graph.edges[u, doc_id]["kind"] == EdgeKind.PREREQUISITE
        ]

    def dependents_of(self, doc_id: str) -> list[str]:
        return [
            v for v in self.graph.successors(doc_id)
            if self.graph.edges[doc_id, v]["kind"] == EdgeKind.PREREQUISITE
        ]


class TopologicalOrder(BaseModel):
    order: list[str] = Field(default_factory=list)
    complete: bool = True  # False when the DFS fallback had to place cyclic nodes
    cycles: list[list[str]] = Field(default_factory=list)


class TruncatedExpansion(BaseModel):
    document_id: str
    dependency_id: str
    depth: int


class ClosureResult(BaseModel):
    included: list[str] = Field(default_factory=list)  # BFS order, seeds excluded
    truncated: list[TruncatedExpansion] = Field(default_factory=list)
    unsatisfied: list[ResolutionIssue] = Field(default_factory=list)


class ResolutionOptions(BaseModel):
    max_depth: int = Field(default=3, ge=0)
    include_optional: bool = False
    conflict_resolution: ConflictResolution = ConflictResolution.EXCLUDE_CONFLICTS
    ordering: str = "dependency"  # dependency | priority


class AppliedResolution(BaseModel):
    strategy: ConflictResolution
    action: str  # exclude | flag | remove-edge
    reason: str
    affected_ids: list[str] = Field(default_factory=list)
    excluded_ids: list[str] = Field(default_factory=list)


class DependencyInfo(BaseModel):
    document_id: str
    prerequisites: list[str] = Field(default_factory=list)
    dependents: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    depth: int = 0
    is_root: bool = False
    is_leaf: bool = False


class GraphStatistics(BaseModel):
    nodes: int = 0
    edges: int = 0
    prerequisite_edges: int = 0
    reference_edges: int = 0
    roots: int = 0
    leaves: int = 0
    average_depth: float = 0.0
    max_depth: int = 0
    cycles: int = 0
    conflicts: int = 0
    missing_references: int = 0


class ResolutionResult(BaseModel):
    resolved: list[Document] = Field(default_factory=list)  # Dependency-respecting order
    order_complete: bool = True
    included_dependencies: list[str] = Field(default_factory=list)
    excluded: list[str] = Field(default_factory=list)
    resolutions: list[AppliedResolution] = Field(default_factory=list)
    flagged: list[ConflictPair] = Field(default_factory=list)  # Manual review
    cycles: list[list[str]] = Field(default_factory=list)
    missing_references: list[MissingReference] = Field(default_factory=list)
    truncated: list[TruncatedExpansion] = Field(default_factory=list)
    unsatisfied: list[ResolutionIssue] = Field(default_factory=list)
    errors: list[ResolutionIssue] = Field(default_factory=list)
    statistics: GraphStatistics = Field(default_factory=GraphStatistics)

    @property
    def resolved_ids(self) -> list[str]:
        return [d.id for d in self.resolved]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
