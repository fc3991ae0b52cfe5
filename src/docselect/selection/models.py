"""Selection options and result models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from docselect.conflicts.models import ConflictSummary
from docselect.graph.models import ConflictPair, ResolutionIssue
from docselect.models import ConflictResolution, Document, Strategy
from docselect.scoring.models import ScoringResult


class SelectionOptions(BaseModel):
    """Per-call options. `None` falls back to the configuration."""

    strategy: str | Strategy | None = None
    enable_optimization: bool = False
    max_iterations: int | None = Field(default=None, ge=1)
    convergence_threshold: float | None = Field(default=None, ge=0.0)
    conflict_resolution: ConflictResolution | None = None
    include_optional: bool | None = None
    max_depth: int | None = Field(default=None, ge=0)
    enable_conflict_analysis: bool = False


class ScoringSummary(BaseModel):
    total_score: float = 0.0
    average_score: float = 0.0
    max_score: float = 0.0
    min_score: float = 0.0
    average_confidence: float = 0.0
    results: list[ScoringResult] = Field(default_factory=list)  # Selected documents only


class OptimizationMetrics(BaseModel):
    space_utilization: float = 0.0
    quality_score: float = 0.0
    diversity_score: float = 0.0
    balance_score: float = 0.0


class CoverageAnalysis(BaseModel):
    category_coverage: dict[str, int] = Field(default_factory=dict)
    tag_coverage: dict[str, int] = Field(default_factory=dict)
    audience_coverage: dict[str, int] = Field(default_factory=dict)
    complexity_distribution: dict[str, int] = Field(default_factory=dict)


class DependencySummary(BaseModel):
    resolved_count: int = 0
    included_dependencies: int = 0  # Added to satisfy required prerequisites
    cycle_count: int = 0
    cycles: list[list[str]] = Field(default_factory=list)
    missing_references: int = 0
    malformed_entries: int = 0
    unsatisfied: list[ResolutionIssue] = Field(default_factory=list)


class SelectionConflicts(BaseModel):
    resolved: int = 0
    remaining: int = 0
    excluded_ids: list[str] = Field(default_factory=list)
    flagged: list[ConflictPair] = Field(default_factory=list)
    analysis: ConflictSummary | None = None  # Present with enable_conflict_analysis


class SelectionMetadata(BaseModel):
    elapsed_ms: float = 0.0
    algorithms_used: list[str] = Field(default_factory=list)
    iterations: int = 0
    convergence_achieved: bool = False
    # Local search is reported apart from the algorithm loop
    local_search_iterations: int = 0
    local_search_converged: bool | None = None
    candidates_considered: int = 0
    filtered_out: int = 0
    warnings: list[str] = Field(default_factory=list)


class SelectionResult(BaseModel):
    selected_documents: list[Document] = Field(default_factory=list)
    strategy: str = ""
    algorithm: str = ""
    total_size: int = 0
    max_characters: int = 0
    scoring: ScoringSummary = Field(default_factory=ScoringSummary)
    optimization: OptimizationMetrics = Field(default_factory=OptimizationMetrics)
    coverage: CoverageAnalysis = Field(default_factory=CoverageAnalysis)
    dependencies: DependencySummary = Field(default_factory=DependencySummary)
    conflicts: SelectionConflicts = Field(default_factory=SelectionConflicts)
    metadata: SelectionMetadata = Field(default_factory=SelectionMetadata)

    @property
    def selected_ids(self) -> list[str]:
        return [d.id for d in self.selected_documents]

    def summary(self) -> str:
        """One-line human-readable summary."""
        return (
            f"{len(self.selected_documents)} documents, {self.total_size:,}/"
            f"{self.max_characters:,} units ({self.optimization.space_utilization:.0%}), "
            f"quality {self.optimization.quality_score:.2f} via {self.algorithm}"
        )
