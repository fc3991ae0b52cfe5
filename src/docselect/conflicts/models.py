"""Conflict analysis models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from docselect.models import Document, Severity


class ConflictType(str, Enum):
    TAG_INCOMPATIBLE = "tag-incompatible"
    CONTENT_DUPLICATE = "content-duplicate"
    AUDIENCE_MISMATCH = "audience-mismatch"
    COMPLEXITY_GAP = "complexity-gap"
    CATEGORY_EXCLUSIVE = "category-exclusive"
    CUSTOM = "custom"


class ResolutionAction(str, Enum):
    EXCLUDE_FIRST = "exclude-first"
    EXCLUDE_SECOND = "exclude-second"
    KEEP_BOTH = "keep-both"
    MANUAL_REVIEW = "manual-review"


class SuggestedResolution(BaseModel):
    action: ResolutionAction
    reason: str = ""
    confidence: float = 0.5


class Conflict(BaseModel):
    id: str
    type: ConflictType
    severity: Severity
    document_ids: tuple[str, str]
    description: str
    impact: float = 0.0
    resolution: SuggestedResolution | None = None

    @property
    def auto_resolvable(self) -> bool:
        return (
            self.resolution is not None
            and self.resolution.action != ResolutionAction.MANUAL_REVIEW
        )


class ConflictDetectionOptions(BaseModel):
    enable_tag_incompatibility: bool = True
    enable_content_duplication: bool = True
    enable_audience_mismatch: bool = True
    enable_complexity_gap: bool = True
    enable_category_exclusivity: bool = True
    severity_threshold: Severity = Severity.MINOR
    auto_resolve: bool = True


class ConflictSummary(BaseModel):
    total: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    auto_resolvable: int = 0
    requires_manual_review: int = 0


class ResolutionStep(BaseModel):
    """One grouped action of a resolution plan."""

    step: int
    action: str  # exclude | review
    document_ids: list[str] = Field(default_factory=list)
    conflict_ids: list[str] = Field(default_factory=list)
    rationale: str = ""


class ConflictAnalysisResult(BaseModel):
    conflicts: list[Conflict] = Field(default_factory=list)
    summary: ConflictSummary = Field(default_factory=ConflictSummary)
    recommendations: list[str] = Field(default_factory=list)
    resolution_plan: list[ResolutionStep] = Field(default_factory=list)


class ExcludedDocument(BaseModel):
    document: Document
    reason: str
    conflict_ids: list[str] = Field(default_factory=list)


class ConflictApplication(BaseModel):
    resolved_documents: list[Document] = Field(default_factory=list)
    excluded_documents: list[ExcludedDocument] = Field(default_factory=list)
    unresolved: list[Conflict] = Field(default_factory=list)
