"""Result models for tag filtering and tag analysis."""

from __future__ import annotations

from pydantic import BaseModel, Field

from docselect.models import Complexity, Document


class FilterOptions(BaseModel):
    required_tags: list[str] = Field(default_factory=list)
    excluded_tags: list[str] = Field(default_factory=list)
    target_audience: list[str] = Field(default_factory=list)
    enforce_tag_compatibility: bool = False
    require_all_required: bool = True  # False: one required tag is enough
    complexity_level: Complexity | None = None


class ExclusionReason(BaseModel):
    # missing-required-tags | no-required-tags | excluded-tags | audience-mismatch
    # | complexity-mismatch | incompatible-tags
    code: str
    message: str
    tags: list[str] = Field(default_factory=list)


class FilterStatistics(BaseModel):
    total: int = 0
    included: int = 0
    excluded: int = 0
    by_reason: dict[str, int] = Field(default_factory=dict)
    tag_coverage: dict[str, int] = Field(default_factory=dict)  # Over included documents


class FilterResult(BaseModel):
    filtered: list[Document] = Field(default_factory=list)
    exclusion_reasons: dict[str, list[ExclusionReason]] = Field(default_factory=dict)
    statistics: FilterStatistics = Field(default_factory=FilterStatistics)


class SynergyPair(BaseModel):
    tags: tuple[str, str]
    co_occurrences: int
    strength: float  # (0, 1]


class TagGrouping(BaseModel):
    groups: dict[str, list[str]] = Field(default_factory=dict)  # Signature -> document ids
    largest_group_size: int = 0
    smallest_group_size: int = 0
    most_common_tags: list[tuple[str, int]] = Field(default_factory=list)
    least_common_tags: list[tuple[str, int]] = Field(default_factory=list)
    synergy_pairs: list[SynergyPair] = Field(default_factory=list)


class TagPatterns(BaseModel):
    most_frequent_tags: list[tuple[str, int]] = Field(default_factory=list)
    frequent_combinations: list[tuple[str, int]] = Field(default_factory=list)
    orphan_tags: list[str] = Field(default_factory=list)
    audience_distribution: dict[str, int] = Field(default_factory=dict)
    complexity_distribution: dict[str, int] = Field(default_factory=dict)


class TagSynergy(BaseModel):
    tags: tuple[str, str]  # (document tag, target tag)
    strength: float
    description: str = ""


class SynergisticDocument(BaseModel):
    document: Document
    synergies: list[TagSynergy] = Field(default_factory=list)
    total_synergy_score: float = 0.0
