"""Scoring result models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TagAffinity(BaseModel):
    """Affinity between one document and the target tags."""

    matched: list[str] = Field(default_factory=list)
    compatible: list[str] = Field(default_factory=list)
    incompatible: list[str] = Field(default_factory=list)
    raw_affinity: float = 0.0  # Unweighted mean contribution
    weighted_affinity: float = 0.0  # Weighted sum / total weight
    weighted_sum: float = 0.0
    total_weight: float = 0.0


class SubScores(BaseModel):
    category: float = 0.0
    tag: float = 0.0
    priority: float = 0.0
    dependency: float = 0.0
    contextual: float = 0.0
    total: float = 0.0


class ScoringResult(BaseModel):
    document_id: str
    scores: SubScores = Field(default_factory=SubScores)
    confidence: float = 1.0
    breakdown: dict[str, float] = Field(default_factory=dict)  # Weighted contributions
    tag_affinity: TagAffinity = Field(default_factory=TagAffinity)
    reasoning: list[str] = Field(default_factory=list)

    @property
    def total(self) -> float:
        return self.scores.total
