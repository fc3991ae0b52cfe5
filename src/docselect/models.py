"""Core data models: documents, selection contexts, constraints and strategies."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class PriorityTier(str, Enum):
    """Ordered priority bucket, most important first."""

    CRITICAL = "critical"
    ESSENTIAL = "essential"
    IMPORTANT = "important"
    REFERENCE = "reference"
    SUPPLEMENTARY = "supplementary"

    @property
    def rank(self) -> int:
        """Higher rank means more important (critical=4, supplementary=0)."""
        return len(_TIER_ORDER) - 1 - _TIER_ORDER.index(self)


_TIER_ORDER = list(PriorityTier)


class Complexity(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def level(self) -> int:
        return list(Complexity).index(self)


class Importance(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"


class Severity(str, Enum):
    """Conflict severity, ordered minor < moderate < major."""

    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class SelectionAlgorithm(str, Enum):
    GREEDY = "greedy"
    KNAPSACK = "knapsack"
    TOPSIS = "topsis"
    HYBRID = "hybrid"


class ConflictResolution(str, Enum):
    """How the resolver settles declared conflicts."""

    EXCLUDE_CONFLICTS = "exclude-conflicts"  # Drop lower scorer, ties flagged
    HIGHER_SCORE_WINS = "higher-score-wins"  # Always keep the higher scorer
    BREAK_CYCLES = "break-cycles"  # Cut the weakest edge of each cycle
    MANUAL_REVIEW = "manual-review"  # Exclude nothing, flag every pair


# ---------------------------------------------------------------------------
# Document relationships
# ---------------------------------------------------------------------------

# Link ids are optional so malformed entries survive parsing and get
# reported by the resolver instead of failing the whole pool.


class Prerequisite(BaseModel):
    document_id: str | None = None
    importance: Importance = Importance.REQUIRED
    reason: str = ""


class Reference(BaseModel):
    document_id: str | None = None
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    reason: str = ""


class ConflictLink(BaseModel):
    document_id: str | None = None
    severity: Severity | None = None
    reason: str = ""


class RelatedLink(BaseModel):
    """A complement or followup relation (informational, no ordering edge)."""

    document_id: str | None = None
    reason: str = ""


class DocumentDependencies(BaseModel):
    prerequisites: list[Prerequisite] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    conflicts: list[ConflictLink] = Field(default_factory=list)
    complements: list[RelatedLink] = Field(default_factory=list)
    followups: list[RelatedLink] = Field(default_factory=list)

    def required_ids(self) -> list[str]:
        return [
            p.document_id
            for p in self.prerequisites
            if p.document_id and p.importance == Importance.REQUIRED
        ]


class CompositionHints(BaseModel):
    """Author-supplied affinities, each value in [0, 1]."""

    category_affinity: dict[str, float] = Field(default_factory=dict)
    tag_affinity: dict[str, float] = Field(default_factory=dict)
    contextual_relevance: dict[str, float] = Field(default_factory=dict)

    @field_validator("category_affinity", "tag_affinity", "contextual_relevance")
    @classmethod
    def _unit_interval(cls, value: dict[str, float]) -> dict[str, float]:
        for key, v in value.items():
            if not 0.0 <= v <= 1.0:
                raise ValueError(f"affinity for '{key}' must be within [0, 1], got {v}")
        return value


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


class Document(BaseModel):
    """A candidate document as supplied by the discovery collaborator.

    `size` is an opaque cost unit (characters or words) and is never
    recomputed here. A `priority_score` of 0 means "unset".
    """

    id: str
    title: str = ""
    category: str = ""
    size: int = Field(default=0, ge=0)
    priority_score: float = Field(default=0.0, ge=0.0, le=100.0)
    priority_tier: PriorityTier = PriorityTier.IMPORTANT
    auto_calculated_priority: bool = False
    tags_primary: list[str] = Field(default_factory=list)
    tags_secondary: list[str] = Field(default_factory=list)
    audience: list[str] = Field(default_factory=list)
    complexity: Complexity = Complexity.INTERMEDIATE
    keywords: list[str] = Field(default_factory=list)
    dependencies: DocumentDependencies | None = None
    composition_hints: CompositionHints | None = None
    last_modified: datetime | None = None

    @field_validator("tags_primary", "tags_secondary", "audience", "keywords")
    @classmethod
    def _dedupe_lists(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    @property
    def all_tags(self) -> list[str]:
        return _dedupe(self.tags_primary + self.tags_secondary)

    @property
    def links(self) -> DocumentDependencies:
        """Dependency block, or an empty one when the document declares none."""
        return self.dependencies or DocumentDependencies()


# ---------------------------------------------------------------------------
# Selection inputs
# ---------------------------------------------------------------------------


class SelectionContext(BaseModel):
    """What the caller is composing for."""

    target_tags: list[str] = Field(default_factory=list)
    tag_weights: dict[str, float] = Field(default_factory=dict)
    target_category: str | None = None
    context_type: str | None = None
    target_audience: list[str] = Field(default_factory=list)
    required_topics: list[str] = Field(default_factory=list)
    selected_documents: list[Document] = Field(default_factory=list)  # Prior rounds

    @field_validator("target_tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    def weight_for(self, tag: str) -> float:
        return self.tag_weights.get(tag, 1.0)


class SelectionConstraints(BaseModel):
    """Budget and hard rules for one selection call.

    `max_characters` is the hard cap. `target_characters` is a soft goal.
    """

    max_characters: int = Field(ge=0)
    target_characters: int | None = Field(default=None, ge=0)
    context: SelectionContext = Field(default_factory=SelectionContext)
    required_tags: list[str] = Field(default_factory=list)
    excluded_tags: list[str] = Field(default_factory=list)
    target_audience: list[str] = Field(default_factory=list)
    enforce_tag_compatibility: bool = False
    required_document_ids: list[str] = Field(default_factory=list)

    @property
    def has_tag_constraints(self) -> bool:
        return bool(
            self.required_tags
            or self.excluded_tags
            or self.target_audience
            or self.enforce_tag_compatibility
        )


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class CriteriaWeights(BaseModel):
    """Scoring weights. Normalized by their sum when combined."""

    category_weight: float = Field(default=0.25, ge=0.0)
    tag_weight: float = Field(default=0.25, ge=0.0)
    dependency_weight: float = Field(default=0.25, ge=0.0)
    priority_weight: float = Field(default=0.25, ge=0.0)
    contextual_weight: float = Field(default=0.0, ge=0.0)

    def as_dict(self) -> dict[str, float]:
        return {
            "category": self.category_weight,
            "tag": self.tag_weight,
            "dependency": self.dependency_weight,
            "priority": self.priority_weight,
            "contextual": self.contextual_weight,
        }

    @classmethod
    def from_dict(cls, weights: dict[str, float]) -> CriteriaWeights:
        return cls(**{f"{name}_weight": value for name, value in weights.items()})

    @property
    def total(self) -> float:
        return sum(self.as_dict().values())


class TopsisWeights(BaseModel):
    relevance: float = Field(default=0.5, ge=0.0)
    efficiency: float = Field(default=0.25, ge=0.0)
    diversity: float = Field(default=0.25, ge=0.0)


class Strategy(BaseModel):
    """A named selection strategy."""

    name: str
    algorithm: SelectionAlgorithm = SelectionAlgorithm.GREEDY
    criteria: CriteriaWeights = Field(default_factory=CriteriaWeights)
    description: str = ""
    hybrid_algorithms: list[SelectionAlgorithm] = Field(
        default_factory=lambda: [
            SelectionAlgorithm.GREEDY,
            SelectionAlgorithm.KNAPSACK,
            SelectionAlgorithm.TOPSIS,
        ]
    )
    max_per_category: int | None = Field(default=None, ge=1)
    diversity_weight: float = Field(default=0.1, ge=0.0)
    balance_weight: float = Field(default=0.0, ge=0.0)
    topsis_weights: TopsisWeights = Field(default_factory=TopsisWeights)
