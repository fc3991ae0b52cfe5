"""Weighted relevance scoring of one document against a selection context.

Subscores, each in [0, 1]:

  category    1.0 on exact match, else the document's category affinity hint,
              0.3 without a signal, 0.5 when no target category is set
  tag         weighted tag affinity (direct, secondary or compatible matches)
  priority    priority_score / 100, with 0 read as "unset" -> 0.5
  dependency  0.5 base, +0.3 prerequisite already selected, up to +0.3 for
              reference overlap, up to -0.8 for conflicts with the selection
  contextual  contextual_relevance[context_type], default 0.1

  total = sum(w_i * s_i) / sum(w_i), clamped to [0, 1]

A priority score of exactly 0 means "not set" throughout this package, so it
scores as neutral instead of worst. Callers that want "lowest priority"
should use 1.
"""

from __future__ import annotations

from docselect.config import SelectionConfig
from docselect.exceptions import ConfigError
from docselect.models import CriteriaWeights, Document, SelectionContext, Severity, Strategy
from docselect.scoring.models import ScoringResult, SubScores, TagAffinity
from docselect.tags.compatibility import TagCompatibilityMatrix, matrix_for

NEUTRAL_PRIORITY = 0.5
NEUTRAL_CATEGORY = 0.5
NO_CATEGORY_SIGNAL = 0.3
NEUTRAL_TAG = 0.5
DEFAULT_CONTEXTUAL = 0.1
SECONDARY_TAG_FACTOR = 0.7
# Tags, composition hints and dependencies: two or more absent caps confidence
SPARSE_CONFIDENCE_CAP = 0.5

_SEVERITY_PENALTY: dict[Severity | None, float] = {
    Severity.MAJOR: 0.5,
    Severity.MODERATE: 0.3,
    Severity.MINOR: 0.1,
}
_DEFAULT_SEVERITY_PENALTY = 0.2
_MAX_CONFLICT_PENALTY = 0.8


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def priority_value(document: Document) -> float:
    """Normalized priority with the zero-means-unset policy applied."""
    if document.priority_score == 0:
        return NEUTRAL_PRIORITY
    return _clamp(document.priority_score / 100)


class DocumentScorer:
    """Scores documents for one selection context."""

    def __init__(
        self,
        config: SelectionConfig,
        matrix: TagCompatibilityMatrix | None = None,
    ) -> None:
        self.config = config
        self.matrix = matrix or matrix_for(config.tags)

    def update_config(self, config: SelectionConfig) -> None:
        """Swap configuration and rebuild the compatibility matrix."""
        self.config = config
        self.matrix = matrix_for(config.tags)

    def _criteria(self, strategy: Strategy | CriteriaWeights | None) -> CriteriaWeights:
        if isinstance(strategy, CriteriaWeights):
            return strategy
        if isinstance(strategy, Strategy):
            return strategy.criteria
        default = self.config.strategies.get(self.config.default_strategy)
        return default.criteria if default else CriteriaWeights()

    # -------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------

    def score(
        self,
        document: Document,
        context: SelectionContext,
        strategy: Strategy | CriteriaWeights | None = None,
    ) -> ScoringResult:
        weights = self._criteria(strategy).as_dict()
        weight_sum = sum(weights.values())
        if weight_sum <= 0:
            raise ConfigError("Scoring criteria weights must not all be zero")

        affinity = self.calculate_tag_affinity(document, context)
        subs = {
            "category": self._category_score(document, context),
            "tag": affinity.weighted_affinity if context.target_tags else NEUTRAL_TAG,
            "dependency": self._dependency_score(document, context),
            "priority": priority_value(document),
            "contextual": self._contextual_score(document, context),
        }
        breakdown = {
            name: round(weights[name] / weight_sum * value, 6)
            for name, value in subs.items()
        }
        total = _clamp(sum(breakdown.values()))

        return ScoringResult(
            document_id=document.id,
            scores=SubScores(**subs, total=total),
            confidence=self._confidence(document),
            breakdown=breakdown,
            tag_affinity=affinity,
            reasoning=self._reasoning(subs, affinity),
        )

    def score_many(
        self,
        documents: list[Document],
        context: SelectionContext,
        strategy: Strategy | CriteriaWeights | None = None,
    ) -> list[ScoringResult]:
        """Score every document, highest total first (stable on input order)."""
        results = [self.score(doc, context, strategy) for doc in documents]
        return sorted(results, key=lambda r: -r.total)

    def filter_by_tag_compatibility(
        self,
        documents: list[Document],
        context: SelectionContext,
        min_affinity: float = 0.3,
    ) -> list[tuple[Document, TagAffinity]]:
        """Keep documents whose tag affinity reaches `min_affinity`, best first."""
        kept = []
        for doc in documents:
            affinity = self.calculate_tag_affinity(doc, context)
            if affinity.weighted_affinity >= min_affinity:
                kept.append((doc, affinity))
        kept.sort(key=lambda pair: -pair[1].weighted_affinity)
        return kept

    # -------------------------------------------------------------------
    # Subscores
    # -------------------------------------------------------------------

    def calculate_tag_affinity(
        self, document: Document, context: SelectionContext
    ) -> TagAffinity:
        primary = set(document.tags_primary)
        secondary = set(document.tags_secondary)
        doc_tags = document.all_tags
        result = TagAffinity()
        if not context.target_tags:
            return result

        raw_sum = 0.0
        for tag in context.target_tags:
            weight = max(context.weight_for(tag), 0.0)
            if tag in primary:
                contribution = 1.0
                result.matched.append(tag)
            elif tag in secondary:
                contribution = SECONDARY_TAG_FACTOR
                result.matched.append(tag)
            else:
                contribution = max(
                    (self.matrix.compatibility(tag, t) for t in doc_tags), default=0.0
                )
                if contribution > 0:
                    result.compatible.append(tag)
                elif any(self.matrix.is_incompatible(tag, t) for t in doc_tags):
                    result.incompatible.append(tag)
            raw_sum += contribution
            result.weighted_sum += weight * contribution
            result.total_weight += weight

        result.raw_affinity = raw_sum / len(context.target_tags)
        if result.total_weight > 0:
            result.weighted_affinity = _clamp(result.weighted_sum / result.total_weight)
        else:
            result.weighted_affinity = result.raw_affinity
        return result

    def _category_score(self, document: Document, context: SelectionContext) -> float:
        target = context.target_category
        if not target:
            return NEUTRAL_CATEGORY
        if document.category == target:
            return 1.0
        hints = document.composition_hints
        if hints and target in hints.category_affinity:
            return _clamp(hints.category_affinity[target])
        return NO_CATEGORY_SIGNAL

    def _dependency_score(self, document: Document, context: SelectionContext) -> float:
        score = 0.5
        selected = {d.id: d for d in context.selected_documents}
        if not selected:
            return score
        links = document.links

        if any(p.document_id in selected for p in links.prerequisites):
            score += 0.3

        ref_total = sum(r.relevance for r in links.references if r.document_id)
        if ref_total > 0:
            ref_hit = sum(r.relevance for r in links.references if r.document_id in selected)
            score += 0.3 * ref_hit / ref_total

        # Conflicts may be declared on either side
        severities: dict[str, Severity | None] = {}
        for c in links.conflicts:
            if c.document_id in selected:
                severities[c.document_id] = c.severity
        for other in selected.values():
            for c in other.links.conflicts:
                if c.document_id == document.id and other.id not in severities:
                    severities[other.id] = c.severity
        penalty = sum(
            _SEVERITY_PENALTY.get(sev, _DEFAULT_SEVERITY_PENALTY) for sev in severities.values()
        )
        score -= min(penalty, _MAX_CONFLICT_PENALTY)
        return _clamp(score)

    def _contextual_score(self, document: Document, context: SelectionContext) -> float:
        hints = document.composition_hints
        if hints and context.context_type and context.context_type in hints.contextual_relevance:
            return _clamp(hints.contextual_relevance[context.context_type])
        return DEFAULT_CONTEXTUAL

    # -------------------------------------------------------------------
    # Confidence and explanation
    # -------------------------------------------------------------------

    def _confidence(self, document: Document) -> float:
        confidence = 1.0
        if not document.tags_primary:
            confidence -= 0.3
        if document.composition_hints is None:
            confidence -= 0.2
        if not document.tags_secondary:
            confidence -= 0.1
        if document.dependencies is None:
            confidence -= 0.2
        if document.priority_score == 0:
            confidence -= 0.2
        missing_groups = sum((
            not (document.tags_primary or document.tags_secondary),
            document.composition_hints is None,
            document.dependencies is None,
        ))
        if missing_groups >= 2:
            confidence = min(confidence, SPARSE_CONFIDENCE_CAP)
        return round(max(0.0, confidence), 6)

    def _reasoning(self, subs: dict[str, float], affinity: TagAffinity) -> list[str]:
        notes = []
        if affinity.matched:
            notes.append(f"Matches target tags: {', '.join(affinity.matched)}")
        if affinity.compatible:
            notes.append(f"Compatible with: {', '.join(affinity.compatible)}")
        if affinity.incompatible:
            notes.append(f"Incompatible with: {', '.join(affinity.incompatible)}")
        if subs["category"] == 1.0:
            notes.append("Exact category match")
        if subs["dependency"] < 0.5:
            notes.append("Conflicts with already-selected documents")
        elif subs["dependency"] > 0.5:
            notes.append("Builds on already-selected documents")
        return notes
