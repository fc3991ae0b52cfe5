"""Standalone pairwise conflict analysis.

Five built-in detectors run over every unordered document pair:

  tag-incompatibility  a primary tag of one document is incompatible with a
                       primary tag of the other (same matrix as the filter)
  content-duplication  identical or near-identical titles, or heavy keyword
                       overlap within one category
  audience-mismatch    disjoint audiences in the same category, or a known
                       opposing audience pair
  complexity-gap       complexity levels two or more steps apart
  category-exclusive   categories that should not both appear (guide with
                       reference, example with concept)

Suggested resolutions follow the resolver's policy: keep the higher
priority score, flag ties for manual review. The resolution plan groups
those suggestions into exclude and review steps, most severe first.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from itertools import combinations
from typing import Callable

from docselect.config import SelectionConfig
from docselect.conflicts.models import (
    Conflict,
    ConflictAnalysisResult,
    ConflictApplication,
    ConflictDetectionOptions,
    ConflictSummary,
    ConflictType,
    ExcludedDocument,
    ResolutionAction,
    ResolutionStep,
    SuggestedResolution,
)
from docselect.models import Document, Severity
from docselect.tags.compatibility import TagCompatibilityMatrix, matrix_for

logger = logging.getLogger("docselect.conflicts")

# A rule inspects one document pair and returns zero or more conflicts
ConflictRule = Callable[[Document, Document], list[Conflict]]

TAG_INCOMPATIBILITY = "tag-incompatibility"
CONTENT_DUPLICATION = "content-duplication"
AUDIENCE_MISMATCH = "audience-mismatch"
COMPLEXITY_GAP = "complexity-gap"
CATEGORY_EXCLUSIVITY = "category-exclusive"

_OPPOSING_AUDIENCES = [
    ("beginners", "advanced"),
    ("beginners", "experts"),
    ("intermediate", "experts"),
    ("new-users", "experienced-users"),
]

_EXCLUSIVE_CATEGORIES = [
    ("guide", "reference"),
    ("example", "concept"),
]
_MIN_COMPLEXITY_GAP = 2

_IMPACT = {
    ConflictType.TAG_INCOMPATIBLE: 0.4,
    ConflictType.CONTENT_DUPLICATE: 0.8,
    ConflictType.AUDIENCE_MISMATCH: 0.2,
    ConflictType.COMPLEXITY_GAP: 0.7,
    ConflictType.CATEGORY_EXCLUSIVE: 0.5,
}

_TITLE_SIMILARITY = 0.8
_KEYWORD_SIMILARITY = 0.8
_MIN_KEYWORDS = 3


def _tokens(text: str) -> set[str]:
    return {t for t in re.split(r"[^a-z0-9]+", text.lower()) if t}


def _jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def suggest_exclusion(first: Document, second: Document, reason: str) -> SuggestedResolution:
    """Keep the higher priority score; equal scores go to manual review."""
    if first.priority_score > second.priority_score:
        return SuggestedResolution(
            action=ResolutionAction.EXCLUDE_SECOND, reason=reason, confidence=0.8
        )
    if second.priority_score > first.priority_score:
        return SuggestedResolution(
            action=ResolutionAction.EXCLUDE_FIRST, reason=reason, confidence=0.8
        )
    return SuggestedResolution(
        action=ResolutionAction.MANUAL_REVIEW,
        reason=f"{reason}; equal priority scores",
        confidence=0.3,
    )


class ConflictDetector:
    """Pairwise conflict analysis usable without full dependency resolution."""

    def __init__(
        self,
        config: SelectionConfig,
        matrix: TagCompatibilityMatrix | None = None,
    ) -> None:
        self.config = config
        self.matrix = matrix or matrix_for(config.tags)
        self._rules: dict[str, ConflictRule] = {
            TAG_INCOMPATIBILITY: self._detect_tag_incompatibility,
            CONTENT_DUPLICATION: self._detect_content_duplication,
            AUDIENCE_MISMATCH: self._detect_audience_mismatch,
            COMPLEXITY_GAP: self._detect_complexity_gap,
            CATEGORY_EXCLUSIVITY: self._detect_category_exclusivity,
        }

    # -------------------------------------------------------------------
    # Rule registry
    # -------------------------------------------------------------------

    def add_rule(self, name: str, rule: ConflictRule) -> None:
        if not callable(rule):
            raise TypeError(f"Conflict rule '{name}' must be callable")
        self._rules[name] = rule

    def remove_rule(self, name: str) -> bool:
        return self._rules.pop(name, None) is not None

    def list_rules(self) -> list[str]:
        return list(self._rules)

    # -------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------

    def detect_conflicts(
        self,
        documents: list[Document],
        options: ConflictDetectionOptions | None = None,
    ) -> ConflictAnalysisResult:
        opts = options or ConflictDetectionOptions()
        disabled = {
            name
            for name, enabled in (
                (TAG_INCOMPATIBILITY, opts.enable_tag_incompatibility),
                (CONTENT_DUPLICATION, opts.enable_content_duplication),
                (AUDIENCE_MISMATCH, opts.enable_audience_mismatch),
                (COMPLEXITY_GAP, opts.enable_complexity_gap),
                (CATEGORY_EXCLUSIVITY, opts.enable_category_exclusivity),
            )
            if not enabled
        }
        rules = [rule for name, rule in self._rules.items() if name not in disabled]

        conflicts: list[Conflict] = []
        seen: set[str] = set()
        for first, second in combinations(documents, 2):
            for rule in rules:
                for conflict in rule(first, second):
                    if conflict.severity.rank < opts.severity_threshold.rank:
                        continue
                    if conflict.id in seen:
                        continue
                    seen.add(conflict.id)
                    if not opts.auto_resolve:
                        conflict.resolution = None
                    conflicts.append(conflict)

        conflicts.sort(key=lambda c: (-c.severity.rank, c.id))
        logger.debug("Detected %d conflict(s) across %d documents", len(conflicts), len(documents))
        return ConflictAnalysisResult(
            conflicts=conflicts,
            summary=self._summarize(conflicts),
            recommendations=self._recommend(conflicts),
            resolution_plan=self._plan(conflicts),
        )

    def _detect_tag_incompatibility(self, a: Document, b: Document) -> list[Conflict]:
        a_tags, b_tags = set(a.all_tags), set(b.all_tags)
        pairs = sorted(
            (ta, tb)
            for ta in a.tags_primary
            for tb in b.tags_primary
            if ta not in b_tags and tb not in a_tags and self.matrix.is_incompatible(ta, tb)
        )
        if not pairs:
            return []
        described = ", ".join(f"{ta} / {tb}" for ta, tb in pairs)
        return [Conflict(
            id=f"{ConflictType.TAG_INCOMPATIBLE.value}:{a.id}:{b.id}",
            type=ConflictType.TAG_INCOMPATIBLE,
            severity=Severity.MODERATE,
            document_ids=(a.id, b.id),
            description=f"Incompatible primary tags between {a.id} and {b.id}: {described}",
            impact=_IMPACT[ConflictType.TAG_INCOMPATIBLE],
            resolution=suggest_exclusion(a, b, "Incompatible tags"),
        )]

    def _detect_content_duplication(self, a: Document, b: Document) -> list[Conflict]:
        title_a, title_b = a.title.strip().lower(), b.title.strip().lower()
        evidence = None
        if title_a and title_a == title_b:
            evidence = "identical titles"
        else:
            tokens_a, tokens_b = _tokens(a.title), _tokens(b.title)
            if min(len(tokens_a), len(tokens_b)) >= 2 and _jaccard(tokens_a, tokens_b) >= _TITLE_SIMILARITY:
                evidence = "near-identical titles"
            elif a.category == b.category:
                kw_a = set(a.keywords) | set(a.tags_primary)
                kw_b = set(b.keywords) | set(b.tags_primary)
                if (
                    min(len(kw_a), len(kw_b)) >= _MIN_KEYWORDS
                    and _jaccard(kw_a, kw_b) >= _KEYWORD_SIMILARITY
                ):
                    evidence = "overlapping keywords"
        if evidence is None:
            return []
        return [Conflict(
            id=f"{ConflictType.CONTENT_DUPLICATE.value}:{a.id}:{b.id}",
            type=ConflictType.CONTENT_DUPLICATE,
            severity=Severity.MAJOR,
            document_ids=(a.id, b.id),
            description=f"{a.id} and {b.id} look like duplicates ({evidence})",
            impact=_IMPACT[ConflictType.CONTENT_DUPLICATE],
            resolution=suggest_exclusion(a, b, f"Duplicate content ({evidence})"),
        )]

    def _detect_audience_mismatch(self, a: Document, b: Document) -> list[Conflict]:
        aud_a, aud_b = set(a.audience), set(b.audience)
        if not aud_a or not aud_b:
            return []
        opposing = [
            (x, y)
            for x, y in _OPPOSING_AUDIENCES
            if (x in aud_a and y in aud_b) or (y in aud_a and x in aud_b)
        ]
        disjoint_same_context = a.category == b.category and not (aud_a & aud_b)
        if not opposing and not disjoint_same_context:
            return []
        if opposing:
            detail = "opposing audiences " + ", ".join(f"{x}/{y}" for x, y in opposing)
        else:
            detail = f"disjoint audiences in category '{a.category}'"
        return [Conflict(
            id=f"{ConflictType.AUDIENCE_MISMATCH.value}:{a.id}:{b.id}",
            type=ConflictType.AUDIENCE_MISMATCH,
            severity=Severity.MINOR,
            document_ids=(a.id, b.id),
            description=f"{a.id} and {b.id} target different readers ({detail})",
            impact=_IMPACT[ConflictType.AUDIENCE_MISMATCH],
            resolution=SuggestedResolution(
                action=ResolutionAction.KEEP_BOTH,
                reason="Mixed audiences are acceptable with bridging content",
                confidence=0.6,
            ),
        )]

    def _detect_complexity_gap(self, a: Document, b: Document) -> list[Conflict]:
        gap = abs(a.complexity.level - b.complexity.level)
        if gap < _MIN_COMPLEXITY_GAP:
            return []
        return [Conflict(
            id=f"{ConflictType.COMPLEXITY_GAP.value}:{a.id}:{b.id}",
            type=ConflictType.COMPLEXITY_GAP,
            severity=Severity.MINOR,
            document_ids=(a.id, b.id),
            description=(
                f"{a.id} ({a.complexity.value}) and {b.id} ({b.complexity.value}) "
                f"are {gap} complexity levels apart"
            ),
            impact=_IMPACT[ConflictType.COMPLEXITY_GAP],
            resolution=SuggestedResolution(
                action=ResolutionAction.KEEP_BOTH,
                reason="Complexity gap is manageable with proper ordering",
                confidence=0.5,
            ),
        )]

    def _detect_category_exclusivity(self, a: Document, b: Document) -> list[Conflict]:
        pair = {a.category, b.category}
        if not any(pair == set(exclusive) for exclusive in _EXCLUSIVE_CATEGORIES):
            return []
        reason = f"Categories '{a.category}' and '{b.category}' are mutually exclusive"
        priority_a = self._category_priority(a.category)
        priority_b = self._category_priority(b.category)
        if priority_a != priority_b:
            action = (
                ResolutionAction.EXCLUDE_SECOND if priority_a > priority_b
                else ResolutionAction.EXCLUDE_FIRST
            )
            resolution = SuggestedResolution(action=action, reason=reason, confidence=0.7)
        else:
            resolution = suggest_exclusion(a, b, reason)
        return [Conflict(
            id=f"{ConflictType.CATEGORY_EXCLUSIVE.value}:{a.id}:{b.id}",
            type=ConflictType.CATEGORY_EXCLUSIVE,
            severity=Severity.MODERATE,
            document_ids=(a.id, b.id),
            description=f"{a.id} ({a.category}) and {b.id} ({b.category}) should not both appear",
            impact=_IMPACT[ConflictType.CATEGORY_EXCLUSIVE],
            resolution=resolution,
        )]

    def _category_priority(self, category: str) -> int:
        entry = self.config.categories.get(category)
        return entry.priority if entry else 0

    # -------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------

    @staticmethod
    def _summarize(conflicts: list[Conflict]) -> ConflictSummary:
        return ConflictSummary(
            total=len(conflicts),
            by_severity=dict(Counter(c.severity.value for c in conflicts)),
            by_type=dict(Counter(c.type.value for c in conflicts)),
            auto_resolvable=sum(1 for c in conflicts if c.auto_resolvable),
            requires_manual_review=sum(1 for c in conflicts if not c.auto_resolvable),
        )

    @staticmethod
    def _recommend(conflicts: list[Conflict]) -> list[str]:
        by_type = Counter(c.type for c in conflicts)
        out = []
        if by_type[ConflictType.CONTENT_DUPLICATE]:
            out.append(
                f"Remove or merge {by_type[ConflictType.CONTENT_DUPLICATE]} duplicate document pair(s)"
            )
        if by_type[ConflictType.TAG_INCOMPATIBLE]:
            out.append("Review tag assignments or extend compatible_with lists")
        if by_type[ConflictType.AUDIENCE_MISMATCH]:
            out.append("Consider separate selections per audience")
        if by_type[ConflictType.COMPLEXITY_GAP]:
            out.append("Order documents from basic to expert or add bridging material")
        if by_type[ConflictType.CATEGORY_EXCLUSIVE]:
            out.append("Pick one category from each exclusive pair")
        manual = sum(1 for c in conflicts if not c.auto_resolvable)
        if manual:
            out.append(f"{manual} conflict(s) need manual review")
        return out

    @staticmethod
    def _plan(conflicts: list[Conflict]) -> list[ResolutionStep]:
        """Group suggested resolutions into exclude and review steps.

        Keep-both suggestions need no action and are left out. Conflicts
        without a suggestion go to review.
        """
        exclude_ids: list[str] = []
        exclude_conflicts: list[str] = []
        review_ids: list[str] = []
        review_conflicts: list[str] = []
        for conflict in sorted(conflicts, key=lambda c: (-c.severity.rank, c.id)):
            action = conflict.resolution.action if conflict.resolution else ResolutionAction.MANUAL_REVIEW
            first_id, second_id = conflict.document_ids
            if action == ResolutionAction.KEEP_BOTH:
                continue
            if action == ResolutionAction.MANUAL_REVIEW:
                review_ids.extend(i for i in (first_id, second_id) if i not in review_ids)
                review_conflicts.append(conflict.id)
                continue
            loser = first_id if action == ResolutionAction.EXCLUDE_FIRST else second_id
            if loser not in exclude_ids:
                exclude_ids.append(loser)
            exclude_conflicts.append(conflict.id)

        steps: list[ResolutionStep] = []
        if exclude_conflicts:
            steps.append(ResolutionStep(
                step=len(steps) + 1,
                action="exclude",
                document_ids=exclude_ids,
                conflict_ids=exclude_conflicts,
                rationale=f"Exclude documents to resolve {len(exclude_conflicts)} conflict(s)",
            ))
        if review_conflicts:
            steps.append(ResolutionStep(
                step=len(steps) + 1,
                action="review",
                document_ids=review_ids,
                conflict_ids=review_conflicts,
                rationale=f"Manual review required for {len(review_conflicts)} conflict(s)",
            ))
        return steps

    # -------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------

    def apply_conflict_resolutions(
        self, documents: list[Document], conflicts: list[Conflict]
    ) -> ConflictApplication:
        """Exclude documents per suggested resolution, most severe conflict first."""
        by_id = {d.id: d for d in documents}
        excluded: dict[str, ExcludedDocument] = {}
        unresolved: list[Conflict] = []

        for conflict in sorted(conflicts, key=lambda c: (-c.severity.rank, c.id)):
            first_id, second_id = conflict.document_ids
            if first_id not in by_id or second_id not in by_id:
                continue
            if first_id in excluded or second_id in excluded:
                continue
            resolution = conflict.resolution or suggest_exclusion(
                by_id[first_id], by_id[second_id], conflict.description
            )
            if resolution.action == ResolutionAction.KEEP_BOTH:
                continue
            if resolution.action == ResolutionAction.MANUAL_REVIEW:
                unresolved.append(conflict)
                continue
            loser = first_id if resolution.action == ResolutionAction.EXCLUDE_FIRST else second_id
            excluded[loser] = ExcludedDocument(
                document=by_id[loser],
                reason=resolution.reason or conflict.description,
                conflict_ids=[conflict.id],
            )

        return ConflictApplication(
            resolved_documents=[d for d in documents if d.id not in excluded],
            excluded_documents=list(excluded.values()),
            unresolved=unresolved,
        )
