"""Tag-based pre-filtering and tag co-occurrence analysis.

Runs before scoring. A document is excluded when it

  - is missing any required tag (or, when one is enough, all of them),
  - carries any excluded tag,
  - shares no audience with a non-empty target audience,
  - does not have the requested complexity level, or
  - (with compatibility enforcement) has two primary tags that the
    compatibility matrix marks incompatible.

Every failed check is recorded; one document may fail several.
"""

from __future__ import annotations

import logging
from collections import Counter
from itertools import combinations

from docselect.config import SelectionConfig
from docselect.models import Document
from docselect.tags.compatibility import (
    SYNERGISTIC,
    TagCompatibilityMatrix,
    matrix_for,
    pair_key,
)
from docselect.tags.models import (
    ExclusionReason,
    FilterOptions,
    FilterResult,
    FilterStatistics,
    SynergisticDocument,
    SynergyPair,
    TagGrouping,
    TagPatterns,
    TagSynergy,
)

logger = logging.getLogger("docselect.tags")

NO_TAGS = "no-tags"


class TagBasedDocumentFilter:
    """Applies inclusion, exclusion and compatibility rules over tags."""

    def __init__(
        self,
        config: SelectionConfig,
        matrix: TagCompatibilityMatrix | None = None,
        synergy_threshold: float = 0.6,
    ) -> None:
        self.config = config
        self.matrix = matrix or matrix_for(config.tags)
        self.synergy_threshold = synergy_threshold

    def update_config(self, config: SelectionConfig) -> None:
        self.config = config
        self.matrix = matrix_for(config.tags)

    # -------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------

    def filter(
        self, documents: list[Document], options: FilterOptions | None = None
    ) -> FilterResult:
        options = options or FilterOptions()
        required = list(dict.fromkeys(options.required_tags))
        excluded = set(options.excluded_tags)
        audience = set(options.target_audience)

        filtered: list[Document] = []
        reasons: dict[str, list[ExclusionReason]] = {}
        by_reason: Counter[str] = Counter()

        for doc in documents:
            doc_reasons = self._check(doc, required, excluded, audience, options)
            if doc_reasons:
                reasons[doc.id] = doc_reasons
                by_reason.update(r.code for r in doc_reasons)
            else:
                filtered.append(doc)

        coverage: Counter[str] = Counter()
        for doc in filtered:
            coverage.update(doc.all_tags)

        if reasons:
            logger.debug("Tag filter excluded %d of %d documents", len(reasons), len(documents))

        return FilterResult(
            filtered=filtered,
            exclusion_reasons=reasons,
            statistics=FilterStatistics(
                total=len(documents),
                included=len(filtered),
                excluded=len(reasons),
                by_reason=dict(by_reason),
                tag_coverage=dict(coverage),
            ),
        )

    def _check(
        self,
        doc: Document,
        required: list[str],
        excluded: set[str],
        audience: set[str],
        options: FilterOptions,
    ) -> list[ExclusionReason]:
        tags = set(doc.all_tags)
        out: list[ExclusionReason] = []

        missing = [t for t in required if t not in tags]
        if missing and options.require_all_required:
            out.append(ExclusionReason(
                code="missing-required-tags",
                message=f"Missing required tags: {', '.join(missing)}",
                tags=missing,
            ))
        elif required and len(missing) == len(required):
            out.append(ExclusionReason(
                code="no-required-tags",
                message=f"Has none of the required tags: {', '.join(required)}",
                tags=missing,
            ))

        present = sorted(tags & excluded)
        if present:
            out.append(ExclusionReason(
                code="excluded-tags",
                message=f"Contains excluded tags: {', '.join(present)}",
                tags=present,
            ))

        if audience and not audience.intersection(doc.audience):
            out.append(ExclusionReason(
                code="audience-mismatch",
                message=(
                    f"Audience {sorted(doc.audience) or '[]'} does not match "
                    f"target {sorted(audience)}"
                ),
            ))

        if options.complexity_level is not None and doc.complexity != options.complexity_level:
            out.append(ExclusionReason(
                code="complexity-mismatch",
                message=(
                    f"Complexity {doc.complexity.value} does not match "
                    f"{options.complexity_level.value}"
                ),
            ))

        if options.enforce_tag_compatibility:
            pairs = self.matrix.incompatible_pairs(doc.tags_primary)
            if pairs:
                out.append(ExclusionReason(
                    code="incompatible-tags",
                    message="Incompatible primary tags: "
                    + ", ".join(f"{a} + {b}" for a, b in pairs),
                    tags=sorted({t for pair in pairs for t in pair}),
                ))
        return out

    def find_incompatible_pairs(self, tags: list[str]) -> list[tuple[str, str]]:
        return self.matrix.incompatible_pairs(tags)

    def _weight(self, tag: str) -> float:
        entry = self.config.tags.get(tag)
        return entry.weight if entry else 1.0

    def find_synergistic_documents(
        self, documents: list[Document], target_tags: list[str]
    ) -> list[SynergisticDocument]:
        """Documents whose primary tags are synergistic with a target tag.

        Each synergistic (document tag, target tag) pair contributes the
        product of the two tag weights. Documents without any synergy are
        dropped; the rest come back strongest first.
        """
        results: list[SynergisticDocument] = []
        for doc in documents:
            synergies = [
                TagSynergy(
                    tags=(tag, target),
                    strength=self._weight(tag) * self._weight(target),
                    description=f"{tag} synergizes with {target}",
                )
                for tag in doc.tags_primary
                for target in target_tags
                if tag != target and self.matrix.compatibility(tag, target) >= SYNERGISTIC
            ]
            if synergies:
                results.append(SynergisticDocument(
                    document=doc,
                    synergies=synergies,
                    total_synergy_score=round(sum(s.strength for s in synergies), 4),
                ))
        results.sort(key=lambda r: -r.total_synergy_score)
        return results

    def create_balanced_tag_distribution(
        self,
        documents: list[Document],
        max_documents: int,
        target_tags: list[str] | None = None,
    ) -> list[Document]:
        """Pick up to `max_documents`, spreading slots across primary-tag groups.

        Every primary tag forms a group (untagged documents share one), so a
        document may sit in several. Slots are split evenly over the groups in
        tag order, the first groups taking the remainder. Within a group,
        documents carrying heavier target tags win, then higher priority
        scores. Slots left over go to the highest-priority remaining documents.
        """
        if len(documents) <= max_documents:
            return list(documents)
        if max_documents <= 0:
            return []

        targets = set(target_tags or [])
        groups: dict[str, list[Document]] = {}
        for doc in documents:
            for tag in doc.tags_primary or [NO_TAGS]:
                groups.setdefault(tag, []).append(doc)

        def relevance(doc: Document) -> tuple[float, float]:
            score = sum(self._weight(t) for t in doc.tags_primary if t in targets)
            return (-score, -doc.priority_score)

        per_group, remainder = divmod(max_documents, len(groups))
        picked: list[Document] = []
        used: set[str] = set()
        for index, tag in enumerate(sorted(groups)):
            slots = per_group + (1 if index < remainder else 0)
            members = sorted(
                (d for d in groups[tag] if d.id not in used), key=relevance
            )
            for doc in members[:slots]:
                picked.append(doc)
                used.add(doc.id)

        if len(picked) < max_documents:
            rest = sorted(
                (d for d in documents if d.id not in used), key=lambda d: -d.priority_score
            )
            picked.extend(rest[:max_documents - len(picked)])
        return picked

    # -------------------------------------------------------------------
    # Grouping and analysis
    # -------------------------------------------------------------------

    def group_documents_by_tags(self, documents: list[Document]) -> TagGrouping:
        """Bucket documents by exact primary-tag signature and find synergy pairs."""
        groups: dict[str, list[str]] = {}
        tag_counts: Counter[str] = Counter()
        pair_counts: Counter[tuple[str, str]] = Counter()

        for doc in documents:
            tags = sorted(set(doc.tags_primary))
            signature = "+".join(tags) if tags else NO_TAGS
            groups.setdefault(signature, []).append(doc.id)
            tag_counts.update(tags)
            pair_counts.update(combinations(tags, 2))

        synergy: list[SynergyPair] = []
        for (a, b), count in pair_counts.items():
            compat = self.matrix.compatibility(a, b)
            if count < 2 or compat <= self.synergy_threshold:
                continue
            strength = compat * count / max(tag_counts[a], tag_counts[b])
            synergy.append(SynergyPair(
                tags=pair_key(a, b), co_occurrences=count, strength=round(strength, 4)
            ))
        synergy.sort(key=lambda p: (-p.strength, -p.co_occurrences, p.tags))

        sizes = [len(ids) for ids in groups.values()]
        ranked = sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return TagGrouping(
            groups=groups,
            largest_group_size=max(sizes, default=0),
            smallest_group_size=min(sizes, default=0),
            most_common_tags=ranked[:5],
            least_common_tags=list(reversed(ranked))[:5],
            synergy_pairs=synergy,
        )

    def analyze_tag_patterns(self, documents: list[Document]) -> TagPatterns:
        tag_counts: Counter[str] = Counter()
        combos: Counter[str] = Counter()
        audiences: Counter[str] = Counter()
        complexity: Counter[str] = Counter()

        for doc in documents:
            tags = sorted(set(doc.tags_primary))
            tag_counts.update(tags)
            combos.update(f"{a}+{b}" for a, b in combinations(tags, 2))
            audiences.update(doc.audience)
            complexity[doc.complexity.value] += 1

        return TagPatterns(
            most_frequent_tags=sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:10],
            frequent_combinations=sorted(
                ((c, n) for c, n in combos.items() if n >= 2),
                key=lambda kv: (-kv[1], kv[0]),
            )[:10],
            orphan_tags=sorted(t for t, n in tag_counts.items() if n == 1),
            audience_distribution=dict(audiences),
            complexity_distribution=dict(complexity),
        )
