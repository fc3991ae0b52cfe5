"""Built-in quality metrics.

Each metric is a pure function (selection, constraints, config) -> MetricScore.

  content     content-relevance, content-completeness, content-accuracy
  structure   logical-flow, dependency-satisfaction, complexity-appropriateness
  audience    audience-alignment, thematic-coherence, tag-consistency
  coverage    category-coverage, topic-breadth, space-efficiency
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from itertools import combinations

from docselect.config import SelectionConfig
from docselect.models import Complexity, Document, SelectionConstraints
from docselect.quality.models import MetricDetails, MetricGroup, MetricScore, QualityMetric
from docselect.scoring.scorer import priority_value
from docselect.tags.compatibility import matrix_for

_GOOD_TRANSITIONS = {
    ("concept", "guide"),
    ("guide", "example"),
    ("example", "api"),
    ("api", "reference"),
}

_IDEAL_COMPLEXITY: dict[str, dict[Complexity, float]] = {
    "beginners": {
        Complexity.BASIC: 0.6, Complexity.INTERMEDIATE: 0.3,
        Complexity.ADVANCED: 0.1, Complexity.EXPERT: 0.0,
    },
    "intermediate": {
        Complexity.BASIC: 0.2, Complexity.INTERMEDIATE: 0.5,
        Complexity.ADVANCED: 0.3, Complexity.EXPERT: 0.0,
    },
    "advanced": {
        Complexity.BASIC: 0.1, Complexity.INTERMEDIATE: 0.3,
        Complexity.ADVANCED: 0.5, Complexity.EXPERT: 0.1,
    },
    "experts": {
        Complexity.BASIC: 0.0, Complexity.INTERMEDIATE: 0.2,
        Complexity.ADVANCED: 0.4, Complexity.EXPERT: 0.4,
    },
}

_CONFLICTING_AUDIENCES = [
    ("beginners", "advanced"),
    ("beginners", "experts"),
    ("new-users", "experienced-users"),
]

_RECENCY_MONTHS = 12
_RECENCY_BONUS = 0.1
_AUTO_PRIORITY_FACTOR = 0.9
_HIGH_RELEVANCE_REFERENCE = 0.8


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _score(
    value: float,
    confidence: float,
    measured=None,
    expected=None,
    reasoning: list[str] | None = None,
    suggestions: list[str] | None = None,
) -> MetricScore:
    return MetricScore(
        value=_clamp(value),
        confidence=_clamp(confidence),
        details=MetricDetails(
            measured=measured,
            expected=expected,
            reasoning=reasoning or [],
            suggestions=suggestions or [],
        ),
    )


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


def content_relevance(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    """Share of target tags and target category matched, summed over documents."""
    target_tags = constraints.context.target_tags
    target_category = constraints.context.target_category
    per_document = len(target_tags) + (1 if target_category else 0)

    total = 0
    reasoning = []
    for doc in selection:
        matching = [t for t in doc.tags_primary if t in target_tags]
        total += len(matching)
        if target_category and doc.category == target_category:
            total += 1
        if matching:
            reasoning.append(f"{doc.title or doc.id}: matches {len(matching)}/{len(target_tags)} target tags")

    maximum = per_document * len(selection)
    value = total / maximum if maximum > 0 else 0.5
    return _score(
        value, 0.8, total, maximum,
        [f"{value:.0%} relevance to target context", *reasoning[:3]],
        ["Consider including more documents with target tags",
         "Review target context alignment"] if value < 0.6 else [],
    )


def content_completeness(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    required = constraints.context.required_topics
    covered = {t for doc in selection for t in doc.all_tags}
    topic_coverage = (
        sum(1 for t in required if t in covered) / len(required) if required else 1.0
    )
    represented = {doc.category for doc in selection}
    available = len(config.categories) or max(len(represented), 1)
    category_coverage = min(1.0, len(represented) / available)
    value = topic_coverage * 0.7 + category_coverage * 0.3

    missing = [t for t in required if t not in covered]
    reasoning = [
        f"Topic coverage: {topic_coverage:.0%}",
        f"Category coverage: {category_coverage:.0%}",
    ]
    if missing:
        reasoning.append(f"Missing topics: {', '.join(missing)}")
    return _score(
        value, 0.7,
        {"topic_coverage": topic_coverage, "category_coverage": category_coverage},
        {"topic_coverage": 1.0, "category_coverage": 0.6},
        reasoning,
        ["Include documents from missing categories",
         "Ensure all required topics are covered"] if value < 0.7 else [],
    )


def content_accuracy(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    """Priority as a proxy for quality, with a recency bonus for documents
    changed in the last year and a discount for auto-calculated priorities."""
    if not selection:
        return _score(0.0, 0.6, 0.0, 0.8, ["No documents selected"])

    accuracies = []
    for doc in selection:
        accuracy = priority_value(doc)
        if doc.last_modified is not None:
            now = datetime.now(doc.last_modified.tzinfo)
            months_old = (now - doc.last_modified).days / 30
            bonus = max(0.0, (_RECENCY_MONTHS - months_old) / _RECENCY_MONTHS) * _RECENCY_BONUS
            accuracy = min(1.0, accuracy + bonus)
        if doc.auto_calculated_priority:
            accuracy *= _AUTO_PRIORITY_FACTOR
        accuracies.append((doc, accuracy))

    value = sum(a for _, a in accuracies) / len(accuracies)
    return _score(
        value, 0.6, value, 0.8,
        [f"Average document accuracy: {value:.0%}",
         *(f"{doc.title or doc.id}: {a:.0%} accuracy" for doc, a in accuracies[:3])],
        ["Review document priorities and quality",
         "Update outdated documents",
         "Verify auto-calculated priorities"] if value < 0.7 else [],
    )


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


def logical_flow(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    """Adjacent documents should not jump more than one complexity level;
    category transitions along concept -> guide -> example -> api -> reference
    (or staying put) count half."""
    if len(selection) <= 1:
        return _score(1.0, 1.0, 1.0, 1.0, ["Single document selection has perfect flow"])

    score = 0.0
    checks = 0.0
    issues = []
    for current, following in zip(selection, selection[1:]):
        if abs(following.complexity.level - current.complexity.level) > 1:
            issues.append(
                f'Complexity gap between "{current.title or current.id}" '
                f'and "{following.title or following.id}"'
            )
        else:
            score += 1
        checks += 1

        pair = (current.category, following.category)
        if pair in _GOOD_TRANSITIONS or current.category == following.category:
            score += 0.5
        checks += 0.5

    value = score / checks
    return _score(
        value, 0.7, value, 0.8,
        [f"Flow score: {value:.0%}", f"{len(issues)} flow issues detected", *issues[:3]],
        ["Reorder documents for better complexity progression",
         "Group related categories together",
         "Add bridging documents between complex topics"] if value < 0.7 else [],
    )


def dependency_satisfaction(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    """Prerequisites count 1, highly relevant references count 0.5.

    Documents selected in earlier rounds satisfy prerequisites too.
    """
    available = {d.id for d in selection} | {d.id for d in constraints.context.selected_documents}
    total = 0.0
    satisfied = 0.0
    unsatisfied = []
    for doc in selection:
        for prereq in doc.links.prerequisites:
            if not prereq.document_id:
                continue
            total += 1
            if prereq.document_id in available:
                satisfied += 1
            else:
                unsatisfied.append(f"{doc.title or doc.id} needs {prereq.document_id}")
        for ref in doc.links.references:
            if ref.document_id and ref.relevance > _HIGH_RELEVANCE_REFERENCE:
                total += 0.5
                if ref.document_id in available:
                    satisfied += 0.5

    value = satisfied / total if total > 0 else 1.0
    return _score(
        value, 0.9, satisfied, total,
        [f"{satisfied:g}/{total:g} dependencies satisfied",
         f"Satisfaction rate: {value:.0%}", *unsatisfied[:3]],
        ["Include missing prerequisite documents",
         "Review dependency requirements",
         "Consider alternative documents with fewer dependencies"] if value < 0.8 else [],
    )


def _primary_audience(selection: list[Document], constraints: SelectionConstraints) -> str:
    for audiences in (constraints.context.target_audience, constraints.target_audience):
        if audiences:
            return audiences[0]
    for doc in selection:
        if doc.audience:
            return doc.audience[0]
    return "intermediate"


def complexity_appropriateness(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    audience = _primary_audience(selection, constraints)
    ideal = _IDEAL_COMPLEXITY.get(audience, _IDEAL_COMPLEXITY["intermediate"])
    counts = Counter(doc.complexity for doc in selection)

    actual: dict[str, float] = {}
    divergence = 0.0
    for complexity, count in counts.items():
        share = count / len(selection)
        actual[complexity.value] = share
        divergence += abs(share - ideal.get(complexity, 0.0))
    # Expected levels that are absent entirely
    for complexity, share in ideal.items():
        if share > 0 and complexity not in counts:
            divergence += share

    value = max(0.0, 1 - divergence / 2)
    return _score(
        value, 0.8, actual, {c.value: s for c, s in ideal.items()},
        [f"Complexity appropriateness: {value:.0%}",
         f"Target audience: {audience}",
         f"Divergence from ideal: {divergence:.0%}"],
        [f"Adjust complexity distribution for {audience} audience",
         "Add more documents at appropriate complexity levels",
         "Consider audience segmentation"] if value < 0.7 else [],
    )


# ---------------------------------------------------------------------------
# Audience
# ---------------------------------------------------------------------------


def audience_alignment(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    audiences = {a for doc in selection for a in doc.audience}
    if not audiences:
        return _score(
            0.5, 0.3, 0, 1,
            ["No audience information available"],
            ["Add audience tags to documents"],
        )

    conflicts = [
        (a, b) for a, b in _CONFLICTING_AUDIENCES if a in audiences and b in audiences
    ]
    value = max(0.0, 1 - 0.3 * len(conflicts))
    if len(audiences) <= 2:
        value = min(1.0, value + 0.1)
    return _score(
        value, 0.7, len(audiences), 2,
        [f"{len(conflicts)} audience conflicts detected",
         f"Targeting {len(audiences)} different audiences",
         f"Audiences: {', '.join(sorted(audiences))}"],
        ["Remove documents with conflicting audience targets",
         "Consider separate selections for different audiences",
         "Add bridging content for mixed audiences"] if conflicts else [],
    )


def thematic_coherence(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    """Share of configured primary-tag pairs across the selection that are compatible."""
    matrix = matrix_for(config.tags)
    frequency = Counter(t for doc in selection for t in doc.tags_primary)
    dominant = sorted(t for t, n in frequency.items() if n >= len(selection) * 0.3)

    configured = sorted(t for t in frequency if matrix.is_known(t))
    pairs = list(combinations(configured, 2))
    compatible = sum(1 for a, b in pairs if matrix.compatibility(a, b) > 0)
    value = compatible / len(pairs) if pairs else 0.5
    return _score(
        value, 0.6, compatible, len(pairs),
        [f"Thematic coherence: {value:.0%}",
         f"{len(dominant)} dominant themes identified",
         f"Dominant themes: {', '.join(dominant)}"],
        ["Focus on more coherent theme selection",
         "Remove documents with incompatible tags",
         "Add documents that bridge different themes"] if value < 0.6 else [],
    )


def tag_consistency(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    """Incompatible primary-tag pairs within single documents."""
    matrix = matrix_for(config.tags)
    total_pairs = 0
    issues = []
    for doc in selection:
        for a, b in combinations(doc.tags_primary, 2):
            total_pairs += 1
            if matrix.is_incompatible(a, b):
                issues.append(f"Incompatible tags in {doc.title or doc.id}: {a} + {b}")

    value = 1 - len(issues) / total_pairs if total_pairs else 1.0
    return _score(
        value, 0.8, len(issues), 0,
        [f"{len(issues)}/{total_pairs} tag inconsistencies found",
         f"Consistency score: {value:.0%}", *issues[:3]],
        ["Review and fix tag incompatibilities",
         "Update tag configuration for better consistency",
         "Remove or modify problematic tag combinations"] if issues else [],
    )


# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------


def category_coverage(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    represented = sorted({doc.category for doc in selection})
    available = len(config.categories) or max(len(represented), 1)
    if not selection:
        return _score(0.0, 0.9, 0, available, ["No documents selected"])

    coverage = min(1.0, len(represented) / available)
    ideal = min(0.8, len(selection) / available)
    value = 1.0 if coverage >= ideal else coverage / ideal
    return _score(
        value, 0.9, len(represented), round(ideal * available),
        [f"{len(represented)}/{available} categories covered",
         f"Coverage: {coverage:.0%}",
         f"Represented: {', '.join(represented)}"],
        ["Include documents from missing categories",
         "Aim for more balanced category representation"] if coverage < ideal else [],
    )


def topic_breadth(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    topics = sorted({t for doc in selection for t in doc.all_tags})
    expected = min(len(selection) * 1.5, len(config.tags) * 0.4)
    if expected <= 0:
        value = 1.0 if topics else 0.0
    else:
        value = min(1.0, len(topics) / expected)
    shown = ", ".join(topics[:10]) + ("..." if len(topics) > 10 else "")
    return _score(
        value, 0.7, len(topics), round(expected),
        [f"{len(topics)} unique topics covered",
         f"Breadth score: {value:.0%}",
         f"Topics: {shown}"],
        ["Include documents covering more diverse topics",
         "Add documents with unique tag combinations"] if value < 0.7 else [],
    )


def space_efficiency(
    selection: list[Document], constraints: SelectionConstraints, config: SelectionConfig
) -> MetricScore:
    """Closeness of the used size to the utilization target; overshoot is penalized."""
    limit = constraints.max_characters
    target = config.optimization.space_utilization_target
    used = sum(doc.size for doc in selection)
    if limit <= 0:
        return _score(0.0, 0.3, used, 0, ["No size budget given"])

    utilization = used / limit
    if utilization <= target:
        value = utilization / target
    else:
        value = max(0.0, 2 - utilization / target)
    suggestions = []
    if value < 0.8:
        suggestions.append(
            "Consider adding more documents to use available space"
            if utilization < target
            else "Selection exceeds the optimal size"
        )
    return _score(
        value, 0.9, utilization, target,
        [f"Space utilization: {utilization:.0%}",
         f"Target utilization: {target:.0%}",
         f"Size used: {used:,}/{limit:,}"],
        suggestions,
    )


def builtin_metrics() -> list[QualityMetric]:
    return [
        QualityMetric("content-relevance", content_relevance, MetricGroup.CONTENT, 1.0,
                      "How relevant the selected documents are to the target context"),
        QualityMetric("content-completeness", content_completeness, MetricGroup.CONTENT, 0.9,
                      "How well the selection covers the required topics"),
        QualityMetric("content-accuracy", content_accuracy, MetricGroup.CONTENT, 0.8,
                      "Quality and freshness of individual documents"),
        QualityMetric("logical-flow", logical_flow, MetricGroup.STRUCTURE, 0.7,
                      "How well documents flow from one to the next"),
        QualityMetric("dependency-satisfaction", dependency_satisfaction, MetricGroup.STRUCTURE, 0.8,
                      "How well prerequisite dependencies are satisfied"),
        QualityMetric("complexity-appropriateness", complexity_appropriateness,
                      MetricGroup.STRUCTURE, 0.6,
                      "How appropriate the complexity mix is for the audience"),
        QualityMetric("audience-alignment", audience_alignment, MetricGroup.AUDIENCE, 0.7,
                      "How well documents align with one audience"),
        QualityMetric("thematic-coherence", thematic_coherence, MetricGroup.AUDIENCE, 0.6,
                      "How compatible the selection's themes are"),
        QualityMetric("tag-consistency", tag_consistency, MetricGroup.AUDIENCE, 0.5,
                      "How consistent tag usage is within documents"),
        QualityMetric("category-coverage", category_coverage, MetricGroup.COVERAGE, 0.6,
                      "How well document categories are represented"),
        QualityMetric("topic-breadth", topic_breadth, MetricGroup.COVERAGE, 0.5,
                      "Breadth of topics covered"),
        QualityMetric("space-efficiency", space_efficiency, MetricGroup.COVERAGE, 0.4,
                      "How close the selection is to the utilization target"),
    ]
