"""Post-hoc quality audit of a finished selection.

overall = sum(value * confidence * weight * group_weight)
        / sum(confidence * weight * group_weight) * 100

Metrics and validation rules live in name -> entry registries; custom
entries join the same aggregation. A metric or rule that raises is
recorded as a failure and evaluation continues.
"""

from __future__ import annotations

import dataclasses
import logging

from docselect.config import SelectionConfig, default_config
from docselect.exceptions import ConfigError, MetricError
from docselect.models import Document, SelectionConstraints
from docselect.quality.metrics import builtin_metrics
from docselect.quality.models import (
    BenchmarkComparison,
    MetricDetails,
    MetricFn,
    MetricGroup,
    MetricScore,
    QualityMetric,
    QualityReport,
    QualitySummary,
    Recommendation,
    ValidationCheck,
    ValidationFn,
    ValidationOutcome,
    ValidationReport,
    ValidationRule,
)
from docselect.scoring.scorer import priority_value
from docselect.selection.models import SelectionResult

logger = logging.getLogger("docselect.quality")

GRADE_BANDS = [
    (97, "A+"),
    (93, "A"),
    (87, "B+"),
    (80, "B"),
    (77, "C+"),
    (70, "C"),
    (60, "D"),
]

BENCHMARK_BANDS = [
    (90, "excellent", 95),
    (80, "good", 80),
    (70, "average", 50),
    (60, "below-average", 25),
]

QUALITY_THRESHOLD_RULE = "quality-threshold"

_STRENGTH = 0.8
_WEAKNESS = 0.4
_CRITICAL = 0.2
_MAX_RECOMMENDATIONS = 8
_PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}
_SEVERITIES = ("error", "warning")


def grade_for(score: float) -> str:
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return "F"


def benchmark_for(score: float) -> BenchmarkComparison:
    performance, percentile = "poor", 10
    for threshold, label, pct in BENCHMARK_BANDS:
        if score >= threshold:
            performance, percentile = label, pct
            break
    return BenchmarkComparison(
        performance=performance,
        percentile=percentile,
        comparison=f"This selection performs {performance} compared to typical document selections.",
    )


def _metadata_completeness(doc: Document) -> float:
    present = [
        bool(doc.tags_primary),
        bool(doc.audience),
        doc.dependencies is not None,
        doc.composition_hints is not None,
        doc.priority_score > 0,
    ]
    return sum(present) / len(present)


# ---------------------------------------------------------------------------
# Built-in validation rules
# ---------------------------------------------------------------------------


def _min_documents(selection, constraints, config) -> ValidationOutcome:
    if selection:
        return ValidationOutcome(passed=True)
    return ValidationOutcome(passed=False, details="No documents selected")


def _character_limit(selection, constraints, config) -> ValidationOutcome:
    used = sum(d.size for d in selection)
    if used <= constraints.max_characters:
        return ValidationOutcome(passed=True)
    return ValidationOutcome(
        passed=False,
        details=f"Selection size {used:,} exceeds the hard limit of {constraints.max_characters:,}",
    )


def _unsatisfied_dependency(selection, constraints, config) -> ValidationOutcome:
    available = {d.id for d in selection} | {d.id for d in constraints.context.selected_documents}
    missing = [
        f"{doc.id} requires {prereq}"
        for doc in selection
        for prereq in doc.links.required_ids()
        if prereq not in available
    ]
    if not missing:
        return ValidationOutcome(passed=True)
    return ValidationOutcome(
        passed=False, details=f"Unsatisfied required prerequisites: {'; '.join(missing)}"
    )


def _min_priority(selection, constraints, config) -> ValidationOutcome:
    minimum = config.quality.min_priority_score
    low = [d.id for d in selection if priority_value(d) * 100 < minimum]
    if not low:
        return ValidationOutcome(passed=True)
    return ValidationOutcome(
        passed=False,
        details=f"{len(low)} document(s) below the minimum priority score ({minimum:g}): {', '.join(low)}",
    )


def _target_size(selection, constraints, config) -> ValidationOutcome:
    target = constraints.target_characters
    used = sum(d.size for d in selection)
    if target is None or used <= target:
        return ValidationOutcome(passed=True)
    return ValidationOutcome(
        passed=False, details=f"Selection size {used:,} exceeds the target of {target:,}"
    )


def _declared_conflicts(selection, constraints, config) -> ValidationOutcome:
    ids = {d.id for d in selection}
    pairs = sorted({
        tuple(sorted((doc.id, link.document_id)))
        for doc in selection
        for link in doc.links.conflicts
        if link.document_id in ids and link.document_id != doc.id
    })
    if not pairs:
        return ValidationOutcome(passed=True)
    return ValidationOutcome(
        passed=False,
        details="Declared conflicts in selection: " + ", ".join(f"{a}/{b}" for a, b in pairs),
    )


def builtin_rules() -> list[ValidationRule]:
    return [
        ValidationRule("min-documents", _min_documents,
                       "Selection must contain at least one document", "error"),
        ValidationRule("character-limit", _character_limit,
                       "Selection must not exceed the hard size limit", "error"),
        ValidationRule("unsatisfied-dependency", _unsatisfied_dependency,
                       "Every required prerequisite must be selected", "error"),
        ValidationRule("min-priority", _min_priority,
                       "Documents should meet the minimum priority score", "warning"),
        ValidationRule("target-size", _target_size,
                       "Selection should stay within the target size", "warning"),
        ValidationRule("declared-conflicts", _declared_conflicts,
                       "Selection should not contain declared conflicts", "warning"),
    ]


class QualityEvaluator:
    """Grades a selection across the registered metrics and rules."""

    def __init__(self, config: SelectionConfig | None = None) -> None:
        self.config = config or default_config()
        self._metrics: dict[str, QualityMetric] = {m.name: m for m in builtin_metrics()}
        self._rules: dict[str, ValidationRule] = {r.name: r for r in builtin_rules()}

    def update_config(self, config: SelectionConfig) -> None:
        self.config = config

    # -------------------------------------------------------------------
    # Registries
    # -------------------------------------------------------------------

    def add_metric(
        self,
        name: str,
        metric: QualityMetric | MetricFn,
        weight: float = 1.0,
        group: MetricGroup = MetricGroup.CUSTOM,
        description: str = "",
    ) -> None:
        """Register a metric under `name`, replacing any existing entry.

        `metric` is either a QualityMetric or a plain function
        (selection, constraints, config) -> MetricScore.
        """
        if isinstance(metric, QualityMetric):
            entry = dataclasses.replace(metric, name=name)
        elif callable(metric):
            entry = QualityMetric(name, metric, group, weight, description)
        else:
            raise MetricError(f"Metric '{name}' must be a QualityMetric or a callable")
        if entry.weight < 0:
            raise MetricError(f"Metric '{name}' has a negative weight")
        self._metrics[name] = entry

    def remove_metric(self, name: str) -> bool:
        return self._metrics.pop(name, None) is not None

    def get_available_metrics(self) -> list[QualityMetric]:
        return list(self._metrics.values())

    def add_validation_rule(
        self,
        name: str,
        rule: ValidationRule | ValidationFn,
        severity: str = "warning",
        description: str = "",
    ) -> None:
        if isinstance(rule, ValidationRule):
            entry = dataclasses.replace(rule, name=name)
        elif callable(rule):
            entry = ValidationRule(name, rule, description or name, severity)
        else:
            raise ConfigError(f"Validation rule '{name}' must be a ValidationRule or a callable")
        if entry.severity not in _SEVERITIES:
            raise ConfigError(
                f"Validation rule '{name}' has severity '{entry.severity}', "
                f"expected one of: {', '.join(_SEVERITIES)}"
            )
        self._rules[name] = entry

    def get_validation_rules(self) -> list[str]:
        return [*self._rules, QUALITY_THRESHOLD_RULE]

    # -------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------

    def evaluate_quality(
        self,
        selection: list[Document],
        constraints: SelectionConstraints,
        selection_result: SelectionResult | None = None,
    ) -> QualityReport:
        group_weights = self.config.quality.group_weights
        metrics: dict[str, MetricScore] = {}
        weighted_sum = 0.0
        weight_total = 0.0

        for name, metric in self._metrics.items():
            score = self._run_metric(metric, selection, constraints)
            metrics[name] = score
            weight = metric.weight * group_weights.get(metric.group.value, 1.0) * score.confidence
            weighted_sum += score.value * weight
            weight_total += weight

        overall = weighted_sum / weight_total * 100 if weight_total > 0 else 0.0
        confidence = (
            sum(s.confidence for s in metrics.values()) / len(metrics) if metrics else 0.0
        )
        if not selection:
            confidence *= 0.5
        elif sum(_metadata_completeness(d) for d in selection) / len(selection) < 0.5:
            confidence *= 0.8

        summary = self._summarize(metrics)
        if selection_result is not None:
            summary.critical_issues.extend(self._result_issues(selection, selection_result))

        report = QualityReport(
            overall_score=round(overall, 2),
            confidence=round(confidence, 4),
            grade=grade_for(overall),
            metrics=metrics,
            summary=summary,
            benchmarks=benchmark_for(overall),
            validation=self._validate(selection, constraints, overall),
        )
        logger.debug(
            "Quality %.1f (%s), %d validation failure(s)",
            report.overall_score, report.grade, len(report.validation.failed),
        )
        return report

    def _run_metric(
        self,
        metric: QualityMetric,
        selection: list[Document],
        constraints: SelectionConstraints,
    ) -> MetricScore:
        try:
            score = metric.calculate(selection, constraints, self.config)
            if not isinstance(score, MetricScore):
                raise MetricError(
                    f"Metric '{metric.name}' returned {type(score).__name__}, expected MetricScore"
                )
            return score
        except Exception as e:
            logger.warning("Failed to calculate metric %s: %s", metric.name, e)
            return MetricScore(
                value=0.0,
                confidence=0.0,
                details=MetricDetails(
                    reasoning=[f"Error calculating metric: {e}"],
                    suggestions=["Review metric implementation"],
                ),
            )

    def _validate(
        self,
        selection: list[Document],
        constraints: SelectionConstraints,
        overall: float,
    ) -> ValidationReport:
        report = ValidationReport()
        for name, rule in self._rules.items():
            try:
                outcome = rule.check(selection, constraints, self.config)
            except Exception as e:
                logger.warning("Validation rule %s failed: %s", name, e)
                report.failed.append(ValidationCheck(
                    rule=name, description=f"Validation error: {e}", severity="error",
                ))
                continue
            if outcome.passed:
                report.passed.append(ValidationCheck(rule=name, description=rule.description))
            else:
                report.failed.append(ValidationCheck(
                    rule=name,
                    description=outcome.details or rule.description,
                    severity=rule.severity,
                ))

        threshold = self.config.optimization.quality_threshold
        if overall / 100 >= threshold:
            report.passed.append(ValidationCheck(
                rule=QUALITY_THRESHOLD_RULE,
                description=f"Overall quality meets the threshold ({threshold:.0%})",
            ))
        else:
            report.failed.append(ValidationCheck(
                rule=QUALITY_THRESHOLD_RULE,
                description=f"Overall quality {overall:.1f} is below the threshold ({threshold:.0%})",
                severity="error",
            ))

        checks = len(report.passed) + len(report.failed)
        report.score = round(len(report.passed) / checks, 4) if checks else 0.0
        return report

    @staticmethod
    def _summarize(metrics: dict[str, MetricScore]) -> QualitySummary:
        summary = QualitySummary()
        for name, score in metrics.items():
            label = name.replace("-", " ")
            if score.value >= _STRENGTH:
                summary.strengths.append(f"Excellent {label}")
            elif score.value <= _WEAKNESS:
                summary.weaknesses.append(f"Poor {label}")
                if score.value <= _CRITICAL:
                    summary.critical_issues.append(f"Critical: {label} needs immediate attention")

            if score.details.suggestions:
                if score.value <= 0.3:
                    priority = "high"
                elif score.value <= 0.6:
                    priority = "medium"
                else:
                    priority = "low"
                summary.recommendations.append(Recommendation(
                    priority=priority,
                    action=score.details.suggestions[0],
                    reason=f"Improve {label} (current: {score.value:.0%})",
                    impact=round(1 - score.value, 4),
                ))

        summary.recommendations.sort(key=lambda r: (-_PRIORITY_ORDER[r.priority], -r.impact))
        summary.strengths = summary.strengths[:5]
        summary.weaknesses = summary.weaknesses[:5]
        summary.recommendations = summary.recommendations[:_MAX_RECOMMENDATIONS]
        return summary

    @staticmethod
    def _result_issues(selection: list[Document], result: SelectionResult) -> list[str]:
        ids = {d.id for d in selection}
        issues = [
            f"Unresolved: {issue.message}"
            for issue in result.dependencies.unsatisfied
            if issue.document_id in ids
        ]
        for pair in result.conflicts.flagged:
            if pair.first in ids and pair.second in ids:
                issues.append(f"Conflict between {pair.first} and {pair.second} awaits manual review")
        for cycle in result.dependencies.cycles:
            if ids.intersection(cycle):
                issues.append(f"Dependency cycle: {' -> '.join(cycle + cycle[:1])}")
        return issues
