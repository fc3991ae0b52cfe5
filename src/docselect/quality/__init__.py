"""Quality evaluation of finished selections."""

from docselect.quality.evaluator import QualityEvaluator, benchmark_for, grade_for
from docselect.quality.models import (
    MetricDetails,
    MetricGroup,
    MetricScore,
    QualityMetric,
    QualityReport,
    ValidationOutcome,
    ValidationRule,
)

__all__ = [
    "MetricDetails",
    "MetricGroup",
    "MetricScore",
    "QualityEvaluator",
    "QualityMetric",
    "QualityReport",
    "ValidationOutcome",
    "ValidationRule",
    "benchmark_for",
    "grade_for",
]
