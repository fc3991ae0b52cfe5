"""Quality report models and the metric/validation registry entries."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field

from docselect.config import SelectionConfig
from docselect.models import Document, SelectionConstraints


class MetricGroup(str, Enum):
    CONTENT = "content"
    STRUCTURE = "structure"
    AUDIENCE = "audience"
    COVERAGE = "coverage"
    CUSTOM = "custom"


class MetricDetails(BaseModel):
    measured: Any = None
    expected: Any = None
    reasoning: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class MetricScore(BaseModel):
    """Result of one metric: value and confidence in [0, 1]."""

    value: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    details: MetricDetails = Field(default_factory=MetricDetails)


# (selection, constraints, config) -> MetricScore
MetricFn = Callable[[list[Document], SelectionConstraints, SelectionConfig], MetricScore]


@dataclass
class QualityMetric:
    name: str
    calculate: MetricFn
    group: MetricGroup = MetricGroup.CUSTOM
    weight: float = 1.0
    description: str = ""


class ValidationOutcome(BaseModel):
    passed: bool
    details: str | None = None


ValidationFn = Callable[
    [list[Document], SelectionConstraints, SelectionConfig], ValidationOutcome
]


@dataclass
class ValidationRule:
    name: str
    check: ValidationFn
    description: str = ""
    severity: str = "warning"  # error | warning


class Recommendation(BaseModel):
    priority: str  # high | medium | low
    action: str
    reason: str
    impact: float = 0.0  # Expected improvement, 0..1


class QualitySummary(BaseModel):
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)


class BenchmarkComparison(BaseModel):
    category: str = "Document Selection Quality"
    performance: str = "poor"  # excellent | good | average | below-average | poor
    percentile: int = 10
    comparison: str = ""


class ValidationCheck(BaseModel):
    rule: str
    description: str
    severity: str | None = None  # Set on failures


class ValidationReport(BaseModel):
    passed: list[ValidationCheck] = Field(default_factory=list)
    failed: list[ValidationCheck] = Field(default_factory=list)
    score: float = 0.0

    @property
    def errors(self) -> list[ValidationCheck]:
        return [f for f in self.failed if f.severity == "error"]


class QualityReport(BaseModel):
    overall_score: float = 0.0  # 0..100
    confidence: float = 0.0
    grade: str = "F"
    metrics: dict[str, MetricScore] = Field(default_factory=dict)
    summary: QualitySummary = Field(default_factory=QualitySummary)
    benchmarks: BenchmarkComparison = Field(default_factory=BenchmarkComparison)
    validation: ValidationReport = Field(default_factory=ValidationReport)

    @property
    def passed(self) -> bool:
        return not self.validation.errors
