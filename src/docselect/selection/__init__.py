"""Budgeted document selection."""

from docselect.selection.algorithms import (
    ALGORITHMS,
    AlgorithmParams,
    Candidate,
    greedy_select,
    knapsack_select,
    topsis_select,
)
from docselect.selection.models import SelectionOptions, SelectionResult
from docselect.selection.selector import (
    AdaptiveDocumentSelector,
    balance_score,
    coverage_analysis,
    diversity_score,
)

__all__ = [
    "ALGORITHMS",
    "AdaptiveDocumentSelector",
    "AlgorithmParams",
    "Candidate",
    "SelectionOptions",
    "SelectionResult",
    "balance_score",
    "coverage_analysis",
    "diversity_score",
    "greedy_select",
    "knapsack_select",
    "topsis_select",
]
