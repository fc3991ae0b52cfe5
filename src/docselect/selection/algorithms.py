"""Budgeted subset selection algorithms.

Each algorithm is a pure function

    (candidates, budget, params) -> selected candidates

that never returns a set whose total size exceeds `budget`. They are
looked up by `SelectionAlgorithm` through `ALGORITHMS`; hybrid selection
composes them and lives in the selector.

  greedy    sort by score desc (smaller size first on ties), take what fits
  knapsack  exact 0/1 DP over discretized sizes, O(n * capacity)
  topsis    rank by closeness to the ideal over relevance, score density
            and category rarity, then take what fits
"""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from docselect.models import Document, SelectionAlgorithm, TopsisWeights
from docselect.scoring.models import ScoringResult

_EPS = 1e-12


@dataclass
class Candidate:
    """A scored document competing for budget."""

    document: Document
    score: float
    scoring: ScoringResult | None = None

    @property
    def id(self) -> str:
        return self.document.id

    @property
    def size(self) -> int:
        return self.document.size

    @property
    def category(self) -> str:
        return self.document.category


@dataclass
class AlgorithmParams:
    max_per_category: int | None = None
    diversity_bonus: float = 0.1  # Knapsack: first document of a category
    redundancy_penalty: float = 0.2  # Knapsack: documents past the category cap
    max_cells: int = 10_000  # Knapsack: capacity columns after discretization
    topsis_weights: TopsisWeights = field(default_factory=TopsisWeights)


AlgorithmFn = Callable[[list[Candidate], int, AlgorithmParams], list[Candidate]]


def _by_score(candidates: list[Candidate]) -> list[Candidate]:
    indexed = list(enumerate(candidates))
    indexed.sort(key=lambda ic: (-ic[1].score, ic[1].size, ic[0]))
    return [c for _, c in indexed]


def _take_while_fits(
    ranked: list[Candidate], budget: int, max_per_category: int | None
) -> list[Candidate]:
    selected: list[Candidate] = []
    used = 0
    per_category: Counter[str] = Counter()
    for cand in ranked:
        if used + cand.size > budget:
            continue
        if max_per_category is not None and per_category[cand.category] >= max_per_category:
            continue
        selected.append(cand)
        used += cand.size
        per_category[cand.category] += 1
    return selected


# ---------------------------------------------------------------------------
# Greedy
# ---------------------------------------------------------------------------


def greedy_select(
    candidates: list[Candidate], budget: int, params: AlgorithmParams
) -> list[Candidate]:
    if budget <= 0:
        return []
    return _take_while_fits(_by_score(candidates), budget, params.max_per_category)


# ---------------------------------------------------------------------------
# Knapsack
# ---------------------------------------------------------------------------


def _knapsack_values(items: list[Candidate], params: AlgorithmParams) -> list[float]:
    """Score plus the category-diversity adjustment.

    The adjustment depends on an item's rank within its category (by score):
    rank 0 gets the diversity bonus, ranks at or past the per-category cap
    get the redundancy penalty.
    """
    by_category: dict[str, list[int]] = defaultdict(list)
    for idx in sorted(range(len(items)), key=lambda i: (-items[i].score, items[i].size, i)):
        by_category[items[idx].category].append(idx)

    values = [c.score for c in items]
    for members in by_category.values():
        for rank, idx in enumerate(members):
            if rank == 0:
                values[idx] += params.diversity_bonus
            if params.max_per_category is not None and rank >= params.max_per_category:
                values[idx] -= params.redundancy_penalty
    return values


def knapsack_select(
    candidates: list[Candidate], budget: int, params: AlgorithmParams
) -> list[Candidate]:
    if budget <= 0:
        return []
    items = [c for c in candidates if c.size <= budget]
    if not items:
        return []

    # Weights round up, so a feasible discretized set is feasible in real units
    unit = max(1, math.ceil(budget / max(params.max_cells, 1)))
    capacity = budget // unit
    weights = [math.ceil(c.size / unit) for c in items]
    values = _knapsack_values(items, params)

    best = np.zeros(capacity + 1)
    keep = np.zeros((len(items), capacity + 1), dtype=bool)
    for i, (weight, value) in enumerate(zip(weights, values)):
        if value <= 0 or weight > capacity:
            continue
        # Row update from the previous row only (0/1, each item used once)
        candidate = best[: capacity + 1 - weight] + value
        improved = candidate > best[weight:] + _EPS
        keep[i, weight:] = improved
        best[weight:] = np.where(improved, candidate, best[weight:])

    chosen: list[Candidate] = []
    w = capacity
    for i in range(len(items) - 1, -1, -1):
        if keep[i, w]:
            chosen.append(items[i])
            w -= weights[i]
    return _by_score(chosen)


# ---------------------------------------------------------------------------
# TOPSIS
# ---------------------------------------------------------------------------


def topsis_closeness(
    candidates: list[Candidate], weights: TopsisWeights
) -> list[float]:
    """Relative closeness to the ideal solution for each candidate.

    Criteria (all benefit criteria): relevance = score, efficiency =
    score / size, diversity = 1 / number of candidates in the category.
    Columns are vector-normalized, then weighted.
    """
    if not candidates:
        return []
    category_counts = Counter(c.category for c in candidates)
    matrix = np.array(
        [
            [c.score, c.score / max(c.size, 1), 1.0 / category_counts[c.category]]
            for c in candidates
        ],
        dtype=float,
    )
    column_weights = np.array([weights.relevance, weights.efficiency, weights.diversity])

    norms = np.linalg.norm(matrix, axis=0)
    safe = np.where(norms > 0, norms, 1.0)
    matrix = np.where(norms > 0, matrix / safe, 0.0) * column_weights

    ideal = matrix.max(axis=0)
    anti = matrix.min(axis=0)
    d_plus = np.linalg.norm(matrix - ideal, axis=1)
    d_minus = np.linalg.norm(matrix - anti, axis=1)
    total = d_plus + d_minus

    closeness = np.full(len(candidates), 0.5)
    np.divide(d_minus, total, out=closeness, where=total > 0)
    return [float(x) for x in closeness]


def topsis_select(
    candidates: list[Candidate], budget: int, params: AlgorithmParams
) -> list[Candidate]:
    if budget <= 0 or not candidates:
        return []
    closeness = topsis_closeness(candidates, params.topsis_weights)
    order = sorted(
        range(len(candidates)),
        key=lambda i: (-closeness[i], -candidates[i].score, candidates[i].size, i),
    )
    ranked = [candidates[i] for i in order]
    return _take_while_fits(ranked, budget, params.max_per_category)


ALGORITHMS: dict[SelectionAlgorithm, AlgorithmFn] = {
    SelectionAlgorithm.GREEDY: greedy_select,
    SelectionAlgorithm.KNAPSACK: knapsack_select,
    SelectionAlgorithm.TOPSIS: topsis_select,
}
