"""Adaptive document selection under a size budget.

Formulation:
  Given a pool P of documents, a budget B and a strategy with criteria
  weights w, select X ⊆ P maximizing quality(X) subject to:
    1. Budget:  Σ size(v) ≤ B  for v ∈ X
    2. Closure: if v ∈ X, its required prerequisites available in P are in X
    3. Pinned:  pinned documents and their required closure are in X
                whenever they fit

Pipeline:
  1. Tag filter (only when tag constraints are given)
  2. Dependency resolution: conflicts settled, cycles reported, order fixed
  3. Score every remaining candidate with the strategy's criteria
  4. Force pinned documents, run the strategy's algorithm on the rest,
     then repair dependency closure within the budget
  5. Optional local search (single add or swap moves)
  6. Metrics: utilization, quality, diversity, balance, coverage

Hybrid strategies run several base algorithms per iteration, keep the
best by quality, and shift criteria weights toward the subscores where
the winner beats the runner-up, until the winning quality stops moving.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field

from docselect.config import SelectionConfig, default_config, validate_config, validate_strategy
from docselect.conflicts.detector import ConflictDetector
from docselect.exceptions import ConfigError, UnknownStrategyError
from docselect.graph.models import (
    DependencyGraph,
    IssueKind,
    ResolutionIssue,
    ResolutionOptions,
    ResolutionResult,
)
from docselect.graph.resolver import DependencyGraphResolver
from docselect.models import (
    CriteriaWeights,
    Document,
    SelectionAlgorithm,
    SelectionConstraints,
    Strategy,
)
from docselect.scoring.models import ScoringResult
from docselect.scoring.scorer import DocumentScorer
from docselect.selection.algorithms import ALGORITHMS, AlgorithmParams, Candidate
from docselect.selection.models import (
    CoverageAnalysis,
    DependencySummary,
    OptimizationMetrics,
    ScoringSummary,
    SelectionConflicts,
    SelectionMetadata,
    SelectionOptions,
    SelectionResult,
)
from docselect.tags.compatibility import matrix_for
from docselect.tags.filter import TagBasedDocumentFilter
from docselect.tags.models import FilterOptions

logger = logging.getLogger("docselect.selection")

# Weights of the selection quality score (strategy adds diversity/balance)
_RELEVANCE_SHARE = 0.6
_UTILIZATION_SHARE = 0.25
_WEIGHT_STEP = 0.5  # Hybrid learning rate on criteria weights
_EPS = 1e-9


# ---------------------------------------------------------------------------
# Selection metrics
# ---------------------------------------------------------------------------


def diversity_score(documents: list[Document]) -> float:
    """Mean of category, tag and complexity diversity; 0 for <= 1 document."""
    if len(documents) <= 1:
        return 0.0
    n = len(documents)
    categories = {d.category for d in documents}
    tags = {t for d in documents for t in d.tags_primary}
    complexities = {d.complexity for d in documents}
    category_diversity = min(1.0, len(categories) / min(n, 6))
    tag_diversity = min(1.0, len(tags) / (n * 2))
    complexity_diversity = len(complexities) / 4
    return (category_diversity + tag_diversity + complexity_diversity) / 3


def balance_score(documents: list[Document]) -> float:
    """1 - variance/mean of per-category counts; 0 with fewer than two categories."""
    counts = list(Counter(d.category for d in documents).values())
    if len(counts) <= 1:
        return 0.0
    mean = sum(counts) / len(counts)
    variance = sum((c - mean) ** 2 for c in counts) / len(counts)
    return max(0.0, 1 - variance / mean)


def coverage_analysis(documents: list[Document]) -> CoverageAnalysis:
    return CoverageAnalysis(
        category_coverage=dict(Counter(d.category for d in documents)),
        tag_coverage=dict(Counter(t for d in documents for t in d.tags_primary)),
        audience_coverage=dict(Counter(a for d in documents for a in d.audience)),
        complexity_distribution=dict(Counter(d.complexity.value for d in documents)),
    )


@dataclass
class _Run:
    """Per-call state shared by the selection phases."""

    constraints: SelectionConstraints
    strategy: Strategy
    params: AlgorithmParams
    graph: DependencyGraph
    resolution: ResolutionResult
    docs: dict[str, Document]
    position: dict[str, int]
    budget: int
    forced: list[str] = field(default_factory=list)
    prior_ids: set[str] = field(default_factory=set)
    filtered_ids: set[str] = field(default_factory=set)

    def size(self, ids: list[str]) -> int:
        return sum(self.docs[i].size for i in ids)

    def ordered(self, ids) -> list[str]:
        return sorted(ids, key=lambda i: self.position[i])


class AdaptiveDocumentSelector:
    """Chooses a document subset under a size budget with a named strategy."""

    def __init__(self, config: SelectionConfig | None = None) -> None:
        self.update_config(config or default_config())

    def update_config(self, config: SelectionConfig) -> None:
        """Swap configuration; rebuilds the shared compatibility matrix."""
        self.config = validate_config(config)
        self.matrix = matrix_for(config.tags)
        self.scorer = DocumentScorer(config, self.matrix)
        self.filter = TagBasedDocumentFilter(config, self.matrix)
        self.resolver = DependencyGraphResolver()
        self.conflict_detector = ConflictDetector(config, self.matrix)
        self._strategies: dict[str, Strategy] = dict(config.strategies)

    # -------------------------------------------------------------------
    # Strategy registry
    # -------------------------------------------------------------------

    def add_strategy(self, name: str, strategy: Strategy) -> None:
        self._strategies[name] = validate_strategy(strategy)

    def update_strategy(self, name: str, **changes) -> Strategy:
        current = self.get_strategy(name)
        data = current.model_dump()
        data.update(changes)
        updated = validate_strategy(Strategy.model_validate(data))
        self._strategies[name] = updated
        return updated

    def get_available_strategies(self) -> list[Strategy]:
        return list(self._strategies.values())

    def get_strategy(self, strategy: str | Strategy | None = None) -> Strategy:
        if isinstance(strategy, Strategy):
            return validate_strategy(strategy)
        name = strategy or self.config.default_strategy
        if name not in self._strategies:
            raise UnknownStrategyError(name, list(self._strategies))
        return self._strategies[name]

    # -------------------------------------------------------------------
    # Main entry point
    # -------------------------------------------------------------------

    def select_documents(
        self,
        documents: list[Document],
        constraints: SelectionConstraints,
        options: SelectionOptions | None = None,
    ) -> SelectionResult:
        """Select documents for `constraints` with the requested strategy.

        Raises:
            UnknownStrategyError: the strategy name is not registered.
            ConfigError: the strategy's weights are unusable.
        """
        start_time = time.time()
        opts = options or SelectionOptions()
        strategy = self.get_strategy(opts.strategy)
        cfg = self.config
        budget = constraints.max_characters
        max_iterations = opts.max_iterations or cfg.optimization.max_iterations
        if max_iterations < 1:
            raise ConfigError(f"max_iterations must be at least 1, got {max_iterations}")
        threshold = (
            opts.convergence_threshold
            if opts.convergence_threshold is not None
            else cfg.optimization.convergence_threshold
        )

        if budget == 0:
            logger.debug("Zero budget, returning an empty selection")
            return SelectionResult(
                strategy=strategy.name,
                algorithm=strategy.algorithm.value,
                metadata=SelectionMetadata(
                    elapsed_ms=round((time.time() - start_time) * 1000, 2),
                    candidates_considered=len(documents),
                ),
            )

        warnings: list[str] = []
        prior_ids = {d.id for d in constraints.context.selected_documents}
        candidates = [d for d in documents if d.id not in prior_ids]

        # Phase 1: tag filter
        filtered_ids: set[str] = set()
        if constraints.has_tag_constraints:
            filtered = self.filter.filter(candidates, FilterOptions(
                required_tags=constraints.required_tags,
                excluded_tags=constraints.excluded_tags,
                target_audience=constraints.target_audience,
                enforce_tag_compatibility=constraints.enforce_tag_compatibility,
            ))
            filtered_ids = set(filtered.exclusion_reasons)
            candidates = filtered.filtered

        # Phase 2: dependency resolution
        resolution_options = ResolutionOptions(
            max_depth=opts.max_depth if opts.max_depth is not None else cfg.dependencies.max_depth,
            include_optional=(
                opts.include_optional
                if opts.include_optional is not None
                else cfg.dependencies.include_optional
            ),
            conflict_resolution=opts.conflict_resolution or cfg.dependencies.conflict_resolution,
        )
        resolution = self.resolver.resolve(candidates, resolution_options)
        pool = resolution.resolved
        graph = self.resolver.build_graph(pool, include_optional=resolution_options.include_optional)

        run = _Run(
            constraints=constraints,
            strategy=strategy,
            params=self._params(strategy),
            graph=graph,
            resolution=resolution,
            docs={d.id: d for d in pool},
            position={d.id: i for i, d in enumerate(pool)},
            budget=budget,
            prior_ids=prior_ids,
            filtered_ids=filtered_ids,
        )
        run.forced = self._force_pinned(run, resolution_options.max_depth, warnings)

        # Phase 3-4: scoring and selection
        if strategy.algorithm == SelectionAlgorithm.HYBRID:
            selected, unsatisfied, scorings, algorithms_used, iterations, converged = (
                self._run_hybrid(run, max_iterations, threshold)
            )
        else:
            scorings = self._score_pool(run, strategy.criteria)
            selected, unsatisfied = self._complete(run, strategy.algorithm, scorings)
            algorithms_used = [strategy.algorithm.value]
            iterations, converged = 1, True

        # Phase 5: local search
        search_iterations, search_converged = 0, None
        if opts.enable_optimization and selected:
            selected, search_iterations, search_converged = self._local_search(
                run, selected, scorings, max_iterations, threshold
            )
            selected, unsatisfied = self._enforce_closure(run, selected, set(run.forced))

        selected = run.ordered(selected)
        selected_docs = [run.docs[i] for i in selected]

        for issue in unsatisfied:
            logger.warning(issue.message)
            warnings.append(issue.message)

        # Phase 6: metrics
        total_size = run.size(selected)
        chosen = set(selected)
        remaining = [c for c in graph.conflicts if c.first in chosen and c.second in chosen]
        conflicts = SelectionConflicts(
            resolved=sum(1 for r in resolution.resolutions if r.action != "flag"),
            remaining=len(remaining),
            excluded_ids=resolution.excluded,
            flagged=resolution.flagged,
        )
        if opts.enable_conflict_analysis:
            conflicts.analysis = self.conflict_detector.detect_conflicts(selected_docs).summary

        selected_scores = [scorings[i] for i in selected]
        totals = [s.total for s in selected_scores]
        elapsed_ms = (time.time() - start_time) * 1000

        result = SelectionResult(
            selected_documents=selected_docs,
            strategy=strategy.name,
            algorithm=strategy.algorithm.value,
            total_size=total_size,
            max_characters=budget,
            scoring=ScoringSummary(
                total_score=round(sum(totals), 6),
                average_score=round(sum(totals) / len(totals), 6) if totals else 0.0,
                max_score=max(totals, default=0.0),
                min_score=min(totals, default=0.0),
                average_confidence=(
                    round(sum(s.confidence for s in selected_scores) / len(selected_scores), 6)
                    if selected_scores else 0.0
                ),
                results=selected_scores,
            ),
            optimization=OptimizationMetrics(
                space_utilization=round(total_size / budget, 6),
                quality_score=round(self._quality(run, selected, scorings), 6),
                diversity_score=round(diversity_score(selected_docs), 6),
                balance_score=round(balance_score(selected_docs), 6),
            ),
            coverage=coverage_analysis(selected_docs),
            dependencies=DependencySummary(
                resolved_count=len(pool),
                included_dependencies=sum(
                    1 for i in selected
                    if any(i in run.docs[j].links.required_ids() for j in selected if j != i)
                ),
                cycle_count=len(resolution.cycles),
                cycles=resolution.cycles,
                missing_references=len(resolution.missing_references),
                malformed_entries=sum(
                    1 for e in resolution.errors if e.kind == IssueKind.MALFORMED_ENTRY
                ),
                unsatisfied=unsatisfied,
            ),
            conflicts=conflicts,
            metadata=SelectionMetadata(
                elapsed_ms=round(elapsed_ms, 2),
                algorithms_used=algorithms_used,
                iterations=iterations,
                convergence_achieved=converged,
                local_search_iterations=search_iterations,
                local_search_converged=search_converged,
                candidates_considered=len(documents),
                filtered_out=len(filtered_ids),
                warnings=warnings,
            ),
        )
        logger.debug("Selection finished: %s", result.summary())
        return result

    # -------------------------------------------------------------------
    # Phase helpers
    # -------------------------------------------------------------------

    def _params(self, strategy: Strategy) -> AlgorithmParams:
        opt = self.config.optimization
        return AlgorithmParams(
            max_per_category=strategy.max_per_category,
            diversity_bonus=opt.diversity_bonus,
            redundancy_penalty=opt.redundancy_penalty,
            max_cells=opt.knapsack_max_cells,
            topsis_weights=strategy.topsis_weights,
        )

    def _score_pool(self, run: _Run, criteria: CriteriaWeights) -> dict[str, ScoringResult]:
        context = run.constraints.context
        return {
            doc_id: self.scorer.score(doc, context, criteria)
            for doc_id, doc in run.docs.items()
        }

    def _force_pinned(self, run: _Run, max_depth: int, warnings: list[str]) -> list[str]:
        """Pinned documents and their required closure, in dependency order, as budget allows."""
        pinned = list(dict.fromkeys(run.constraints.required_document_ids))
        for doc_id in pinned:
            if doc_id not in run.docs:
                warnings.append(f"Pinned document '{doc_id}' is not available for selection")
        available = [i for i in pinned if i in run.docs]
        if not available:
            return []

        closure = self.resolver.required_closure(run.graph, available, max_depth)
        for t in closure.truncated:
            warnings.append(
                f"Required prerequisite '{t.dependency_id}' of '{t.document_id}' "
                f"is beyond max depth {max_depth}"
            )
        mandatory = set(available) | set(closure.included)

        forced: list[str] = []
        skipped: set[str] = set()
        used = 0
        for doc_id in run.ordered(mandatory):
            doc = run.docs[doc_id]
            blocked = any(p in skipped for p in doc.links.required_ids())
            if blocked or used + doc.size > run.budget:
                skipped.add(doc_id)
                message = f"Pinned document '{doc_id}' cannot be included within the budget"
                logger.warning(message)
                warnings.append(message)
                continue
            forced.append(doc_id)
            used += doc.size
        return forced

    def _complete(
        self,
        run: _Run,
        algorithm: SelectionAlgorithm,
        scorings: dict[str, ScoringResult],
    ) -> tuple[list[str], list[ResolutionIssue]]:
        """Forced documents, then the algorithm on the rest, then closure repair."""
        forced = set(run.forced)
        remaining_budget = run.budget - run.size(run.forced)
        candidates = [
            Candidate(document=run.docs[i], score=scorings[i].total, scoring=scorings[i])
            for i in run.docs
            if i not in forced
        ]
        picked = ALGORITHMS[algorithm](candidates, remaining_budget, run.params)
        return self._enforce_closure(run, run.forced + [c.id for c in picked], forced)

    def _enforce_closure(
        self, run: _Run, ids: list[str], locked: set[str]
    ) -> tuple[list[str], list[ResolutionIssue]]:
        """Add missing required prerequisites that fit; drop documents whose don't.

        Prerequisites that are not in the pool at all are reported and the
        dependent is kept.
        """
        selected = list(dict.fromkeys(ids))
        chosen = set(selected)
        used = run.size(selected)
        rejected: set[str] = set()
        issues: dict[tuple[str, str], ResolutionIssue] = {}

        changed = True
        while changed:
            changed = False
            for doc_id in list(selected):
                if doc_id not in chosen:
                    continue
                for prereq in run.docs[doc_id].links.required_ids():
                    if prereq in chosen or prereq in run.prior_ids:
                        continue
                    if prereq not in run.docs:
                        issues[(doc_id, prereq)] = self._unavailable(run, doc_id, prereq)
                        continue
                    if prereq not in rejected and used + run.docs[prereq].size <= run.budget:
                        selected.append(prereq)
                        chosen.add(prereq)
                        used += run.docs[prereq].size
                        changed = True
                        continue
                    if doc_id in locked:
                        issues[(doc_id, prereq)] = _issue(
                            doc_id, prereq, "does not fit within the budget"
                        )
                        continue
                    chosen.discard(doc_id)
                    rejected.add(doc_id)
                    used -= run.docs[doc_id].size
                    changed = True
                    break

        final = [i for i in selected if i in chosen]
        kept_issues = [v for (doc_id, _), v in issues.items() if doc_id in chosen]
        return final, kept_issues

    @staticmethod
    def _unavailable(run: _Run, doc_id: str, prereq: str) -> ResolutionIssue:
        if prereq in run.resolution.excluded:
            reason = "excluded by conflict resolution"
        elif prereq in run.filtered_ids:
            reason = "removed by the tag filter"
        else:
            reason = "not in pool"
        return _issue(doc_id, prereq, reason)

    def _quality(self, run: _Run, ids: list[str], scorings: dict[str, ScoringResult]) -> float:
        if not ids:
            return 0.0
        docs = [run.docs[i] for i in ids]
        relevance = sum(scorings[i].total for i in ids) / len(ids)
        utilization = min(1.0, run.size(ids) / run.budget) if run.budget > 0 else 0.0
        d = run.strategy.diversity_weight
        b = run.strategy.balance_weight
        value = (
            _RELEVANCE_SHARE * relevance
            + _UTILIZATION_SHARE * utilization
            + d * diversity_score(docs)
            + b * balance_score(docs)
        )
        return value / (_RELEVANCE_SHARE + _UTILIZATION_SHARE + d + b)

    # -------------------------------------------------------------------
    # Hybrid
    # -------------------------------------------------------------------

    def _run_hybrid(self, run: _Run, max_iterations: int, threshold: float):
        base = list(dict.fromkeys(
            a for a in run.strategy.hybrid_algorithms if a != SelectionAlgorithm.HYBRID
        ))
        criteria = run.strategy.criteria
        best: tuple | None = None  # (quality, ids, issues, scorings)
        previous_top: float | None = None
        iterations = 0
        converged = False

        for _ in range(max_iterations):
            iterations += 1
            scorings = self._score_pool(run, criteria)
            runs = []
            for algorithm in base:
                ids, issues = self._complete(run, algorithm, scorings)
                runs.append((self._quality(run, ids, scorings), algorithm, ids, issues))
            runs.sort(key=lambda r: -r[0])
            top = runs[0]
            logger.debug(
                "Hybrid iteration %d: %s", iterations,
                ", ".join(f"{r[1].value}={r[0]:.4f}" for r in runs),
            )
            if best is None or top[0] > best[0] + _EPS:
                best = (top[0], top[2], top[3], scorings)

            if previous_top is not None and abs(top[0] - previous_top) < threshold:
                converged = True
                break
            previous_top = top[0]

            shifted = self._shift_weights(criteria, top[2], runs[1][2], scorings)
            if shifted is None:
                converged = True
                break
            criteria = shifted

        _, ids, issues, scorings = best
        return ids, issues, scorings, [a.value for a in base], iterations, converged

    @staticmethod
    def _shift_weights(
        criteria: CriteriaWeights,
        winner: list[str],
        runner_up: list[str],
        scorings: dict[str, ScoringResult],
    ) -> CriteriaWeights | None:
        """Move weight toward subscores where the winner beats the runner-up."""
        if not winner or not runner_up or set(winner) == set(runner_up):
            return None

        def means(ids: list[str]) -> dict[str, float]:
            return {
                name: sum(getattr(scorings[i].scores, name) for i in ids) / len(ids)
                for name in criteria.as_dict()
            }

        win, lose = means(winner), means(runner_up)
        weights = criteria.as_dict()
        diffs = {name: win[name] - lose[name] for name in weights}
        if all(abs(d) < _EPS for d in diffs.values()):
            return None
        shifted = {
            name: max(0.0, w + _WEIGHT_STEP * diffs[name] * criteria.total)
            for name, w in weights.items()
        }
        new_total = sum(shifted.values())
        if new_total <= 0:
            return None
        scale = criteria.total / new_total
        return CriteriaWeights.from_dict({k: v * scale for k, v in shifted.items()})

    # -------------------------------------------------------------------
    # Local search
    # -------------------------------------------------------------------

    def _local_search(
        self,
        run: _Run,
        ids: list[str],
        scorings: dict[str, ScoringResult],
        max_iterations: int,
        threshold: float,
    ) -> tuple[list[str], int, bool]:
        """Best single add or swap per pass until the gain drops below `threshold`."""
        current = list(ids)
        quality = self._quality(run, current, scorings)
        locked = set(run.forced)
        iterations = 0

        for _ in range(max_iterations):
            iterations += 1
            chosen = set(current)
            used = run.size(current)
            needed = {p for i in current for p in run.docs[i].links.required_ids()}
            removable = [i for i in current if i not in locked and i not in needed]
            addable = [
                i for i in run.docs
                if i not in chosen and all(
                    p in chosen or p in run.prior_ids or p not in run.docs
                    for p in run.docs[i].links.required_ids()
                )
            ]

            best_move: list[str] | None = None
            best_quality = quality
            for add in addable:
                size = run.docs[add].size
                if used + size <= run.budget:
                    trial = current + [add]
                    q = self._quality(run, trial, scorings)
                    if q > best_quality:
                        best_move, best_quality = trial, q
                for drop in removable:
                    if drop in run.docs[add].links.required_ids():
                        continue
                    if used - run.docs[drop].size + size > run.budget:
                        continue
                    trial = [i for i in current if i != drop] + [add]
                    q = self._quality(run, trial, scorings)
                    if q > best_quality:
                        best_move, best_quality = trial, q

            if best_move is None or best_quality - quality < threshold:
                return current, iterations, True
            current, quality = best_move, best_quality

        return current, iterations, False


def _issue(doc_id: str, prereq: str, reason: str) -> ResolutionIssue:
    return ResolutionIssue(
        kind=IssueKind.UNSATISFIED_DEPENDENCY,
        document_id=doc_id,
        related_id=prereq,
        relation="prerequisite",
        message=f"Required prerequisite '{prereq}' of '{doc_id}' is unavailable: {reason}",
    )
