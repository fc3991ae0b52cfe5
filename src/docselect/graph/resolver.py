"""Dependency graph construction, cycle detection, ordering and conflict resolution.

Graph:
  One node per document id in the pool. Edges point from the document that
  must come first to the one that needs it:

    prereq -> doc    for each prerequisite (optional ones only on request)
    ref    -> doc    for each reference

  Relations to ids outside the pool are recorded as missing references,
  never added as edges. Entries with empty ids are recorded as errors.

Resolution (`resolve`):
  1. Build the graph over the pool
  2. Expand required prerequisites of the requested documents (BFS, max_depth)
  3. Settle declared conflicts with the configured strategy
  4. Report kept documents whose required prerequisites are gone
  5. Order the kept set: Kahn's algorithm, DFS post-order fallback on cycles

Cycles are never fatal. Every call returns a best-effort order and the
list of cycles that prevented a complete one.
"""

from __future__ import annotations

import heapq
import logging
from collections import deque

import networkx as nx

from docselect.graph.models import (
    AppliedResolution,
    ClosureResult,
    ConflictPair,
    DependencyGraph,
    DependencyInfo,
    EdgeKind,
    GraphStatistics,
    IssueKind,
    MissingReference,
    ResolutionIssue,
    ResolutionOptions,
    ResolutionResult,
    TopologicalOrder,
    TruncatedExpansion,
)
from docselect.models import ConflictResolution, Document, Importance, Severity

logger = logging.getLogger("docselect.graph")

# Dependency-score impact of one edge (see DocumentScorer._dependency_score)
_PREREQUISITE_IMPACT = 0.3
_REFERENCE_IMPACT = 0.3


def _blank(doc_id: str | None) -> bool:
    return doc_id is None or not str(doc_id).strip()


class DependencyGraphResolver:
    """Builds and analyzes the document dependency graph."""

    # -------------------------------------------------------------------
    # Graph construction
    # -------------------------------------------------------------------

    def build_graph(
        self, documents: list[Document], include_optional: bool = False
    ) -> DependencyGraph:
        dep = DependencyGraph()
        g = dep.graph

        for doc in documents:
            if doc.id in g:
                dep.errors.append(ResolutionIssue(
                    kind=IssueKind.DUPLICATE_ID,
                    document_id=doc.id,
                    message=f"Duplicate document id '{doc.id}', keeping the first occurrence",
                ))
                continue
            g.add_node(doc.id, document=doc)

        pairs: dict[tuple[str, str], ConflictPair] = {}
        for doc_id in list(g.nodes):
            doc = dep.document(doc_id)
            links = doc.links
            ref_total = sum(r.relevance for r in links.references if not _blank(r.document_id))

            for prereq in links.prerequisites:
                if not self._check_link(dep, doc_id, prereq.document_id, "prerequisite"):
                    continue
                if prereq.importance == Importance.OPTIONAL and not include_optional:
                    continue
                self._add_edge(
                    g, prereq.document_id, doc_id,
                    kind=EdgeKind.PREREQUISITE,
                    importance=prereq.importance,
                    weight=_PREREQUISITE_IMPACT,
                )

            for ref in links.references:
                if not self._check_link(dep, doc_id, ref.document_id, "reference"):
                    continue
                share = ref.relevance / ref_total if ref_total > 0 else 0.0
                self._add_edge(
                    g, ref.document_id, doc_id,
                    kind=EdgeKind.REFERENCE,
                    importance=Importance.OPTIONAL,
                    weight=_REFERENCE_IMPACT * share,
                )

            for conflict in links.conflicts:
                if not self._check_link(dep, doc_id, conflict.document_id, "conflict"):
                    continue
                if conflict.document_id == doc_id:
                    continue
                key = tuple(sorted((doc_id, conflict.document_id)))
                existing = pairs.get(key)
                if existing is None:
                    pairs[key] = ConflictPair(
                        first=key[0], second=key[1],
                        severity=conflict.severity, reason=conflict.reason,
                    )
                elif _severity_rank(conflict.severity) > _severity_rank(existing.severity):
                    existing.severity = conflict.severity
                    existing.reason = conflict.reason or existing.reason

            for relation, related in (("complement", links.complements), ("followup", links.followups)):
                for link in related:
                    self._check_link(dep, doc_id, link.document_id, relation)

        dep.conflicts = list(pairs.values())
        return dep

    @staticmethod
    def _check_link(dep: DependencyGraph, doc_id: str, target: str | None, relation: str) -> bool:
        """Record malformed or dangling entries; True when the link is usable."""
        if _blank(target):
            dep.errors.append(ResolutionIssue(
                kind=IssueKind.MALFORMED_ENTRY,
                document_id=doc_id,
                relation=relation,
                message=f"Document '{doc_id}' has a {relation} entry with an empty document id",
            ))
            return False
        if target not in dep.graph:
            dep.missing_references.append(
                MissingReference(source_id=doc_id, target_id=target, relation=relation)
            )
            return False
        return True

    @staticmethod
    def _add_edge(g: nx.DiGraph, u: str, v: str, **attrs) -> None:
        # A prerequisite edge outranks a reference edge between the same pair
        if g.has_edge(u, v):
            current = g.edges[u, v]
            if current["kind"] == EdgeKind.PREREQUISITE and attrs["kind"] == EdgeKind.REFERENCE:
                return
            if (
                current["kind"] == attrs["kind"] == EdgeKind.PREREQUISITE
                and current["importance"] == Importance.REQUIRED
            ):
                return
        g.add_edge(u, v, **attrs)

    # -------------------------------------------------------------------
    # Cycle detection
    # -------------------------------------------------------------------

    def detect_cycles(
        self, graph: DependencyGraph | nx.DiGraph, nodes: list[str] | None = None
    ) -> list[list[str]]:
        """Depth-first search with an explicit recursion stack.

        Each back-edge yields one cycle: the stack slice from the back-edge
        target to the current node. A self-loop yields a one-node cycle.
        Deterministic for a given graph, so repeated calls agree.
        """
        g = graph.graph if isinstance(graph, DependencyGraph) else graph
        allowed = set(g.nodes) if nodes is None else set(nodes) & set(g.nodes)
        roots = [n for n in g.nodes if n in allowed]

        visited: set[str] = set()
        cycles: list[list[str]] = []

        for root in roots:
            if root in visited:
                continue
            path: list[str] = [root]
            on_path: set[str] = {root}
            visited.add(root)
            stack = [(root, iter(g.successors(root)))]
            while stack:
                node, successors = stack[-1]
                advanced = False
                for succ in successors:
                    if succ not in allowed:
                        continue
                    if succ in on_path:
                        cycles.append(path[path.index(succ):])
                    elif succ not in visited:
                        visited.add(succ)
                        path.append(succ)
                        on_path.add(succ)
                        stack.append((succ, iter(g.successors(succ))))
                        advanced = True
                        break
                if not advanced:
                    stack.pop()
                    on_path.discard(path.pop())
        return cycles

    # -------------------------------------------------------------------
    # Ordering
    # -------------------------------------------------------------------

    def topological_order(
        self,
        graph: DependencyGraph,
        nodes: list[str] | None = None,
        by_priority: bool = False,
    ) -> TopologicalOrder:
        """Kahn's algorithm over `nodes`, with a DFS post-order fallback.

        With `by_priority`, ties in the zero-in-degree frontier go to the
        higher priority score; otherwise to the earlier pool position.
        """
        g = graph.graph
        subset = [n for n in (graph.nodes if nodes is None else nodes) if n in g]
        members = set(subset)
        position = {n: i for i, n in enumerate(subset)}

        def key(n: str) -> tuple:
            if by_priority:
                return (-graph.document(n).priority_score, position[n])
            return (position[n],)

        in_degree = {
            n: sum(1 for p in g.predecessors(n) if p in members) for n in subset
        }
        frontier = [(key(n), n) for n in subset if in_degree[n] == 0]
        heapq.heapify(frontier)

        order: list[str] = []
        while frontier:
            _, node = heapq.heappop(frontier)
            order.append(node)
            for succ in g.successors(node):
                if succ not in members or succ == node:
                    continue
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    heapq.heappush(frontier, (key(succ), succ))

        if len(order) == len(subset):
            return TopologicalOrder(order=order, complete=True)

        placed = set(order)
        remaining = [n for n in subset if n not in placed]
        cycles = self.detect_cycles(graph, remaining)
        logger.warning(
            "Dependency cycles prevent a complete order: %d node(s) placed by fallback",
            len(remaining),
        )
        order.extend(self._dfs_post_order(g, remaining))
        return TopologicalOrder(order=order, complete=False, cycles=cycles)

    @staticmethod
    def _dfs_post_order(g: nx.DiGraph, nodes: list[str]) -> list[str]:
        """Place each node after the predecessors reachable without revisiting."""
        members = set(nodes)
        visited: set[str] = set()
        out: list[str] = []
        for start in nodes:
            if start in visited:
                continue
            visited.add(start)
            stack = [(start, iter(g.predecessors(start)))]
            while stack:
                node, preds = stack[-1]
                for pred in preds:
                    if pred in members and pred not in visited:
                        visited.add(pred)
                        stack.append((pred, iter(g.predecessors(pred))))
                        break
                else:
                    stack.pop()
                    out.append(node)
        return out

    # -------------------------------------------------------------------
    # Required-dependency closure
    # -------------------------------------------------------------------

    def required_closure(
        self,
        graph: DependencyGraph,
        seeds: list[str],
        max_depth: int = 3,
        exclude: set[str] | None = None,
    ) -> ClosureResult:
        """Breadth-first expansion of required prerequisites from `seeds`.

        Expansion stops at `max_depth` hops; each prerequisite left out by
        the bound is reported in `truncated`.
        """
        exclude = exclude or set()
        result = ClosureResult()
        visited = {s for s in seeds if s in graph}
        queue = deque((s, 0) for s in seeds if s in graph)

        while queue:
            node, depth = queue.popleft()
            for prereq_id in graph.document(node).links.required_ids():
                if prereq_id in visited:
                    continue
                if prereq_id not in graph or prereq_id in exclude:
                    reason = "excluded" if prereq_id in exclude else "not in pool"
                    result.unsatisfied.append(_unsatisfied(node, prereq_id, reason))
                    continue
                if depth >= max_depth:
                    result.truncated.append(TruncatedExpansion(
                        document_id=node, dependency_id=prereq_id, depth=depth + 1,
                    ))
                    continue
                visited.add(prereq_id)
                result.included.append(prereq_id)
                queue.append((prereq_id, depth + 1))

        if result.truncated:
            logger.debug(
                "Required-dependency expansion truncated at depth %d (%d link(s))",
                max_depth, len(result.truncated),
            )
        return result

    # -------------------------------------------------------------------
    # Full resolution
    # -------------------------------------------------------------------

    def resolve(
        self,
        documents: list[Document],
        options: ResolutionOptions | None = None,
        pool: list[Document] | None = None,
    ) -> ResolutionResult:
        """Resolve `documents` against `pool` (defaults to the documents themselves)."""
        opts = options or ResolutionOptions()
        pool_docs = list(pool) if pool is not None else list(documents)
        pool_ids = {d.id for d in pool_docs}
        pool_docs.extend(d for d in documents if d.id not in pool_ids)

        graph = self.build_graph(pool_docs, include_optional=opts.include_optional)
        requested = list(dict.fromkeys(d.id for d in documents if d.id in graph))
        requested_set = set(requested)

        # Phase 1: required prerequisites of the requested documents
        closure = self.required_closure(graph, requested, opts.max_depth)
        active = requested + [i for i in closure.included if i not in requested_set]

        # Phase 2: conflicts among the active set
        excluded, applied, flagged = self._resolve_conflicts(
            graph, active, opts.conflict_resolution
        )
        kept = [i for i in active if i not in excluded]

        # Phase 3: dependency cycles
        cycles = self.detect_cycles(graph, kept)
        if cycles and opts.conflict_resolution == ConflictResolution.BREAK_CYCLES:
            applied.extend(self._break_cycles(graph, kept))

        # Phase 4: kept documents whose required prerequisites are gone
        kept_set = set(kept)
        truncated_pairs = {(t.document_id, t.dependency_id) for t in closure.truncated}
        unsatisfied: list[ResolutionIssue] = []
        for doc_id in kept:
            for prereq_id in graph.document(doc_id).links.required_ids():
                if prereq_id in kept_set:
                    continue
                if prereq_id in excluded:
                    reason = "excluded by conflict resolution"
                elif prereq_id not in graph:
                    reason = "not in pool"
                elif (doc_id, prereq_id) in truncated_pairs:
                    reason = f"beyond max depth {opts.max_depth}"
                else:
                    reason = "not included"
                unsatisfied.append(_unsatisfied(doc_id, prereq_id, reason))

        # Phase 5: ordering
        topo = self.topological_order(graph, kept, by_priority=opts.ordering == "priority")

        for issue in unsatisfied:
            logger.warning(issue.message)

        return ResolutionResult(
            resolved=graph.documents(topo.order),
            order_complete=topo.complete,
            included_dependencies=[i for i in closure.included if i in kept_set],
            excluded=[i for i in active if i in excluded],
            resolutions=applied,
            flagged=flagged,
            cycles=cycles,
            missing_references=graph.missing_references,
            truncated=closure.truncated,
            unsatisfied=unsatisfied,
            errors=graph.errors + unsatisfied,
            statistics=self.graph_statistics(graph),
        )

    def _resolve_conflicts(
        self,
        graph: DependencyGraph,
        active: list[str],
        strategy: ConflictResolution,
    ) -> tuple[set[str], list[AppliedResolution], list[ConflictPair]]:
        members = set(active)
        pairs = [c for c in graph.conflicts if c.first in members and c.second in members]
        # Most severe first, then the pair holding the highest priority
        pairs.sort(key=lambda c: (
            -_severity_rank(c.severity),
            -max(graph.document(c.first).priority_score, graph.document(c.second).priority_score),
            c.ids,
        ))
        position = {n: i for i, n in enumerate(active)}

        excluded: set[str] = set()
        applied: list[AppliedResolution] = []
        flagged: list[ConflictPair] = []

        for pair in pairs:
            if pair.first in excluded or pair.second in excluded:
                continue
            a, b = graph.document(pair.first), graph.document(pair.second)
            label = f"{a.id} conflicts with {b.id}"
            if pair.reason:
                label += f" ({pair.reason})"

            if strategy in (ConflictResolution.MANUAL_REVIEW, ConflictResolution.BREAK_CYCLES):
                flagged.append(pair)
                applied.append(AppliedResolution(
                    strategy=strategy, action="flag",
                    reason=f"{label}: flagged for manual review",
                    affected_ids=[a.id, b.id],
                ))
                continue

            if a.priority_score == b.priority_score:
                if strategy == ConflictResolution.EXCLUDE_CONFLICTS:
                    flagged.append(pair)
                    applied.append(AppliedResolution(
                        strategy=strategy, action="flag",
                        reason=f"{label}: equal scores, flagged for manual review",
                        affected_ids=[a.id, b.id],
                    ))
                    continue
                # Higher tier wins, then the earlier document
                loser = b if (a.priority_tier.rank, -position[a.id]) > (
                    b.priority_tier.rank, -position[b.id]
                ) else a
            else:
                loser = b if a.priority_score > b.priority_score else a

            winner = a if loser is b else b
            excluded.add(loser.id)
            applied.append(AppliedResolution(
                strategy=strategy, action="exclude",
                reason=(
                    f"{label}: kept {winner.id} ({winner.priority_score:g}) over "
                    f"{loser.id} ({loser.priority_score:g})"
                ),
                affected_ids=[a.id, b.id],
                excluded_ids=[loser.id],
            ))

        return excluded, applied, flagged

    def _break_cycles(self, graph: DependencyGraph, nodes: list[str]) -> list[AppliedResolution]:
        """Cut the weakest edge of each cycle until the node set is acyclic."""
        g = graph.graph
        applied: list[AppliedResolution] = []
        for _ in range(g.number_of_edges()):
            cycles = self.detect_cycles(graph, nodes)
            if not cycles:
                break
            cycle = cycles[0]
            edges = [(cycle[i], cycle[(i + 1) % len(cycle)]) for i in range(len(cycle))]
            u, v = min(edges, key=lambda e: (
                g.edges[e]["weight"],
                g.edges[e]["kind"] == EdgeKind.PREREQUISITE,
                g.edges[e]["importance"] == Importance.REQUIRED,
                e,
            ))
            g.remove_edge(u, v)
            applied.append(AppliedResolution(
                strategy=ConflictResolution.BREAK_CYCLES,
                action="remove-edge",
                reason=f"Removed {u}->{v} to break cycle {' -> '.join(cycle + [cycle[0]])}",
                affected_ids=[u, v],
            ))
        return applied

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------

    def _depths(self, graph: DependencyGraph) -> dict[str, int]:
        topo = self.topological_order(graph)
        depth: dict[str, int] = {}
        for node in topo.order:
            preds = [depth[p] for p in graph.graph.predecessors(node) if p in depth]
            depth[node] = 1 + max(preds) if preds else 0
        return depth

    def get_dependency_info(self, graph: DependencyGraph, doc_id: str) -> DependencyInfo | None:
        if doc_id not in graph:
            return None
        g = graph.graph
        references = [
            u for u in g.predecessors(doc_id) if g.edges[u, doc_id]["kind"] == EdgeKind.REFERENCE
        ]
        conflicts = sorted(
            (c.second if c.first == doc_id else c.first)
            for c in graph.conflicts if doc_id in c.ids
        )
        return DependencyInfo(
            document_id=doc_id,
            prerequisites=graph.prerequisites_of(doc_id),
            dependents=graph.dependents_of(doc_id),
            references=references,
            conflicts=conflicts,
            depth=self._depths(graph).get(doc_id, 0),
            is_root=g.in_degree(doc_id) == 0,
            is_leaf=g.out_degree(doc_id) == 0,
        )

    def graph_statistics(self, graph: DependencyGraph) -> GraphStatistics:
        g = graph.graph
        depths = self._depths(graph)
        kinds = [data["kind"] for _, _, data in g.edges(data=True)]
        return GraphStatistics(
            nodes=g.number_of_nodes(),
            edges=g.number_of_edges(),
            prerequisite_edges=sum(1 for k in kinds if k == EdgeKind.PREREQUISITE),
            reference_edges=sum(1 for k in kinds if k == EdgeKind.REFERENCE),
            roots=sum(1 for n in g.nodes if g.in_degree(n) == 0),
            leaves=sum(1 for n in g.nodes if g.out_degree(n) == 0),
            average_depth=round(sum(depths.values()) / len(depths), 3) if depths else 0.0,
            max_depth=max(depths.values(), default=0),
            cycles=len(self.detect_cycles(graph)),
            conflicts=len(graph.conflicts),
            missing_references=len(graph.missing_references),
        )


def _severity_rank(severity: Severity | None) -> float:
    # Unspecified severity sits between minor and moderate
    return severity.rank if severity is not None else 0.5


def _unsatisfied(doc_id: str, prereq_id: str, reason: str) -> ResolutionIssue:
    return ResolutionIssue(
        kind=IssueKind.UNSATISFIED_DEPENDENCY,
        document_id=doc_id,
        related_id=prereq_id,
        relation="prerequisite",
        message=f"Required prerequisite '{prereq_id}' of '{doc_id}' is unavailable: {reason}",
    )
