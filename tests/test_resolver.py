"""Tests for the dependency graph resolver."""

from __future__ import annotations

import pytest

from docselect.exceptions import GraphError
from docselect.graph.models import IssueKind, ResolutionOptions
from docselect.graph.resolver import DependencyGraphResolver
from docselect.models import ConflictResolution, Prerequisite


@pytest.fixture
def resolver():
    return DependencyGraphResolver()


@pytest.fixture
def cyclic_pair(make_doc):
    return [make_doc("x", requires=["y"]), make_doc("y", requires=["x"])]


class TestBuildGraph:
    def test_edges_point_from_prerequisite(self, resolver, sample_pool):
        graph = resolver.build_graph(sample_pool)
        assert "intro->install" in graph.edges
        assert "install->tutorial" in graph.edges
        assert "tutorial->examples" in graph.edges
        assert graph.prerequisites_of("tutorial") == ["install"]
        assert sorted(graph.dependents_of("intro")) == ["advanced-patterns", "install"]

    def test_conflicts_collected_once(self, resolver, make_doc):
        docs = [
            make_doc("a", conflicts={"b": "minor"}),
            make_doc("b", conflicts={"a": "major"}),
        ]
        graph = resolver.build_graph(docs)
        assert len(graph.conflicts) == 1
        assert graph.conflicts[0].ids == ("a", "b")
        assert graph.conflicts[0].severity.value == "major"

    def test_optional_prerequisites_need_opt_in(self, resolver, make_doc):
        docs = [make_doc("a"), make_doc("b", optional=["a"])]
        assert resolver.build_graph(docs).edges == {}
        assert "a->b" in resolver.build_graph(docs, include_optional=True).edges

    def test_missing_and_malformed_entries(self, resolver, make_doc):
        doc = make_doc("a", requires=["ghost"])
        doc.dependencies.prerequisites.append(Prerequisite(document_id=""))
        graph = resolver.build_graph([doc])

        assert [(m.source_id, m.target_id, m.relation) for m in graph.missing_references] == [
            ("a", "ghost", "prerequisite")
        ]
        assert [e.kind for e in graph.errors] == [IssueKind.MALFORMED_ENTRY]
        assert graph.edges == {}

    def test_duplicate_ids_keep_first(self, resolver, make_doc):
        graph = resolver.build_graph([make_doc("a", size=10), make_doc("a", size=20)])
        assert graph.document("a").size == 10
        assert graph.errors[0].kind == IssueKind.DUPLICATE_ID

    def test_unknown_node_raises(self, resolver, sample_pool):
        graph = resolver.build_graph(sample_pool)
        with pytest.raises(GraphError):
            graph.document("nope")


class TestCycles:
    def test_acyclic_graph_has_no_cycles(self, resolver, sample_pool):
        assert resolver.detect_cycles(resolver.build_graph(sample_pool)) == []

    def test_two_node_cycle(self, resolver, cyclic_pair):
        graph = resolver.build_graph(cyclic_pair)
        cycles = resolver.detect_cycles(graph)
        assert len(cycles) == 1
        assert set(cycles[0]) == {"x", "y"}

    def test_detection_is_repeatable(self, resolver, cyclic_pair):
        graph = resolver.build_graph(cyclic_pair)
        assert resolver.detect_cycles(graph) == resolver.detect_cycles(graph)

    def test_self_loop(self, resolver, make_doc):
        graph = resolver.build_graph([make_doc("a", requires=["a"])])
        assert resolver.detect_cycles(graph) == [["a"]]

    def test_cycle_falls_back_to_best_effort_order(self, resolver, cyclic_pair, make_doc):
        docs = cyclic_pair + [make_doc("z")]
        topo = resolver.topological_order(resolver.build_graph(docs))
        assert not topo.complete
        assert sorted(topo.order) == ["x", "y", "z"]
        assert topo.order[0] == "z"
        assert topo.cycles


class TestOrdering:
    def test_prerequisites_come_first(self, resolver, sample_pool):
        order = resolver.topological_order(resolver.build_graph(sample_pool)).order
        assert order.index("intro") < order.index("install") < order.index("tutorial")
        assert order.index("intro") < order.index("advanced-patterns")
        assert order.index("tutorial") < order.index("examples")

    def test_priority_breaks_ties(self, resolver, make_doc):
        docs = [make_doc("low", priority=10), make_doc("high", priority=90)]
        graph = resolver.build_graph(docs)
        assert resolver.topological_order(graph).order == ["low", "high"]
        assert resolver.topological_order(graph, by_priority=True).order == ["high", "low"]


class TestClosure:
    def test_pulls_in_transitive_prerequisites(self, resolver, sample_pool):
        graph = resolver.build_graph(sample_pool)
        closure = resolver.required_closure(graph, ["tutorial"])
        assert closure.included == ["install", "intro"]
        assert closure.truncated == []

    def test_truncates_at_max_depth(self, resolver, make_doc):
        chain = [
            make_doc("d0", requires=["d1"]),
            make_doc("d1", requires=["d2"]),
            make_doc("d2", requires=["d3"]),
            make_doc("d3"),
        ]
        result = resolver.resolve([chain[0]], ResolutionOptions(max_depth=1), pool=chain)

        assert result.resolved_ids == ["d1", "d0"]
        assert [(t.document_id, t.dependency_id) for t in result.truncated] == [("d1", "d2")]
        assert result.unsatisfied[0].document_id == "d1"
        assert "beyond max depth 1" in result.unsatisfied[0].message


class TestResolve:
    def test_resolves_pool_in_dependency_order(self, resolver, sample_pool):
        result = resolver.resolve(sample_pool)
        ids = result.resolved_ids
        assert ids.index("intro") < ids.index("install") < ids.index("tutorial")
        assert result.order_complete
        assert result.cycles == []

    def test_requested_document_brings_prerequisites(self, resolver, sample_pool):
        tutorial = next(d for d in sample_pool if d.id == "tutorial")
        result = resolver.resolve([tutorial], pool=sample_pool)
        assert result.resolved_ids == ["intro", "install", "tutorial"]
        assert result.included_dependencies == ["install", "intro"]

    def test_exclude_conflicts_drops_lower_priority(self, resolver, sample_pool):
        result = resolver.resolve(sample_pool)
        assert result.excluded == ["faq-old"]
        assert "faq-old" not in result.resolved_ids
        assert result.resolutions[0].action == "exclude"

    def test_equal_priorities_are_flagged(self, resolver, make_doc):
        docs = [make_doc("a", priority=50, conflicts={"b": "major"}), make_doc("b", priority=50)]
        result = resolver.resolve(docs)
        assert result.excluded == []
        assert [p.ids for p in result.flagged] == [("a", "b")]

    def test_higher_score_wins_uses_tier_on_ties(self, resolver, make_doc):
        docs = [
            make_doc("a", priority=50, conflicts={"b": "major"}),
            make_doc("b", priority=50, priority_tier="critical"),
        ]
        options = ResolutionOptions(conflict_resolution=ConflictResolution.HIGHER_SCORE_WINS)
        assert resolver.resolve(docs, options).excluded == ["a"]

    def test_manual_review_excludes_nothing(self, resolver, sample_pool):
        options = ResolutionOptions(conflict_resolution=ConflictResolution.MANUAL_REVIEW)
        result = resolver.resolve(sample_pool, options)
        assert result.excluded == []
        assert [p.ids for p in result.flagged] == [("faq", "faq-old")]
        assert all(r.action == "flag" for r in result.resolutions)

    def test_conflict_loser_leaves_dependent_unsatisfied(self, resolver, unsatisfied_scenario):
        options = ResolutionOptions(conflict_resolution=ConflictResolution.HIGHER_SCORE_WINS)
        result = resolver.resolve(unsatisfied_scenario, options)

        assert result.excluded == ["B"]
        assert result.resolved_ids == ["A", "C"]
        issue = result.unsatisfied[0]
        assert (issue.document_id, issue.related_id) == ("A", "B")
        assert issue.message == (
            "Required prerequisite 'B' of 'A' is unavailable: excluded by conflict resolution"
        )
        assert issue in result.errors

    def test_break_cycles_removes_an_edge(self, resolver, cyclic_pair):
        options = ResolutionOptions(conflict_resolution=ConflictResolution.BREAK_CYCLES)
        result = resolver.resolve(cyclic_pair, options)
        assert result.cycles
        assert [r.action for r in result.resolutions] == ["remove-edge"]
        assert result.order_complete
        assert sorted(result.resolved_ids) == ["x", "y"]

    def test_cycles_reported_without_breaking(self, resolver, cyclic_pair):
        result = resolver.resolve(cyclic_pair)
        assert len(result.cycles) == 1
        assert not result.order_complete
        assert sorted(result.resolved_ids) == ["x", "y"]

    def test_missing_prerequisite_reported(self, resolver, make_doc):
        result = resolver.resolve([make_doc("a", requires=["ghost"])])
        assert result.resolved_ids == ["a"]
        assert result.missing_references[0].target_id == "ghost"
        assert result.unsatisfied[0].message.endswith("not in pool")


class TestInspection:
    def test_dependency_info(self, resolver, sample_pool):
        graph = resolver.build_graph(sample_pool)
        info = resolver.get_dependency_info(graph, "install")
        assert info.prerequisites == ["intro"]
        assert info.dependents == ["tutorial"]
        assert info.depth == 1
        assert not info.is_root
        assert resolver.get_dependency_info(graph, "nope") is None

        faq = resolver.get_dependency_info(graph, "faq")
        assert faq.conflicts == ["faq-old"]
        assert faq.is_root and faq.is_leaf

    def test_statistics(self, resolver, sample_pool):
        stats = resolver.graph_statistics(resolver.build_graph(sample_pool))
        assert stats.nodes == 8
        assert stats.prerequisite_edges == 3
        assert stats.reference_edges == 1
        assert stats.max_depth == 3
        assert stats.conflicts == 1
        assert stats.cycles == 0
