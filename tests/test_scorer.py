"""Tests for document scoring."""

from __future__ import annotations

import pytest

from docselect.exceptions import ConfigError
from docselect.models import CompositionHints, CriteriaWeights, SelectionContext
from docselect.scoring.scorer import DocumentScorer


@pytest.fixture
def scorer(config):
    return DocumentScorer(config)


class TestTagAffinity:
    def test_perfect_match_ignores_weight_values(self, scorer, make_doc):
        context = SelectionContext(
            target_tags=["beginner", "practical"],
            tag_weights={"beginner": 1.5, "practical": 1.0},
        )
        a = make_doc("a", primary=["beginner", "practical"])
        b = make_doc("b", primary=["practical", "beginner"], category="api")

        for doc in (a, b):
            affinity = scorer.calculate_tag_affinity(doc, context)
            assert affinity.weighted_affinity == pytest.approx(1.0)
            assert affinity.matched == ["beginner", "practical"]
            assert scorer.score(doc, context).scores.tag == pytest.approx(1.0)

    def test_secondary_tag_counts_less(self, scorer, make_doc):
        context = SelectionContext(target_tags=["practical"])
        doc = make_doc("a", primary=["core"], secondary=["practical"])
        assert scorer.calculate_tag_affinity(doc, context).weighted_affinity == pytest.approx(0.7)

    def test_compatible_tag_uses_matrix(self, scorer, make_doc):
        context = SelectionContext(target_tags=["beginner"])
        doc = make_doc("a", primary=["quick-start"])
        affinity = scorer.calculate_tag_affinity(doc, context)
        assert affinity.compatible == ["beginner"]
        assert affinity.weighted_affinity == pytest.approx(0.8)

    def test_incompatible_tag_reported(self, scorer, make_doc):
        context = SelectionContext(target_tags=["beginner"])
        doc = make_doc("a", primary=["advanced"])
        affinity = scorer.calculate_tag_affinity(doc, context)
        assert affinity.incompatible == ["beginner"]
        assert affinity.weighted_affinity == 0.0

    def test_weights_shift_partial_matches(self, scorer, make_doc):
        doc = make_doc("a", primary=["beginner"])
        heavy = SelectionContext(target_tags=["beginner", "api"], tag_weights={"beginner": 3.0})
        light = SelectionContext(target_tags=["beginner", "api"])
        assert (
            scorer.calculate_tag_affinity(doc, heavy).weighted_affinity
            > scorer.calculate_tag_affinity(doc, light).weighted_affinity
        )

    def test_no_target_tags_is_neutral(self, scorer, make_doc):
        result = scorer.score(make_doc("a", primary=["beginner"]), SelectionContext())
        assert result.scores.tag == 0.5


class TestSubscores:
    def test_all_scores_in_unit_interval(self, scorer, sample_pool):
        context = SelectionContext(
            target_tags=["beginner", "technical", "unknown-tag"],
            tag_weights={"beginner": 5.0},
            target_category="guide",
            selected_documents=sample_pool[:2],
        )
        for doc in sample_pool:
            result = scorer.score(doc, context)
            scores = result.scores
            for value in (scores.category, scores.tag, scores.priority,
                          scores.dependency, scores.contextual, scores.total):
                assert 0.0 <= value <= 1.0
            assert 0.0 <= result.confidence <= 1.0

    def test_zero_priority_is_neutral(self, scorer, make_doc):
        result = scorer.score(make_doc("a", priority=0), SelectionContext())
        assert result.scores.priority == 0.5

    def test_priority_is_normalized(self, scorer, make_doc):
        result = scorer.score(make_doc("a", priority=80), SelectionContext())
        assert result.scores.priority == pytest.approx(0.8)

    def test_category_scores(self, scorer, make_doc):
        context = SelectionContext(target_category="guide")
        assert scorer.score(make_doc("a", category="guide"), context).scores.category == 1.0
        assert scorer.score(make_doc("b", category="api"), context).scores.category == 0.3
        hinted = make_doc(
            "c", category="api",
            composition_hints=CompositionHints(category_affinity={"guide": 0.9}),
        )
        assert scorer.score(hinted, context).scores.category == pytest.approx(0.9)
        assert scorer.score(make_doc("d"), SelectionContext()).scores.category == 0.5

    def test_contextual_score(self, scorer, make_doc):
        doc = make_doc(
            "a", composition_hints=CompositionHints(contextual_relevance={"onboarding": 0.9})
        )
        context = SelectionContext(context_type="onboarding")
        assert scorer.score(doc, context).scores.contextual == pytest.approx(0.9)
        assert scorer.score(make_doc("b"), context).scores.contextual == pytest.approx(0.1)

    def test_selected_prerequisite_raises_dependency_score(self, scorer, sample_pool):
        by_id = {d.id: d for d in sample_pool}
        context = SelectionContext(selected_documents=[by_id["intro"]])
        assert scorer.score(by_id["install"], context).scores.dependency == pytest.approx(0.8)

    def test_conflict_penalty_applies_in_both_directions(self, scorer, sample_pool):
        by_id = {d.id: d for d in sample_pool}
        declared = scorer.score(by_id["faq"], SelectionContext(selected_documents=[by_id["faq-old"]]))
        reverse = scorer.score(by_id["faq-old"], SelectionContext(selected_documents=[by_id["faq"]]))
        assert declared.scores.dependency == pytest.approx(0.0)
        assert reverse.scores.dependency == pytest.approx(0.0)

    def test_no_selection_dependency_is_base(self, scorer, sample_pool):
        assert scorer.score(sample_pool[1], SelectionContext()).scores.dependency == 0.5


class TestTotalAndConfidence:
    def test_total_matches_breakdown(self, scorer, make_doc):
        doc = make_doc("a", primary=["beginner"], priority=60)
        result = scorer.score(doc, SelectionContext(target_tags=["beginner"]))
        assert result.total == pytest.approx(sum(result.breakdown.values()), abs=1e-5)

    def test_weights_are_normalized(self, scorer, make_doc):
        doc = make_doc("a", priority=60)
        small = scorer.score(doc, SelectionContext(), CriteriaWeights(
            category_weight=0.1, tag_weight=0.1, dependency_weight=0.1, priority_weight=0.1))
        large = scorer.score(doc, SelectionContext(), CriteriaWeights(
            category_weight=1, tag_weight=1, dependency_weight=1, priority_weight=1))
        assert small.total == pytest.approx(large.total)

    def test_zero_weights_fail_fast(self, scorer, make_doc):
        zero = CriteriaWeights(
            category_weight=0, tag_weight=0, dependency_weight=0, priority_weight=0)
        with pytest.raises(ConfigError):
            scorer.score(make_doc("a"), SelectionContext(), zero)

    def test_sparse_metadata_lowers_confidence(self, scorer, make_doc):
        from docselect.models import Document

        sparse = Document(id="bare", size=10)
        assert scorer.score(sparse, SelectionContext()).confidence <= 0.5

        rich = make_doc(
            "rich", primary=["core"], secondary=["practical"], requires=["bare"],
            composition_hints=CompositionHints(),
        )
        assert scorer.score(rich, SelectionContext()).confidence == pytest.approx(1.0)

    @pytest.mark.parametrize("tags,hints,deps", [
        (True, False, False),
        (False, True, False),
        (False, False, True),
    ])
    def test_two_missing_groups_cap_confidence(self, scorer, make_doc, tags, hints, deps):
        doc = make_doc(
            "a", priority=80,
            primary=["beginner"] if tags else None,
            secondary=["practical"] if tags else None,
            requires=["b"] if deps else None,
            composition_hints=CompositionHints() if hints else None,
        )
        assert scorer.score(doc, SelectionContext()).confidence <= 0.5

    def test_one_missing_group_keeps_confidence(self, scorer, make_doc):
        doc = make_doc(
            "a", priority=80, primary=["beginner"], secondary=["practical"],
            composition_hints=CompositionHints(),
        )
        assert scorer.score(doc, SelectionContext()).confidence == pytest.approx(0.8)

    def test_score_many_sorted(self, scorer, sample_pool):
        results = scorer.score_many(sample_pool, SelectionContext(target_tags=["beginner"]))
        totals = [r.total for r in results]
        assert totals == sorted(totals, reverse=True)
        assert len(results) == len(sample_pool)

    def test_filter_by_tag_compatibility(self, scorer, sample_pool):
        kept = scorer.filter_by_tag_compatibility(
            sample_pool, SelectionContext(target_tags=["beginner"]), min_affinity=0.5
        )
        ids = [doc.id for doc, _ in kept]
        assert "intro" in ids
        assert "api-core" not in ids
