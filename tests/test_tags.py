"""Tests for the tag compatibility matrix and the tag filter."""

from __future__ import annotations

import pytest

from docselect.config import TagConfig, default_config
from docselect.tags.compatibility import TagCompatibilityMatrix, matrix_for
from docselect.tags.filter import NO_TAGS, TagBasedDocumentFilter
from docselect.tags.models import FilterOptions


@pytest.fixture
def tag_filter(config):
    return TagBasedDocumentFilter(config)


class TestCompatibilityMatrix:
    def test_values(self):
        matrix = TagCompatibilityMatrix.from_tags({
            "a": TagConfig(compatible_with=["b", "c"]),
            "b": TagConfig(compatible_with=["a"]),
            "c": TagConfig(),
            "d": TagConfig(),
        })
        assert matrix.compatibility("a", "a") == 1.0
        assert matrix.compatibility("a", "b") == 0.8
        assert matrix.compatibility("c", "a") == 0.5
        assert matrix.compatibility("a", "d") == 0.0
        assert matrix.is_incompatible("a", "d")
        assert not matrix.is_incompatible("a", "c")

    def test_shared_matrix_per_configuration(self, config):
        assert matrix_for(config.tags) is matrix_for(default_config().tags)

        changed = default_config()
        changed.tags["advanced"].compatible_with.append("beginner")
        rebuilt = matrix_for(changed.tags)
        assert rebuilt is not matrix_for(config.tags)
        assert not rebuilt.is_incompatible("beginner", "advanced")
        assert matrix_for(config.tags).is_incompatible("beginner", "advanced")

    def test_unknown_tags_are_never_incompatible(self, config):
        matrix = TagCompatibilityMatrix.from_tags(config.tags)
        assert not matrix.is_known("made-up")
        assert matrix.compatibility("beginner", "made-up") == 0.0
        assert not matrix.is_incompatible("beginner", "made-up")

    def test_symmetric(self, config):
        matrix = TagCompatibilityMatrix.from_tags(config.tags)
        for a in config.tags:
            for b in config.tags:
                assert matrix.compatibility(a, b) == matrix.compatibility(b, a)

    def test_incompatible_pairs(self, config):
        matrix = TagCompatibilityMatrix.from_tags(config.tags)
        assert matrix.incompatible_pairs(["beginner", "advanced", "beginner"]) == [
            ("advanced", "beginner")
        ]
        assert matrix.incompatible_pairs(["beginner", "quick-start"]) == []


class TestFilter:
    def test_no_options_keeps_everything(self, tag_filter, sample_pool):
        result = tag_filter.filter(sample_pool)
        assert [d.id for d in result.filtered] == [d.id for d in sample_pool]
        assert result.exclusion_reasons == {}
        assert result.statistics.included == len(sample_pool)

    def test_missing_required_tags(self, tag_filter, sample_pool):
        result = tag_filter.filter(sample_pool, FilterOptions(required_tags=["beginner"]))
        ids = {d.id for d in result.filtered}
        assert ids == {"intro", "install", "tutorial"}
        reason = result.exclusion_reasons["api-core"][0]
        assert reason.code == "missing-required-tags"
        assert reason.tags == ["beginner"]

    def test_excluded_tags(self, tag_filter, sample_pool):
        result = tag_filter.filter(sample_pool, FilterOptions(excluded_tags=["troubleshooting"]))
        assert set(result.exclusion_reasons) == {"faq", "faq-old"}
        assert result.statistics.by_reason == {"excluded-tags": 2}

    def test_audience_mismatch(self, tag_filter, sample_pool):
        result = tag_filter.filter(sample_pool, FilterOptions(target_audience=["advanced"]))
        assert {d.id for d in result.filtered} == {"api-core", "advanced-patterns"}
        assert result.exclusion_reasons["intro"][0].code == "audience-mismatch"

    def test_incompatible_primary_tags(self, tag_filter, make_doc):
        docs = [
            make_doc("mixed", primary=["beginner", "advanced"]),
            make_doc("clean", primary=["beginner", "quick-start"]),
        ]
        result = tag_filter.filter(docs, FilterOptions(enforce_tag_compatibility=True))
        assert [d.id for d in result.filtered] == ["clean"]
        reason = result.exclusion_reasons["mixed"][0]
        assert reason.code == "incompatible-tags"
        assert reason.tags == ["advanced", "beginner"]

    def test_every_failed_check_recorded(self, tag_filter, make_doc):
        doc = make_doc("a", primary=["troubleshooting"], audience=["experts"])
        result = tag_filter.filter([doc], FilterOptions(
            required_tags=["core"], excluded_tags=["troubleshooting"], target_audience=["beginners"],
        ))
        codes = [r.code for r in result.exclusion_reasons["a"]]
        assert codes == ["missing-required-tags", "excluded-tags", "audience-mismatch"]

    def test_tag_coverage_counts_included_only(self, tag_filter, sample_pool):
        result = tag_filter.filter(sample_pool, FilterOptions(excluded_tags=["troubleshooting"]))
        coverage = result.statistics.tag_coverage
        assert "troubleshooting" not in coverage
        assert coverage["beginner"] == 3

    def test_any_required_tag_is_enough(self, tag_filter, sample_pool):
        result = tag_filter.filter(sample_pool, FilterOptions(
            required_tags=["core", "quick-start"], require_all_required=False,
        ))
        assert {d.id for d in result.filtered} == {"intro", "install", "tutorial"}
        reason = result.exclusion_reasons["faq"][0]
        assert reason.code == "no-required-tags"
        assert reason.tags == ["core", "quick-start"]

    def test_all_required_tags_by_default(self, tag_filter, sample_pool):
        result = tag_filter.filter(sample_pool, FilterOptions(required_tags=["core", "quick-start"]))
        assert result.filtered == []
        assert result.exclusion_reasons["install"][0].tags == ["core"]

    def test_complexity_level(self, tag_filter, sample_pool):
        result = tag_filter.filter(sample_pool, FilterOptions(complexity_level="advanced"))
        assert {d.id for d in result.filtered} == {"api-core", "advanced-patterns"}
        assert result.exclusion_reasons["examples"][0].code == "complexity-mismatch"


class TestGrouping:
    def test_groups_by_signature(self, tag_filter, make_doc):
        docs = [
            make_doc("a", primary=["quick-start", "beginner"]),
            make_doc("b", primary=["beginner", "quick-start"]),
            make_doc("c"),
        ]
        grouping = tag_filter.group_documents_by_tags(docs)
        assert grouping.groups == {"beginner+quick-start": ["a", "b"], NO_TAGS: ["c"]}
        assert grouping.largest_group_size == 2
        assert grouping.smallest_group_size == 1

    def test_synergy_pairs(self, tag_filter, make_doc):
        docs = [
            make_doc("a", primary=["beginner", "quick-start"]),
            make_doc("b", primary=["beginner", "quick-start"]),
            make_doc("c", primary=["advanced", "beginner"]),
        ]
        pairs = tag_filter.group_documents_by_tags(docs).synergy_pairs
        assert len(pairs) == 1
        assert pairs[0].tags == ("beginner", "quick-start")
        assert pairs[0].co_occurrences == 2
        # beginner appears 3 times: 0.8 * 2 / 3
        assert pairs[0].strength == pytest.approx(0.5333, abs=1e-4)

    def test_tag_patterns(self, tag_filter, sample_pool):
        patterns = tag_filter.analyze_tag_patterns(sample_pool)
        assert patterns.most_frequent_tags[0] == ("beginner", 3)
        assert "quick-start" in patterns.orphan_tags
        assert patterns.complexity_distribution["advanced"] == 2


class TestSynergyAndBalance:
    def test_synergistic_documents_ranked(self, tag_filter, make_doc):
        docs = [
            make_doc("single", primary=["practical"]),
            make_doc("double", primary=["quick-start", "practical"]),
            make_doc("opposed", primary=["advanced"]),
            make_doc("same", primary=["beginner"]),
        ]
        results = tag_filter.find_synergistic_documents(docs, ["beginner"])
        assert [r.document.id for r in results] == ["double", "single"]
        # quick-start (1.3) and practical (1.0), each times beginner (1.2)
        assert results[0].total_synergy_score == pytest.approx(2.76)
        assert results[0].synergies[0].tags == ("quick-start", "beginner")
        assert results[1].synergies[0].description == "practical synergizes with beginner"

    def test_one_way_compatibility_is_not_synergy(self, tag_filter, make_doc):
        # optional lists advanced, advanced does not list optional
        docs = [make_doc("a", primary=["optional"])]
        assert tag_filter.find_synergistic_documents(docs, ["advanced"]) == []

    def test_within_limit_returns_everything(self, tag_filter, sample_pool):
        assert tag_filter.create_balanced_tag_distribution(sample_pool, 20) == sample_pool

    def test_slots_spread_across_tags(self, tag_filter, make_doc):
        docs = [
            make_doc("a", priority=90, primary=["beginner"]),
            make_doc("b", priority=85, primary=["beginner"]),
            make_doc("c", priority=40, primary=["advanced"]),
            make_doc("d", priority=10),
            make_doc("e", priority=80, primary=["beginner"]),
        ]
        picked = tag_filter.create_balanced_tag_distribution(docs, 3)
        assert [d.id for d in picked] == ["c", "a", "d"]

    def test_target_tags_rank_within_group(self, tag_filter, make_doc):
        docs = [
            make_doc("a", priority=90, primary=["practical"]),
            make_doc("b", priority=50, primary=["practical", "step-by-step"]),
            make_doc("c", priority=70, primary=["technical"]),
        ]
        assert [d.id for d in tag_filter.create_balanced_tag_distribution(docs, 1)] == ["a"]
        picked = tag_filter.create_balanced_tag_distribution(docs, 1, ["step-by-step"])
        assert [d.id for d in picked] == ["b"]

    def test_leftover_slots_go_by_priority(self, tag_filter, make_doc):
        docs = [
            make_doc("c", priority=60, primary=["advanced"]),
            make_doc("a", priority=50, primary=["beginner"]),
            make_doc("b", priority=90, primary=["beginner"]),
            make_doc("x", priority=80, primary=["beginner"]),
        ]
        picked = tag_filter.create_balanced_tag_distribution(docs, 3)
        assert [d.id for d in picked] == ["c", "b", "x"]
