"""Tests for pairwise conflict detection."""

from __future__ import annotations

import pytest

from docselect.conflicts.detector import (
    AUDIENCE_MISMATCH,
    CATEGORY_EXCLUSIVITY,
    COMPLEXITY_GAP,
    CONTENT_DUPLICATION,
    TAG_INCOMPATIBILITY,
    ConflictDetector,
)
from docselect.conflicts.models import (
    Conflict,
    ConflictDetectionOptions,
    ConflictType,
    ResolutionAction,
)
from docselect.models import Severity


@pytest.fixture
def detector(config):
    return ConflictDetector(config)


class TestDetection:
    def test_tag_incompatibility(self, detector, make_doc):
        docs = [make_doc("a", primary=["beginner"]), make_doc("b", primary=["advanced"])]
        result = detector.detect_conflicts(docs)
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.type == ConflictType.TAG_INCOMPATIBLE
        assert conflict.severity == Severity.MODERATE
        assert conflict.document_ids == ("a", "b")
        # Equal priority scores cannot be settled automatically
        assert conflict.resolution.action == ResolutionAction.MANUAL_REVIEW

    def test_compatible_tags_do_not_conflict(self, detector, make_doc):
        docs = [make_doc("a", primary=["beginner"]), make_doc("b", primary=["quick-start"])]
        assert detector.detect_conflicts(docs).conflicts == []

    def test_identical_titles(self, detector, make_doc):
        docs = [
            make_doc("a", priority=90, title="Getting Started"),
            make_doc("b", priority=50, title="getting started"),
        ]
        conflict = detector.detect_conflicts(docs).conflicts[0]
        assert conflict.type == ConflictType.CONTENT_DUPLICATE
        assert conflict.severity == Severity.MAJOR
        assert conflict.resolution.action == ResolutionAction.EXCLUDE_SECOND

    def test_keyword_overlap_within_category(self, detector, make_doc):
        keywords = ["install", "setup", "configure"]
        docs = [
            make_doc("a", title="Setup", keywords=keywords),
            make_doc("b", title="Installation", keywords=keywords),
            make_doc("c", title="Installing", category="api", keywords=keywords),
        ]
        conflicts = detector.detect_conflicts(docs).conflicts
        assert [c.document_ids for c in conflicts] == [("a", "b")]

    def test_opposing_audiences(self, detector, make_doc):
        docs = [
            make_doc("a", audience=["beginners"], category="guide"),
            make_doc("b", audience=["experts"], category="api"),
        ]
        conflict = detector.detect_conflicts(docs).conflicts[0]
        assert conflict.type == ConflictType.AUDIENCE_MISMATCH
        assert conflict.severity == Severity.MINOR
        assert conflict.resolution.action == ResolutionAction.KEEP_BOTH
        assert conflict.auto_resolvable

    def test_severity_threshold(self, detector, make_doc):
        docs = [
            make_doc("a", audience=["beginners"]),
            make_doc("b", audience=["experts"]),
        ]
        options = ConflictDetectionOptions(severity_threshold=Severity.MODERATE)
        assert detector.detect_conflicts(docs, options).conflicts == []

    def test_disabled_detectors(self, detector, make_doc):
        docs = [make_doc("a", primary=["beginner"]), make_doc("b", primary=["advanced"])]
        options = ConflictDetectionOptions(enable_tag_incompatibility=False)
        assert detector.detect_conflicts(docs, options).conflicts == []

    def test_auto_resolve_off_drops_suggestions(self, detector, make_doc):
        docs = [make_doc("a", title="Same"), make_doc("b", title="Same")]
        options = ConflictDetectionOptions(auto_resolve=False)
        conflict = detector.detect_conflicts(docs, options).conflicts[0]
        assert conflict.resolution is None
        assert not conflict.auto_resolvable

    def test_sorted_most_severe_first(self, detector, make_doc):
        docs = [
            make_doc("a", title="Same", primary=["beginner"], audience=["beginners"]),
            make_doc("b", title="Same", primary=["advanced"], audience=["experts"]),
        ]
        result = detector.detect_conflicts(docs)
        assert [c.severity for c in result.conflicts] == [
            Severity.MAJOR, Severity.MODERATE, Severity.MINOR
        ]
        assert result.summary.total == 3
        assert result.summary.by_type == {
            "content-duplicate": 1, "tag-incompatible": 1, "audience-mismatch": 1,
        }


class TestRules:
    def test_builtin_rules_listed(self, detector):
        assert detector.list_rules() == [
            TAG_INCOMPATIBILITY, CONTENT_DUPLICATION, AUDIENCE_MISMATCH,
            COMPLEXITY_GAP, CATEGORY_EXCLUSIVITY,
        ]

    def test_custom_rule(self, detector, make_doc):
        def same_size(a, b):
            if a.size != b.size:
                return []
            return [Conflict(
                id=f"custom:{a.id}:{b.id}",
                type=ConflictType.CUSTOM,
                severity=Severity.MODERATE,
                document_ids=(a.id, b.id),
                description="same size",
            )]

        detector.add_rule("same-size", same_size)
        result = detector.detect_conflicts([make_doc("a"), make_doc("b"), make_doc("c", size=5)])
        assert [c.id for c in result.conflicts] == ["custom:a:b"]
        assert result.summary.requires_manual_review == 1

    def test_rule_must_be_callable(self, detector):
        with pytest.raises(TypeError):
            detector.add_rule("broken", "not a function")

    def test_remove_rule(self, detector):
        assert detector.remove_rule(AUDIENCE_MISMATCH)
        assert not detector.remove_rule(AUDIENCE_MISMATCH)


class TestApplication:
    def test_excludes_lower_priority_duplicate(self, detector, make_doc):
        docs = [
            make_doc("a", priority=40, title="Same"),
            make_doc("b", priority=90, title="Same"),
            make_doc("c", title="Other"),
        ]
        conflicts = detector.detect_conflicts(docs).conflicts
        applied = detector.apply_conflict_resolutions(docs, conflicts)
        assert [d.id for d in applied.resolved_documents] == ["b", "c"]
        assert [e.document.id for e in applied.excluded_documents] == ["a"]
        assert applied.unresolved == []

    def test_ties_stay_unresolved(self, detector, make_doc):
        docs = [make_doc("a", title="Same"), make_doc("b", title="Same")]
        conflicts = detector.detect_conflicts(docs).conflicts
        applied = detector.apply_conflict_resolutions(docs, conflicts)
        assert len(applied.resolved_documents) == 2
        assert len(applied.unresolved) == 1


class TestComplexityAndCategory:
    def test_complexity_gap(self, detector, make_doc):
        docs = [make_doc("a", complexity="basic"), make_doc("b", complexity="advanced")]
        conflict = detector.detect_conflicts(docs).conflicts[0]
        assert conflict.type == ConflictType.COMPLEXITY_GAP
        assert conflict.severity == Severity.MINOR
        assert conflict.impact == pytest.approx(0.7)
        assert conflict.resolution.action == ResolutionAction.KEEP_BOTH

    def test_adjacent_complexity_is_fine(self, detector, make_doc):
        docs = [make_doc("a", complexity="basic"), make_doc("b", complexity="intermediate")]
        assert detector.detect_conflicts(docs).conflicts == []

    def test_exclusive_categories_keep_higher_priority_category(self, detector, make_doc):
        # guide (90) outranks reference (70) even when the document scores lower
        docs = [
            make_doc("a", category="reference", priority=95),
            make_doc("b", category="guide", priority=40),
        ]
        conflict = detector.detect_conflicts(docs).conflicts[0]
        assert conflict.type == ConflictType.CATEGORY_EXCLUSIVE
        assert conflict.severity == Severity.MODERATE
        assert conflict.resolution.action == ResolutionAction.EXCLUDE_FIRST
        assert conflict.resolution.confidence == pytest.approx(0.7)

    def test_equal_category_priority_falls_back_to_score(self, config, make_doc):
        config.categories["example"].priority = config.categories["concept"].priority
        detector = ConflictDetector(config)
        docs = [
            make_doc("a", category="example", priority=90),
            make_doc("b", category="concept", priority=60),
        ]
        conflict = detector.detect_conflicts(docs).conflicts[0]
        assert conflict.resolution.action == ResolutionAction.EXCLUDE_SECOND

    def test_non_exclusive_categories(self, detector, make_doc):
        docs = [make_doc("a", category="guide"), make_doc("b", category="api")]
        assert detector.detect_conflicts(docs).conflicts == []

    def test_new_rules_can_be_disabled(self, detector, make_doc):
        docs = [
            make_doc("a", category="guide", complexity="basic"),
            make_doc("b", category="reference", complexity="expert"),
        ]
        assert len(detector.detect_conflicts(docs).conflicts) == 2
        options = ConflictDetectionOptions(
            enable_complexity_gap=False, enable_category_exclusivity=False
        )
        assert detector.detect_conflicts(docs, options).conflicts == []


class TestResolutionPlan:
    def test_steps_grouped_by_action(self, detector, make_doc):
        docs = [
            make_doc("a", priority=90, title="Same"),
            make_doc("b", priority=40, title="Same"),
            make_doc("c", primary=["beginner"]),
            make_doc("d", primary=["advanced"]),
        ]
        plan = detector.detect_conflicts(docs).resolution_plan
        assert [s.action for s in plan] == ["exclude", "review"]
        assert [s.step for s in plan] == [1, 2]
        assert plan[0].document_ids == ["b"]
        assert plan[0].rationale == "Exclude documents to resolve 1 conflict(s)"
        assert plan[1].document_ids == ["c", "d"]
        assert plan[1].rationale == "Manual review required for 1 conflict(s)"

    def test_keep_both_needs_no_step(self, detector, make_doc):
        docs = [make_doc("a", complexity="basic"), make_doc("b", complexity="expert")]
        result = detector.detect_conflicts(docs)
        assert len(result.conflicts) == 1
        assert result.resolution_plan == []

    def test_unsuggested_conflicts_go_to_review(self, detector, make_doc):
        docs = [make_doc("a", title="Same"), make_doc("b", title="Same", priority=10)]
        options = ConflictDetectionOptions(auto_resolve=False)
        plan = detector.detect_conflicts(docs, options).resolution_plan
        assert [s.action for s in plan] == ["review"]
        assert plan[0].conflict_ids == ["content-duplicate:a:b"]
