"""Shared test fixtures for docselect."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from docselect.config import SelectionConfig, default_config
from docselect.models import (
    ConflictLink,
    Document,
    DocumentDependencies,
    Prerequisite,
    Reference,
)


def _doc(
    doc_id: str,
    size: int = 100,
    priority: float = 80,
    category: str = "guide",
    primary: list[str] | None = None,
    secondary: list[str] | None = None,
    audience: list[str] | None = None,
    complexity: str = "basic",
    requires: list[str] | None = None,
    optional: list[str] | None = None,
    references: dict[str, float] | None = None,
    conflicts: dict[str, str | None] | None = None,
    **extra,
) -> Document:
    deps = None
    if requires or optional or references or conflicts:
        deps = DocumentDependencies(
            prerequisites=[Prerequisite(document_id=r) for r in requires or []]
            + [Prerequisite(document_id=o, importance="optional") for o in optional or []],
            references=[
                Reference(document_id=r, relevance=rel) for r, rel in (references or {}).items()
            ],
            conflicts=[
                ConflictLink(document_id=c, severity=sev) for c, sev in (conflicts or {}).items()
            ],
        )
    return Document(
        id=doc_id,
        title=extra.pop("title", doc_id.replace("-", " ").title()),
        category=category,
        size=size,
        priority_score=priority,
        tags_primary=primary or [],
        tags_secondary=secondary or [],
        audience=audience or [],
        complexity=complexity,
        dependencies=deps,
        **extra,
    )


@pytest.fixture
def make_doc():
    """Factory for documents with compact dependency arguments."""
    return _doc


@pytest.fixture
def config() -> SelectionConfig:
    return default_config()


@pytest.fixture
def sample_pool() -> list[Document]:
    """A small documentation set.

    intro <- install <- tutorial, intro <- advanced-patterns,
    faq conflicts with faq-old (major).
    """
    return [
        _doc("intro", 300, 95, "concept", ["beginner", "core"], audience=["beginners"],
             priority_tier="critical"),
        _doc("install", 400, 90, "guide", ["beginner", "quick-start"], audience=["beginners"],
             requires=["intro"]),
        _doc("tutorial", 800, 85, "guide", ["beginner", "step-by-step", "practical"],
             ["core"], audience=["beginners"], requires=["install"]),
        _doc("api-core", 600, 80, "api", ["technical", "reference"], audience=["advanced"],
             complexity="advanced"),
        _doc("advanced-patterns", 700, 70, "concept", ["advanced", "technical"],
             audience=["advanced"], complexity="advanced", requires=["intro"]),
        _doc("examples", 500, 75, "example", ["practical", "intermediate"],
             audience=["intermediate"], complexity="intermediate",
             references={"tutorial": 0.9}),
        _doc("faq", 200, 60, "reference", ["troubleshooting"], audience=["beginners"],
             conflicts={"faq-old": "major"}),
        _doc("faq-old", 200, 40, "reference", ["troubleshooting"], audience=["beginners"]),
    ]


@pytest.fixture
def knapsack_docs() -> list[Document]:
    """Sizes 100..500 with descending priorities."""
    return [
        _doc(f"doc-{size}", size, priority)
        for size, priority in zip([100, 200, 300, 400, 500], [90, 80, 70, 60, 50])
    ]


@pytest.fixture
def unsatisfied_scenario() -> list[Document]:
    """A requires B, B conflicts with C (major); C outranks B."""
    return [
        _doc("A", 100, 90, requires=["B"]),
        _doc("B", 100, 85, conflicts={"C": "major"}),
        _doc("C", 100, 95),
    ]


@pytest.fixture
def docs_file(tmp_path: Path, sample_pool: list[Document]) -> Path:
    """The sample pool written as the JSON array the CLI reads."""
    path = tmp_path / "docs.json"
    path.write_text(json.dumps([d.model_dump(mode="json") for d in sample_pool], indent=2))
    return path
