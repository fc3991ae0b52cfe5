"""Configuration management for docselect."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from docselect.exceptions import ConfigError
from docselect.models import (
    ConflictResolution,
    CriteriaWeights,
    Document,
    SelectionAlgorithm,
    Strategy,
    TopsisWeights,
)

DOCSELECT_DIR = ".docselect"
CONFIG_FILE = "config.json"


class CategoryConfig(BaseModel):
    """A document category and its base priority."""

    priority: int = 50
    description: str = ""
    default_tags: list[str] = Field(default_factory=list)


class TagConfig(BaseModel):
    """A tag, its weight and the tags it composes well with."""

    weight: float = 1.0
    description: str = ""
    compatible_with: list[str] = Field(default_factory=list)
    importance: str = "optional"  # critical | optional
    audience: list[str] = Field(default_factory=list)


class DependencyConfig(BaseModel):
    max_depth: int = Field(default=3, ge=0)
    include_optional: bool = False
    conflict_resolution: ConflictResolution = ConflictResolution.EXCLUDE_CONFLICTS


class OptimizationConfig(BaseModel):
    space_utilization_target: float = Field(default=0.95, gt=0.0, le=1.0)
    # Fraction of the 0-100 overall score
    quality_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    diversity_bonus: float = 0.1
    redundancy_penalty: float = 0.2
    max_iterations: int = Field(default=10, ge=1)
    convergence_threshold: float = Field(default=0.01, ge=0.0)
    knapsack_max_cells: int = Field(default=10_000, ge=1)  # Upper bound on DP capacity columns


class QualityConfig(BaseModel):
    min_priority_score: float = 50
    group_weights: dict[str, float] = Field(
        default_factory=lambda: {
            "content": 0.35,
            "structure": 0.25,
            "audience": 0.2,
            "coverage": 0.2,
            "custom": 0.2,
        }
    )


class SelectionConfig(BaseModel):
    """Full selection configuration."""

    categories: dict[str, CategoryConfig] = Field(default_factory=dict)
    tags: dict[str, TagConfig] = Field(default_factory=dict)
    strategies: dict[str, Strategy] = Field(default_factory=dict)
    default_strategy: str = "balanced"
    dependencies: DependencyConfig = Field(default_factory=DependencyConfig)
    optimization: OptimizationConfig = Field(default_factory=OptimizationConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

_STANDARD_CATEGORIES: dict[str, tuple[int, str]] = {
    "guide": (90, "Step-by-step guides and tutorials"),
    "api": (85, "API reference and signatures"),
    "concept": (80, "Core concepts and architecture"),
    "example": (75, "Code examples and recipes"),
    "reference": (70, "Detailed reference material"),
}

_STANDARD_TAGS: dict[str, tuple[float, list[str]]] = {
    "beginner": (1.2, ["step-by-step", "practical", "quick-start"]),
    "intermediate": (1.0, ["practical", "technical"]),
    "advanced": (0.9, ["technical", "reference"]),
    "core": (1.5, ["beginner", "intermediate", "advanced", "practical", "technical"]),
    "optional": (0.7, ["advanced", "reference"]),
    "quick-start": (1.3, ["beginner", "practical", "step-by-step"]),
    "troubleshooting": (1.1, ["practical", "intermediate"]),
    "step-by-step": (1.1, ["beginner", "practical", "quick-start"]),
    "practical": (1.0, ["beginner", "intermediate", "step-by-step"]),
    "technical": (0.9, ["advanced", "reference", "intermediate"]),
    "reference": (0.8, ["technical", "advanced"]),
}


def _strategy(
    name: str,
    algorithm: SelectionAlgorithm,
    weights: tuple[float, float, float, float],
    description: str,
    **extra: Any,
) -> Strategy:
    category, tag, dependency, priority = weights
    return Strategy(
        name=name,
        algorithm=algorithm,
        description=description,
        criteria=CriteriaWeights(
            category_weight=category,
            tag_weight=tag,
            dependency_weight=dependency,
            priority_weight=priority,
        ),
        **extra,
    )


def default_strategies() -> dict[str, Strategy]:
    """Built-in strategies (weights: category/tag/dependency/priority)."""
    A = SelectionAlgorithm
    strategies = [
        _strategy("balanced", A.HYBRID, (0.25, 0.3, 0.2, 0.25),
                  "Balanced approach weighing all factors", balance_weight=0.1),
        _strategy("quality-focused", A.TOPSIS, (0.15, 0.25, 0.15, 0.45),
                  "Prefers high-priority documents",
                  topsis_weights=TopsisWeights(relevance=0.7, efficiency=0.15, diversity=0.15)),
        _strategy("diverse", A.GREEDY, (0.2, 0.4, 0.2, 0.2),
                  "Spreads the budget across categories and tags",
                  max_per_category=2, diversity_weight=0.4),
        _strategy("efficiency", A.KNAPSACK, (0.2, 0.3, 0.15, 0.35),
                  "Packs the budget as densely as possible", diversity_weight=0.0),
        _strategy("greedy", A.GREEDY, (0.25, 0.25, 0.2, 0.3),
                  "Fast greedy pass by total score"),
        _strategy("knapsack", A.KNAPSACK, (0.25, 0.25, 0.2, 0.3),
                  "Exact 0/1 knapsack over discretized sizes"),
        _strategy("topsis", A.TOPSIS, (0.25, 0.25, 0.2, 0.3),
                  "Multi-criteria ranking by closeness to the ideal"),
        _strategy("hybrid", A.HYBRID, (0.25, 0.3, 0.25, 0.2),
                  "Runs several algorithms and keeps the best", balance_weight=0.1),
    ]
    return {s.name: s for s in strategies}


def default_config() -> SelectionConfig:
    """The standard preset: five categories, eleven tags, eight strategies."""
    categories = {
        name: CategoryConfig(priority=priority, description=description)
        for name, (priority, description) in _STANDARD_CATEGORIES.items()
    }
    tags = {
        name: TagConfig(
            weight=weight,
            compatible_with=list(compatible),
            importance="critical" if name == "core" else "optional",
        )
        for name, (weight, compatible) in _STANDARD_TAGS.items()
    }
    return SelectionConfig(
        categories=categories,
        tags=tags,
        strategies=default_strategies(),
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_strategy(strategy: Strategy) -> Strategy:
    """Reject strategies whose weights cannot produce a score."""
    if strategy.criteria.total <= 0:
        raise ConfigError(
            f"Strategy '{strategy.name}' has all criteria weights set to zero"
        )
    if strategy.algorithm == SelectionAlgorithm.HYBRID:
        base = {a for a in strategy.hybrid_algorithms if a != SelectionAlgorithm.HYBRID}
        if len(base) < 2:
            raise ConfigError(
                f"Hybrid strategy '{strategy.name}' needs at least two base algorithms, "
                f"got {[a.value for a in strategy.hybrid_algorithms]}"
            )
    return strategy


def validate_config(config: SelectionConfig) -> SelectionConfig:
    """Check value ranges that pydantic field types do not express."""
    for name, category in config.categories.items():
        if not 0 <= category.priority <= 100:
            raise ConfigError(
                f"Category '{name}' priority must be between 0 and 100, got {category.priority}"
            )
    for name, tag in config.tags.items():
        if tag.weight < 0:
            raise ConfigError(f"Tag '{name}' weight must be non-negative, got {tag.weight}")
    # Models mutated in place skip field validation
    opt = config.optimization
    if opt.max_iterations < 1:
        raise ConfigError(
            f"optimization.max_iterations must be at least 1, got {opt.max_iterations}"
        )
    if opt.knapsack_max_cells < 1:
        raise ConfigError(
            f"optimization.knapsack_max_cells must be at least 1, got {opt.knapsack_max_cells}"
        )
    if opt.convergence_threshold < 0:
        raise ConfigError(
            "optimization.convergence_threshold must be non-negative, "
            f"got {opt.convergence_threshold}"
        )
    for strategy in config.strategies.values():
        validate_strategy(strategy)
    if config.strategies and config.default_strategy not in config.strategies:
        raise ConfigError(
            f"Default strategy '{config.default_strategy}' is not defined"
        )
    return config


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .docselect directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / DOCSELECT_DIR).is_dir():
            return current
        current = current.parent
    if (current / DOCSELECT_DIR).is_dir():
        return current
    return None


def get_docselect_dir(root: Path) -> Path:
    """Get the .docselect directory for a project root."""
    return root / DOCSELECT_DIR


def load_config_file(path: Path) -> SelectionConfig:
    """Load and validate a configuration JSON file."""
    try:
        data = json.loads(Path(path).read_text())
        config = SelectionConfig(**data)
    except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
        raise ConfigError(f"Invalid configuration file {path}: {e}") from e
    return validate_config(config)


def load_config(root: Path) -> SelectionConfig:
    """Load configuration from .docselect/config.json, or the default preset."""
    config_path = get_docselect_dir(root) / CONFIG_FILE
    if config_path.exists():
        return load_config_file(config_path)
    return default_config()


def save_config(root: Path, config: SelectionConfig) -> None:
    """Save configuration to .docselect/config.json."""
    ds_dir = get_docselect_dir(root)
    ds_dir.mkdir(parents=True, exist_ok=True)
    config_path = ds_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(mode="json"), indent=2))


def set_config_value(config: SelectionConfig, key: str, value: Any) -> SelectionConfig:
    """Set a nested config value using dot notation (e.g., 'dependencies.max_depth')."""
    parts = key.split(".")
    data = config.model_dump(mode="json")
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    try:
        updated = SelectionConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for {key}: {e}") from e
    return validate_config(updated)


def load_documents(path: Path) -> list[Document]:
    """Load a JSON array of documents produced by the discovery step."""
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read documents from {path}: {e}") from e
    if isinstance(data, dict):
        data = data.get("documents", [])
    if not isinstance(data, list):
        raise ConfigError(f"Expected a list of documents in {path}")
    try:
        return [Document(**item) for item in data]
    except (ValidationError, TypeError) as e:
        raise ConfigError(f"Invalid document in {path}: {e}") from e
