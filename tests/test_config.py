"""Tests for configuration, presets and document loading."""

from __future__ import annotations

import json

import pytest

from docselect.config import (
    CONFIG_FILE,
    DOCSELECT_DIR,
    CategoryConfig,
    SelectionConfig,
    TagConfig,
    default_config,
    find_project_root,
    load_config,
    load_config_file,
    load_documents,
    save_config,
    set_config_value,
    validate_config,
)
from docselect.exceptions import ConfigError
from docselect.models import SelectionAlgorithm


class TestDefaults:
    def test_standard_preset(self):
        config = default_config()
        assert list(config.categories) == ["guide", "api", "concept", "example", "reference"]
        assert config.categories["guide"].priority == 90
        assert len(config.tags) == 11
        assert "quick-start" in config.tags["beginner"].compatible_with
        assert config.default_strategy == "balanced"

    def test_builtin_strategies(self):
        strategies = default_config().strategies
        assert strategies["balanced"].algorithm == SelectionAlgorithm.HYBRID
        assert strategies["quality-focused"].algorithm == SelectionAlgorithm.TOPSIS
        assert strategies["diverse"].max_per_category == 2
        assert strategies["efficiency"].diversity_weight == 0.0
        for strategy in strategies.values():
            assert strategy.criteria.total == pytest.approx(1.0)

    def test_default_config_is_valid(self):
        config = default_config()
        assert validate_config(config) is config


class TestValidation:
    def test_category_priority_range(self):
        config = SelectionConfig(categories={"guide": CategoryConfig(priority=150)})
        with pytest.raises(ConfigError, match="between 0 and 100"):
            validate_config(config)

    def test_negative_tag_weight(self):
        config = SelectionConfig(tags={"core": TagConfig(weight=-1)})
        with pytest.raises(ConfigError, match="non-negative"):
            validate_config(config)

    @pytest.mark.parametrize("key,value", [
        ("optimization.max_iterations", 0),
        ("optimization.knapsack_max_cells", 0),
        ("optimization.convergence_threshold", -0.1),
        ("dependencies.max_depth", -1),
    ])
    def test_optimization_bounds(self, key, value):
        with pytest.raises(ConfigError, match="Invalid value"):
            set_config_value(default_config(), key, value)

    def test_mutated_iterations_rejected(self):
        config = default_config()
        config.optimization.max_iterations = 0
        with pytest.raises(ConfigError, match="max_iterations must be at least 1"):
            validate_config(config)

    def test_zero_iterations_in_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"optimization": {"max_iterations": 0}}))
        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_unknown_default_strategy(self):
        config = default_config()
        config.default_strategy = "missing"
        with pytest.raises(ConfigError, match="missing"):
            validate_config(config)


class TestPersistence:
    def test_save_and_load(self, tmp_path):
        config = default_config()
        config.dependencies.max_depth = 5
        save_config(tmp_path, config)

        assert (tmp_path / DOCSELECT_DIR / CONFIG_FILE).exists()
        assert load_config(tmp_path).dependencies.max_depth == 5

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        assert load_config(tmp_path) == default_config()

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid configuration file"):
            load_config_file(path)

    def test_invalid_values_are_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"categories": {"guide": {"priority": 500}}}))
        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_find_project_root(self, tmp_path):
        (tmp_path / DOCSELECT_DIR).mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == tmp_path.resolve()

    def test_set_config_value(self):
        config = set_config_value(default_config(), "optimization.max_iterations", 3)
        assert config.optimization.max_iterations == 3

    def test_set_unknown_key(self):
        with pytest.raises(KeyError):
            set_config_value(default_config(), "optimization.nope", 3)
        with pytest.raises(KeyError):
            set_config_value(default_config(), "nope.max_depth", 3)

    def test_set_invalid_value(self):
        with pytest.raises(ConfigError):
            set_config_value(default_config(), "dependencies.conflict_resolution", "coin-flip")


class TestLoadDocuments:
    def test_array(self, docs_file, sample_pool):
        docs = load_documents(docs_file)
        assert [d.id for d in docs] == [d.id for d in sample_pool]
        assert docs[1].links.required_ids() == ["intro"]

    def test_wrapped_object(self, tmp_path):
        path = tmp_path / "docs.json"
        path.write_text(json.dumps({"documents": [{"id": "a", "size": 10}]}))
        assert [d.id for d in load_documents(path)] == ["a"]

    def test_invalid_document(self, tmp_path):
        path = tmp_path / "docs.json"
        path.write_text(json.dumps([{"id": "a", "size": -1}]))
        with pytest.raises(ConfigError, match="Invalid document"):
            load_documents(path)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "docs.json"
        path.write_text(json.dumps("docs"))
        with pytest.raises(ConfigError, match="Expected a list"):
            load_documents(path)

    def test_unreadable(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read documents"):
            load_documents(tmp_path / "missing.json")
