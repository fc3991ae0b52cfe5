"""Command-line interface for docselect."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from docselect import __version__
from docselect.config import (
    CONFIG_FILE,
    SelectionConfig,
    default_config,
    find_project_root,
    get_docselect_dir,
    load_config,
    load_config_file,
    load_documents,
    save_config,
    set_config_value,
)
from docselect.exceptions import ConfigError
from docselect.models import ConflictResolution, Document, SelectionConstraints, SelectionContext, Severity
from docselect.ui.console import Console

console = Console()


def _fail(message: str) -> None:
    console.error(message)
    sys.exit(1)


def _split(value: str | None) -> list[str]:
    """Comma-separated option value to a list."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_tags(value: str | None) -> tuple[list[str], dict[str, float]]:
    """'beginner:1.5,practical' -> (["beginner", "practical"], {"beginner": 1.5})."""
    tags: list[str] = []
    weights: dict[str, float] = {}
    for part in _split(value):
        name, _, weight = part.partition(":")
        tags.append(name)
        if weight:
            try:
                weights[name] = float(weight)
            except ValueError:
                raise click.BadParameter(f"Invalid weight for tag '{name}': {weight}")
    return tags, weights


def _load_config(config_path: str | None) -> SelectionConfig:
    if config_path:
        return load_config_file(Path(config_path))
    root = find_project_root()
    return load_config(root) if root else default_config()


def _load(docs_path: str, config_path: str | None) -> tuple[SelectionConfig, list[Document]]:
    try:
        return _load_config(config_path), load_documents(Path(docs_path))
    except ConfigError as e:
        _fail(str(e))


@click.group()
@click.version_option(version=__version__, prog_name="docselect")
@click.option("--verbose", "-v", is_flag=True, help="Log selection phases at DEBUG level.")
def main(verbose: bool):
    """docselect - choose the best documents for a size budget."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")


# =========================================================================
# Selection
# =========================================================================

@main.command()
@click.argument("docs", type=click.Path(exists=True, dir_okay=False))
@click.option("--budget", "-b", type=click.IntRange(min=0), required=True,
              help="Hard size limit (characters or words).")
@click.option("--target", type=click.IntRange(min=0), default=None, help="Soft target size.")
@click.option("--strategy", "-s", default=None, help="Strategy name (see 'docselect strategies').")
@click.option("--tags", default=None, help="Target tags, e.g. 'beginner:1.5,practical'.")
@click.option("--category", default=None, help="Target category.")
@click.option("--context-type", default=None, help="Context type for contextual relevance.")
@click.option("--audience", default=None, help="Comma-separated target audiences.")
@click.option("--require-tag", default=None, help="Comma-separated tags every document must carry.")
@click.option("--exclude-tag", default=None, help="Comma-separated tags to exclude.")
@click.option("--pin", default=None, help="Comma-separated document ids to force-include.")
@click.option("--optimize", is_flag=True, help="Run local swap optimization after selection.")
@click.option("--config", "-c", "config_path", default=None, help="Explicit config JSON file.")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of tables.")
@click.option("--evaluate", is_flag=True, help="Also grade the selection.")
def select(
    docs: str,
    budget: int,
    target: int | None,
    strategy: str | None,
    tags: str | None,
    category: str | None,
    context_type: str | None,
    audience: str | None,
    require_tag: str | None,
    exclude_tag: str | None,
    pin: str | None,
    optimize: bool,
    config_path: str | None,
    as_json: bool,
    evaluate: bool,
):
    """Select documents from DOCS (a JSON array) within the budget."""
    from docselect.quality.evaluator import QualityEvaluator
    from docselect.selection.models import SelectionOptions
    from docselect.selection.selector import AdaptiveDocumentSelector

    config, documents = _load(docs, config_path)
    target_tags, tag_weights = _parse_tags(tags)
    audiences = _split(audience)
    constraints = SelectionConstraints(
        max_characters=budget,
        target_characters=target,
        context=SelectionContext(
            target_tags=target_tags,
            tag_weights=tag_weights,
            target_category=category,
            context_type=context_type,
            target_audience=audiences,
        ),
        required_tags=_split(require_tag),
        excluded_tags=_split(exclude_tag),
        target_audience=audiences,
        required_document_ids=_split(pin),
    )

    try:
        selector = AdaptiveDocumentSelector(config)
        result = selector.select_documents(
            documents, constraints,
            SelectionOptions(strategy=strategy, enable_optimization=optimize),
        )
    except ConfigError as e:
        _fail(str(e))

    report = None
    if evaluate:
        report = QualityEvaluator(config).evaluate_quality(
            result.selected_documents, constraints, result
        )

    if as_json:
        payload = {"selection": result.model_dump(mode="json")}
        if report is not None:
            payload["quality"] = report.model_dump(mode="json")
        click.echo(json.dumps(payload, indent=2))
        return

    if not result.selected_documents:
        console.warning("No documents selected")
    console.show_selection(result)
    if report is not None:
        console.show_quality_report(report)


@main.command()
@click.argument("docs", type=click.Path(exists=True, dir_okay=False))
@click.option("--ids", required=True, help="Comma-separated ids of the selection to grade.")
@click.option("--budget", "-b", type=click.IntRange(min=0), required=True, help="Hard size limit.")
@click.option("--target", type=click.IntRange(min=0), default=None, help="Soft target size.")
@click.option("--tags", default=None, help="Target tags, e.g. 'beginner:1.5,practical'.")
@click.option("--category", default=None, help="Target category.")
@click.option("--config", "-c", "config_path", default=None, help="Explicit config JSON file.")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of tables.")
def evaluate(
    docs: str,
    ids: str,
    budget: int,
    target: int | None,
    tags: str | None,
    category: str | None,
    config_path: str | None,
    as_json: bool,
):
    """Grade an existing selection of documents from DOCS."""
    from docselect.quality.evaluator import QualityEvaluator

    config, documents = _load(docs, config_path)
    by_id = {d.id: d for d in documents}
    wanted = _split(ids)
    unknown = [i for i in wanted if i not in by_id]
    if unknown:
        _fail(f"Unknown document id(s): {', '.join(unknown)}")

    target_tags, tag_weights = _parse_tags(tags)
    constraints = SelectionConstraints(
        max_characters=budget,
        target_characters=target,
        context=SelectionContext(
            target_tags=target_tags, tag_weights=tag_weights, target_category=category,
        ),
    )
    report = QualityEvaluator(config).evaluate_quality([by_id[i] for i in wanted], constraints)

    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        console.show_quality_report(report)


# =========================================================================
# Analysis
# =========================================================================

@main.command()
@click.argument("docs", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-depth", type=click.IntRange(min=0), default=None,
              help="Bound on required-prerequisite expansion.")
@click.option("--include-optional", is_flag=True, help="Add edges for optional prerequisites.")
@click.option(
    "--conflict-resolution",
    type=click.Choice([c.value for c in ConflictResolution]),
    default=None,
    help="How declared conflicts are settled.",
)
@click.option("--ordering", type=click.Choice(["dependency", "priority"]), default="dependency")
@click.option("--config", "-c", "config_path", default=None, help="Explicit config JSON file.")
def graph(
    docs: str,
    max_depth: int | None,
    include_optional: bool,
    conflict_resolution: str | None,
    ordering: str,
    config_path: str | None,
):
    """Show dependency order, cycles, and dangling or malformed entries."""
    from docselect.graph.models import ResolutionOptions
    from docselect.graph.resolver import DependencyGraphResolver

    config, documents = _load(docs, config_path)
    deps = config.dependencies
    options = ResolutionOptions(
        max_depth=deps.max_depth if max_depth is None else max_depth,
        include_optional=include_optional or deps.include_optional,
        conflict_resolution=conflict_resolution or deps.conflict_resolution,
        ordering=ordering,
    )
    console.show_graph_report(DependencyGraphResolver().resolve(documents, options))


@main.command()
@click.argument("docs", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--threshold",
    type=click.Choice([s.value for s in Severity]),
    default=Severity.MINOR.value,
    help="Lowest severity to report.",
)
@click.option("--config", "-c", "config_path", default=None, help="Explicit config JSON file.")
def conflicts(docs: str, threshold: str, config_path: str | None):
    """Run pairwise conflict detection over DOCS."""
    from docselect.conflicts.detector import ConflictDetector
    from docselect.conflicts.models import ConflictDetectionOptions

    config, documents = _load(docs, config_path)
    analysis = ConflictDetector(config).detect_conflicts(
        documents, ConflictDetectionOptions(severity_threshold=Severity(threshold))
    )
    console.show_conflicts(analysis)


@main.command()
@click.option("--config", "-c", "config_path", default=None, help="Explicit config JSON file.")
def strategies(config_path: str | None):
    """List the configured selection strategies."""
    try:
        config = _load_config(config_path)
    except ConfigError as e:
        _fail(str(e))
    console.show_strategies(list(config.strategies.values()), config.default_strategy)


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["show", "set", "init"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Project root holding .docselect/.")
@click.option("--force", is_flag=True, help="Overwrite an existing config on init.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None, force: bool):
    """Manage docselect configuration."""
    root = Path(path).resolve() if path else (find_project_root() or Path.cwd())

    if action == "init":
        config_file = get_docselect_dir(root) / CONFIG_FILE
        if config_file.exists() and not force:
            console.warning(f"Config already exists: {config_file} (use --force to overwrite)")
            return
        save_config(root, default_config())
        console.success(f"Wrote default configuration to {config_file}")
        return

    try:
        config = load_config(root)
    except ConfigError as e:
        _fail(str(e))

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(mode="json"), indent=2))
    elif action == "set":
        if not key or value is None:
            _fail("Usage: docselect config set <key> <value>")
        # Try to parse as JSON for non-string values
        try:
            parsed_value = json.loads(value)
        except json.JSONDecodeError:
            parsed_value = value
        try:
            config = set_config_value(config, key, parsed_value)
        except KeyError:
            _fail(f"Unknown config key: {key}")
        except ConfigError as e:
            _fail(str(e))
        save_config(root, config)
        console.success(f"Set {key} = {parsed_value}")


if __name__ == "__main__":
    main()
