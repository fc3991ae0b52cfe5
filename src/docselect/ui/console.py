"""Rich-powered console output for docselect."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from docselect.conflicts.models import ConflictAnalysisResult
from docselect.graph.models import ResolutionResult
from docselect.models import Strategy
from docselect.quality.models import QualityReport
from docselect.selection.models import SelectionResult

_GRADE_COLORS = {"A": "green", "B": "cyan", "C": "yellow", "D": "red", "F": "red"}
_SEVERITY_COLORS = {"major": "red", "moderate": "yellow", "minor": "dim"}


class Console:
    """Terminal output for selections, graphs and quality reports."""

    def __init__(self, console: RichConsole | None = None) -> None:
        self.console = console or RichConsole()

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {escape(message)}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {escape(message)}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {escape(message)}")

    def show_selection(self, result: SelectionResult) -> None:
        """Selected documents in order, then the run summary."""
        table = Table(title=f"Selection ({result.strategy})", border_style="cyan")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Document", style="bold")
        table.add_column("Category")
        table.add_column("Size", justify="right", style="cyan")
        table.add_column("Score", justify="right")

        scores = {s.document_id: s.total for s in result.scoring.results}
        for i, doc in enumerate(result.selected_documents, 1):
            table.add_row(
                str(i),
                doc.id,
                doc.category,
                f"{doc.size:,}",
                f"{scores.get(doc.id, 0.0):.3f}",
            )
        self.console.print(table)

        opt = result.optimization
        meta = result.metadata
        self.console.print(
            Panel(
                f"[bold]Size:[/bold] {result.total_size:,} / {result.max_characters:,} "
                f"({opt.space_utilization:.1%})\n"
                f"[bold]Quality:[/bold] {opt.quality_score:.3f}  "
                f"[bold]Diversity:[/bold] {opt.diversity_score:.3f}  "
                f"[bold]Balance:[/bold] {opt.balance_score:.3f}\n"
                f"[bold]Algorithms:[/bold] {', '.join(meta.algorithms_used) or '-'} "
                f"({meta.iterations} iteration(s), "
                f"{'converged' if meta.convergence_achieved else 'not converged'})\n"
                f"[bold]Time:[/bold] {meta.elapsed_ms:.1f} ms",
                title="[bold]Summary[/bold]",
                border_style="cyan",
            )
        )
        for message in meta.warnings:
            self.warning(message)

    def show_quality_report(self, report: QualityReport) -> None:
        color = _GRADE_COLORS.get(report.grade[0], "red")
        self.console.print(
            Panel(
                f"[bold]Overall:[/bold] [{color}]{report.overall_score:.1f} ({report.grade})[/{color}]\n"
                f"[bold]Confidence:[/bold] {report.confidence:.0%}\n"
                f"[bold]Benchmark:[/bold] {report.benchmarks.performance} "
                f"(p{report.benchmarks.percentile})",
                title="[bold]Quality Report[/bold]",
                border_style=color,
            )
        )

        table = Table(border_style="dim")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right", style="cyan")
        table.add_column("Confidence", justify="right", style="dim")
        for name, score in report.metrics.items():
            table.add_row(name, f"{score.value:.2f}", f"{score.confidence:.2f}")
        self.console.print(table)

        for issue in report.summary.critical_issues:
            self.error(issue)
        for failure in report.validation.failed:
            if failure.severity == "error":
                self.error(f"{failure.rule}: {failure.description}")
            else:
                self.warning(f"{failure.rule}: {failure.description}")
        for rec in report.summary.recommendations:
            self.info(f"[{rec.priority}] {rec.action}")

    def show_graph_report(self, resolution: ResolutionResult) -> None:
        stats = resolution.statistics
        table = Table(title="Dependency Graph", border_style="cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Count", justify="right", style="cyan")
        table.add_row("Documents", str(stats.nodes))
        table.add_row("Prerequisite edges", str(stats.prerequisite_edges))
        table.add_row("Reference edges", str(stats.reference_edges))
        table.add_row("Max depth", str(stats.max_depth))
        table.add_row("Cycles", str(len(resolution.cycles)))
        table.add_row("Missing references", str(len(resolution.missing_references)))
        self.console.print(table)

        self.console.print("\n[bold]Order:[/bold]")
        for i, doc_id in enumerate(resolution.resolved_ids, 1):
            self.console.print(f"  [dim]{i:>3}.[/dim] {doc_id}")

        for cycle in resolution.cycles:
            self.warning(f"Cycle: {' -> '.join(cycle + cycle[:1])}")
        for missing in resolution.missing_references:
            self.warning(
                f"{missing.source_id}: {missing.relation} '{missing.target_id}' not found"
            )
        for issue in resolution.errors:
            self.error(issue.message)
        for applied in resolution.resolutions:
            self.info(applied.reason)

    def show_conflicts(self, analysis: ConflictAnalysisResult) -> None:
        if not analysis.conflicts:
            self.success("No conflicts detected")
            return
        table = Table(title="Conflicts", border_style="yellow")
        table.add_column("Severity")
        table.add_column("Type", style="bold")
        table.add_column("Documents", style="cyan")
        table.add_column("Suggested")
        for conflict in analysis.conflicts:
            color = _SEVERITY_COLORS[conflict.severity.value]
            table.add_row(
                f"[{color}]{conflict.severity.value}[/{color}]",
                conflict.type.value,
                " / ".join(conflict.document_ids),
                conflict.resolution.action.value if conflict.resolution else "-",
            )
        self.console.print(table)
        for step in analysis.resolution_plan:
            self.info(f"Step {step.step} ({step.action}): {', '.join(step.document_ids)}")
        for rec in analysis.recommendations:
            self.info(rec)

    def show_strategies(self, strategies: list[Strategy], default: str) -> None:
        table = Table(title="Selection Strategies", border_style="cyan")
        table.add_column("Name", style="bold")
        table.add_column("Algorithm", style="cyan")
        table.add_column("Weights (cat/tag/dep/pri)")
        table.add_column("Description", style="dim")
        for s in strategies:
            c = s.criteria
            name = f"{s.name} [green](default)[/green]" if s.name == default else s.name
            table.add_row(
                name,
                s.algorithm.value,
                f"{c.category_weight:.2f}/{c.tag_weight:.2f}/"
                f"{c.dependency_weight:.2f}/{c.priority_weight:.2f}",
                s.description,
            )
        self.console.print(table)
