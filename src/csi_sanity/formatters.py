"""CLI output formatting helpers.

All formatters work with ScenarioResult / SuiteReport objects from the runner.
"""

import json
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .runner import ScenarioResult, ScenarioStatus, SuiteReport
from .scenarios import Scenario

STATUS_STYLES = {
    ScenarioStatus.PASSED: "[green]PASS[/green]",
    ScenarioStatus.FAILED: "[red]FAIL[/red]",
    ScenarioStatus.SKIPPED: "[yellow]SKIP[/yellow]",
}

STATUS_MARKS = {
    ScenarioStatus.PASSED: "✓",
    ScenarioStatus.FAILED: "✗",
    ScenarioStatus.SKIPPED: "-",
}


def print_progress(result: ScenarioResult) -> None:
    """Print a one-line result as each scenario completes."""
    line = f"  {STATUS_MARKS[result.status]} {result.name}"
    if result.reason:
        line += f" ({result.reason})"
    click.echo(line)
    for error in result.teardown_errors:
        click.echo(f"      ⚠ teardown: {error}")


def print_report(report: SuiteReport, console: Optional[Console] = None) -> None:
    """Print the run summary as a table.

    Args:
        report: Aggregated results
        console: Rich console to print to (stdout by default)
    """
    console = console or Console()

    table = Table(title=f"CSI sanity run {report.run_suffix}")
    table.add_column("Scenario")
    table.add_column("Result")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Details")

    for result in report.results:
        details = result.reason or ""
        if result.category:
            details = f"{result.category}: {details}"
        if result.teardown_errors:
            details += f" [dim]({len(result.teardown_errors)} teardown failures)[/dim]"
        table.add_row(
            result.name,
            STATUS_STYLES[result.status],
            f"{result.duration_ms:.0f}",
            details,
        )

    console.print(table)
    console.print(
        f"{report.passed} passed, {report.failed} failed, {report.skipped} skipped "
        f"in {report.duration_ms / 1000:.2f}s"
    )


def print_report_json(report: SuiteReport) -> None:
    click.echo(json.dumps(report.to_dict(), indent=2))


def print_scenario_list(scenarios: list[Scenario]) -> None:
    """Print scenario ids with their requirements and descriptions."""
    width = max((len(s.name) for s in scenarios), default=0)
    for registered in scenarios:
        requires = f" [requires: {', '.join(registered.requires)}]" if registered.requires else ""
        click.echo(f"{registered.name.ljust(width)}  {registered.description}{requires}")
