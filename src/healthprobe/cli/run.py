"""``healthprobe run``: execute a scenario with live terminal output."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from healthprobe._internal.errors import ConfigError, HealthProbeError
from healthprobe.dsl.loader import load_scenario
from healthprobe.engine.worker import run_scenario
from healthprobe.metrics.models import CounterSummary, RateSummary, TrendSummary
from healthprobe.metrics.thresholds import parse_threshold_option
from healthprobe.patterns.stages import Stage, StagedPattern

if TYPE_CHECKING:
    from healthprobe.dsl.scenario import ScenarioDefinition
    from healthprobe.metrics.models import MetricSnapshot, MetricSummary, RunResult
    from healthprobe.metrics.thresholds import Threshold

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Option parsing helpers
# ---------------------------------------------------------------------------


def _build_pattern(stage_options: list[str]) -> StagedPattern | None:
    """Build a StagedPattern from ``--stage DURATION:TARGET`` options.

    Returns:
        The pattern, or None when no ``--stage`` was given.

    Raises:
        typer.BadParameter: If a stage is malformed.
    """
    if not stage_options:
        return None
    try:
        return StagedPattern([Stage.parse(text) for text in stage_options])
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="--stage") from exc


def _build_thresholds(scenario: ScenarioDefinition, threshold_options: list[str]) -> list[Threshold]:
    """Combine the scenario's thresholds with ``--threshold METRIC=EXPR`` options.

    Raises:
        typer.BadParameter: If a threshold option is malformed.
    """
    thresholds = list(scenario.thresholds)
    try:
        thresholds.extend(parse_threshold_option(text) for text in threshold_options)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="--threshold") from exc
    return thresholds


def _resolve_scenario(scenario_file: Path | None) -> ScenarioDefinition:
    if scenario_file is not None:
        return load_scenario(scenario_file)

    from healthprobe.probes.scenario import HealthCheckScenario

    return HealthCheckScenario


# ---------------------------------------------------------------------------
# Rich output
# ---------------------------------------------------------------------------


def _make_live_table(snapshot: MetricSnapshot | None) -> Table:
    """Build a Rich table summarising the latest tick.

    Args:
        snapshot: Latest metric snapshot, or None if no tick has run yet.

    Returns:
        Formatted Rich Table.
    """
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if snapshot is None:
        table.add_row("Elapsed", "0s")
        table.add_row("Status", "Starting...")
        return table

    table.add_row("Elapsed", f"{snapshot.elapsed_seconds:.0f}s")
    table.add_row("Active Users", str(snapshot.active_users))
    table.add_row("Requests/sec", f"{snapshot.requests_per_second:.1f}")
    table.add_row("Requests (tick)", str(snapshot.total_requests))
    table.add_row("p50 Latency", f"{snapshot.latency_p50:.1f}ms")
    table.add_row("p95 Latency", f"{snapshot.latency_p95:.1f}ms")
    table.add_row("Failed Requests", str(snapshot.total_errors))

    return table


def _format_metric(summary: MetricSummary) -> str:
    if isinstance(summary, TrendSummary):
        return (
            f"avg={summary.avg:.1f}ms min={summary.min:.1f}ms med={summary.med:.1f}ms "
            f"max={summary.max:.1f}ms p(95)={summary.percentile(95.0):.1f}ms"
        )
    if isinstance(summary, RateSummary):
        return f"{summary.rate * 100:.2f}% ({summary.hits} of {summary.total})"
    if isinstance(summary, CounterSummary):
        return f"{summary.count:g} ({summary.rate:.2f}/s)"
    return str(summary)


def _print_summary(result: RunResult) -> None:
    """Print run, metric, endpoint, check and threshold tables.

    Args:
        result: Completed run result.
    """
    table = Table(title="Run Complete", show_header=True, header_style="bold green", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Scenario", result.scenario_name)
    table.add_row("Profile", result.pattern_description)
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")
    for name, summary in sorted(result.metrics.items()):
        table.add_row(name, _format_metric(summary))
    console.print(table)

    summary = result.final_summary
    if summary is not None and summary.endpoints:
        ep_table = Table(
            title="Per-Endpoint Breakdown",
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        ep_table.add_column("Endpoint")
        ep_table.add_column("Requests", justify="right")
        ep_table.add_column("RPS", justify="right")
        ep_table.add_column("p50", justify="right")
        ep_table.add_column("p95", justify="right")
        ep_table.add_column("p99", justify="right")
        ep_table.add_column("Failed", justify="right")
        ep_table.add_column("Failed %", justify="right")

        for ep in summary.endpoints.values():
            ep_table.add_row(
                ep.name,
                str(ep.request_count),
                f"{ep.requests_per_second:.1f}",
                f"{ep.latency_p50:.1f}ms",
                f"{ep.latency_p95:.1f}ms",
                f"{ep.latency_p99:.1f}ms",
                str(ep.error_count),
                f"{ep.error_rate * 100:.2f}%",
            )
        console.print(ep_table)

    if summary is not None and (summary.errors_by_status or summary.errors_by_type):
        err_table = Table(
            title="Failed Requests",
            show_header=True,
            header_style="bold red",
            expand=True,
        )
        err_table.add_column("Cause")
        err_table.add_column("Count", justify="right")

        for status, count in sorted(summary.errors_by_status.items()):
            err_table.add_row(f"HTTP {status}", str(count))
        for error_type, count in sorted(summary.errors_by_type.items()):
            err_table.add_row(error_type, str(count))
        console.print(err_table)

    if result.checks:
        check_table = Table(title="Checks", show_header=True, header_style="bold cyan", expand=True)
        check_table.add_column("Group")
        check_table.add_column("Check")
        check_table.add_column("Passes", justify="right")
        check_table.add_column("Fails", justify="right")
        check_table.add_column("Pass %", justify="right")

        for check in result.checks:
            check_table.add_row(
                check.group,
                check.name,
                str(check.passes),
                str(check.fails),
                f"{check.pass_rate * 100:.2f}%",
            )
        console.print(check_table)

    if result.thresholds:
        th_table = Table(title="Thresholds", show_header=True, header_style="bold cyan", expand=True)
        th_table.add_column("Metric")
        th_table.add_column("Expression")
        th_table.add_column("Observed", justify="right")
        th_table.add_column("Result", justify="center")

        for threshold in result.thresholds:
            th_table.add_row(
                threshold.metric,
                threshold.expression,
                "-" if threshold.observed is None else f"{threshold.observed:.4g}",
                "[green]PASS[/green]" if threshold.passed else "[red]FAIL[/red]",
            )
        console.print(th_table)


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    scenario_file: Path | None = typer.Argument(
        None,
        help="Path to a scenario .py file. Defaults to the built-in health scenario.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    stage: list[str] = typer.Option(
        [],
        "--stage",
        "-s",
        help="Load stage as DURATION:TARGET (e.g. 30s:2). Repeat to replace the scenario's stages.",
    ),
    threshold: list[str] = typer.Option(
        [],
        "--threshold",
        "-t",
        help="Extra threshold as METRIC=EXPR (e.g. 'http_req_duration=p(99)<800').",
    ),
    tick: float = typer.Option(
        1.0,
        "--tick",
        help="Seconds between concurrency adjustments.",
        min=0.1,
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Per-request timeout in seconds. Defaults to HEALTHPROBE_TIMEOUT (30s).",
        min=0.1,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit log lines as JSON.",
    ),
) -> None:
    """Execute a scenario and exit non-zero when a threshold fails."""
    load_pattern = _build_pattern(stage)

    try:
        scenario = _resolve_scenario(scenario_file)
    except HealthProbeError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    thresholds = _build_thresholds(scenario, threshold)
    pattern_text = (load_pattern or scenario.pattern).describe()
    log_level = logging.DEBUG if verbose else logging.INFO

    console.print(
        Panel(
            f"[bold]Scenario:[/bold]   {scenario.name}\n"
            f"[bold]Profile:[/bold]    {pattern_text}\n"
            f"[bold]Thresholds:[/bold] {len(thresholds)}",
            title="healthprobe",
            border_style="cyan",
        )
    )

    try:
        with Live(
            _make_live_table(None),
            console=console,
            refresh_per_second=2,
            transient=True,
        ) as live:

            def _on_snapshot(snapshot: MetricSnapshot) -> None:
                live.update(_make_live_table(snapshot))

            result = run_scenario(
                scenario,
                pattern=load_pattern,
                thresholds=thresholds,
                tick_interval=tick,
                request_timeout=timeout,
                on_snapshot=_on_snapshot,
                log_level=log_level,
                json_logs=json_logs,
            )
    except HealthProbeError as exc:
        console.print(f"[red]Run failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    _print_summary(result)

    if not result.passed:
        failed = ", ".join(f"{t.metric} {t.expression}" for t in result.failed_thresholds)
        console.print(f"[red]FAIL:[/red] thresholds crossed: {failed}")
        raise typer.Exit(code=1)

    console.print("[green]All thresholds passed.[/green]")
