"""taskgate CLI - task prerequisite checks, post-task validation, debt analysis and audits."""

from __future__ import annotations

import random
from pathlib import Path

import click
import typer
from rich.console import Console
from rich.markup import escape

from taskgate import __version__
from taskgate.config import GateConfig, load_config, resolve_repo_root, with_overrides
from taskgate.errors import TaskgateError
from taskgate.obs.log import configure_logging

cli = typer.Typer(
    name="taskgate",
    help="taskgate - evidence-based task completion gating",
    no_args_is_help=True,
    add_help_option=False,
)
console = Console()

STATUS_STYLE = {"pass": "green", "warn": "yellow", "fail": "red"}
DECISION_STYLE = {"PASS": "green", "WARN": "yellow", "HALT": "bold red"}
SEVERITY_STYLE = {"CRITICAL": "bold red", "HIGH": "red", "MEDIUM": "yellow", "LOW": "cyan"}


def _version_option_callback(value: bool) -> None:
    """Handle eager --version option."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _help_option_callback(value: bool) -> None:
    """Handle eager -h/--help option."""
    if value:
        ctx = click.get_current_context()
        typer.echo(ctx.get_help())
        raise typer.Exit()


@cli.callback()
def _cli_callback(
    ctx: typer.Context,
    help: bool = typer.Option(
        False,
        "--help",
        "-h",
        help="Show this message and exit.",
        is_eager=True,
        callback=_help_option_callback,
    ),
    repo_root: Path | None = typer.Option(
        None,
        "--repo-root",
        help="Repository root (default: $TASKGATE_REPO_ROOT, then the current directory)",
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        help="Config file (.toml or .yaml); default .taskgate/config.toml",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log diagnostics to stderr"),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show taskgate version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
) -> None:
    """Resolve configuration once for the invoked command."""
    _ = help, version
    configure_logging(verbose)
    ctx.obj = {"repo_root": repo_root, "config_path": config_path}


def _load_config(ctx: typer.Context) -> GateConfig:
    obj = ctx.obj or {}
    root = resolve_repo_root(obj.get("repo_root"))
    try:
        return load_config(root, obj.get("config_path"))
    except TaskgateError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1) from e


@cli.command("prerequisite-check")
def prerequisite_check_cmd(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id, e.g. T014"),
) -> None:
    """Check that a task may start.

    Exit codes:
      0 - No blocking problems (warnings may be printed)
      1 - At least one blocking problem
    """
    from taskgate.pipeline.prerequisite import run_prerequisite_checks

    config = _load_config(ctx)
    report = run_prerequisite_checks(task_id, config)

    console.print(f"[bold]Prerequisite check: {task_id}[/bold]")
    for check in report.checks:
        style = STATUS_STYLE[check.status]
        console.print(f"  [{style}]{check.status.upper():4}[/{style}] {check.id}: {escape(check.message)}")
        if check.status != "pass":
            for step in check.remediation:
                console.print(f"         [dim]-> {step}[/dim]")

    if report.passed:
        console.print(f"[green]✓ {task_id} may start[/green] ({len(report.warnings)} warning(s))")
        return
    console.print(f"[bold red]✗ {task_id} blocked:[/bold red] {len(report.errors)} error(s)")
    raise typer.Exit(1)


@cli.command("post-task-validate")
def post_task_validate_cmd(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id, e.g. T014"),
    evidence_dir: Path | None = typer.Option(
        None,
        "--evidence-dir",
        help="Evidence bundle directory (default: <evidence_root>/<TASK_ID>)",
    ),
    mark_complete: bool = typer.Option(
        False,
        "--mark-complete",
        help="Mark the task complete in the work queue when APPROVED",
    ),
) -> None:
    """Run the implementation, evidence and compliance gates for a task.

    Exit codes:
      0 - APPROVED (certificate written)
      1 - REJECTED or tooling error
    """
    from taskgate.pipeline.gates import validate_task
    from taskgate.pipeline.gates.runner import render_gate

    config = _load_config(ctx)
    try:
        outcome = validate_task(task_id, config, evidence_dir=evidence_dir, mark_complete=mark_complete)
    except TaskgateError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[bold]Post-task validation: {task_id}[/bold]")
    console.print(f"  States: {' -> '.join(outcome.states)}")
    for gate in outcome.gates:
        style = "yellow" if gate.skipped else ("green" if gate.passed else "red")
        console.print(f"  [{style}]{render_gate(gate)}[/{style}]")
        for message in gate.errors:
            console.print(f"    [red]✗[/red] {escape(message)}")
        for message in gate.warnings:
            console.print(f"    [yellow]![/yellow] {escape(message)}")

    console.print(f"  Report: {outcome.report_path}")
    if outcome.approved:
        console.print(f"[green]✓ APPROVED[/green] certificate: {outcome.certificate_path}")
        if outcome.marked_complete:
            console.print(f"[green]✓ {task_id} marked complete[/green]")
        return
    console.print(f"[bold red]✗ REJECTED[/bold red] {len(outcome.errors)} error(s); fix them and re-run")
    raise typer.Exit(1)


@cli.command("debt-analyze")
def debt_analyze_cmd(
    ctx: typer.Context,
    test_results: Path = typer.Argument(..., help="Test-run output (Jest JSON, pytest-json-report or text)"),
    queue_id: str = typer.Argument(..., help="Active queue/sprint id the failures belong to"),
    task: str | None = typer.Option(None, "--task", help="Task whose evidence receives technical-debt.json"),
) -> None:
    """Classify failing tests as technical debt and place it.

    Always exits 0: debt is tracked, never a reason to fail the command.
    """
    from taskgate.pipeline.debt import analyze_debt

    config = _load_config(ctx)
    try:
        analysis = analyze_debt(config.resolve(test_results), queue_id, config, task_id=task)
    except TaskgateError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return

    console.print(f"[bold]Technical debt: {queue_id}[/bold] ({len(analysis.failing_tests)} failing test(s))")
    for severity, count in analysis.counts.items():
        style = SEVERITY_STYLE.get(severity.upper(), "white")
        console.print(f"  [{style}]{severity.upper():8}[/{style}] {count}")
    console.print(f"  Placement: {analysis.placement.strategy} - {analysis.placement.reason}")
    if analysis.generated_tasks:
        console.print(f"  Queue tasks: {', '.join(analysis.generated_tasks)}")
    if analysis.duplicates_skipped:
        console.print(f"  [dim]Already tracked: {analysis.duplicates_skipped} item(s)[/dim]")
    console.print(f"  Evidence: {analysis.evidence_path}")
    if analysis.blocks_development:
        console.print(
            "[bold red]HALT:[/bold red] critical technical debt; resolve it before continuing development"
        )


@cli.command("audit")
def audit_cmd(
    ctx: typer.Context,
    seed: int | None = typer.Option(None, "--seed", help="Seed for reproducible spot-check selection"),
    with_implementation_gate: bool = typer.Option(
        False,
        "--with-implementation-gate",
        help="Also run the type-checker and linter",
    ),
    workers: int | None = typer.Option(None, "--workers", help="Parallel per-task checks"),
) -> None:
    """Audit every completed task.

    Exit codes:
      0 - Compliance at or above the halt threshold
      1 - Compliance below the halt threshold, or tooling error
    """
    from taskgate.pipeline.audit import run_audit

    config = with_overrides(_load_config(ctx), audit_workers=workers)
    try:
        report = run_audit(
            config,
            rng=random.Random(seed) if seed is not None else None,
            with_implementation_gate=with_implementation_gate,
        )
    except TaskgateError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1) from e

    style = DECISION_STYLE[report.decision]
    console.print("[bold]Compliance audit[/bold]")
    console.print(f"  Tasks: {report.compliant_tasks}/{len(report.tasks)} compliant")
    console.print(f"  Compliance: [{style}]{report.compliance}% {report.decision}[/{style}]")
    for check in report.spot_checks:
        mark = "[green]✓[/green]" if check.passed else "[red]✗[/red]"
        console.print(f"  Spot check {check.task_id}: {mark}")
    for violation in report.critical_violations:
        console.print(f"  [red]✗[/red] {escape(violation)}")
    for warning in report.warnings:
        console.print(f"  [yellow]![/yellow] {escape(warning)}")
    for recommendation in report.recommendations:
        console.print(f"  [cyan]->[/cyan] {escape(recommendation)}")
    console.print(f"  Report: {report.report_path}")
    if report.halted:
        raise typer.Exit(1)


@cli.command("check-doc")
def check_doc_cmd(
    file: Path = typer.Argument(..., help="Completion status document to check"),
) -> None:
    """Pattern-check a completion status document.

    Exit codes:
      0 - No errors
      1 - Missing level, mismatched level or no evidence cited
    """
    from taskgate.pipeline.gates.doc_checker import check_file

    result = check_file(file)
    for message in result.errors:
        console.print(f"[red]✗[/red] {escape(message)}")
    for message in result.warnings:
        console.print(f"[yellow]![/yellow] {escape(message)}")
    if result.passed:
        level = f" (LEVEL {result.level})" if result.level is not None else ""
        console.print(f"[green]✓ {file} passes{level}[/green]")
        return
    raise typer.Exit(1)


if __name__ == "__main__":
    cli()
