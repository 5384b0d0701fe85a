"""Rich terminal formatting for codesigma output."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from codesigma.core.models import (
    Category,
    Issue,
    RepairOutcome,
    RepairReport,
    RepairStep,
    ScanReport,
    Severity,
)
from codesigma.fix.undo import UndoEntry, UndoResult

console = Console()
error_console = Console(stderr=True)


SEVERITY_ICONS = {
    Severity.CRITICAL: "[red]●[/red]",
    Severity.WARNING: "[yellow]●[/yellow]",
    Severity.INFO: "[blue]●[/blue]",
}

SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}

OUTCOME_LABELS = {
    RepairOutcome.SUCCESS: "[green]✅ fixed[/green]",
    RepairOutcome.FAILED: "[red]❌ failed[/red]",
    RepairOutcome.SKIPPED: "[dim]- skipped[/dim]",
}

CATEGORY_LABELS = {
    Category.SECURITY: "Security",
    Category.PERFORMANCE: "Performance",
    Category.QUALITY: "Quality",
    Category.COMPLEXITY: "Complexity",
}


def score_color(score: float) -> str:
    """Return color name based on score."""
    if score >= 80:
        return "green"
    elif score >= 60:
        return "yellow"
    return "red"


def progress_bar(score: float, width: int = 10) -> str:
    """Create a text-based progress bar."""
    filled = round(score / 100 * width)
    empty = width - filled
    color = score_color(score)
    return f"[{color}]{'█' * filled}{'░' * empty}[/{color}]"


def format_issue(issue: Issue) -> str:
    """Format a single issue for terminal output."""
    icon = SEVERITY_ICONS.get(issue.severity, "●")
    location = issue.path
    if issue.line:
        location += f":{issue.line}"
    fix_label = f" [dim](auto: {issue.fix_id})[/dim]" if issue.is_auto_fixable else ""
    return f"  {icon} {issue.check_id:<14} {escape(issue.message)}  [dim]{escape(location)}[/dim]{fix_label}"


def print_scan_report(report: ScanReport, max_issues: int | None = 50) -> None:
    """Print the score card and the most severe issues."""
    score = report.score
    color = score_color(score.value)

    lines = [
        "",
        f"  Quality Score:  [{color}]{score.value:.2f}/100[/{color}]"
        f"   sigma {score.sigma_level:.2f}   {score.dpmo:,.0f} DPMO",
        "",
    ]

    counts = report.counts_by_category()
    for category in Category:
        value = score.category_scores.get(category.value, 100.0)
        extra = f"  {counts[category.value]} issue(s)" if counts[category.value] else ""
        lines.append(
            f"  {CATEGORY_LABELS[category]:<14} {progress_bar(value)}  {value:6.2f}{extra}"
        )
    lines.append("")

    ranked = sorted(report.issues, key=lambda i: SEVERITY_RANK[i.severity])
    shown = ranked if max_issues is None else ranked[:max_issues]
    for issue in shown:
        lines.append(format_issue(issue))
    if len(shown) < len(ranked):
        lines.append(f"  [dim]... and {len(ranked) - len(shown)} more[/dim]")
    if shown:
        lines.append("")

    lines.append(
        f"  {report.critical_count} critical | {report.warning_count} warning | "
        f"{report.info_count} info | {report.auto_fixable_count} auto-fixable"
    )
    lines.append(
        f"  {report.total_lines:,} lines | {report.total_files} files | "
        f"{report.duration:.2f}s | cache hit rate {report.cache_stats.hit_rate:.0%}"
    )
    if report.cancelled:
        lines.append(
            f"  [yellow]Run cancelled: {len(report.abandoned)} file(s) not analyzed[/yellow]"
        )
    for diagnostic in report.diagnostics:
        lines.append(f"  [dim]{diagnostic.kind}: {escape(diagnostic.message)}[/dim]")
    if report.auto_fixable_count:
        lines.append("")
        lines.append("  Quick fix: [bold]codesigma repair[/bold]")

    console.print(Panel(
        "\n".join(lines),
        title=f"[bold]codesigma Report  {report.root.name}[/bold]",
        border_style=color,
        padding=(0, 1),
    ))


def format_repair_step(step: RepairStep) -> str:
    label = OUTCOME_LABELS[step.outcome]
    location = step.issue.path + (f":{step.issue.line}" if step.issue.line else "")
    resolved = ""
    if step.resolved is True:
        resolved = " [green](confirmed)[/green]"
    elif step.resolved is False:
        resolved = " [yellow](still reported)[/yellow]"
    return f"  {label}  {step.issue.check_id}  {escape(location)}  {escape(step.message)}{resolved}"


def print_repair_report(report: RepairReport) -> None:
    """Print every repair step and the run summary."""
    console.print()
    for step in report.steps:
        console.print(format_repair_step(step))

    console.print()
    if report.fatal_error:
        console.print(f"  [red bold]Aborted:[/red bold] {escape(report.fatal_error)}")
    console.print(
        f"  [green]{report.success_count} fixed[/green] | "
        f"[red]{report.failure_count} failed[/red] | "
        f"{report.skipped_count} skipped  [dim]({report.state.value})[/dim]"
    )
    if report.success_count:
        console.print("  [dim]Run `codesigma undo` to revert this session.[/dim]")
    console.print()


def print_undo_entries(entries: list[UndoEntry]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Session")
    table.add_column("File")
    table.add_column("Fix")
    for entry in entries:
        table.add_row(entry.session, entry.file, entry.label)
    console.print(table)


def print_undo_result(result: UndoResult) -> None:
    if result.success:
        console.print(f"  [green]✅[/green] {result.message}")
    else:
        console.print(f"  [red]❌[/red] {result.message}")


def print_metrics(snapshot: dict[str, Any], history: list[dict[str, Any]]) -> None:
    """Print process counters and recorded runs."""
    cache = snapshot.get("cache")
    if cache:
        console.print(
            f"\n  Cache: {cache['entries']} entries | hit rate {cache['hit_rate']:.0%} | "
            f"{cache['expirations']} expired | {cache['invalidations']} invalidated"
        )

    if not history:
        console.print("\n  No recorded runs.\n")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("When")
    table.add_column("Command")
    table.add_column("Score", justify="right")
    table.add_column("Issues", justify="right")
    table.add_column("Repairs (ok/fail/skip)", justify="right")
    table.add_column("Duration", justify="right")
    for run in history:
        score = run.get("score")
        issues = sum(run.get("issues_by_severity", {}).values())
        repairs = ""
        if run.get("command") == "repair":
            repairs = (
                f"{run.get('repairs_succeeded', 0)}/{run.get('repairs_failed', 0)}"
                f"/{run.get('repairs_skipped', 0)}"
            )
        table.add_row(
            run.get("recorded_at", ""),
            run.get("command", ""),
            f"{score:.2f}" if score is not None else "",
            str(issues) if run.get("command") == "analyze" else "",
            repairs,
            f"{run.get('duration', 0.0):.2f}s",
        )
    console.print(table)


def get_progress() -> Progress:
    """Create a progress instance for analysis."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    )
