"""codesigma repair command."""

from __future__ import annotations

import dataclasses
import json
import sys
from pathlib import Path

import click
from rich.prompt import Confirm

from codesigma.core.config import load_config
from codesigma.core.errors import EnvironmentFatal
from codesigma.core.models import Category, RepairReport, RunState
from codesigma.core.output import console, error_console, format_issue, print_repair_report
from codesigma.engine import Engine


@click.command()
@click.argument("root", default=".", type=click.Path(path_type=Path))
@click.option("--dry-run", is_flag=True, help="Show what would be fixed without writing anything")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.option("--no-confirm", is_flag=True, help="Do not re-analyze touched files after repair")
@click.option("--category", type=click.Choice([c.value for c in Category]), default=None,
              help="Repair only issues in this category")
@click.option("--no-backup", is_flag=True, help="Do not keep backups (disables undo)")
@click.option("--json", "json_path", type=click.Path(path_type=Path), default=None,
              help="Also write the repair report as JSON to this file")
def repair(
    root: Path,
    dry_run: bool,
    yes: bool,
    no_confirm: bool,
    category: str | None,
    no_backup: bool,
    json_path: Path | None,
):
    """Analyze ROOT and apply every available automatic fix."""
    root = root.resolve()
    if not root.is_dir():
        error_console.print(f"[red]Project path is not a directory: {root}[/red]")
        sys.exit(2)

    config = load_config(root)
    options = dataclasses.replace(config.repair)
    options.dry_run = options.dry_run or dry_run
    if no_confirm:
        options.confirm = False
    if no_backup:
        options.backup = False

    engine = Engine(config)
    try:
        report = engine.analyze(root)
    except EnvironmentFatal as exc:
        error_console.print(f"[red]{exc}[/red]")
        sys.exit(2)

    issues = [i for i in report.issues if i.is_auto_fixable]
    if category:
        issues = [i for i in issues if i.category.value == category]
    if not issues:
        console.print("\n  No auto-fixable issues found.\n")
        return

    console.print(f"\n  [bold]{len(issues)} auto-fixable issue(s):[/bold]\n")
    for issue in issues:
        console.print(format_issue(issue))
    console.print()

    if not options.dry_run and not yes:
        if not Confirm.ask(f"  Apply {len(issues)} fix(es)?"):
            console.print("  Cancelled.\n")
            return

    result = engine.repair(issues, options, root=root)
    print_repair_report(result)

    if json_path is not None:
        json_path.write_text(json.dumps(repair_report_to_dict(result), indent=2))
        console.print(f"  [dim]JSON report saved to {json_path}[/dim]\n")

    if options.dry_run:
        return
    if result.state == RunState.ABORTED:
        sys.exit(2)
    if result.success_count:
        after = engine.analyze(root)
        delta = after.score.value - report.score.value
        sign = "+" if delta >= 0 else ""
        console.print(
            f"  Score: {report.score.value:.2f} -> {after.score.value:.2f} ({sign}{delta:.2f})\n"
        )


def repair_report_to_dict(report: RepairReport) -> dict:
    """Convert a RepairReport to a JSON-serializable dict."""
    return {
        "state": report.state.value,
        "session": report.session,
        "fatal_error": report.fatal_error,
        "duration": round(report.duration, 4),
        "counts": {
            "success": report.success_count,
            "failed": report.failure_count,
            "skipped": report.skipped_count,
        },
        "touched_files": list(report.touched_files),
        "steps": [
            {
                "issue": step.issue.to_dict(),
                "fixer_id": step.fixer_id,
                "outcome": step.outcome.value,
                "message": step.message,
                "resolved": step.resolved,
            }
            for step in report.steps
        ],
    }
