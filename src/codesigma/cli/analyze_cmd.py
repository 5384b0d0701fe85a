"""codesigma analyze command."""

from __future__ import annotations

import dataclasses
import json
import sys
from pathlib import Path

import click

from codesigma.core.config import STATE_DIR_NAME, ensure_gitignore, get_state_dir, load_config
from codesigma.core.errors import EnvironmentFatal
from codesigma.core.models import Category, ScanReport
from codesigma.core.output import console, error_console, get_progress, print_scan_report
from codesigma.engine import Engine


@click.command()
@click.argument("root", default=".", type=click.Path(path_type=Path))
@click.option("--only", type=str, default=None,
              help="Analyze only these categories (comma-separated: security,performance,quality,complexity)")
@click.option("--jobs", "-j", type=int, default=None, help="Worker threads (default: CPU count)")
@click.option("--ttl", type=int, default=None, help="Cache entry lifetime in seconds")
@click.option("--json", "json_path", type=click.Path(path_type=Path), default=None,
              help="Also write the report as JSON to this file")
@click.option("--fail-under", type=float, default=0, help="Exit 1 if the score is below this (for CI)")
@click.option("--no-cache", is_flag=True, help="Do not read or write the fingerprint cache")
@click.option("--all", "show_all", is_flag=True, help="List every issue instead of the first 50")
def analyze(
    root: Path,
    only: str | None,
    jobs: int | None,
    ttl: int | None,
    json_path: Path | None,
    fail_under: float,
    no_cache: bool,
    show_all: bool,
):
    """Analyze ROOT for defects and print a quality report."""
    root = root.resolve()
    project_path = root if root.is_dir() else root.parent
    config = load_config(project_path) if project_path.is_dir() else None
    options = dataclasses.replace(config.analyze) if config else None

    if options is not None:
        if only:
            try:
                wanted = {Category(c.strip()) for c in only.split(",") if c.strip()}
            except ValueError as exc:
                raise click.BadParameter(str(exc), param_hint="--only") from exc
            options.include_security = Category.SECURITY in wanted
            options.include_performance = Category.PERFORMANCE in wanted
            options.include_quality = Category.QUALITY in wanted
            options.include_complexity = Category.COMPLEXITY in wanted
        if jobs is not None:
            options.parallelism = jobs
        if ttl is not None:
            options.cache_ttl_seconds = ttl
        if no_cache:
            options.use_cache = False

    if project_path.is_dir() and not (project_path / STATE_DIR_NAME).exists():
        get_state_dir(project_path)
        ensure_gitignore(project_path)
        console.print(f"\n  Created {STATE_DIR_NAME}/ and added it to .gitignore.\n")

    engine = Engine(config)
    try:
        with get_progress() as progress:
            task = progress.add_task(f"Analyzing {root}...", total=None)
            report = engine.analyze(root, options)
            progress.update(task, completed=True)
    except EnvironmentFatal as exc:
        error_console.print(f"[red]{exc}[/red]")
        sys.exit(2)

    print_scan_report(report, max_issues=None if show_all else 50)

    if json_path is not None:
        json_path.write_text(json.dumps(report_to_dict(report), indent=2))
        console.print(f"\n  [dim]JSON report saved to {json_path}[/dim]")

    effective = fail_under or (config.analyze.fail_under if config else 0)
    if effective and report.score.value < effective:
        console.print(
            f"\n  [red]Score {report.score.value:.2f} is below threshold {effective}.[/red]"
        )
        sys.exit(1)


def report_to_dict(report: ScanReport) -> dict:
    """Convert a ScanReport to a JSON-serializable dict."""
    score = report.score
    return {
        "root": str(report.root),
        "score": {
            "value": score.value,
            "dpmo": score.dpmo,
            "sigma_level": score.sigma_level,
            "weighted_defects": score.weighted_defects,
            "lines_scanned": score.lines_scanned,
            "categories": score.category_scores,
        },
        "total_files": report.total_files,
        "total_lines": report.total_lines,
        "duration": round(report.duration, 4),
        "cancelled": report.cancelled,
        "abandoned": report.abandoned,
        "counts": {
            "by_category": report.counts_by_category(),
            "by_severity": report.counts_by_severity(),
        },
        "cache": report.cache_stats.to_dict(),
        "diagnostics": [
            {"kind": d.kind, "message": d.message, "paths": list(d.paths)}
            for d in report.diagnostics
        ],
        "issues": [issue.to_dict() for issue in report.issues],
    }
