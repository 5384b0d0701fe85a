"""codesigma metrics command."""

from __future__ import annotations

import json
from pathlib import Path

import click

from codesigma.core.output import console, print_metrics
from codesigma.metrics.collector import JsonlMetricsSink


@click.command()
@click.argument("root", default=".", type=click.Path(path_type=Path))
@click.option("--limit", type=int, default=20, help="Number of recent runs to show")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON records")
def metrics(root: Path, limit: int, as_json: bool):
    """Show metrics recorded for previous runs under ROOT."""
    sink = JsonlMetricsSink.for_project(root.resolve())
    history = sink.read(limit=limit)

    if as_json:
        click.echo(json.dumps(history, indent=2))
        return

    print_metrics({}, history)
    if history:
        console.print(f"\n  [dim]{len(history)} run(s) from {sink.path}[/dim]\n")
