"""Click CLI entry point for codesigma."""

from __future__ import annotations

import logging

import click

from codesigma._version import __version__


@click.group()
@click.version_option(version=__version__, prog_name="codesigma")
@click.option("--verbose", "-v", count=True, help="Log more detail (-v info, -vv debug)")
def cli(verbose: int):
    """codesigma - defect analysis and automated repair.

    Analyze a source tree, score it, and fix what can be fixed automatically.
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# Import and register subcommands
from codesigma.cli.analyze_cmd import analyze  # noqa: E402
from codesigma.cli.repair_cmd import repair  # noqa: E402
from codesigma.cli.metrics_cmd import metrics  # noqa: E402
from codesigma.cli.undo_cmd import undo  # noqa: E402

cli.add_command(analyze)
cli.add_command(repair)
cli.add_command(metrics)
cli.add_command(undo)


if __name__ == "__main__":
    cli()
