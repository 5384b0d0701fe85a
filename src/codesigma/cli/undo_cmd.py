"""codesigma undo command."""

from __future__ import annotations

from pathlib import Path

import click

from codesigma.core.output import console, print_undo_entries, print_undo_result
from codesigma.fix.undo import UndoManager


@click.command()
@click.argument("root", default=".", type=click.Path(path_type=Path))
@click.option("--session", type=str, default=None, help="Session id to restore (default: most recent)")
@click.option("--list", "list_all", is_flag=True, help="List backed-up files instead of restoring")
def undo(root: Path, session: str | None, list_all: bool):
    """Restore files changed by a repair session."""
    manager = UndoManager(root.resolve())

    if list_all:
        entries = manager.list_undoable(session)
        if not entries:
            console.print("\n  No repair backups found.\n")
            return
        console.print("\n  [bold]Repair backups[/bold]\n")
        print_undo_entries(entries)
        console.print()
        return

    if session is not None and session not in manager.list_sessions():
        console.print(f"\n  [red]No repair session '{session}'.[/red]")
        console.print("  Run `codesigma undo --list` to see available sessions.\n")
        return

    results = manager.undo_session(session)
    if not results:
        console.print("\n  No repair session to undo.\n")
        return

    console.print("\n  [bold]Restoring files:[/bold]\n")
    for result in results:
        print_undo_result(result)
    console.print()
