"""Undo support: restore files from repair backups."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from codesigma.core.config import STATE_DIR_NAME
from codesigma.core.errors import IoError
from codesigma.fix.applier import MANIFEST_NAME, atomic_write

logger = logging.getLogger(__name__)


@dataclass
class UndoEntry:
    """One backed-up file within a repair session."""

    session: str
    file: str
    backup: Path
    label: str
    timestamp: str


@dataclass
class UndoResult:
    file: str
    success: bool
    message: str


class UndoManager:
    """Lists repair sessions and restores their backups.

    Rollback is best-effort and per file: a failed restore is reported and the
    remaining files are still attempted.
    """

    def __init__(self, project_path: Path):
        self.project_path = Path(project_path)
        self.backup_dir = self.project_path / STATE_DIR_NAME / "backups"

    def list_sessions(self) -> list[str]:
        """Session ids, newest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(
            (d.name for d in self.backup_dir.iterdir() if (d / MANIFEST_NAME).exists()),
            reverse=True,
        )

    def list_undoable(self, session: str | None = None) -> list[UndoEntry]:
        sessions = [session] if session else self.list_sessions()
        entries = []
        for name in sessions:
            session_dir = self.backup_dir / name
            manifest_file = session_dir / MANIFEST_NAME
            if not manifest_file.exists():
                continue
            for entry in json.loads(manifest_file.read_text()):
                entries.append(UndoEntry(
                    session=name,
                    file=entry["file"],
                    backup=session_dir / entry["backup"],
                    label=entry.get("label", ""),
                    timestamp=entry.get("timestamp", ""),
                ))
        return entries

    def undo_session(self, session: str | None = None) -> list[UndoResult]:
        """Restore every file of *session* (default: the most recent one)."""
        if session is None:
            sessions = self.list_sessions()
            if not sessions:
                return []
            session = sessions[0]

        results = []
        for entry in self.list_undoable(session):
            results.append(self._restore(entry))
        return results

    def _restore(self, entry: UndoEntry) -> UndoResult:
        if not entry.backup.exists():
            return UndoResult(entry.file, False, f"Backup file not found for {entry.file}")

        target = Path(entry.file)
        if not target.is_absolute():
            target = self.project_path / target
        try:
            atomic_write(target, entry.backup.read_bytes().decode("utf-8"))
        except (IoError, OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not restore %s: %s", entry.file, exc)
            return UndoResult(entry.file, False, f"Could not restore {entry.file}: {exc}")
        return UndoResult(entry.file, True, f"Restored {entry.file} from session {entry.session}")
