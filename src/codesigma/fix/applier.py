"""Fix application and backup management."""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
import threading
from datetime import datetime
from pathlib import Path

from codesigma.core.config import STATE_DIR_NAME
from codesigma.core.errors import EnvironmentFatal, IoError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


def new_session_id() -> str:
    return datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")


def atomic_write(path: Path, content: str) -> None:
    """Replace *path* with *content* via a temp file in the same directory."""
    try:
        mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else None
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if mode is not None:
                os.chmod(tmp, mode)
            os.replace(tmp, path)
        except BaseException:
            os.unlink(tmp)
            raise
    except OSError as exc:
        raise IoError(path, exc.strerror or str(exc)) from exc


class FixApplier:
    """Writes fixed content to source files, backing up originals first.

    One applier is one backup session: the first time a file is written its
    pre-session content is saved under ``.codesigma/backups/<session>/`` and
    recorded in the session's ``manifest.json``.
    """

    def __init__(self, project_path: Path, backup: bool = True, session: str | None = None):
        self.project_path = Path(project_path)
        self.backup = backup
        self.session = session or new_session_id()
        self.backup_dir = self.project_path / STATE_DIR_NAME / "backups"
        self._lock = threading.Lock()
        self._backed_up: set[Path] = set()
        self.written: list[Path] = []

    @property
    def session_dir(self) -> Path:
        return self.backup_dir / self.session

    def write(self, path: Path, new_content: str, original: str, label: str = "") -> None:
        """Back up *original* (once per session) and write *new_content*."""
        if self.backup:
            self._create_backup(path, original, label)
        atomic_write(path, new_content)
        with self._lock:
            self.written.append(path)
        logger.debug("Wrote %s", path)

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.project_path).as_posix()
        except ValueError:
            return str(path)

    def _create_backup(self, path: Path, content: str, label: str) -> None:
        with self._lock:
            if path in self._backed_up:
                return
            rel = self._relative(path)
            try:
                self.session_dir.mkdir(parents=True, exist_ok=True)
                backup_file = self.session_dir / (rel.replace("/", "__") + ".bak")
                counter = 1
                while backup_file.exists():
                    backup_file = self.session_dir / f"{rel.replace('/', '__')}.{counter}.bak"
                    counter += 1
                backup_file.write_text(content, encoding="utf-8", newline="")

                manifest_file = self.session_dir / MANIFEST_NAME
                manifest = []
                if manifest_file.exists():
                    manifest = json.loads(manifest_file.read_text())
                manifest.append({
                    "file": rel,
                    "backup": backup_file.name,
                    "label": label,
                    "timestamp": datetime.now().isoformat(timespec="seconds"),
                })
                manifest_file.write_text(json.dumps(manifest, indent=2))
            except OSError as exc:
                raise EnvironmentFatal(
                    f"Cannot write backup for {rel} under {self.session_dir}: {exc}"
                ) from exc
            self._backed_up.add(path)
