"""File walker: enumerates candidate files under a root."""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from codesigma.core.errors import EnvironmentFatal
from codesigma.core.models import Diagnostic, FileRecord

logger = logging.getLogger(__name__)


@dataclass
class IgnoreSpec:
    """Which files the walker yields.

    ``patterns`` are fnmatch globs. A pattern ending in ``/`` matches a
    directory name anywhere in the tree; any other pattern is matched against
    the relative path and the file name.
    """

    patterns: list[str] = field(default_factory=list)
    extensions: list[str] = field(default_factory=list)
    max_file_size: int = 1024 * 1024

    def skips_dir(self, name: str, rel: str) -> bool:
        for pattern in self.patterns:
            if pattern.endswith("/"):
                if fnmatch.fnmatch(name, pattern.rstrip("/")):
                    return True
            elif fnmatch.fnmatch(rel, pattern):
                return True
        return False

    def skips_file(self, name: str, rel: str) -> bool:
        if self.extensions and os.path.splitext(name)[1] not in self.extensions:
            return True
        for pattern in self.patterns:
            if pattern.endswith("/"):
                continue
            if fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(name, pattern):
                return True
        return False


class FileWalker:
    """Lazily yields :class:`FileRecord` objects for a tree.

    Every call to :meth:`walk` is a fresh traversal. Diagnostics from the most
    recent traversal are available on :attr:`diagnostics` once the generator
    is exhausted.
    """

    def __init__(self, root: Path, ignore: IgnoreSpec | None = None):
        self.root = Path(root)
        self.ignore = ignore or IgnoreSpec()
        self.diagnostics: list[Diagnostic] = []

    def __iter__(self) -> Iterator[FileRecord]:
        return self.walk()

    def walk(self) -> Iterator[FileRecord]:
        if not self.root.exists():
            raise EnvironmentFatal(f"Root path does not exist: {self.root}")

        self.diagnostics = []
        oversize: list[str] = []
        root = self.root.resolve()

        if root.is_file():
            record = self._record(root, root.name, oversize)
            if record is not None:
                yield record
            self._finish(oversize)
            return

        visited: set[str] = set()
        stack: list[tuple[Path, str]] = [(root, "")]

        while stack:
            directory, rel_dir = stack.pop()
            canonical = os.path.realpath(directory)
            if canonical in visited:
                self.diagnostics.append(Diagnostic(
                    kind="symlink-cycle",
                    message=f"Skipped already visited directory {rel_dir or '.'}",
                    paths=(rel_dir,),
                ))
                continue
            visited.add(canonical)

            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as exc:
                logger.warning("Cannot read directory %s: %s", directory, exc)
                self.diagnostics.append(Diagnostic(
                    kind="unreadable-directory",
                    message=f"{rel_dir or '.'}: {exc.strerror or exc}",
                    paths=(rel_dir,),
                ))
                continue

            subdirs: list[tuple[Path, str]] = []
            for entry in entries:
                rel = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
                try:
                    is_dir = entry.is_dir(follow_symlinks=True)
                    is_file = not is_dir and entry.is_file(follow_symlinks=True)
                except OSError as exc:
                    self.diagnostics.append(Diagnostic(
                        kind="unreadable-entry",
                        message=f"{rel}: {exc.strerror or exc}",
                        paths=(rel,),
                    ))
                    continue

                if is_dir:
                    if not self.ignore.skips_dir(entry.name, rel):
                        subdirs.append((Path(entry.path), rel))
                elif is_file and not self.ignore.skips_file(entry.name, rel):
                    record = self._record(Path(entry.path), rel, oversize)
                    if record is not None:
                        yield record

            # Reversed so the stack pops subdirectories in name order
            stack.extend(reversed(subdirs))

        self._finish(oversize)

    def _record(self, path: Path, rel: str, oversize: list[str]) -> FileRecord | None:
        try:
            st = path.stat()
        except OSError as exc:
            # Vanished between listing and stat
            self.diagnostics.append(Diagnostic(
                kind="unreadable-entry",
                message=f"{rel}: {exc.strerror or exc}",
                paths=(rel,),
            ))
            return None
        if st.st_size > self.ignore.max_file_size:
            oversize.append(rel)
            return None
        return FileRecord(path=path, rel_path=rel, size=st.st_size, mtime=st.st_mtime)

    def _finish(self, oversize: list[str]) -> None:
        if oversize:
            self.diagnostics.append(Diagnostic(
                kind="skipped-oversize",
                message=(
                    f"{len(oversize)} file(s) larger than "
                    f"{self.ignore.max_file_size} bytes were skipped"
                ),
                paths=tuple(oversize),
            ))
