"""Base check class and shared text helpers for all detectors."""

from __future__ import annotations

import enum
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass

from codesigma.core.models import Category, FileRecord, Issue, Severity


class DetectorKind(enum.Enum):
    """Closed set of detectors. Every member has exactly one check class."""

    UNSAFE_BLOCK = "unsafe_block"
    ABORTING_CALL = "aborting_call"
    HARDCODED_SECRET = "hardcoded_secret"
    LARGE_COPY = "large_copy"
    CONCAT_IN_LOOP = "concat_in_loop"
    NESTED_SAME_ITERATION = "nested_same_iteration"
    TODO_MARKER = "todo_marker"
    DEPRECATED_API = "deprecated_api"
    DUPLICATE_BLOCK = "duplicate_block"
    TRAILING_WHITESPACE = "trailing_whitespace"
    FILE_LENGTH = "file_length"
    FUNCTION_LENGTH = "function_length"
    BRANCHING = "branching"


class BaseCheck(ABC):
    """Abstract base class for all detectors.

    A check is a pure function of one file's content: it keeps no state
    between calls and may run concurrently on different files.
    """

    check_id: str = ""
    kind: DetectorKind
    category: Category = Category.QUALITY
    severity: Severity = Severity.INFO
    fix_id: str | None = None
    description: str = ""

    @abstractmethod
    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        """Run the check on a single file. Return list of issues."""
        ...

    def config_key(self) -> str:
        """Identity of this check including any threshold that changes its output."""
        return self.check_id

    def _make_issue(
        self,
        message: str,
        record: FileRecord,
        line: int = 0,
        severity: Severity | None = None,
        fixable: bool = True,
    ) -> Issue:
        """Helper to create an Issue with this check's defaults."""
        return Issue(
            path=record.rel_path,
            line=line,
            category=self.category,
            severity=severity or self.severity,
            message=message,
            check_id=self.check_id,
            fix_id=self.fix_id if fixable else None,
        )


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_COMMENT_PREFIXES = ("#", "//", "/*", "*", "--")

FUNCTION_RE = re.compile(
    r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:async\s+)?(?:unsafe\s+)?(?:const\s+)?"
    r"(?:fn|def|func|function)\s+(?P<name>\w+)"
)


@dataclass(frozen=True)
class Block:
    """A function or loop body located by indentation or braces (1-based lines)."""

    name: str
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


def is_comment(line: str) -> bool:
    return line.lstrip().startswith(_COMMENT_PREFIXES)


def indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())


def _strip_trailing_comment(line: str) -> str:
    for marker in (" #", " //"):
        pos = line.find(marker)
        if pos != -1:
            line = line[:pos]
    return line.rstrip()


def block_end(lines: list[str], start: int) -> int:
    """Return the 0-based index of the last line of the block opened at *start*.

    Python-style headers (ending in ``:``) use indentation; anything else is
    matched by counting braces. A header that never opens a block ends where
    it starts.
    """
    header = _strip_trailing_comment(lines[start])
    if header.endswith(":"):
        base = indent_of(lines[start])
        end = start
        for idx in range(start + 1, len(lines)):
            line = lines[idx]
            if not line.strip():
                continue
            if indent_of(line) <= base:
                break
            end = idx
        return end

    depth = 0
    opened = False
    for idx in range(start, len(lines)):
        line = lines[idx]
        if is_comment(line):
            continue
        for ch in line:
            if ch == "{":
                depth += 1
                opened = True
            elif ch == "}":
                depth -= 1
        if opened and depth <= 0:
            return idx
        if not opened and idx - start >= 2:
            return start
        if not opened and header.endswith(";"):
            return start
    return len(lines) - 1 if opened else start


def iter_functions(lines: list[str]) -> Iterator[Block]:
    """Yield every function-looking block in the file."""
    for idx, line in enumerate(lines):
        match = FUNCTION_RE.match(line)
        if not match:
            continue
        end = block_end(lines, idx)
        if end > idx:
            yield Block(name=match.group("name"), start=idx + 1, end=end + 1)
