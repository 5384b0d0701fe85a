"""Code quality checks (QUAL-001 through QUAL-004)."""

from __future__ import annotations

import hashlib
import re

from codesigma.core.models import Category, FileRecord, Issue, Severity
from codesigma.scanner.checks.base import BaseCheck, DetectorKind

TODO_RE = re.compile(r"\b(?P<marker>TODO|FIXME|XXX|HACK)\b")

DEPRECATED_RE = re.compile(
    r"#\[deprecated\b|@deprecated\b|@Deprecated\b|\bDeprecationWarning\b|\[Obsolete\b"
)


class QUAL001TodoMarker(BaseCheck):
    """Detect TODO / FIXME markers."""

    check_id = "QUAL-001"
    kind = DetectorKind.TODO_MARKER
    category = Category.QUALITY
    severity = Severity.INFO
    description = "TODO marker"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        issues = []
        for lineno, line in enumerate(lines, start=1):
            match = TODO_RE.search(line)
            if match:
                issues.append(self._make_issue(
                    message=f"{match.group('marker')} marker left in code",
                    record=record,
                    line=lineno,
                ))
        return issues


class QUAL002DeprecatedApi(BaseCheck):
    """Detect deprecated-API markers."""

    check_id = "QUAL-002"
    kind = DetectorKind.DEPRECATED_API
    category = Category.QUALITY
    severity = Severity.WARNING
    description = "Deprecated API"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        issues = []
        for lineno, line in enumerate(lines, start=1):
            if DEPRECATED_RE.search(line):
                issues.append(self._make_issue(
                    message="Deprecated API marker; schedule migration or removal",
                    record=record,
                    line=lineno,
                ))
        return issues


class QUAL003DuplicateBlock(BaseCheck):
    """Detect repeated blocks of code within one file."""

    check_id = "QUAL-003"
    kind = DetectorKind.DUPLICATE_BLOCK
    category = Category.QUALITY
    severity = Severity.INFO
    description = "Duplicate code block"

    def __init__(self, min_lines: int = 6):
        self.min_lines = min_lines

    def config_key(self) -> str:
        return f"{self.check_id}:{self.min_lines}"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        # Normalised significant lines with their original 1-based line numbers.
        # Lines of two characters or fewer are closing braces and the like.
        significant = [
            (lineno, line.strip())
            for lineno, line in enumerate(lines, start=1)
            if len(line.strip()) > 2
        ]
        if len(significant) < self.min_lines * 2:
            return []

        issues = []
        first_seen: dict[str, int] = {}
        idx = 0
        while idx + self.min_lines <= len(significant):
            window = significant[idx : idx + self.min_lines]
            normalized = "\n".join(text for _, text in window)
            block_hash = hashlib.sha256(normalized.encode()).hexdigest()
            start_line = window[0][0]
            original = first_seen.get(block_hash)
            if original is None:
                first_seen[block_hash] = idx
                idx += 1
                continue
            if idx - original < self.min_lines:
                # Overlaps its own first occurrence (repetitive lines)
                idx += 1
                continue
            issues.append(self._make_issue(
                message=(
                    f"{self.min_lines}+ lines duplicate the block at line "
                    f"{significant[original][0]}"
                ),
                record=record,
                line=start_line,
            ))
            idx += self.min_lines
        return issues


class QUAL004TrailingWhitespace(BaseCheck):
    """Detect trailing whitespace (one issue per file)."""

    check_id = "QUAL-004"
    kind = DetectorKind.TRAILING_WHITESPACE
    category = Category.QUALITY
    severity = Severity.INFO
    fix_id = "strip-trailing-whitespace"
    description = "Trailing whitespace"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        offenders = [
            lineno for lineno, line in enumerate(lines, start=1)
            if line != line.rstrip(" \t")
        ]
        if not offenders:
            return []
        return [self._make_issue(
            message=f"Trailing whitespace on {len(offenders)} line(s)",
            record=record,
            line=offenders[0],
        )]
