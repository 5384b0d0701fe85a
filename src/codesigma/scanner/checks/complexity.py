"""Complexity checks (CPLX-001 through CPLX-003)."""

from __future__ import annotations

import re

from codesigma.core.models import Category, FileRecord, Issue, Severity
from codesigma.scanner.checks.base import BaseCheck, DetectorKind, is_comment, iter_functions

BRANCH_RE = re.compile(
    r"\b(?:if|elif|for|while|match|case|catch|except|loop)\b|&&|\|\||\band\b|\bor\b"
)


class CPLX001FileLength(BaseCheck):
    """Detect files that are too long."""

    check_id = "CPLX-001"
    kind = DetectorKind.FILE_LENGTH
    category = Category.COMPLEXITY
    severity = Severity.WARNING
    description = "File too long"

    def __init__(self, max_lines: int = 1000):
        self.max_lines = max_lines

    def config_key(self) -> str:
        return f"{self.check_id}:{self.max_lines}"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        count = len(lines)
        if count <= self.max_lines:
            return []
        severity = Severity.CRITICAL if count > self.max_lines * 2 else Severity.WARNING
        return [self._make_issue(
            message=f"File has {count} lines (max {self.max_lines}); split it up",
            record=record,
            line=0,
            severity=severity,
        )]


class CPLX002FunctionLength(BaseCheck):
    """Detect functions whose body spans too many lines."""

    check_id = "CPLX-002"
    kind = DetectorKind.FUNCTION_LENGTH
    category = Category.COMPLEXITY
    severity = Severity.WARNING
    description = "Function too long"

    def __init__(self, max_lines: int = 80):
        self.max_lines = max_lines

    def config_key(self) -> str:
        return f"{self.check_id}:{self.max_lines}"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        issues = []
        for block in iter_functions(lines):
            if block.length > self.max_lines:
                issues.append(self._make_issue(
                    message=(
                        f"Function '{block.name}' is {block.length} lines "
                        f"(max {self.max_lines})"
                    ),
                    record=record,
                    line=block.start,
                ))
        return issues


class CPLX003Branching(BaseCheck):
    """Detect functions with too many branch points."""

    check_id = "CPLX-003"
    kind = DetectorKind.BRANCHING
    category = Category.COMPLEXITY
    severity = Severity.WARNING
    description = "High cyclomatic branching"

    def __init__(self, max_branches: int = 15):
        self.max_branches = max_branches

    def config_key(self) -> str:
        return f"{self.check_id}:{self.max_branches}"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        issues = []
        for block in iter_functions(lines):
            # Header line excluded; ``block.start`` is 1-based
            body = lines[block.start : block.end]
            branches = sum(
                len(BRANCH_RE.findall(line)) for line in body if not is_comment(line)
            )
            if branches > self.max_branches:
                issues.append(self._make_issue(
                    message=(
                        f"Function '{block.name}' has {branches} branch points "
                        f"(max {self.max_branches})"
                    ),
                    record=record,
                    line=block.start,
                ))
        return issues
