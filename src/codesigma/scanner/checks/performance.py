"""Performance checks (PERF-001 through PERF-003)."""

from __future__ import annotations

import re

from codesigma.core.models import Category, FileRecord, Issue, Severity
from codesigma.scanner.checks.base import BaseCheck, DetectorKind, block_end, is_comment

CONTAINER_NAMES = r"\w*(?:vec|list|map|items|data|buf|buffer|array|set|table|rows|entries|cache|records)\w*"

COPY_PATTERNS = [
    re.compile(rf"(?i)\b{CONTAINER_NAMES}\.clone\(\)"),
    re.compile(r"\.to_vec\(\)"),
    re.compile(rf"(?i)\b{CONTAINER_NAMES}\.to_owned\(\)"),
    re.compile(r"\bcopy\.deepcopy\("),
    re.compile(rf"(?i)\b{CONTAINER_NAMES}\[:\]"),
]

LOOP_RE = re.compile(r"^\s*(?:for|while|loop)\b")

CONCAT_RE = re.compile(
    r"""\w+\s*\+=\s*(?:f?["']|str\(|&?format!\()"""
    r"""|\.push_str\(|\.concat\("""
    r"""|\b(?P<target>\w+)\s*=\s*(?P=target)\s*\+\s*f?["']"""
)

FOR_IN_RE = re.compile(
    r"^\s*for\s+.+?\s+in\s+&?(?:mut\s+)?(?P<coll>[A-Za-z_][\w.]*?)"
    r"(?:\.(?:iter|iter_mut|into_iter|keys|values|items)\(\))?\s*[:{]\s*$"
)


class PERF001LargeCopy(BaseCheck):
    """Detect avoidable copies of whole containers."""

    check_id = "PERF-001"
    kind = DetectorKind.LARGE_COPY
    category = Category.PERFORMANCE
    severity = Severity.INFO
    description = "Avoidable container copy"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        issues = []
        for lineno, line in enumerate(lines, start=1):
            if is_comment(line):
                continue
            if any(p.search(line) for p in COPY_PATTERNS):
                issues.append(self._make_issue(
                    message="Full copy of a container; borrow or iterate instead",
                    record=record,
                    line=lineno,
                ))
        return issues


class PERF002ConcatInLoop(BaseCheck):
    """Detect string concatenation inside a loop body."""

    check_id = "PERF-002"
    kind = DetectorKind.CONCAT_IN_LOOP
    category = Category.PERFORMANCE
    severity = Severity.WARNING
    description = "String concatenation in loop"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        in_loop: set[int] = set()
        for idx, line in enumerate(lines):
            if LOOP_RE.match(line) and not is_comment(line):
                in_loop.update(range(idx + 1, block_end(lines, idx) + 1))

        issues = []
        for idx in sorted(in_loop):
            line = lines[idx]
            if not is_comment(line) and CONCAT_RE.search(line):
                issues.append(self._make_issue(
                    message="String built by repeated concatenation in a loop; "
                            "collect parts and join once",
                    record=record,
                    line=idx + 1,
                ))
        return issues


class PERF003NestedSameIteration(BaseCheck):
    """Detect quadratic-looking nested loops over the same collection."""

    check_id = "PERF-003"
    kind = DetectorKind.NESTED_SAME_ITERATION
    category = Category.PERFORMANCE
    severity = Severity.WARNING
    description = "Nested iteration over the same collection"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        loops: list[tuple[int, int, str]] = []
        for idx, line in enumerate(lines):
            match = FOR_IN_RE.match(line)
            if match:
                loops.append((idx, block_end(lines, idx), match.group("coll")))

        issues = []
        reported: set[int] = set()
        for outer_start, outer_end, coll in loops:
            for inner_start, _, inner_coll in loops:
                if outer_start < inner_start <= outer_end and inner_coll == coll:
                    if inner_start in reported:
                        continue
                    reported.add(inner_start)
                    issues.append(self._make_issue(
                        message=f"Nested loop over '{coll}' inside a loop over the same "
                                f"collection is O(n^2)",
                        record=record,
                        line=inner_start + 1,
                    ))
        return issues
