"""Security checks (SEC-001 through SEC-003)."""

from __future__ import annotations

import re

from codesigma.core.models import Category, FileRecord, Issue, Severity
from codesigma.scanner.checks.base import BaseCheck, DetectorKind, is_comment

UNSAFE_RE = re.compile(r"\bunsafe\s*(?:\{|fn\b|impl\b|trait\b)")

# Calls that abort the process on bad input instead of returning an error
ABORTING_PATTERNS = [
    (re.compile(r"\.unwrap\(\)"), "unwrap()"),
    (re.compile(r"\.expect\("), "expect()"),
    (re.compile(r"\bpanic!\s*\("), "panic!"),
    (re.compile(r"\bunreachable!\s*\("), "unreachable!"),
    (re.compile(r"\bsys\.exit\("), "sys.exit()"),
    (re.compile(r"\bos\._exit\("), "os._exit()"),
]

# Above this many aborting calls in one file every occurrence is critical
ABORTING_CRITICAL_COUNT = 5

SECRET_ASSIGNMENT_RE = re.compile(
    r"""(?i)\b(?P<name>[\w]*(?:password|passwd|secret|token|api[_-]?key|access[_-]?key|private[_-]?key)[\w]*)"""
    r"""\s*(?::\s*[\w&'<>\[\]]+\s*)?[:=]\s*(?P<quote>["'])(?P<value>[^"']{4,})(?P=quote)"""
)

SECRET_TOKEN_PATTERNS = [
    (re.compile(r"sk-[a-zA-Z0-9]{20,}"), "OpenAI-style API key"),
    (re.compile(r"ghp_[a-zA-Z0-9]{36}"), "GitHub personal access token"),
    (re.compile(r"AKIA[0-9A-Z]{16}"), "AWS access key id"),
    (re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----"), "private key block"),
]

PLACEHOLDER_VALUES = {"none", "null", "todo", "changeme", "xxxx", "example", "<redacted>"}


class SEC001UnsafeBlock(BaseCheck):
    """Detect unsafe-block markers."""

    check_id = "SEC-001"
    kind = DetectorKind.UNSAFE_BLOCK
    category = Category.SECURITY
    severity = Severity.WARNING
    description = "Unsafe block"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        issues = []
        for lineno, line in enumerate(lines, start=1):
            if is_comment(line):
                continue
            if UNSAFE_RE.search(line):
                issues.append(self._make_issue(
                    message="Unsafe code block bypasses compiler safety checks",
                    record=record,
                    line=lineno,
                ))
        return issues


class SEC002AbortingCall(BaseCheck):
    """Detect calls that abort the process on invalid input."""

    check_id = "SEC-002"
    kind = DetectorKind.ABORTING_CALL
    category = Category.SECURITY
    severity = Severity.WARNING
    description = "Call may abort"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        hits: list[tuple[int, str]] = []
        for lineno, line in enumerate(lines, start=1):
            if is_comment(line):
                continue
            for pattern, label in ABORTING_PATTERNS:
                if pattern.search(line):
                    hits.append((lineno, label))
                    break

        severity = Severity.CRITICAL if len(hits) > ABORTING_CRITICAL_COUNT else None
        return [
            self._make_issue(
                message=f"{label} may abort on invalid input; propagate the error instead",
                record=record,
                line=lineno,
                severity=severity,
            )
            for lineno, label in hits
        ]


class SEC003HardcodedSecret(BaseCheck):
    """Detect literal secrets and access tokens."""

    check_id = "SEC-003"
    kind = DetectorKind.HARDCODED_SECRET
    category = Category.SECURITY
    severity = Severity.CRITICAL
    fix_id = "redact-secret"
    description = "Hardcoded secret"

    def run(self, record: FileRecord, content: str, lines: list[str]) -> list[Issue]:
        issues = []
        for lineno, line in enumerate(lines, start=1):
            match = SECRET_ASSIGNMENT_RE.search(line)
            if match and match.group("value").strip().lower() not in PLACEHOLDER_VALUES:
                issues.append(self._make_issue(
                    message=f"Hardcoded secret in '{match.group('name')}'",
                    record=record,
                    line=lineno,
                ))
                continue
            for pattern, label in SECRET_TOKEN_PATTERNS:
                if pattern.search(line):
                    issues.append(self._make_issue(
                        message=f"Possible {label} in source",
                        record=record,
                        line=lineno,
                        fixable=False,
                    ))
                    break
        return issues
