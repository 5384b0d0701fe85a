"""Rule engine: runs the enabled detectors over one file."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable

from codesigma.core.config import AnalyzeOptions
from codesigma.core.errors import DetectorError
from codesigma.core.models import AnalysisResult, FileRecord, Issue, Severity
from codesigma.scanner.cache import fingerprint_of
from codesigma.scanner.checks import ALL_CHECKS, BaseCheck, DetectorKind

logger = logging.getLogger(__name__)

# Bump whenever a detector's behaviour changes so persisted results are invalidated
RULESET_REVISION = "1"

DETECTOR_ERROR_ID = "DETECTOR-ERROR"

# Constructor arguments for checks whose output depends on a threshold
_THRESHOLDS: dict[DetectorKind, Callable[[AnalyzeOptions], dict]] = {
    DetectorKind.DUPLICATE_BLOCK: lambda o: {"min_lines": o.min_duplicate_lines},
    DetectorKind.FILE_LENGTH: lambda o: {"max_lines": o.max_file_lines},
    DetectorKind.FUNCTION_LENGTH: lambda o: {"max_lines": o.multiline_threshold},
    DetectorKind.BRANCHING: lambda o: {"max_branches": o.max_branches},
}


def build_checks(options: AnalyzeOptions) -> list[BaseCheck]:
    """Instantiate the enabled checks, in detector-declared order."""
    enabled = options.categories()
    checks: list[BaseCheck] = []
    for check_cls in ALL_CHECKS:
        if check_cls.category not in enabled:
            continue
        if check_cls.check_id in options.ignore:
            continue
        kwargs = _THRESHOLDS.get(check_cls.kind, lambda o: {})(options)
        checks.append(check_cls(**kwargs))
    return checks


def detector_set_version(checks: list[BaseCheck]) -> str:
    """Stable identity of a detector set, used to tag cache entries."""
    key = "|".join([RULESET_REVISION, *(c.config_key() for c in checks)])
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class RuleEngine:
    """Evaluates a fixed, ordered set of detectors against file content."""

    def __init__(
        self,
        options: AnalyzeOptions | None = None,
        checks: list[BaseCheck] | None = None,
    ):
        self.options = options or AnalyzeOptions()
        self.checks = checks if checks is not None else build_checks(self.options)
        self.version = detector_set_version(self.checks)

    def evaluate(self, record: FileRecord, content: str) -> list[Issue]:
        """Run every detector and return issues in canonical order.

        Order is (line, category name, detector order), then emission order.
        A detector that raises contributes a single INFO issue instead of its
        findings; the others are unaffected.
        """
        lines = content.splitlines()
        tagged: list[tuple[int, Issue]] = []

        for order, check in enumerate(self.checks):
            try:
                found = check.run(record, content, lines)
            except Exception as exc:
                error = DetectorError(check.check_id, exc)
                logger.warning("%s on %s", error, record.rel_path)
                found = [Issue(
                    path=record.rel_path,
                    line=0,
                    category=check.category,
                    severity=Severity.INFO,
                    message=f"Detector error: {error}",
                    check_id=DETECTOR_ERROR_ID,
                )]
            tagged.extend((order, issue) for issue in found)

        tagged.sort(key=lambda pair: pair[1].sort_key(pair[0]))
        return [issue for _, issue in tagged]

    def analyze(self, record: FileRecord, content: str) -> AnalysisResult:
        """Evaluate *content* and wrap the issues in an :class:`AnalysisResult`."""
        fingerprint = record.fingerprint or fingerprint_of(content.encode("utf-8"))
        return AnalysisResult(
            fingerprint=fingerprint,
            issues=tuple(self.evaluate(record, content)),
            lines_scanned=len(content.splitlines()),
            detector_version=self.version,
        )
