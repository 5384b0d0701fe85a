"""Shared data models used across codesigma modules."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any


class Severity(enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Category(enum.Enum):
    SECURITY = "security"
    PERFORMANCE = "performance"
    QUALITY = "quality"
    COMPLEXITY = "complexity"


class RepairOutcome(enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunState(enum.Enum):
    PLANNED = "planned"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class FileRecord:
    """A candidate file discovered by the walker.

    ``fingerprint`` stays ``None`` until a worker has read the content.
    """

    path: Path
    rel_path: str
    size: int
    mtime: float
    fingerprint: str | None = None

    def with_fingerprint(self, fingerprint: str) -> FileRecord:
        return replace(self, fingerprint=fingerprint)


@dataclass(frozen=True)
class Issue:
    """A single defect found by a detector."""

    path: str
    line: int
    category: Category
    severity: Severity
    message: str
    check_id: str = ""
    fix_id: str | None = None

    @property
    def is_file_level(self) -> bool:
        return self.line == 0

    @property
    def is_auto_fixable(self) -> bool:
        return self.fix_id is not None

    def sort_key(self, order: int = 0) -> tuple[int, str, int]:
        """Within-file ordering: line, category name, then detector order."""
        return (self.line, self.category.value, order)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "line": self.line,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "check_id": self.check_id,
            "fix_id": self.fix_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Issue:
        return cls(
            path=data["path"],
            line=int(data["line"]),
            category=Category(data["category"]),
            severity=Severity(data["severity"]),
            message=data["message"],
            check_id=data.get("check_id", ""),
            fix_id=data.get("fix_id"),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """Issues for one piece of content, under one detector-set version."""

    fingerprint: str
    issues: tuple[Issue, ...]
    lines_scanned: int
    detector_version: str
    created_at: float = field(default_factory=time.time)

    def for_path(self, path: str) -> AnalysisResult:
        """Rebind every issue to *path*.

        Results are keyed by content, so two byte-identical files share one
        cached result; each caller sees its own path.
        """
        if all(issue.path == path for issue in self.issues):
            return self
        return replace(
            self,
            issues=tuple(replace(issue, path=path) for issue in self.issues),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "issues": [issue.to_dict() for issue in self.issues],
            "lines_scanned": self.lines_scanned,
            "detector_version": self.detector_version,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisResult:
        return cls(
            fingerprint=data["fingerprint"],
            issues=tuple(Issue.from_dict(i) for i in data["issues"]),
            lines_scanned=int(data["lines_scanned"]),
            detector_version=data["detector_version"],
            created_at=float(data["created_at"]),
        )


@dataclass(frozen=True)
class CacheStats:
    """Counters exposed by the fingerprint cache."""

    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    expirations: int = 0
    invalidations: int = 0
    corrupt: int = 0
    persisted_hits: int = 0
    entries: int = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        if self.lookups == 0:
            return 0.0
        return self.hits / self.lookups

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
            "corrupt": self.corrupt,
            "persisted_hits": self.persisted_hits,
            "entries": self.entries,
            "hit_rate": round(self.hit_rate, 4),
        }

    def __add__(self, other: CacheStats) -> CacheStats:
        return CacheStats(
            hits=self.hits + other.hits,
            misses=self.misses + other.misses,
            coalesced=self.coalesced + other.coalesced,
            expirations=self.expirations + other.expirations,
            invalidations=self.invalidations + other.invalidations,
            corrupt=self.corrupt + other.corrupt,
            persisted_hits=self.persisted_hits + other.persisted_hits,
            entries=self.entries + other.entries,
        )


@dataclass(frozen=True)
class QualityScore:
    """Aggregate score derived from a set of issues. Never stored on its own."""

    value: float
    dpmo: float
    sigma_level: float
    weighted_defects: float
    lines_scanned: int
    category_scores: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal condition recorded while walking the tree."""

    kind: str
    message: str
    paths: tuple[str, ...] = ()


@dataclass
class ScanReport:
    """Complete analysis report with score and ordered issues."""

    root: Path
    results: dict[str, AnalysisResult]
    issues: list[Issue]
    score: QualityScore
    total_files: int = 0
    total_lines: int = 0
    diagnostics: list[Diagnostic] = field(default_factory=list)
    cancelled: bool = False
    abandoned: list[str] = field(default_factory=list)
    duration: float = 0.0
    cache_stats: CacheStats = field(default_factory=CacheStats)

    @property
    def critical_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == Severity.CRITICAL)

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == Severity.WARNING)

    @property
    def info_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == Severity.INFO)

    @property
    def auto_fixable_count(self) -> int:
        return sum(1 for i in self.issues if i.is_auto_fixable)

    def counts_by_category(self) -> dict[str, int]:
        counts = {c.value: 0 for c in Category}
        for issue in self.issues:
            counts[issue.category.value] += 1
        return counts

    def counts_by_severity(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts


@dataclass(frozen=True)
class RepairStep:
    """Outcome of one fixer invocation for one issue."""

    issue: Issue
    fixer_id: str
    outcome: RepairOutcome
    message: str = ""
    resolved: bool | None = None


@dataclass
class RepairReport:
    """Accumulated result of a repair run."""

    steps: list[RepairStep] = field(default_factory=list)
    state: RunState = RunState.PLANNED
    touched_files: list[str] = field(default_factory=list)
    fatal_error: str | None = None
    session: str = ""
    duration: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for s in self.steps if s.outcome == RepairOutcome.SUCCESS)

    @property
    def failure_count(self) -> int:
        return sum(1 for s in self.steps if s.outcome == RepairOutcome.FAILED)

    @property
    def skipped_count(self) -> int:
        return sum(1 for s in self.steps if s.outcome == RepairOutcome.SKIPPED)
