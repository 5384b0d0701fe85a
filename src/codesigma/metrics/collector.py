"""Run metrics: a flat record per analyze/repair run and the sinks it goes to."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from codesigma.core.config import STATE_DIR_NAME
from codesigma.core.models import CacheStats, RepairReport, ScanReport

logger = logging.getLogger(__name__)


@dataclass
class RunMetrics:
    """Flat record describing one engine run."""

    command: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    recorded_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )
    root: str = ""
    duration: float = 0.0
    total_files: int = 0
    total_lines: int = 0
    issues_by_category: dict[str, int] = field(default_factory=dict)
    issues_by_severity: dict[str, int] = field(default_factory=dict)
    score: float | None = None
    sigma_level: float | None = None
    cache_hit_rate: float | None = None
    cancelled: bool = False
    repair_state: str | None = None
    repairs_succeeded: int = 0
    repairs_failed: int = 0
    repairs_skipped: int = 0

    @classmethod
    def from_scan(cls, report: ScanReport) -> RunMetrics:
        return cls(
            command="analyze",
            root=str(report.root),
            duration=round(report.duration, 4),
            total_files=report.total_files,
            total_lines=report.total_lines,
            issues_by_category=report.counts_by_category(),
            issues_by_severity=report.counts_by_severity(),
            score=report.score.value,
            sigma_level=report.score.sigma_level,
            cache_hit_rate=round(report.cache_stats.hit_rate, 4),
            cancelled=report.cancelled,
        )

    @classmethod
    def from_repair(cls, report: RepairReport, root: Path | str = "") -> RunMetrics:
        return cls(
            command="repair",
            root=str(root),
            duration=round(report.duration, 4),
            repair_state=report.state.value,
            repairs_succeeded=report.success_count,
            repairs_failed=report.failure_count,
            repairs_skipped=report.skipped_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MetricsSink(Protocol):
    def emit(self, record: dict[str, Any]) -> None: ...


class JsonlMetricsSink:
    """Appends one JSON object per run to ``.codesigma/metrics/runs.jsonl``."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    @classmethod
    def for_project(cls, project_path: Path) -> JsonlMetricsSink:
        return cls(Path(project_path) / STATE_DIR_NAME / "metrics" / "runs.jsonl")

    def emit(self, record: dict[str, Any]) -> None:
        line = json.dumps(record, sort_keys=True)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def read(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Most recent records last. Malformed lines are skipped."""
        if not self.path.exists():
            return []
        records = []
        for raw in self.path.read_text(encoding="utf-8").splitlines():
            if not raw.strip():
                continue
            try:
                records.append(json.loads(raw))
            except json.JSONDecodeError:
                logger.warning("Skipping malformed metrics line in %s", self.path)
        if limit is not None:
            records = records[-limit:]
        return records


class MetricsCollector:
    """Hands each run record to every registered sink.

    Also keeps running totals for the process, exposed by :meth:`snapshot`.
    """

    def __init__(self, sinks: list[MetricsSink] | None = None):
        self.sinks: list[MetricsSink] = list(sinks or [])
        self._lock = threading.Lock()
        self._runs: dict[str, int] = {}
        self._last: dict[str, Any] | None = None

    def add_sink(self, sink: MetricsSink) -> None:
        self.sinks.append(sink)

    def record(
        self,
        metrics: RunMetrics,
        extra_sinks: list[MetricsSink] | None = None,
    ) -> dict[str, Any]:
        data = metrics.to_dict()
        with self._lock:
            self._runs[metrics.command] = self._runs.get(metrics.command, 0) + 1
            self._last = data
        for sink in [*self.sinks, *(extra_sinks or [])]:
            try:
                sink.emit(data)
            except Exception as exc:
                logger.warning("Metrics sink %s failed: %s", type(sink).__name__, exc)
        return data

    def snapshot(self, cache_stats: CacheStats | None = None) -> dict[str, Any]:
        with self._lock:
            snapshot: dict[str, Any] = {
                "runs": dict(self._runs),
                "last_run": dict(self._last) if self._last else None,
            }
        if cache_stats is not None:
            snapshot["cache"] = cache_stats.to_dict()
        return snapshot
