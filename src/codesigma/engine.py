"""Engine facade: analyze a tree, repair its issues, report metrics."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from codesigma.core.config import (
    AnalyzeOptions,
    CodeSigmaConfig,
    RepairOptions,
    load_config,
)
from codesigma.core.errors import EnvironmentFatal
from codesigma.core.models import CacheStats, FileRecord, Issue, RepairReport, ScanReport
from codesigma.fix.engine import RepairOrchestrator
from codesigma.fix.fixers import FixerRegistry, default_registry
from codesigma.metrics.collector import JsonlMetricsSink, MetricsCollector, RunMetrics
from codesigma.scanner.cache import FingerprintCache
from codesigma.scanner.engine import Scanner
from codesigma.scanner.scheduler import CancelToken

logger = logging.getLogger(__name__)


class Engine:
    """Entry point tying the scanner, the repair orchestrator and metrics together.

    The fingerprint cache lives as long as the engine, so repeated analyses
    of unchanged content are served from it.
    """

    def __init__(
        self,
        config: CodeSigmaConfig | None = None,
        collector: MetricsCollector | None = None,
        persist_metrics: bool = True,
    ):
        self._config = config
        self.collector = collector or MetricsCollector()
        self.persist_metrics = persist_metrics
        self.cache: FingerprintCache | None = None
        # Counters of caches replaced after a detector version change
        self._retired_stats = CacheStats()
        self._scanner: Scanner | None = None
        self._root: Path | None = None

    def config_for(self, root: Path) -> CodeSigmaConfig:
        if self._config is not None:
            return self._config
        return load_config(root if root.is_dir() else root.parent)

    def analyze(
        self,
        root: Path | str,
        options: AnalyzeOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> ScanReport:
        """Analyze every candidate file under *root*.

        Raises :class:`EnvironmentFatal` when *root* does not exist.
        """
        root = Path(root).resolve()
        if not root.exists():
            raise EnvironmentFatal(f"Root path does not exist: {root}")

        config = self.config_for(root)
        scanner = Scanner(
            root if root.is_dir() else root.parent,
            config=config,
            options=options or config.analyze,
            cache=self.cache,
        )
        if scanner.cache is not None and self.cache is not None and scanner.cache is not self.cache:
            retired = dataclasses.replace(self.cache.stats(), entries=0)
            self._retired_stats = self._retired_stats + retired
        self.cache = scanner.cache or self.cache
        self._scanner = scanner
        self._root = scanner.project_path

        report = scanner.scan(root, cancel=cancel)
        self._record(RunMetrics.from_scan(report), scanner.project_path)
        return report

    def repair(
        self,
        issues: Iterable[Issue],
        options: RepairOptions | None = None,
        root: Path | str | None = None,
        registry: FixerRegistry | None = None,
    ) -> RepairReport:
        """Apply fixes for *issues*. Issue paths are relative to *root*.

        *root* defaults to the most recently analyzed root.
        """
        if root is None and self._root is None:
            raise ValueError("repair() needs a root when nothing has been analyzed yet")
        root = Path(root).resolve() if root is not None else self._root
        config = self.config_for(root) if root.exists() else (self._config or CodeSigmaConfig())
        options = options or config.repair
        registry = registry or default_registry(options)

        orchestrator = RepairOrchestrator(
            root,
            registry,
            confirm=self._confirm_fn(root, config) if options.confirm else None,
            workers=options.parallelism,
            backup=options.backup,
        )
        report = orchestrator.run(list(issues), dry_run=options.dry_run)
        self._record(RunMetrics.from_repair(report, root), root)
        return report

    def metrics(self) -> dict[str, Any]:
        """Process-wide counters: runs per command, the last run, cache stats.

        Cache counters are cumulative over every cache this engine has used.
        """
        stats = self._retired_stats
        if self.cache is not None:
            stats = stats + self.cache.stats()
        return self.collector.snapshot(stats)

    def _confirm_fn(self, root: Path, config: CodeSigmaConfig):
        scanner = self._scanner
        if scanner is None or scanner.project_path != root:
            scanner = Scanner(root, config=config, cache=self.cache)

        def confirm(rel_path: str) -> list[Issue]:
            path = root / rel_path
            st = path.stat()
            record = FileRecord(path=path, rel_path=rel_path, size=st.st_size, mtime=st.st_mtime)
            return list(scanner.scheduler.analyze_file(record).issues)

        return confirm

    def _record(self, metrics: RunMetrics, root: Path) -> None:
        extra = []
        if self.persist_metrics and root.is_dir():
            extra.append(JsonlMetricsSink.for_project(root))
        self.collector.record(metrics, extra)
