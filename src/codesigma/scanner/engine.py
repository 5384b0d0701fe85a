"""Scanner engine: walks a tree, analyzes it and produces reports."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from codesigma.core.config import AnalyzeOptions, CodeSigmaConfig, get_state_dir, load_config
from codesigma.core.models import ScanReport
from codesigma.scanner.cache import FingerprintCache
from codesigma.scanner.rules import RuleEngine
from codesigma.scanner.scheduler import CancelToken, Scheduler
from codesigma.scanner.scoring import Scorer
from codesigma.scanner.walker import FileWalker, IgnoreSpec

logger = logging.getLogger(__name__)


class Scanner:
    """Runs the walker, scheduler and scorer over a project."""

    def __init__(
        self,
        project_path: Path | None = None,
        config: CodeSigmaConfig | None = None,
        options: AnalyzeOptions | None = None,
        cache: FingerprintCache | None = None,
    ):
        self.project_path = Path(project_path or Path.cwd()).resolve()
        self.config = config or load_config(self.project_path)
        self.options = options or self.config.analyze

        self.rule_engine = RuleEngine(self.options)
        if not self.options.use_cache:
            cache = None
        elif cache is None:
            cache = self._build_cache()
        elif cache.version != self.rule_engine.version:
            # Options changed the detector set; a fresh cache keeps versions apart
            logger.debug("Cache version mismatch; starting a fresh cache")
            cache = self._build_cache(cache.cache_dir)
        self.cache = cache
        self.scheduler = Scheduler(
            self.rule_engine,
            self.cache,
            workers=self.options.parallelism,
        )
        self.scorer = Scorer(self.config.score)

    def _build_cache(self, cache_dir: Path | None = None) -> FingerprintCache:
        if cache_dir is None and self.options.persist_cache and self.project_path.is_dir():
            cache_dir = get_state_dir(self.project_path) / "cache"
        return FingerprintCache(
            version=self.rule_engine.version,
            ttl_seconds=self.options.cache_ttl_seconds,
            cache_dir=cache_dir,
        )

    def scan(
        self,
        target_path: Path | None = None,
        cancel: CancelToken | None = None,
    ) -> ScanReport:
        """Analyze every candidate file under *target_path* and score the result."""
        scan_path = Path(target_path or self.project_path)
        started = time.monotonic()

        walker = FileWalker(
            scan_path,
            IgnoreSpec(
                patterns=list(self.config.exclude),
                extensions=list(self.config.extensions),
                max_file_size=self.config.max_file_size,
            ),
        )
        records = list(walker.walk())

        if cancel is None and self.options.timeout_seconds is not None:
            cancel = CancelToken(timeout=self.options.timeout_seconds)

        outcome = self.scheduler.run(records, cancel)
        total_lines = outcome.total_lines
        score = self.scorer.score(outcome.issues, total_lines)

        report = ScanReport(
            root=scan_path.resolve(),
            results=outcome.results,
            issues=outcome.issues,
            score=score,
            total_files=len(records),
            total_lines=total_lines,
            diagnostics=list(walker.diagnostics),
            cancelled=outcome.cancelled,
            abandoned=outcome.abandoned,
            duration=time.monotonic() - started,
        )
        if self.cache is not None:
            report.cache_stats = self.cache.stats()

        logger.info(
            "Analyzed %d file(s), %d line(s): %d issue(s), score %.2f",
            report.total_files, total_lines, len(report.issues), score.value,
        )
        return report
