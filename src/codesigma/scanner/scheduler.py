"""Scheduler: partitions files into chunks and analyzes them in parallel."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from codesigma.core.config import resolve_parallelism
from codesigma.core.errors import EncodingError, IoError
from codesigma.core.models import AnalysisResult, Category, FileRecord, Issue, Severity
from codesigma.scanner.cache import FingerprintCache, fingerprint_of
from codesigma.scanner.rules import RuleEngine

logger = logging.getLogger(__name__)

# (workers, average bytes per file, total files) -> chunk size
ChunkSizer = Callable[[int, float, int], int]


class CancelToken:
    """Run-level cancellation: explicit ``cancel()`` or a deadline."""

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False


@dataclass
class ChunkPolicy:
    """Default chunk sizing.

    Aims for ``chunks_per_worker`` chunks per worker, then grows chunks for
    files larger than ``reference_bytes`` and shrinks them for smaller ones
    (factor clamped to [0.5, 2]). The result is clamped to
    [``min_chunk``, ``max_chunk``].
    """

    min_chunk: int = 1
    max_chunk: int = 64
    chunks_per_worker: int = 4
    reference_bytes: float = 16 * 1024

    def __call__(self, workers: int, avg_bytes_per_file: float, total: int) -> int:
        if total <= 0:
            return self.min_chunk
        base = math.ceil(total / (max(workers, 1) * self.chunks_per_worker))
        factor = min(max(avg_bytes_per_file / self.reference_bytes, 0.5), 2.0)
        size = round(base * factor)
        return max(self.min_chunk, min(self.max_chunk, size))


@dataclass
class SchedulerResult:
    results: dict[str, AnalysisResult]
    issues: list[Issue]
    abandoned: list[str] = field(default_factory=list)
    cancelled: bool = False
    chunk_size: int = 0
    workers: int = 0

    @property
    def total_lines(self) -> int:
        return sum(r.lines_scanned for r in self.results.values())


class Scheduler:
    """Drives the rule engine over a file set through the fingerprint cache."""

    # Weight of history in the bytes-per-file moving average
    COST_SMOOTHING = 0.7

    def __init__(
        self,
        rule_engine: RuleEngine,
        cache: FingerprintCache | None = None,
        workers: int | str | None = None,
        chunk_policy: ChunkSizer | None = None,
        min_chunk: int = 1,
        max_chunk: int = 64,
    ):
        if cache is not None and cache.version != rule_engine.version:
            raise ValueError(
                f"Cache version {cache.version} does not match detector set "
                f"{rule_engine.version}"
            )
        self.rule_engine = rule_engine
        self.cache = cache
        self.workers = resolve_parallelism(workers)
        self.chunk_policy: ChunkSizer = chunk_policy or ChunkPolicy(
            min_chunk=min_chunk, max_chunk=max_chunk
        )
        self._avg_bytes: float | None = None

    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------

    def estimate_cost(self, records: list[FileRecord]) -> float:
        """Recent average bytes per file, seeded by the current file set."""
        if not records:
            return self._avg_bytes or 0.0
        sample = sum(r.size for r in records) / len(records)
        if self._avg_bytes is None:
            return sample
        return self.COST_SMOOTHING * self._avg_bytes + (1 - self.COST_SMOOTHING) * sample

    def partition(self, records: list[FileRecord]) -> list[list[FileRecord]]:
        cost = self.estimate_cost(records)
        size = max(1, int(self.chunk_policy(self.workers, cost, len(records))))
        return [records[i : i + size] for i in range(0, len(records), size)]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(
        self,
        records: Iterable[FileRecord],
        cancel: CancelToken | None = None,
    ) -> SchedulerResult:
        """Analyze every record; output order is independent of completion order."""
        records = list(records)
        cancel = cancel or CancelToken()
        chunks = self.partition(records)
        chunk_size = len(chunks[0]) if chunks else 0
        logger.debug(
            "Dispatching %d file(s) in %d chunk(s) of up to %d on %d worker(s)",
            len(records), len(chunks), chunk_size, self.workers,
        )

        results: dict[str, AnalysisResult] = {}
        abandoned: list[str] = []
        remaining = iter(chunks)

        with ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="codesigma"
        ) as pool:
            pending: set[Future] = set()

            def dispatch_next() -> bool:
                if cancel.cancelled:
                    return False
                chunk = next(remaining, None)
                if chunk is None:
                    return False
                pending.add(pool.submit(self._run_chunk, chunk, cancel))
                return True

            for _ in range(self.workers):
                if not dispatch_next():
                    break

            while pending:
                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    chunk_results, chunk_abandoned = future.result()
                    results.update(chunk_results)
                    abandoned.extend(chunk_abandoned)
                    dispatch_next()

        for chunk in remaining:
            abandoned.extend(r.rel_path for r in chunk)

        self._avg_bytes = self.estimate_cost(records)

        ordered = {path: results[path] for path in sorted(results)}
        issues = [issue for result in ordered.values() for issue in result.issues]
        was_cancelled = bool(abandoned) or cancel.cancelled
        if abandoned:
            logger.info("Run cancelled; %d file(s) not analyzed", len(abandoned))

        return SchedulerResult(
            results=ordered,
            issues=issues,
            abandoned=sorted(abandoned),
            cancelled=was_cancelled,
            chunk_size=chunk_size,
            workers=self.workers,
        )

    def _run_chunk(
        self,
        chunk: list[FileRecord],
        cancel: CancelToken,
    ) -> tuple[dict[str, AnalysisResult], list[str]]:
        results: dict[str, AnalysisResult] = {}
        for idx, record in enumerate(chunk):
            if cancel.cancelled:
                return results, [r.rel_path for r in chunk[idx:]]
            results[record.rel_path] = self.analyze_file(record)
        return results, []

    def analyze_file(self, record: FileRecord) -> AnalysisResult:
        """Analyze one file; any failure becomes a single file-level issue."""
        try:
            data = record.path.read_bytes()
        except OSError as exc:
            error = IoError(record.path, exc.strerror or str(exc))
            logger.warning("%s", error)
            return self._failure(record, "IO-ERROR", Severity.WARNING,
                                 f"Unreadable file: {error.reason}")

        try:
            content = decode_text(record, data)
        except EncodingError as error:
            return self._failure(record, "ENCODING-ERROR", Severity.INFO,
                                 f"Skipped non-text file: {error.reason}")

        fingerprint = fingerprint_of(data)
        fingerprinted = record.with_fingerprint(fingerprint)

        def compute() -> AnalysisResult:
            return self.rule_engine.analyze(fingerprinted, content)

        try:
            if self.cache is None:
                result = compute()
            else:
                result = self.cache.get_or_compute(fingerprint, compute)
        except Exception as exc:
            logger.warning("Analysis failed for %s: %s", record.rel_path, exc)
            return self._failure(record, "ANALYSIS-ERROR", Severity.WARNING,
                                 f"Analysis failed: {type(exc).__name__}: {exc}")
        return result.for_path(record.rel_path)

    def _failure(
        self,
        record: FileRecord,
        check_id: str,
        severity: Severity,
        message: str,
    ) -> AnalysisResult:
        return AnalysisResult(
            fingerprint=record.fingerprint or "",
            issues=(Issue(
                path=record.rel_path,
                line=0,
                category=Category.QUALITY,
                severity=severity,
                message=message,
                check_id=check_id,
            ),),
            lines_scanned=0,
            detector_version=self.rule_engine.version,
        )


def decode_text(record: FileRecord, data: bytes) -> str:
    """Decode file bytes as UTF-8 text, rejecting binary content."""
    if b"\x00" in data:
        raise EncodingError(record.rel_path, "contains NUL bytes")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncodingError(record.rel_path, f"not valid UTF-8 ({exc.reason})") from exc
