"""Tests for the fingerprint cache."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest

from codesigma.core.models import AnalysisResult, Category, Issue, Severity
from codesigma.scanner.cache import FingerprintCache, fingerprint_of

FP = fingerprint_of(b"fn main() {}\n")


def _result(version: str = "v1") -> AnalysisResult:
    return AnalysisResult(
        fingerprint=FP,
        issues=(Issue("main.rs", 1, Category.QUALITY, Severity.INFO, "TODO marker", "QUAL-001"),),
        lines_scanned=1,
        detector_version=version,
    )


class Counter:
    """compute_fn that counts its invocations."""

    def __init__(self, result: AnalysisResult | None = None):
        self.calls = 0
        self.result = result or _result()

    def __call__(self) -> AnalysisResult:
        self.calls += 1
        return self.result


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestGetOrCompute:
    def test_second_lookup_is_a_hit(self):
        """A live entry is returned without recomputing."""
        cache = FingerprintCache("v1")
        compute = Counter()

        first = cache.get_or_compute(FP, compute)
        second = cache.get_or_compute(FP, compute)

        assert compute.calls == 1
        assert first is second
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.entries) == (1, 1, 1)

    def test_fingerprint_is_sha256(self):
        """Fingerprints are hex sha256 digests of the bytes."""
        assert len(FP) == 64
        assert fingerprint_of(b"a") != fingerprint_of(b"b")

    def test_concurrent_callers_share_one_computation(self):
        """N simultaneous callers for one fingerprint trigger one computation."""
        cache = FingerprintCache("v1")
        release = threading.Event()
        calls = []

        def slow_compute() -> AnalysisResult:
            calls.append(1)
            release.wait(5)
            return _result()

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(cache.get_or_compute(FP, slow_compute)))
            for _ in range(8)
        ]
        for t in threads:
            t.start()

        deadline = time.monotonic() + 5
        while cache.stats().coalesced < 7 and time.monotonic() < deadline:
            time.sleep(0.01)
        release.set()
        for t in threads:
            t.join(5)

        assert len(calls) == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)
        assert cache.stats().coalesced == 7

    def test_failed_computation_is_not_stored(self):
        """A raising compute_fn publishes nothing; the next caller retries."""
        cache = FingerprintCache("v1")

        def boom() -> AnalysisResult:
            raise RuntimeError("detector crashed")

        with pytest.raises(RuntimeError):
            cache.get_or_compute(FP, boom)

        compute = Counter()
        cache.get_or_compute(FP, compute)
        assert compute.calls == 1
        assert len(cache) == 1

    def test_different_fingerprints_compute_in_parallel(self):
        """An in-flight computation does not block other fingerprints."""
        cache = FingerprintCache("v1")
        other = fingerprint_of(b"fn other() {}\n")
        b_running = threading.Event()
        seen = {}

        def compute_a() -> AnalysisResult:
            seen["a"] = b_running.wait(5)
            return _result()

        def compute_b() -> AnalysisResult:
            b_running.set()
            return _result()

        first = threading.Thread(target=cache.get_or_compute, args=(FP, compute_a))
        second = threading.Thread(target=cache.get_or_compute, args=(other, compute_b))
        first.start()
        second.start()
        first.join(10)
        second.join(10)

        assert seen["a"] is True
        assert len(cache) == 2


class TestExpiry:
    def test_entry_expires_after_ttl(self):
        """Past the TTL the next lookup recomputes exactly once."""
        clock = FakeClock()
        cache = FingerprintCache("v1", ttl_seconds=300, clock=clock)
        compute = Counter()

        cache.get_or_compute(FP, compute)
        clock.now += 299
        cache.get_or_compute(FP, compute)
        assert compute.calls == 1

        clock.now += 2
        cache.get_or_compute(FP, compute)
        cache.get_or_compute(FP, compute)
        assert compute.calls == 2
        assert cache.stats().expirations == 1

    def test_sweep_removes_expired_entries(self):
        """sweep() evicts entries past their TTL."""
        clock = FakeClock()
        cache = FingerprintCache("v1", ttl_seconds=10, clock=clock)
        cache.get_or_compute(FP, Counter())
        clock.now += 11

        assert FP not in cache
        assert cache.sweep() == 1
        assert len(cache) == 0

    def test_invalidate_drops_entry(self):
        """An invalidated fingerprint is recomputed."""
        cache = FingerprintCache("v1")
        compute = Counter()
        cache.get_or_compute(FP, compute)
        cache.invalidate(FP)
        cache.get_or_compute(FP, compute)
        assert compute.calls == 2


class TestPersistence:
    def test_entry_written_under_fingerprint_prefix(self, tmp_path: Path):
        """Persisted entries live at <dir>/<fp[:2]>/<fp>.json."""
        cache = FingerprintCache("v1", cache_dir=tmp_path)
        cache.get_or_compute(FP, Counter())

        path = tmp_path / FP[:2] / f"{FP}.json"
        data = json.loads(path.read_text())
        assert data["fingerprint"] == FP
        assert data["version"] == "v1"
        assert data["result"]["issues"][0]["check_id"] == "QUAL-001"

    def test_fresh_cache_reads_persisted_entry(self, tmp_path: Path):
        """A new cache over the same directory is served from disk."""
        FingerprintCache("v1", cache_dir=tmp_path).get_or_compute(FP, Counter())

        reloaded = FingerprintCache("v1", cache_dir=tmp_path)
        compute = Counter()
        result = reloaded.get_or_compute(FP, compute)

        assert compute.calls == 0
        assert result.issues[0].check_id == "QUAL-001"
        assert reloaded.stats().persisted_hits == 1

    def test_other_version_is_never_returned(self, tmp_path: Path):
        """Entries from another detector version are recomputed."""
        FingerprintCache("v1", cache_dir=tmp_path).get_or_compute(FP, Counter())

        cache = FingerprintCache("v2", cache_dir=tmp_path)
        compute = Counter(_result("v2"))
        result = cache.get_or_compute(FP, compute)

        assert compute.calls == 1
        assert result.detector_version == "v2"
        assert cache.stats().invalidations == 1

    def test_corrupt_file_counts_as_miss(self, tmp_path: Path):
        """Malformed persisted entries are ignored and overwritten."""
        path = tmp_path / FP[:2] / f"{FP}.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        cache = FingerprintCache("v1", cache_dir=tmp_path)
        compute = Counter()
        cache.get_or_compute(FP, compute)

        assert compute.calls == 1
        assert cache.stats().corrupt == 1
        assert json.loads(path.read_text())["fingerprint"] == FP

    def test_loaded_entry_keeps_its_age(self, tmp_path: Path):
        """An entry read from disk expires relative to when it was written."""
        clock = FakeClock(1_000.0)
        writer = FingerprintCache("v1", ttl_seconds=300, cache_dir=tmp_path, clock=clock)
        writer.get_or_compute(FP, Counter())

        clock.now = 1_250.0
        reloaded = FingerprintCache("v1", ttl_seconds=300, cache_dir=tmp_path, clock=clock)
        compute = Counter()
        reloaded.get_or_compute(FP, compute)
        assert compute.calls == 0

        clock.now = 1_500.0
        reloaded.get_or_compute(FP, compute)
        assert compute.calls == 1
