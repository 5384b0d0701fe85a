"""Fingerprint cache for analysis results.

Maps a content fingerprint to the :class:`AnalysisResult` computed for it.
Each fingerprint gets at most one computation at a time: the first caller
owns it, concurrent callers wait on the same future and receive the same
result. The internal lock only guards the slot maps; no computation, disk
access or waiting happens while it is held, so unrelated fingerprints never
contend.

When a ``cache_dir`` is given, entries are also persisted as one JSON file
per fingerprint::

    <cache_dir>/<fp[:2]>/<fp>.json
    {"fingerprint": ..., "version": ..., "written_at": ..., "result": {...}}

Unreadable or malformed files count as misses and are overwritten by the
next computation.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path

from codesigma.core.errors import CacheCorruption
from codesigma.core.models import AnalysisResult, CacheStats

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


def fingerprint_of(data: bytes) -> str:
    """Content fingerprint used as the cache key."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    result: AnalysisResult
    version: str
    written_at: float

    def is_live(self, version: str, ttl: float, now: float) -> bool:
        return self.version == version and (now - self.written_at) <= ttl


class FingerprintCache:
    """Shared, thread-safe fingerprint → result cache with TTL and versioning."""

    def __init__(
        self,
        version: str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        cache_dir: Path | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.version = version
        self.ttl_seconds = ttl_seconds
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, Future] = {}

        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._expirations = 0
        self._invalidations = 0
        self._corrupt = 0
        self._persisted_hits = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_or_compute(
        self,
        fingerprint: str,
        compute_fn: Callable[[], AnalysisResult],
    ) -> AnalysisResult:
        """Return the live result for *fingerprint*, computing it at most once."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(fingerprint)
            if entry is not None:
                if entry.is_live(self.version, self.ttl_seconds, now):
                    self._hits += 1
                    return entry.result
                self._evict(fingerprint, entry)

            future = self._inflight.get(fingerprint)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[fingerprint] = future
            else:
                self._coalesced += 1
                self._hits += 1

        if not owner:
            logger.debug("Waiting on in-flight analysis for %s", fingerprint[:12])
            return future.result()

        try:
            persisted = self._load_persisted(fingerprint)
            if persisted is None:
                logger.debug("Cache miss: %s", fingerprint[:12])
                result = compute_fn()
                written_at = self._clock()
                computed = True
            else:
                # Keeps its original age; loading does not renew the TTL
                result, written_at = persisted
                computed = False
        except BaseException as exc:
            # Abandoned or failed: nothing is published
            with self._lock:
                self._inflight.pop(fingerprint, None)
                self._misses += 1
            future.set_exception(exc)
            raise

        entry = CacheEntry(result=result, version=self.version, written_at=written_at)
        with self._lock:
            self._entries[fingerprint] = entry
            self._inflight.pop(fingerprint, None)
            if computed:
                self._misses += 1
            else:
                self._hits += 1
                self._persisted_hits += 1
        future.set_result(result)

        if computed:
            self._persist(fingerprint, entry)
        return result

    def invalidate(self, fingerprint: str) -> None:
        """Drop the entry for *fingerprint* from memory and disk."""
        with self._lock:
            self._entries.pop(fingerprint, None)
        path = self._entry_path(fingerprint)
        if path is not None:
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    def sweep(self) -> int:
        """Evict every expired or stale in-memory entry. Returns the count."""
        with self._lock:
            now = self._clock()
            stale = [
                (fp, entry) for fp, entry in self._entries.items()
                if not entry.is_live(self.version, self.ttl_seconds, now)
            ]
            for fp, entry in stale:
                self._evict(fp, entry)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                coalesced=self._coalesced,
                expirations=self._expirations,
                invalidations=self._invalidations,
                corrupt=self._corrupt,
                persisted_hits=self._persisted_hits,
                entries=len(self._entries),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fingerprint: str) -> bool:
        with self._lock:
            entry = self._entries.get(fingerprint)
            return entry is not None and entry.is_live(
                self.version, self.ttl_seconds, self._clock()
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evict(self, fingerprint: str, entry: CacheEntry) -> None:
        """Remove an entry. Caller holds the lock."""
        del self._entries[fingerprint]
        if entry.version != self.version:
            self._invalidations += 1
        else:
            self._expirations += 1

    def _entry_path(self, fingerprint: str) -> Path | None:
        if self.cache_dir is None:
            return None
        return self.cache_dir / fingerprint[:2] / f"{fingerprint}.json"

    def _load_persisted(self, fingerprint: str) -> tuple[AnalysisResult, float] | None:
        path = self._entry_path(fingerprint)
        if path is None or not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if data.get("fingerprint") != fingerprint:
                raise CacheCorruption(f"fingerprint mismatch in {path}")
            version = data["version"]
            written_at = float(data["written_at"])
            result = AnalysisResult.from_dict(data["result"])
        except (OSError, ValueError, KeyError, TypeError, CacheCorruption) as exc:
            logger.warning("Ignoring corrupt cache entry %s: %s", path, exc)
            with self._lock:
                self._corrupt += 1
            return None

        if version != self.version:
            with self._lock:
                self._invalidations += 1
            return None
        if self._clock() - written_at > self.ttl_seconds:
            with self._lock:
                self._expirations += 1
            return None
        return result, written_at

    def _persist(self, fingerprint: str, entry: CacheEntry) -> None:
        path = self._entry_path(fingerprint)
        if path is None:
            return
        payload = {
            "fingerprint": fingerprint,
            "version": entry.version,
            "written_at": entry.written_at,
            "result": entry.result.to_dict(),
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp, path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as exc:
            # The in-memory entry is still valid; only persistence is lost
            logger.warning("Could not persist cache entry %s: %s", path, exc)
