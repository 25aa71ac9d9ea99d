"""TTL cache of field classifications, persisted through a key-value store.

All entries live under one namespaced key as a mapping::

    {fingerprint: {"category": ..., "resolvedAt": ..., "expiresAt": ...,
                   "confidence": ...}}

Expiry is lazy: an expired entry reads as absent. ``prune`` offers an
explicit eviction pass but nothing depends on it for correctness.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import json
import logging
import time
from typing import Any

from gemini_fieldmap.core.exceptions import CacheUnavailable
from gemini_fieldmap.core.models import (
    DEFAULT_CACHE_NAMESPACE,
    DEFAULT_CACHE_TTL_HOURS,
    Category,
)
from gemini_fieldmap.core.types import CacheEntry

from .store import KeyValueStore

log = logging.getLogger(__name__)


@dataclass
class CacheMetrics:
    """Cache usage counters, for observability only."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0
    failures: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert metrics to dictionary format."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "evictions": self.evictions,
            "failures": self.failures,
        }


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of the stored mapping."""

    total_entries: int
    valid_entries: int
    size_bytes: int

    @property
    def expired_entries(self) -> int:
        """Entries that are stored but no longer usable."""
        return self.total_entries - self.valid_entries

    def to_dict(self) -> dict[str, int]:
        """Convert stats to dictionary format."""
        return {
            "total_entries": self.total_entries,
            "valid_entries": self.valid_entries,
            "expired_entries": self.expired_entries,
            "size_bytes": self.size_bytes,
        }


class ClassificationCache:
    """Maps field fingerprints to resolved categories with a TTL."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: float = DEFAULT_CACHE_TTL_HOURS * 3600,
        namespace: str = DEFAULT_CACHE_NAMESPACE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create a cache over ``store``.

        Args:
            store: Persistence collaborator holding the serialized mapping.
            ttl_seconds: Lifetime of an entry after it is written.
            namespace: Storage key under which the whole mapping is kept.
            clock: Epoch-seconds clock used when callers omit ``now``.
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._store = store
        self._ttl = float(ttl_seconds)
        self._namespace = namespace
        self._clock = clock
        # Serializes read-modify-write cycles on the shared mapping.
        self._lock = asyncio.Lock()
        self.metrics = CacheMetrics()

    @property
    def ttl_seconds(self) -> float:
        """Entry lifetime in seconds."""
        return self._ttl

    async def get(self, fingerprint: str, now: float | None = None) -> CacheEntry | None:
        """Return the live entry for ``fingerprint`` or None.

        Raises:
            CacheUnavailable: If the store cannot be read.
        """
        current = self._clock() if now is None else now
        raw = (await self._load()).get(fingerprint)
        entry = self._decode(fingerprint, raw)
        if entry is None or not entry.is_valid(current):
            self.metrics.misses += 1
            return None
        self.metrics.hits += 1
        return entry

    async def put(
        self,
        fingerprint: str,
        category: Category,
        now: float | None = None,
        *,
        confidence: float = 1.0,
    ) -> CacheEntry:
        """Overwrite the entry for ``fingerprint``.

        Raises:
            ValueError: If ``category`` is ``UNRESOLVED``.
            CacheUnavailable: If the store cannot be read or written.
        """
        if category is Category.UNRESOLVED:
            raise ValueError("UNRESOLVED classifications are not cacheable")
        resolved_at = self._clock() if now is None else now
        entry = CacheEntry(
            fingerprint=fingerprint,
            category=category,
            resolved_at=resolved_at,
            expires_at=resolved_at + self._ttl,
            confidence=confidence,
        )
        async with self._lock:
            data = await self._load()
            data[fingerprint] = entry.to_dict()
            await self._save(data)
        self.metrics.writes += 1
        return entry

    async def clear(self) -> None:
        """Remove every entry.

        Raises:
            CacheUnavailable: If the store rejects the removal.
        """
        async with self._lock:
            try:
                await self._store.remove(self._namespace)
            except Exception as e:
                self.metrics.failures += 1
                raise CacheUnavailable(f"cache clear failed: {e}") from e
        log.debug("Classification cache cleared (%s)", self._namespace)

    async def invalidate(self, fingerprint: str) -> bool:
        """Drop the entry for one fingerprint; returns whether one existed.

        Raises:
            CacheUnavailable: If the store cannot be read or written.
        """
        async with self._lock:
            data = await self._load()
            if data.pop(fingerprint, None) is None:
                return False
            await self._save(data)
        log.debug("Invalidated cached classification for %s", fingerprint)
        return True

    async def stats(self, now: float | None = None) -> CacheStats:
        """Count stored and live entries and measure the serialized size.

        Raises:
            CacheUnavailable: If the store cannot be read.
        """
        current = self._clock() if now is None else now
        data = await self._load()
        valid = 0
        for fingerprint, raw in data.items():
            entry = self._decode(fingerprint, raw)
            if entry is not None and entry.is_valid(current):
                valid += 1
        return CacheStats(
            total_entries=len(data),
            valid_entries=valid,
            size_bytes=len(json.dumps(data).encode("utf-8")) if data else 0,
        )

    async def prune(self, now: float | None = None) -> int:
        """Drop expired or malformed entries and return how many were removed.

        Raises:
            CacheUnavailable: If the store cannot be read or written.
        """
        current = self._clock() if now is None else now
        async with self._lock:
            data = await self._load()
            keep = {}
            for fingerprint, raw in data.items():
                entry = self._decode(fingerprint, raw)
                if entry is not None and entry.is_valid(current):
                    keep[fingerprint] = raw
            removed = len(data) - len(keep)
            if removed:
                await self._save(keep)
        self.metrics.evictions += removed
        if removed:
            log.debug("Pruned %d expired classification(s)", removed)
        return removed

    # --- Internal helpers ---

    async def _load(self) -> dict[str, Any]:
        try:
            data = await self._store.get(self._namespace)
        except Exception as e:
            self.metrics.failures += 1
            raise CacheUnavailable(f"cache read failed: {e}") from e
        return dict(data) if isinstance(data, dict) else {}

    async def _save(self, data: dict[str, Any]) -> None:
        try:
            await self._store.set(self._namespace, data)
        except Exception as e:
            self.metrics.failures += 1
            raise CacheUnavailable(f"cache write failed: {e}") from e

    @staticmethod
    def _decode(fingerprint: str, raw: object) -> CacheEntry | None:
        if not isinstance(raw, dict):
            return None
        try:
            return CacheEntry.from_dict(fingerprint, raw)
        except (KeyError, TypeError, ValueError):
            log.debug("Ignoring malformed cache entry for %s", fingerprint)
            return None
