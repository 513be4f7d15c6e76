"""
backend/trackit/services/snapshot_cache.py

Purpose:
    Process-wide TTL cache for live and schedule snapshots. One upstream fetch
    per TTL window serves every HTTP request, websocket client and poll tick.
    When a refresh fails, the last non-empty snapshot keeps being served and
    its timer is reset, so an unhealthy upstream is retried once per TTL
    instead of on every read.

Dependencies:
    - asyncio
    - trackit.models.live
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from trackit.models.live import SOURCE_ERROR, Snapshot, SnapshotKind

logger = logging.getLogger("trackit.snapshot_cache")

SnapshotFetcher = Callable[[], Awaitable[Snapshot]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    snapshot: Snapshot
    ttl_ms: int
    last_fetched_at_monotonic: float

    def is_valid(self, now: float) -> bool:
        return (now - self.last_fetched_at_monotonic) * 1000 < self.ttl_ms

    def age_ms(self, now: float) -> int:
        return int((now - self.last_fetched_at_monotonic) * 1000)


class SnapshotCache:
    """TTL cache with stale-on-failure fallback, one entry per snapshot kind.

    ``clock`` returns monotonic seconds and is injectable for tests. Entries
    are replaced wholesale (last write wins); a snapshot is never edited.
    """

    def __init__(
        self,
        *,
        fetchers: Mapping[SnapshotKind, SnapshotFetcher],
        ttl_ms: Mapping[SnapshotKind, int],
        clock: Clock = time.monotonic,
    ) -> None:
        missing = set(fetchers) - set(ttl_ms)
        if missing:
            raise ValueError(f"missing ttl for kinds: {sorted(k.value for k in missing)}")
        self._fetchers = dict(fetchers)
        self._ttl_ms = {kind: max(0, int(ttl)) for kind, ttl in ttl_ms.items()}
        self._clock = clock
        self._entries: dict[SnapshotKind, CacheEntry] = {}
        # Coalesces concurrent misses into a single upstream call per kind.
        self._locks: dict[SnapshotKind, asyncio.Lock] = {kind: asyncio.Lock() for kind in self._fetchers}
        self._fetch_total: dict[SnapshotKind, int] = {kind: 0 for kind in self._fetchers}
        self._stale_served_total: dict[SnapshotKind, int] = {kind: 0 for kind in self._fetchers}

    async def get_snapshot(self, kind: SnapshotKind | str) -> Snapshot:
        kind = SnapshotKind(kind)
        if kind not in self._fetchers:
            raise KeyError(f"no fetcher registered for snapshot kind '{kind.value}'")

        entry = self._entries.get(kind)
        if entry is not None and entry.is_valid(self._clock()):
            return entry.snapshot

        async with self._locks[kind]:
            # Another caller may have refreshed while we waited for the lock.
            entry = self._entries.get(kind)
            if entry is not None and entry.is_valid(self._clock()):
                return entry.snapshot
            return await self._refresh(kind, entry)

    def peek(self, kind: SnapshotKind | str) -> Snapshot | None:
        """Cached snapshot regardless of freshness, without fetching."""
        entry = self._entries.get(SnapshotKind(kind))
        return entry.snapshot if entry is not None else None

    def invalidate(self, kind: SnapshotKind | str) -> None:
        self._entries.pop(SnapshotKind(kind), None)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        out: dict[str, Any] = {}
        for kind in self._fetchers:
            entry = self._entries.get(kind)
            out[kind.value] = {
                "ttl_ms": self._ttl_ms[kind],
                "cached": entry is not None,
                "fresh": entry.is_valid(now) if entry else False,
                "age_ms": entry.age_ms(now) if entry else None,
                "source": entry.snapshot.source if entry else None,
                "count": entry.snapshot.count if entry else 0,
                "fetch_total": self._fetch_total[kind],
                "stale_served_total": self._stale_served_total[kind],
            }
        return out

    async def _refresh(self, kind: SnapshotKind, previous: CacheEntry | None) -> Snapshot:
        self._fetch_total[kind] += 1
        try:
            fresh = await self._fetchers[kind]()
        except Exception as exc:
            # Fetchers are expected to absorb failures; treat a leak the same way.
            logger.error("%s snapshot fetch raised: %s", kind.value, exc, exc_info=True)
            fresh = None

        now = self._clock()
        ttl = self._ttl_ms[kind]

        if fresh is None or fresh.is_failure:
            if previous is not None and previous.snapshot.matches:
                self._stale_served_total[kind] += 1
                logger.warning(
                    "%s refresh failed (source=%s); serving stale snapshot from %s",
                    kind.value,
                    fresh.source if fresh is not None else "exception",
                    previous.snapshot.fetched_at.isoformat() if previous.snapshot.fetched_at else "unknown",
                )
                self._entries[kind] = CacheEntry(previous.snapshot, ttl, now)
                return previous.snapshot
            if fresh is None:
                fresh = Snapshot(source=SOURCE_ERROR)

        self._entries[kind] = CacheEntry(fresh, ttl, now)
        return fresh
