"""
backend/trackit/services/live_poller.py

Purpose:
    Periodic fetch -> correlate -> publish cycle for the live engine.

    Each tick reads the live snapshot through the snapshot cache, publishes
    ``snapshot.updated`` when the snapshot is a newly fetched success, then
    correlates it with the tracked bets and publishes one ``bet.live_updated``
    per enriched bet. The repeating timer is an APScheduler interval job.

Dependencies:
    - apscheduler
    - trackit.services.snapshot_cache
    - trackit.services.bet_correlator
    - trackit.services.event_bus
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Any

from apscheduler.schedulers.base import BaseScheduler

from trackit.models.bet import TrackedBet
from trackit.models.live import SnapshotKind
from trackit.services.bet_correlator import correlate
from trackit.services.event_bus import InMemoryEventBus
from trackit.services.event_models import BetLiveUpdatedEvent, SnapshotUpdatedEvent, make_correlation_id
from trackit.services.snapshot_cache import SnapshotCache
from trackit.utils import utcnow

logger = logging.getLogger("trackit.live_poller")

TrackedBetsLoader = Callable[[], Awaitable[Sequence[TrackedBet]]]

JOB_ID = "live_poller"


class LivePoller:
    """Fixed-interval poller. States: stopped / running.

    ``start()`` launches one tick in the background and arms the interval job,
    so a fresh process publishes without waiting a full interval and startup
    never waits on the upstream. Overlapping ticks are skipped, never queued.
    """

    def __init__(
        self,
        *,
        cache: SnapshotCache,
        load_bets: TrackedBetsLoader,
        bus: InMemoryEventBus,
        scheduler: BaseScheduler,
        interval_ms: int = 60_000,
        job_id: str = JOB_ID,
    ) -> None:
        self._cache = cache
        self._load_bets = load_bets
        self._bus = bus
        self._scheduler = scheduler
        self._interval_seconds = max(1, int(interval_ms)) / 1000
        self._job_id = job_id

        self._running = False
        self._in_flight = False
        self._startup_tick: asyncio.Task | None = None
        self._last_published_fetched_at: datetime | None = None

        self._ticks_total = 0
        self._ticks_failed = 0
        self._ticks_skipped = 0
        self._last_tick_at: datetime | None = None
        self._last_tick_duration_ms: float | None = None
        self._last_correlated = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, *, wait: bool = False) -> None:
        """Begin polling. ``wait=True`` also waits for the first tick to finish."""
        if self._running:
            return
        self._running = True
        logger.info("Live poller starting (interval=%.1fs)", self._interval_seconds)
        first_tick = asyncio.create_task(self.tick(), name="live_poller_first_tick")
        self._startup_tick = first_tick
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self._interval_seconds,
            id=self._job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if wait:
            await asyncio.wait({first_tick})

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        task, self._startup_tick = self._startup_tick, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._scheduler.get_job(self._job_id):
            self._scheduler.remove_job(self._job_id)
        logger.info("Live poller stopped")

    async def tick(self) -> bool:
        """Run one cycle. Returns True when it completed without error."""
        if not self._running:
            return False
        if self._in_flight:
            self._ticks_skipped += 1
            logger.debug("Previous live tick still running; skipping")
            return False

        self._in_flight = True
        self._ticks_total += 1
        started = time.monotonic()
        try:
            await self._run_cycle()
            return True
        except Exception:
            self._ticks_failed += 1
            logger.exception("Live poll tick failed")
            return False
        finally:
            self._in_flight = False
            self._last_tick_at = utcnow()
            self._last_tick_duration_ms = round((time.monotonic() - started) * 1000, 2)

    async def _run_cycle(self) -> None:
        snapshot = await self._cache.get_snapshot(SnapshotKind.live)
        if not self._running:
            return

        correlation_id = make_correlation_id()
        if not snapshot.is_failure and snapshot.fetched_at != self._last_published_fetched_at:
            await self._bus.publish(
                SnapshotUpdatedEvent(
                    source="live_poller",
                    correlation_id=correlation_id,
                    kind=SnapshotKind.live.value,
                    snapshot=snapshot.to_response(),
                )
            )
            self._last_published_fetched_at = snapshot.fetched_at

        if not snapshot.matches:
            self._last_correlated = 0
            return

        bets = await self._load_bets()
        enriched = correlate(snapshot, bets)
        self._last_correlated = len(enriched)
        for bet in enriched:
            if not self._running:
                return
            await self._bus.publish(
                BetLiveUpdatedEvent(
                    source="live_poller",
                    correlation_id=correlation_id,
                    bet_id=bet.id,
                    bet=bet.model_dump(mode="json"),
                )
            )
        if enriched:
            logger.info("Live tick: %d matches, %d bets with live selections", snapshot.count, len(enriched))

    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "interval_seconds": self._interval_seconds,
            "in_flight": self._in_flight,
            "ticks_total": self._ticks_total,
            "ticks_failed": self._ticks_failed,
            "ticks_skipped": self._ticks_skipped,
            "last_tick_at": self._last_tick_at.isoformat() if self._last_tick_at else None,
            "last_tick_duration_ms": self._last_tick_duration_ms,
            "last_correlated": self._last_correlated,
        }
