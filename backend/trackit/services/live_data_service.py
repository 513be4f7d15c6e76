"""
backend/trackit/services/live_data_service.py

Purpose:
    Upstream fetch adapter. Asks the configured score providers for the live
    feed or the fixtures window, in priority order, and turns the first usable
    answer into a canonical Snapshot. Never raises: every failure becomes a
    Snapshot tagged ``error``, ``rate-limited`` or ``none`` so the snapshot
    cache can apply one stale-fallback policy.

Dependencies:
    - trackit.providers.*
    - trackit.models.live
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from trackit.models.live import (
    SOURCE_ERROR,
    SOURCE_NONE,
    SOURCE_RATE_LIMITED,
    Snapshot,
    SnapshotKind,
)
from trackit.providers.base import BaseScoreProvider
from trackit.providers.http_client import RateLimitedError, UpstreamUnavailableError
from trackit.providers.normalization import normalize_matches
from trackit.utils import utcnow

logger = logging.getLogger("trackit.live_data")


def stamp(matches: Sequence[Any] = (), source: str = SOURCE_NONE) -> Snapshot:
    return Snapshot(matches=tuple(matches), source=source, fetched_at=utcnow())


class LiveDataAdapter:
    """Provider fallback chain producing live and schedule snapshots."""

    def __init__(
        self,
        *,
        live_providers: Sequence[BaseScoreProvider],
        schedule_providers: Sequence[BaseScoreProvider],
        timeout_seconds: float = 15.0,
    ) -> None:
        self._live_providers = list(live_providers)
        self._schedule_providers = list(schedule_providers)
        self._timeout = float(timeout_seconds)

    async def fetch_live(self) -> Snapshot:
        return await self._fetch(
            SnapshotKind.live,
            [(p.name, p.enabled, p.fetch_live) for p in self._live_providers],
        )

    async def fetch_schedule(self) -> Snapshot:
        return await self._fetch(
            SnapshotKind.schedule,
            [(p.name, p.enabled, p.fetch_schedule) for p in self._schedule_providers],
        )

    async def _fetch(
        self,
        kind: SnapshotKind,
        chain: list[tuple[str, bool, Callable[[], Awaitable[list[dict[str, Any]]]]]],
    ) -> Snapshot:
        attempted = 0
        rate_limited = False

        for name, enabled, fetch in chain:
            if not enabled:
                logger.debug("Skipping %s for %s: not configured", name, kind.value)
                continue
            attempted += 1
            try:
                raw = await asyncio.wait_for(fetch(), timeout=self._timeout)
            except RateLimitedError as exc:
                rate_limited = True
                logger.warning("%s %s rate limited: %s", name, kind.value, exc)
                continue
            except asyncio.TimeoutError:
                logger.warning("%s %s timed out after %.1fs", name, kind.value, self._timeout)
                continue
            except UpstreamUnavailableError as exc:
                logger.warning("%s %s unavailable: %s", name, kind.value, exc)
                continue
            except Exception:
                logger.exception("%s %s fetch failed unexpectedly", name, kind.value)
                continue

            try:
                matches = normalize_matches(raw, name)
            except Exception:
                logger.exception("%s %s payload could not be normalized", name, kind.value)
                continue

            logger.info("%s snapshot: %d matches from %s", kind.value, len(matches), name)
            return stamp(matches, name)

        if attempted == 0:
            logger.warning("No %s provider configured; returning empty snapshot", kind.value)
            return stamp((), SOURCE_NONE)
        if rate_limited:
            return stamp((), SOURCE_RATE_LIMITED)
        return stamp((), SOURCE_ERROR)

    def provider_status(self) -> dict[str, dict[str, bool]]:
        out: dict[str, dict[str, bool]] = {}
        for provider in [*self._live_providers, *self._schedule_providers]:
            out[provider.name] = {"enabled": provider.enabled, "circuit_open": provider.circuit_open}
        return out

    async def aclose(self) -> None:
        seen: set[int] = set()
        for provider in [*self._live_providers, *self._schedule_providers]:
            if id(provider) in seen:
                continue
            seen.add(id(provider))
            await provider.aclose()
