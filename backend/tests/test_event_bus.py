"""
backend/tests/test_event_bus.py

Purpose:
    Unit tests for the in-memory event bus implementation.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

sys.path.insert(0, "backend")

from trackit.services.event_bus import InMemoryEventBus
from trackit.services.event_models import BetLiveUpdatedEvent, SnapshotUpdatedEvent


def _bet_event(bet_id: str = "b1", correlation_id: str = "corr-1") -> BetLiveUpdatedEvent:
    return BetLiveUpdatedEvent(source="test", correlation_id=correlation_id, bet_id=bet_id, bet={"id": bet_id})


@pytest.mark.asyncio
async def test_event_bus_fanout_and_correlation() -> None:
    bus = InMemoryEventBus(ingress_maxsize=10, handler_maxsize=10, error_buffer_size=10)
    seen: list[tuple[str, str]] = []

    async def handler_a(event):
        seen.append(("a", event.correlation_id))

    async def handler_b(event):
        seen.append(("b", event.correlation_id))

    bus.subscribe("bet.live_updated", handler_a, handler_name="a", concurrency=1)
    bus.subscribe("bet.live_updated", handler_b, handler_name="b", concurrency=1)
    await bus.start()

    await bus.publish(_bet_event())
    await asyncio.sleep(0.05)
    await bus.stop()

    assert ("a", "corr-1") in seen
    assert ("b", "corr-1") in seen
    stats = bus.stats()
    assert stats["published_total"] == 1
    assert stats["handled_total"] == 2
    assert stats["failed_total"] == 0
    assert stats["per_event_type"]["bet.live_updated"] == 1


@pytest.mark.asyncio
async def test_events_only_reach_their_type() -> None:
    bus = InMemoryEventBus(ingress_maxsize=10, handler_maxsize=10, error_buffer_size=10)
    seen: list[str] = []

    async def on_snapshot(event):
        seen.append(event.event_type)

    bus.subscribe("snapshot.updated", on_snapshot, handler_name="snap")
    await bus.start()
    await bus.publish(_bet_event())
    await bus.publish(SnapshotUpdatedEvent(source="test", snapshot={"count": 0}))
    await asyncio.sleep(0.05)
    await bus.stop()

    assert seen == ["snapshot.updated"]


@pytest.mark.asyncio
async def test_event_bus_handler_failure_isolated() -> None:
    bus = InMemoryEventBus(ingress_maxsize=10, handler_maxsize=10, error_buffer_size=10)
    success_calls = 0

    async def failing(_event):
        raise RuntimeError("boom")

    async def success(_event):
        nonlocal success_calls
        success_calls += 1

    bus.subscribe("bet.live_updated", failing, handler_name="failing", concurrency=1)
    bus.subscribe("bet.live_updated", success, handler_name="success", concurrency=1)
    await bus.start()
    await bus.publish(_bet_event(correlation_id="corr-2"))
    await asyncio.sleep(0.05)
    await bus.stop()

    stats = bus.stats()
    assert success_calls == 1
    assert stats["failed_total"] >= 1
    assert stats["recent_errors"][0]["handler_name"] == "failing"
    assert stats["per_handler"]["bet.live_updated:failing"]["failed_total"] == 1


@pytest.mark.asyncio
async def test_event_bus_overflow_drops() -> None:
    bus = InMemoryEventBus(ingress_maxsize=1, handler_maxsize=1, error_buffer_size=10)
    event = _bet_event(correlation_id="corr-3")
    await bus.publish(event)
    await bus.publish(event.model_copy(update={"event_id": "evt-2"}))

    stats = bus.stats()
    assert stats["published_total"] == 1
    assert stats["dropped_total"] == 1


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent() -> None:
    bus = InMemoryEventBus(ingress_maxsize=10, handler_maxsize=10, error_buffer_size=10)
    await bus.start()
    await bus.start()
    assert bus.running
    await bus.stop()
    await bus.stop()
    assert not bus.running
