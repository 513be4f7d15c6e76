"""
backend/tests/test_ws_event_handlers.py

Purpose:
    Bus subscribers: websocket fan-out of live-engine events, change-only bet
    notifications and handler registration.
"""

from __future__ import annotations

import asyncio
import sys
from types import SimpleNamespace

import pytest

sys.path.insert(0, "backend")

from trackit.services.event_bus import InMemoryEventBus
from trackit.services.event_handlers import register_event_handlers
from trackit.services.event_handlers.notification_handlers import BetUpdateNotifier
from trackit.services.event_handlers.websocket_handlers import (
    handle_bet_live_updated_ws,
    handle_snapshot_updated_ws,
)
from trackit.services.event_models import BetLiveUpdatedEvent, SnapshotUpdatedEvent


class _FakeManager:
    def __init__(self):
        self.calls: list[dict] = []

    async def broadcast(self, **kwargs):
        self.calls.append(kwargs)
        return 1


class _FakeNotifications:
    def __init__(self, subscriptions=None, fail_targets=()):
        self.subscriptions = subscriptions or []
        self.fail_targets = set(fail_targets)
        self.sent: list[dict] = []

    async def list_subscriptions(self, bet_id):
        return [s for s in self.subscriptions if s.bet_id == bet_id]

    async def send(self, *, channel, target, subject, message):
        self.sent.append({"channel": channel, "target": target, "subject": subject, "message": message})
        return target not in self.fail_targets


def _bet_payload(bet_id: str, home_score: int | None, away_score: int | None, status: str = "IN_PLAY") -> dict:
    return {
        "id": bet_id,
        "booking_code": "ABC123",
        "status": "pending",
        "selections": [
            {
                "home_team": "Arsenal",
                "away_team": "Chelsea",
                "odds": 1.9,
                "live": {
                    "home_score": home_score,
                    "away_score": away_score,
                    "status": status,
                    "event_id": "fx-1",
                    "source": "api_football",
                },
            }
        ],
    }


def _sub(bet_id: str, channel: str, target: str):
    return SimpleNamespace(bet_id=bet_id, channel=SimpleNamespace(value=channel), target=target)


@pytest.mark.asyncio
async def test_snapshot_updated_broadcasts_to_everyone():
    manager = _FakeManager()
    event = SnapshotUpdatedEvent(source="live_poller", correlation_id="c1", snapshot={"count": 1, "source": "api_football"})

    await handle_snapshot_updated_ws(manager, event)

    assert len(manager.calls) == 1
    call = manager.calls[0]
    assert call["event_type"] == "snapshot.updated"
    assert call["data"]["count"] == 1
    assert "selectors" not in call
    assert call["meta"]["correlation_id"] == "c1"


@pytest.mark.asyncio
async def test_bet_live_updated_broadcast_is_selected_by_bet_id():
    manager = _FakeManager()
    event = BetLiveUpdatedEvent(source="live_poller", bet_id="b1", bet=_bet_payload("b1", 1, 0))

    await handle_bet_live_updated_ws(manager, event)

    call = manager.calls[0]
    assert call["event_type"] == "bet.live_updated"
    assert call["selectors"] == {"bet_ids": ["b1"]}
    assert call["data"]["id"] == "b1"


@pytest.mark.asyncio
async def test_notifier_sends_to_every_subscription_once_per_change():
    bet_id = "65f0c0ffee0000000000abcd"
    notifications = _FakeNotifications(
        [_sub(bet_id, "console", "ops"), _sub(bet_id, "webhook", "https://hooks.example/x")],
        fail_targets={"https://hooks.example/x"},
    )
    notifier = BetUpdateNotifier(notifications)

    await notifier.handle(BetLiveUpdatedEvent(source="t", bet_id=bet_id, bet=_bet_payload(bet_id, 1, 0)))
    assert len(notifications.sent) == 2
    assert notifications.sent[0]["subject"] == "TrackIT - Live update for bet 65f0c0ff"
    assert "Arsenal vs Chelsea: 1-0 (IN_PLAY)" in notifications.sent[0]["message"]

    # Same scoreline on the next tick: nothing is re-sent
    await notifier.handle(BetLiveUpdatedEvent(source="t", bet_id=bet_id, bet=_bet_payload(bet_id, 1, 0)))
    assert len(notifications.sent) == 2

    await notifier.handle(BetLiveUpdatedEvent(source="t", bet_id=bet_id, bet=_bet_payload(bet_id, 2, 0)))
    assert len(notifications.sent) == 4


@pytest.mark.asyncio
async def test_notifier_without_subscriptions_sends_nothing():
    notifications = _FakeNotifications()
    notifier = BetUpdateNotifier(notifications)
    await notifier.handle(BetLiveUpdatedEvent(source="t", bet_id="b1", bet=_bet_payload("b1", 0, 0)))
    assert notifications.sent == []


@pytest.mark.asyncio
async def test_notifier_retries_when_every_delivery_failed():
    notifications = _FakeNotifications([_sub("b1", "webhook", "https://hooks.example/down")],
                                       fail_targets={"https://hooks.example/down"})
    notifier = BetUpdateNotifier(notifications)

    await notifier.handle(BetLiveUpdatedEvent(source="t", correlation_id="tick-1", bet_id="b1", bet=_bet_payload("b1", 1, 0)))
    await notifier.handle(BetLiveUpdatedEvent(source="t", correlation_id="tick-2", bet_id="b1", bet=_bet_payload("b1", 1, 0)))

    assert len(notifications.sent) == 2

    notifications.fail_targets.clear()
    await notifier.handle(BetLiveUpdatedEvent(source="t", correlation_id="tick-3", bet_id="b1", bet=_bet_payload("b1", 1, 0)))
    await notifier.handle(BetLiveUpdatedEvent(source="t", correlation_id="tick-4", bet_id="b1", bet=_bet_payload("b1", 1, 0)))
    assert len(notifications.sent) == 3


@pytest.mark.asyncio
async def test_notifier_forgets_bets_missing_from_a_whole_tick():
    notifications = _FakeNotifications([_sub("b1", "console", "ops"), _sub("b2", "console", "ops")])
    notifier = BetUpdateNotifier(notifications)

    async def tick(correlation_id: str, *bet_ids: str) -> None:
        for bet_id in bet_ids:
            await notifier.handle(
                BetLiveUpdatedEvent(source="t", correlation_id=correlation_id, bet_id=bet_id, bet=_bet_payload(bet_id, 1, 0))
            )

    await tick("tick-1", "b1", "b2")
    assert len(notifications.sent) == 2
    assert set(notifier._last_sent) == {"b1", "b2"}

    # b1 settled or deleted: absent from tick 2, dropped once tick 3 begins.
    await tick("tick-2", "b2")
    await tick("tick-3", "b2")
    assert set(notifier._last_sent) == {"b2"}
    assert len(notifications.sent) == 2

    await tick("tick-4", "b1", "b2")
    assert len(notifications.sent) == 3


@pytest.mark.asyncio
async def test_registered_handlers_receive_published_events():
    bus = InMemoryEventBus(ingress_maxsize=10, handler_maxsize=10, error_buffer_size=10)
    manager = _FakeManager()
    notifications = _FakeNotifications([_sub("b1", "console", "ops")])
    register_event_handlers(bus, websocket_manager=manager, notifications=notifications)

    handlers = set(bus.stats()["per_handler"])
    assert handlers == {
        "snapshot.updated:ws_snapshot_updated",
        "bet.live_updated:ws_bet_live_updated",
        "bet.live_updated:notify_bet_live_updated",
    }

    await bus.start()
    await bus.publish(BetLiveUpdatedEvent(source="t", bet_id="b1", bet=_bet_payload("b1", 1, 1)))
    await asyncio.sleep(0.05)
    await bus.stop()

    assert [c["event_type"] for c in manager.calls] == ["bet.live_updated"]
    assert len(notifications.sent) == 1


def test_registration_respects_disabled_consumers():
    bus = InMemoryEventBus(ingress_maxsize=10, handler_maxsize=10, error_buffer_size=10)
    register_event_handlers(bus)
    assert bus.stats()["per_handler"] == {}
