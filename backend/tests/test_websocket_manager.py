"""
backend/tests/test_websocket_manager.py

Purpose:
    Unit tests for websocket manager connection lifecycle, filter matching, and
    heartbeat cleanup.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

sys.path.insert(0, "backend")

from trackit.services.websocket_manager import MaxConnectionsExceeded, WebSocketManager


class _FakeWebSocket:
    def __init__(self, *, fail_send: bool = False):
        self.accepted = False
        self.fail_send = fail_send
        self.messages: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail_send:
            raise RuntimeError("send failed")
        self.messages.append(payload)


@pytest.mark.asyncio
async def test_connect_subscribe_and_filtered_broadcast():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    ws = _FakeWebSocket()
    conn_id = await manager.connect(ws)
    assert ws.accepted
    filters = await manager.update_filters(
        conn_id,
        "subscribe",
        {"bet_ids": ["b1"], "event_types": ["bet.live_updated"]},
    )
    assert filters == {"bet_ids": ["b1"], "event_types": ["bet.live_updated"]}

    sent = await manager.broadcast(
        event_type="bet.live_updated",
        data={"id": "b1"},
        selectors={"bet_ids": ["b1"]},
        meta={"event_id": "e1"},
    )
    assert sent == 1
    assert ws.messages[-1] == {"type": "bet.live_updated", "data": {"id": "b1"}, "meta": {"event_id": "e1"}}

    other_bet = await manager.broadcast(
        event_type="bet.live_updated",
        data={"id": "b2"},
        selectors={"bet_ids": ["b2"]},
    )
    assert other_bet == 0

    other_type = await manager.broadcast(event_type="snapshot.updated", data={"count": 0})
    assert other_type == 0


@pytest.mark.asyncio
async def test_unfiltered_clients_receive_everything():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    ws = _FakeWebSocket()
    await manager.connect(ws)

    assert await manager.broadcast(event_type="snapshot.updated", data={"count": 1}) == 1
    assert await manager.broadcast(event_type="bet.live_updated", data={}, selectors={"bet_ids": ["b9"]}) == 1


@pytest.mark.asyncio
async def test_unsubscribe_and_replace():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    conn_id = await manager.connect(_FakeWebSocket(), initial_filters={"bet_ids": ["b1", "b2"]})

    filters = await manager.update_filters(conn_id, "unsubscribe", {"bet_ids": ["b1"]})
    assert filters["bet_ids"] == ["b2"]

    filters = await manager.update_filters(conn_id, "replace_subscriptions", {"event_types": ["snapshot.updated"]})
    assert filters == {"bet_ids": [], "event_types": ["snapshot.updated"]}

    with pytest.raises(ValueError):
        await manager.update_filters(conn_id, "bogus", {})


@pytest.mark.asyncio
async def test_max_connections_rejected_before_accept():
    manager = WebSocketManager(max_connections=1, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket())
    extra = _FakeWebSocket()
    with pytest.raises(MaxConnectionsExceeded):
        await manager.connect(extra)
    assert not extra.accepted


@pytest.mark.asyncio
async def test_broadcast_drops_dead_sockets():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket())
    await manager.connect(_FakeWebSocket(fail_send=True))

    assert await manager.broadcast(event_type="snapshot.updated", data={}) == 1
    stats = manager.stats()
    assert stats["active_connections"] == 1
    assert stats["send_failures"] == 1
    assert stats["dropped_connections"] == 1


@pytest.mark.asyncio
async def test_heartbeat_removes_dead_connections():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=1)
    ws_ok = _FakeWebSocket()
    ws_fail = _FakeWebSocket(fail_send=True)
    await manager.connect(ws_ok)
    await manager.connect(ws_fail)
    await manager.start()
    await asyncio.sleep(1.2)
    await manager.stop()
    stats = manager.stats()
    assert stats["dropped_connections"] >= 1
    assert ws_ok.messages[0]["type"] == "ping"
