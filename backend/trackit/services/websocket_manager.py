"""
backend/trackit/services/websocket_manager.py

Purpose:
    Process-local registry of ``/ws/events`` clients. Each client carries a
    filter (bet ids, event types); broadcasts are delivered only to clients
    whose filter admits the event. A heartbeat pings every client and prunes
    sockets that no longer accept writes.

Dependencies:
    - fastapi.WebSocket
    - trackit.utils
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fastapi import WebSocket

from trackit.utils import utcnow

logger = logging.getLogger("trackit.websocket_manager")

FILTER_COMMANDS = ("subscribe", "unsubscribe", "replace_subscriptions")


def _clean_ids(values: Any) -> set[str]:
    if not isinstance(values, (list, tuple, set)):
        return set()
    return {text for text in (str(v or "").strip() for v in values) if text}


class MaxConnectionsExceeded(RuntimeError):
    pass


@dataclass
class ClientFilter:
    """Empty sets mean "everything" for that dimension."""

    bet_ids: set[str] = field(default_factory=set)
    event_types: set[str] = field(default_factory=set)

    @classmethod
    def from_payload(cls, payload: Any) -> "ClientFilter":
        if not isinstance(payload, dict):
            return cls()
        return cls(bet_ids=_clean_ids(payload.get("bet_ids")), event_types=_clean_ids(payload.get("event_types")))

    def apply(self, command: str, other: "ClientFilter") -> None:
        if command == "replace_subscriptions":
            self.bet_ids, self.event_types = set(other.bet_ids), set(other.event_types)
        elif command == "subscribe":
            self.bet_ids |= other.bet_ids
            self.event_types |= other.event_types
        elif command == "unsubscribe":
            self.bet_ids -= other.bet_ids
            self.event_types -= other.event_types
        else:
            raise ValueError("unsupported_command")

    def admits(self, event_type: str, bet_ids: set[str]) -> bool:
        if self.event_types and event_type not in self.event_types:
            return False
        # Unscoped events (snapshot updates) and unscoped clients always pass.
        if not bet_ids or not self.bet_ids:
            return True
        return bool(self.bet_ids & bet_ids)

    def as_dict(self) -> dict[str, list[str]]:
        return {"bet_ids": sorted(self.bet_ids), "event_types": sorted(self.event_types)}


@dataclass
class Client:
    id: str
    socket: WebSocket
    filter: ClientFilter
    connected_at: datetime
    last_seen_at: datetime


class WebSocketManager:
    def __init__(self, *, max_connections: int, heartbeat_seconds: int) -> None:
        self._max_connections = max(1, int(max_connections))
        self._heartbeat_seconds = max(1, int(heartbeat_seconds))
        self._clients: dict[str, Client] = {}
        self._lock = asyncio.Lock()
        self._heartbeat: asyncio.Task | None = None
        self._running = False
        self._counters = {"broadcast_total": 0, "send_failures": 0, "dropped_connections": 0}
        self._errors: deque[dict[str, Any]] = deque(maxlen=200)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._heartbeat = asyncio.create_task(self._heartbeat_loop(), name="ws_heartbeat")
        logger.info("WebSocket manager started (heartbeat=%ss)", self._heartbeat_seconds)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        task, self._heartbeat = self._heartbeat, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            self._clients.clear()
        logger.info("WebSocket manager stopped")

    async def connect(self, websocket: WebSocket, *, initial_filters: dict[str, Any] | None = None) -> str:
        """Accept the socket and register it. Refuses before accept when full."""
        if len(self._clients) >= self._max_connections:
            raise MaxConnectionsExceeded("max_connections_exceeded")
        await websocket.accept()
        now = utcnow()
        client = Client(
            id=str(uuid.uuid4()),
            socket=websocket,
            filter=ClientFilter.from_payload(initial_filters or {}),
            connected_at=now,
            last_seen_at=now,
        )
        async with self._lock:
            self._clients[client.id] = client
        logger.info("WS client connected (%d total)", len(self._clients))
        return client.id

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            client = self._clients.pop(connection_id, None)
        if client is not None:
            logger.info("WS client disconnected (%d remaining)", len(self._clients))

    async def touch(self, connection_id: str) -> None:
        client = self._clients.get(connection_id)
        if client is not None:
            client.last_seen_at = utcnow()

    async def update_filters(self, connection_id: str, command_type: str, payload: dict[str, Any]) -> dict[str, list[str]]:
        client = self._clients.get(connection_id)
        if client is None:
            raise RuntimeError("connection_not_found")
        client.filter.apply(command_type, ClientFilter.from_payload(payload))
        client.last_seen_at = utcnow()
        return client.filter.as_dict()

    async def send_to(self, connection_id: str, message: dict[str, Any]) -> bool:
        client = self._clients.get(connection_id)
        if client is None:
            return False
        return not await self._deliver([client], message)

    async def broadcast(
        self,
        *,
        event_type: str,
        data: dict[str, Any],
        selectors: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> int:
        """Send to every client whose filter admits the event; returns the delivered count."""
        bet_ids = _clean_ids((selectors or {}).get("bet_ids"))
        async with self._lock:
            targets = [c for c in self._clients.values() if c.filter.admits(event_type, bet_ids)]
        message = {"type": event_type, "data": data, "meta": meta or {}}
        failed = await self._deliver(targets, message)
        self._counters["broadcast_total"] += 1
        return len(targets) - failed

    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "active_connections": len(self._clients),
            "max_connections": self._max_connections,
            "heartbeat_seconds": self._heartbeat_seconds,
            **self._counters,
            "last_errors": list(self._errors),
        }

    async def _deliver(self, clients: list[Client], message: dict[str, Any]) -> int:
        """Write to each client; dead sockets are dropped. Returns the failure count."""
        dead: list[str] = []
        for client in clients:
            try:
                await client.socket.send_json(message)
            except Exception as exc:
                dead.append(client.id)
                self._counters["send_failures"] += 1
                self._errors.append(
                    {"ts": utcnow().isoformat(), "connection_id": client.id, "type": message.get("type"), "error": str(exc)}
                )
        for connection_id in dead:
            await self.disconnect(connection_id)
            self._counters["dropped_connections"] += 1
        return len(dead)

    async def _heartbeat_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._heartbeat_seconds)
            async with self._lock:
                clients = list(self._clients.values())
            await self._deliver(clients, {"type": "ping", "data": {"ts": utcnow().isoformat()}})
