"""
backend/trackit/services/event_handlers/__init__.py

Purpose:
    Central registration entrypoint for event bus subscribers.

Dependencies:
    - trackit.services.event_bus
    - trackit.services.event_handlers.notification_handlers
    - trackit.services.event_handlers.websocket_handlers
"""

from __future__ import annotations

from functools import partial

from trackit.services.event_bus import InMemoryEventBus
from trackit.services.event_handlers.notification_handlers import BetUpdateNotifier
from trackit.services.event_handlers.websocket_handlers import (
    handle_bet_live_updated_ws,
    handle_snapshot_updated_ws,
)
from trackit.services.notification_service import NotificationService
from trackit.services.websocket_manager import WebSocketManager


def register_event_handlers(
    bus: InMemoryEventBus,
    *,
    websocket_manager: WebSocketManager | None = None,
    notifications: NotificationService | None = None,
) -> None:
    if websocket_manager is not None:
        bus.subscribe(
            "snapshot.updated",
            partial(handle_snapshot_updated_ws, websocket_manager),
            handler_name="ws_snapshot_updated",
            concurrency=1,
        )
        bus.subscribe(
            "bet.live_updated",
            partial(handle_bet_live_updated_ws, websocket_manager),
            handler_name="ws_bet_live_updated",
            concurrency=1,
        )
    if notifications is not None:
        # One worker: the notifier's change tracking is not shared across tasks.
        bus.subscribe(
            "bet.live_updated",
            BetUpdateNotifier(notifications).handle,
            handler_name="notify_bet_live_updated",
            concurrency=1,
        )
