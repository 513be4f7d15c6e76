"""
backend/trackit/services/event_handlers/websocket_handlers.py

Purpose:
    Bus subscribers that fan out live-engine events to connected WebSocket
    clients through the realtime WebSocket manager.

Dependencies:
    - trackit.services.event_models
    - trackit.services.websocket_manager
"""

from __future__ import annotations

import logging
from typing import Any

from trackit.services.event_models import BaseEvent
from trackit.services.websocket_manager import WebSocketManager
from trackit.utils import ensure_utc

logger = logging.getLogger("trackit.event_handlers.websocket")


def _meta(event: BaseEvent) -> dict[str, Any]:
    return {
        "event_id": str(getattr(event, "event_id", "")),
        "correlation_id": str(getattr(event, "correlation_id", "")),
        "occurred_at": ensure_utc(getattr(event, "occurred_at")).isoformat(),
    }


async def handle_snapshot_updated_ws(manager: WebSocketManager, event: BaseEvent) -> None:
    snapshot = getattr(event, "snapshot", None)
    if not isinstance(snapshot, dict):
        return
    delivered = await manager.broadcast(
        event_type="snapshot.updated",
        data=snapshot,
        meta=_meta(event),
    )
    logger.debug("snapshot.updated delivered to %d clients", delivered)


async def handle_bet_live_updated_ws(manager: WebSocketManager, event: BaseEvent) -> None:
    bet_id = str(getattr(event, "bet_id", "") or "")
    if not bet_id:
        return
    await manager.broadcast(
        event_type="bet.live_updated",
        data=dict(getattr(event, "bet", {}) or {}),
        selectors={"bet_ids": [bet_id]},
        meta=_meta(event),
    )
