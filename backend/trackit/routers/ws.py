import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from trackit.models.live import SnapshotKind
from trackit.services.websocket_manager import FILTER_COMMANDS, MaxConnectionsExceeded

logger = logging.getLogger("trackit.ws")

router = APIRouter()


def _initial_filters(ws: WebSocket) -> dict[str, list[str]]:
    """``?bet_ids=a,b&event_types=bet.live_updated`` on the connect URL."""
    out: dict[str, list[str]] = {}
    for key in ("bet_ids", "event_types"):
        raw = ws.query_params.get(key) or ""
        values = [item.strip() for item in raw.split(",") if item.strip()]
        if values:
            out[key] = values
    return out


@router.websocket("/ws/events")
async def websocket_events(ws: WebSocket):
    engine = ws.app.state.engine
    if not engine.ws_enabled:
        await ws.close(code=4003, reason="Realtime events disabled")
        return

    manager = engine.websocket_manager
    try:
        connection_id = await manager.connect(ws, initial_filters=_initial_filters(ws))
    except MaxConnectionsExceeded:
        await ws.close(code=4002, reason="Too many connections")
        return

    # Send the current snapshot immediately, without waiting for the next tick
    snapshot = engine.cache.peek(SnapshotKind.live)
    if snapshot is None:
        snapshot = await engine.cache.get_snapshot(SnapshotKind.live)
    await manager.send_to(
        connection_id,
        {"type": "snapshot.updated", "data": snapshot.to_response(), "meta": {"initial": True}},
    )

    try:
        while True:
            raw = await ws.receive_text()
            await manager.touch(connection_id)
            if raw == "ping":
                await ws.send_text("pong")
                continue
            try:
                message = json.loads(raw)
            except ValueError:
                await ws.send_json({"type": "error", "data": {"detail": "invalid_json"}})
                continue
            command = str(message.get("type") or "") if isinstance(message, dict) else ""
            if command not in FILTER_COMMANDS:
                await ws.send_json({"type": "error", "data": {"detail": "unsupported_command"}})
                continue
            filters = await manager.update_filters(connection_id, command, message.get("data") or {})
            await ws.send_json({"type": "subscriptions", "data": filters})
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.warning("WS connection %s failed", connection_id, exc_info=True)
    finally:
        await manager.disconnect(connection_id)
