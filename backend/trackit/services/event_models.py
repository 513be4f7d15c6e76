"""
backend/trackit/services/event_models.py

Purpose:
    Event contracts published by the live poller. Payloads are already
    JSON-ready dicts so subscribers (websocket fan-out, notifications) do not
    depend on model internals.

Dependencies:
    - pydantic
    - trackit.utils
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from trackit.utils import ensure_utc, utcnow

EventType = Literal["snapshot.updated", "bet.live_updated"]


def make_correlation_id() -> str:
    """One id shared by every event a single poll tick emits."""
    return str(uuid.uuid4())


class BaseEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    occurred_at: datetime = Field(default_factory=utcnow)
    correlation_id: str = Field(default_factory=make_correlation_id)
    source: str


class SnapshotUpdatedEvent(BaseEvent):
    event_type: Literal["snapshot.updated"] = "snapshot.updated"
    kind: str = "live"
    snapshot: dict[str, Any] = Field(default_factory=dict)


class BetLiveUpdatedEvent(BaseEvent):
    event_type: Literal["bet.live_updated"] = "bet.live_updated"
    bet_id: str
    bet: dict[str, Any] = Field(default_factory=dict)


def normalize_event_time(event: BaseEvent) -> BaseEvent:
    event.occurred_at = ensure_utc(event.occurred_at)
    return event
