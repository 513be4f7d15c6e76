"""
backend/trackit/services/bet_service.py

Purpose:
    Persistence for tracked bets and the audit event log. The live engine only
    reads through ``list_tracked_bets``; the HTTP layer owns writes.

Dependencies:
    - trackit.database
    - trackit.models.bet
"""

import logging
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId

import trackit.database as _db
from trackit.models.bet import BetStatus, NormalizedBet, TrackedBet, bet_from_doc
from trackit.utils import utcnow

logger = logging.getLogger("trackit.bet_service")


def to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


async def insert_bet(ticket: NormalizedBet) -> TrackedBet:
    now = utcnow()
    doc: dict[str, Any] = {
        "booking_code": ticket.booking_code,
        "platform": ticket.platform,
        "status": BetStatus.pending.value,
        "selections": [
            sel.model_dump(exclude={"live"}, exclude_none=True) for sel in ticket.selections
        ],
        "total_odds": ticket.total_odds,
        "stake": ticket.stake,
        "potential_win": ticket.potential_win,
        "currency": ticket.currency,
        "created_at": now,
        "updated_at": now,
    }
    result = await _db.db.bets.insert_one(doc)
    doc["_id"] = result.inserted_id
    await add_event_log("bet_tracked", {"bet_id": str(result.inserted_id), "booking_code": ticket.booking_code})
    logger.info("Tracked bet %s (%s, %d selections)", result.inserted_id, ticket.booking_code, len(ticket.selections))
    return bet_from_doc(doc)


async def list_bets(limit: int = 200) -> list[TrackedBet]:
    """Stored bets, newest first."""
    docs = await _db.db.bets.find({}).sort("created_at", -1).to_list(length=limit)
    return [bet_from_doc(d) for d in docs]


async def list_tracked_bets() -> list[TrackedBet]:
    """Every stored bet, as consumed by the live engine."""
    docs = await _db.db.bets.find({}).to_list(length=None)
    out: list[TrackedBet] = []
    for doc in docs:
        try:
            out.append(bet_from_doc(doc))
        except ValueError as e:
            logger.warning("Skipping malformed bet document %s: %s", doc.get("_id"), e)
    return out


async def get_bet(bet_id: str) -> Optional[TrackedBet]:
    oid = to_object_id(bet_id)
    if oid is None:
        return None
    doc = await _db.db.bets.find_one({"_id": oid})
    return bet_from_doc(doc) if doc else None


async def delete_bet(bet_id: str) -> bool:
    oid = to_object_id(bet_id)
    if oid is None:
        return False
    result = await _db.db.bets.delete_one({"_id": oid})
    if not result.deleted_count:
        return False
    await _db.db.subscriptions.delete_many({"bet_id": str(oid)})
    await add_event_log("bet_deleted", {"bet_id": str(oid)})
    return True


async def add_event_log(event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
    entry = {
        "event_type": event_type,
        "payload": payload,
        "created_at": utcnow(),
    }
    result = await _db.db.event_logs.insert_one(entry)
    entry["_id"] = result.inserted_id
    return entry


async def list_event_logs(limit: int = 100) -> list[dict[str, Any]]:
    docs = await _db.db.event_logs.find({}).sort("created_at", -1).to_list(length=limit)
    for doc in docs:
        doc["id"] = str(doc.pop("_id"))
    return docs
