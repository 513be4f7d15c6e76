"""Tracked bets API: ticket import, listing, live view and subscriptions."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from trackit.models.bet import SubscriptionCreate, TrackBetRequest
from trackit.models.live import SnapshotKind
from trackit.providers.sportybet import TicketParseError
from trackit.services.bet_correlator import correlate_bet
from trackit.services.bet_service import (
    delete_bet,
    get_bet,
    insert_bet,
    list_bets,
    list_event_logs,
)
from trackit.services.live_engine import LiveEngine, get_engine

router = APIRouter(prefix="/api", tags=["bets"])


async def _bet_or_404(bet_id: str):
    bet = await get_bet(bet_id)
    if bet is None:
        raise HTTPException(status_code=404, detail="Bet not found.")
    return bet


@router.get("/bets")
async def get_bets(limit: int = Query(200, ge=1, le=1000)):
    bets = await list_bets(limit=limit)
    return [bet.model_dump(mode="json") for bet in bets]


@router.post("/bets", status_code=status.HTTP_201_CREATED)
async def track_bet(body: TrackBetRequest, engine: LiveEngine = Depends(get_engine)):
    """Fetch a ticket by booking code and start tracking it."""
    if body.platform.lower() != engine.ticket_parser.platform:
        raise HTTPException(status_code=400, detail=f"Unsupported platform: {body.platform}")
    try:
        ticket = await engine.ticket_parser.parse(body.booking_code)
    except TicketParseError as e:
        raise HTTPException(status_code=422, detail=str(e))
    bet = await insert_bet(ticket)
    return bet.model_dump(mode="json")


@router.get("/bets/{bet_id}")
async def get_bet_by_id(bet_id: str):
    bet = await _bet_or_404(bet_id)
    return bet.model_dump(mode="json")


@router.get("/bets/{bet_id}/live")
async def get_bet_live(bet_id: str, engine: LiveEngine = Depends(get_engine)):
    """The bet with live scores attached where the current snapshot has them."""
    bet = await _bet_or_404(bet_id)
    snapshot = await engine.cache.get_snapshot(SnapshotKind.live)
    enriched = correlate_bet(bet, snapshot.matches)
    return {
        "live": enriched is not None,
        "source": snapshot.source,
        "bet": (enriched or bet).model_dump(mode="json"),
    }


@router.delete("/bets/{bet_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_bet(bet_id: str):
    if not await delete_bet(bet_id):
        raise HTTPException(status_code=404, detail="Bet not found.")


@router.post("/bets/{bet_id}/subscriptions", status_code=status.HTTP_201_CREATED)
async def subscribe_to_bet(
    bet_id: str,
    body: SubscriptionCreate,
    engine: LiveEngine = Depends(get_engine),
):
    """Register a console/email/webhook target for this bet's live updates."""
    bet = await _bet_or_404(bet_id)
    subscription = await engine.notifications.subscribe(bet.id, body.channel.value, body.target)
    return subscription.model_dump(mode="json")


@router.get("/event-logs")
async def get_event_logs(limit: int = Query(100, ge=1, le=500)):
    logs = await list_event_logs(limit=limit)
    return [
        {**log, "created_at": log["created_at"].isoformat() if log.get("created_at") else None}
        for log in logs
    ]
