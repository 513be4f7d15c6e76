"""Live engine API: cached snapshots, on-demand correlation, engine status."""

from fastapi import APIRouter, Depends

from trackit.models.live import SnapshotKind
from trackit.services.bet_correlator import correlate
from trackit.services.bet_service import list_tracked_bets
from trackit.services.live_engine import LiveEngine, get_engine
from trackit.utils import utcnow

router = APIRouter(prefix="/api", tags=["live"])


@router.get("/live")
async def get_live(engine: LiveEngine = Depends(get_engine)):
    """Current live snapshot, served from the TTL cache."""
    snapshot = await engine.cache.get_snapshot(SnapshotKind.live)
    return snapshot.to_response()


@router.get("/schedule")
async def get_schedule(engine: LiveEngine = Depends(get_engine)):
    snapshot = await engine.cache.get_snapshot(SnapshotKind.schedule)
    return snapshot.to_response()


@router.get("/tracked-live-matches")
async def get_tracked_live_matches(engine: LiveEngine = Depends(get_engine)):
    """Tracked bets with live scores attached, computed from the cached snapshot."""
    snapshot = await engine.cache.get_snapshot(SnapshotKind.live)
    bets = await list_tracked_bets()
    enriched = correlate(snapshot, bets)
    return {
        "source": snapshot.source,
        "fetched_at": snapshot.fetched_at.isoformat() if snapshot.fetched_at else None,
        "count": len(enriched),
        "bets": [bet.model_dump(mode="json") for bet in enriched],
    }


@router.get("/live/status")
async def get_live_status(engine: LiveEngine = Depends(get_engine)):
    return {"now": utcnow().isoformat(), **engine.stats()}
