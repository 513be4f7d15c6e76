from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from trackit.utils import as_utc


class BetStatus(str, Enum):
    pending = "pending"
    live = "live"
    settled = "settled"


class NotificationChannel(str, Enum):
    console = "console"
    email = "email"
    webhook = "webhook"


class LiveInfo(BaseModel):
    """Live score attached to a selection by the correlator."""
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: str
    event_id: str
    source: str


class BetSelection(BaseModel):
    """One leg of a ticket. Extra parser fields are kept as-is."""
    model_config = ConfigDict(extra="allow")

    match_id: Optional[str] = None
    home_team: str = ""
    away_team: str = ""
    league: str = "Unknown"
    market: Optional[str] = None
    selection: Optional[str] = None
    odds: float = 0.0
    start_time: Optional[datetime] = None
    status: str = "pending"
    live: Optional[LiveInfo] = None


class TrackedBet(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    booking_code: str = ""
    platform: str = "sportybet"
    status: BetStatus = BetStatus.pending
    selections: list[BetSelection] = Field(default_factory=list)
    total_odds: float = 0.0
    stake: float = 0.0
    potential_win: float = 0.0
    currency: str = "NGN"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NormalizedBet(BaseModel):
    """Ticket as returned by a platform parser, before it is stored."""
    platform: str
    booking_code: str
    selections: list[BetSelection]
    total_odds: float
    stake: float
    potential_win: float
    currency: str


# ---------------------------------------------------------------------------
# API request / response models
# ---------------------------------------------------------------------------


class TrackBetRequest(BaseModel):
    booking_code: str = Field(min_length=1, max_length=64)
    platform: str = "sportybet"


class SubscriptionCreate(BaseModel):
    channel: NotificationChannel = NotificationChannel.console
    target: str = Field(min_length=1, max_length=512)


class Subscription(BaseModel):
    id: str
    bet_id: str
    channel: NotificationChannel
    target: str
    created_at: datetime


def bet_from_doc(doc: dict[str, Any]) -> TrackedBet:
    """Build a TrackedBet from a ``bets`` collection document."""
    data = dict(doc)
    data["id"] = str(data.pop("_id", data.get("id", "")))
    data["created_at"] = as_utc(data.get("created_at"))
    data["updated_at"] = as_utc(data.get("updated_at"))
    return TrackedBet.model_validate(data)
