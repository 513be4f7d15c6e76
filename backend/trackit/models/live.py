from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, computed_field

from trackit.utils import age_seconds


class MatchStatus(str, Enum):
    scheduled = "SCHEDULED"
    in_play = "IN_PLAY"
    paused = "PAUSED"
    finished = "FINISHED"
    postponed = "POSTPONED"
    cancelled = "CANCELLED"
    suspended = "SUSPENDED"
    unknown = "UNKNOWN"


class SnapshotKind(str, Enum):
    live = "live"
    schedule = "schedule"


# Snapshot.source values that mean "no usable data was fetched"
SOURCE_NONE = "none"
SOURCE_ERROR = "error"
SOURCE_RATE_LIMITED = "rate-limited"
FAILURE_SOURCES = frozenset({SOURCE_NONE, SOURCE_ERROR, SOURCE_RATE_LIMITED})


class LiveMatch(BaseModel):
    """Canonical match record, whatever provider it came from."""
    model_config = ConfigDict(frozen=True)

    id: str
    home_team: str = "Unknown"
    away_team: str = "Unknown"
    league: str = "Unknown"
    status: MatchStatus = MatchStatus.unknown
    status_detail: Optional[str] = None   # match clock "63'" or "HALF TIME"
    home_score: Optional[int] = None      # None before kickoff
    away_score: Optional[int] = None
    start_time: Optional[datetime] = None
    source: str


class Snapshot(BaseModel):
    """One fetched, timestamped collection of matches. Replaced, never edited."""
    model_config = ConfigDict(frozen=True)

    matches: tuple[LiveMatch, ...] = ()
    source: str = SOURCE_NONE
    fetched_at: Optional[datetime] = None

    @computed_field
    @property
    def count(self) -> int:
        return len(self.matches)

    @property
    def is_failure(self) -> bool:
        return self.source in FAILURE_SOURCES

    def to_response(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["age_seconds"] = age_seconds(self.fetched_at)
        return payload
