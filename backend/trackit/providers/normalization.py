"""
backend/trackit/providers/normalization.py

Purpose:
    Turn heterogeneous provider match records into canonical LiveMatch
    models. Every canonical field has a fixed alias priority list; the first
    alias holding a non-null value wins. Dotted aliases walk nested dicts
    (``score.fullTime.home``), and a dict found under a name alias resolves to
    its ``name`` / ``shortName`` / ``displayName``.

Dependencies:
    - trackit.models.live
    - trackit.utils
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from trackit.models.live import LiveMatch, MatchStatus
from trackit.utils import parse_utc

ID_ALIASES = ("id", "eventId", "event_id", "matchId", "match_id", "fixtureId", "fixture.id")
HOME_ALIASES = ("home", "homeTeam", "homeName", "home_team", "homeTeamName", "teams.home")
AWAY_ALIASES = ("away", "awayTeam", "awayName", "away_team", "awayTeamName", "teams.away")
LEAGUE_ALIASES = ("league", "competition", "leagueName", "league_name", "tournament")
STATUS_ALIASES = ("status", "matchStatus", "match_status", "state", "fixture.status.short")
STATUS_DETAIL_ALIASES = ("statusDetail", "status_detail", "status_time", "minute", "elapsed", "clock")
HOME_SCORE_ALIASES = ("homeScore", "home_score", "score.fullTime.home", "goals.home", "scores.home")
AWAY_SCORE_ALIASES = ("awayScore", "away_score", "score.fullTime.away", "goals.away", "scores.away")
START_TIME_ALIASES = ("startTime", "start_time", "utcDate", "kickoff", "date", "fixture.date")

_NAME_KEYS = ("name", "shortName", "displayName", "short")

# Keys are compared after upper-casing and collapsing spaces/dashes to "_".
_STATUS_MAP: dict[str, MatchStatus] = {
    # in play
    "IN_PLAY": MatchStatus.in_play,
    "LIVE": MatchStatus.in_play,
    "INPLAY": MatchStatus.in_play,
    "1H": MatchStatus.in_play,
    "2H": MatchStatus.in_play,
    "ET": MatchStatus.in_play,
    "P": MatchStatus.in_play,
    "PEN_LIVE": MatchStatus.in_play,
    "FIRST_HALF": MatchStatus.in_play,
    "SECOND_HALF": MatchStatus.in_play,
    "EXTRA_TIME": MatchStatus.in_play,
    "STATUS_IN_PROGRESS": MatchStatus.in_play,
    "STATUS_FIRST_HALF": MatchStatus.in_play,
    "STATUS_SECOND_HALF": MatchStatus.in_play,
    # paused
    "PAUSED": MatchStatus.paused,
    "HT": MatchStatus.paused,
    "HALF_TIME": MatchStatus.paused,
    "HALFTIME": MatchStatus.paused,
    "BT": MatchStatus.paused,
    "BREAK": MatchStatus.paused,
    "INT": MatchStatus.paused,
    "STATUS_HALFTIME": MatchStatus.paused,
    # finished
    "FINISHED": MatchStatus.finished,
    "FT": MatchStatus.finished,
    "AET": MatchStatus.finished,
    "PEN": MatchStatus.finished,
    "ENDED": MatchStatus.finished,
    "AWARDED": MatchStatus.finished,
    "AWD": MatchStatus.finished,
    "WO": MatchStatus.finished,
    "FULL_TIME": MatchStatus.finished,
    "STATUS_FINAL": MatchStatus.finished,
    "STATUS_FULL_TIME": MatchStatus.finished,
    # scheduled
    "SCHEDULED": MatchStatus.scheduled,
    "TIMED": MatchStatus.scheduled,
    "NS": MatchStatus.scheduled,
    "TBD": MatchStatus.scheduled,
    "NOT_STARTED": MatchStatus.scheduled,
    "STATUS_SCHEDULED": MatchStatus.scheduled,
    # postponed
    "POSTPONED": MatchStatus.postponed,
    "PST": MatchStatus.postponed,
    "STATUS_POSTPONED": MatchStatus.postponed,
    # cancelled
    "CANCELLED": MatchStatus.cancelled,
    "CANCELED": MatchStatus.cancelled,
    "CANC": MatchStatus.cancelled,
    "ABD": MatchStatus.cancelled,
    "ABANDONED": MatchStatus.cancelled,
    "STATUS_CANCELED": MatchStatus.cancelled,
    "STATUS_ABANDONED": MatchStatus.cancelled,
    # suspended
    "SUSPENDED": MatchStatus.suspended,
    "SUSP": MatchStatus.suspended,
    "INTERRUPTED": MatchStatus.suspended,
    "STATUS_SUSPENDED": MatchStatus.suspended,
}

_STATUS_KEY_RE = re.compile(r"[\s\-]+")


def _lookup(raw: Mapping[str, Any], alias: str) -> Any:
    node: Any = raw
    for part in alias.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _first(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        value = _lookup(raw, alias)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        for key in _NAME_KEYS:
            inner = value.get(key)
            if inner is not None and str(inner).strip():
                return str(inner).strip()
        return None
    text = str(value).strip()
    return text or None


def _first_text(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> str | None:
    for alias in aliases:
        text = _text(_lookup(raw, alias))
        if text:
            return text
    return None


def _score(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return None


def map_status(value: Any) -> MatchStatus:
    """Map an upstream status token onto the closed MatchStatus set."""
    if isinstance(value, MatchStatus):
        return value
    text = _text(value)
    if not text:
        return MatchStatus.unknown
    key = _STATUS_KEY_RE.sub("_", text.upper())
    return _STATUS_MAP.get(key, MatchStatus.unknown)


def _status_detail(raw: Mapping[str, Any]) -> str | None:
    value = _first(raw, STATUS_DETAIL_ALIASES)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return f"{int(value)}'"
    return _text(value)


def fallback_match_id(source: str, home: str, away: str, start_time: Any) -> str:
    """Deterministic id for records that carry none."""
    kickoff = start_time.isoformat() if start_time is not None else ""
    return f"{source}:{home}:{away}:{kickoff}".lower()


def normalize_match(raw: Mapping[str, Any], source: str) -> LiveMatch:
    """Coalesce one raw provider record into a LiveMatch. ``raw`` is not modified."""
    home = _first_text(raw, HOME_ALIASES) or "Unknown"
    away = _first_text(raw, AWAY_ALIASES) or "Unknown"
    start_time = parse_utc(_first(raw, START_TIME_ALIASES))

    raw_id = _first(raw, ID_ALIASES)
    match_id = str(raw_id) if raw_id is not None else fallback_match_id(source, home, away, start_time)

    return LiveMatch(
        id=match_id,
        home_team=home,
        away_team=away,
        league=_first_text(raw, LEAGUE_ALIASES) or "Unknown",
        status=map_status(_first(raw, STATUS_ALIASES)),
        status_detail=_status_detail(raw),
        home_score=_score(_first(raw, HOME_SCORE_ALIASES)),
        away_score=_score(_first(raw, AWAY_SCORE_ALIASES)),
        start_time=start_time,
        source=source,
    )


def normalize_matches(records: list[Any], source: str) -> list[LiveMatch]:
    """Normalize a provider batch, skipping non-dict rows and duplicate ids (first wins)."""
    out: list[LiveMatch] = []
    seen: set[str] = set()
    for raw in records or []:
        if not isinstance(raw, Mapping):
            continue
        match = normalize_match(raw, source)
        if match.id in seen:
            continue
        seen.add(match.id)
        out.append(match)
    return out
