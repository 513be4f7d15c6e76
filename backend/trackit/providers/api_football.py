"""
backend/trackit/providers/api_football.py

Purpose:
    Adapter for api-football (api-sports.io) live fixtures. The response nests
    fixture, league, teams and goals objects; rows are flattened into the
    alias vocabulary understood by the normalizer.

Dependencies:
    - trackit.providers.http_client
"""

import logging
from typing import Any

from trackit.providers.base import BaseScoreProvider
from trackit.providers.http_client import (
    RateLimitedError,
    ResilientClient,
    UpstreamUnavailableError,
)

logger = logging.getLogger("trackit.api_football")

PROVIDER_NAME = "api_football"


def _flatten(row: dict[str, Any]) -> dict[str, Any]:
    fixture = row.get("fixture") if isinstance(row.get("fixture"), dict) else {}
    status = fixture.get("status") if isinstance(fixture.get("status"), dict) else {}
    league = row.get("league") if isinstance(row.get("league"), dict) else {}
    teams = row.get("teams") if isinstance(row.get("teams"), dict) else {}
    goals = row.get("goals") if isinstance(row.get("goals"), dict) else {}
    home = teams.get("home") if isinstance(teams.get("home"), dict) else {}
    away = teams.get("away") if isinstance(teams.get("away"), dict) else {}

    return {
        "fixtureId": fixture.get("id"),
        "home_team": home.get("name"),
        "away_team": away.get("name"),
        "league_name": league.get("name"),
        "status": status.get("short"),
        "elapsed": status.get("elapsed"),
        "home_score": goals.get("home"),
        "away_score": goals.get("away"),
        "kickoff": fixture.get("date") or fixture.get("timestamp"),
    }


class ApiFootballProvider(BaseScoreProvider):
    """api-sports.io provider, live fixtures across all covered leagues."""

    name = PROVIDER_NAME

    def __init__(self, *, api_key: str, base_url: str, client: ResilientClient):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._api_key and self._base_url)

    async def fetch_live(self) -> list[dict[str, Any]]:
        payload = await self._client.get_json(
            f"{self._base_url}/fixtures",
            params={"live": "all"},
            headers={"x-apisports-key": self._api_key},
        )
        if not isinstance(payload, dict):
            raise UpstreamUnavailableError("api_football: unexpected payload shape")

        # api-sports reports quota/auth problems in a 200 body
        errors = payload.get("errors")
        if isinstance(errors, dict) and ("rateLimit" in errors or "requests" in errors):
            raise RateLimitedError(f"api_football: {errors}")
        if errors:
            raise UpstreamUnavailableError(f"api_football: {errors}")

        rows = [_flatten(r) for r in payload.get("response") or [] if isinstance(r, dict)]
        logger.info("api-football: %d live fixtures", len(rows))
        return rows

    async def aclose(self) -> None:
        await self._client.aclose()
