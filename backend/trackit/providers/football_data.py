"""
backend/trackit/providers/football_data.py

Purpose:
    Adapter for football-data.org v4. Serves both the live feed
    (``status=LIVE``) and the fixtures window used for the schedule snapshot.
    Records are returned in football-data's own shape; nested team /
    competition / score objects are resolved by the normalizer.

Dependencies:
    - trackit.providers.http_client
    - trackit.utils.utcnow
"""

import logging
from datetime import timedelta
from typing import Any

from trackit.providers.base import BaseScoreProvider
from trackit.providers.http_client import ResilientClient, UpstreamUnavailableError
from trackit.utils import utcnow

logger = logging.getLogger("trackit.football_data")

PROVIDER_NAME = "football_data"


class FootballDataProvider(BaseScoreProvider):
    """football-data.org provider for live scores and today's fixtures."""

    name = PROVIDER_NAME

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        client: ResilientClient,
        days_ahead: int = 2,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._days_ahead = max(0, int(days_ahead))

    @property
    def enabled(self) -> bool:
        return bool(self._api_key and self._base_url)

    async def _fetch_matches(self, params: dict[str, str]) -> list[dict[str, Any]]:
        payload = await self._client.get_json(
            f"{self._base_url}/matches",
            params=params,
            headers={"X-Auth-Token": self._api_key},
        )
        if not isinstance(payload, dict):
            raise UpstreamUnavailableError("football_data: unexpected payload shape")
        matches = payload.get("matches") or []
        return [m for m in matches if isinstance(m, dict)]

    async def fetch_live(self) -> list[dict[str, Any]]:
        matches = await self._fetch_matches({"status": "LIVE"})
        logger.info("football-data.org: %d live matches", len(matches))
        return matches

    async def fetch_schedule(self) -> list[dict[str, Any]]:
        now = utcnow()
        date_from = now.strftime("%Y-%m-%d")
        date_to = (now + timedelta(days=self._days_ahead)).strftime("%Y-%m-%d")
        matches = await self._fetch_matches({"dateFrom": date_from, "dateTo": date_to})
        logger.info(
            "football-data.org: %d fixtures between %s and %s",
            len(matches), date_from, date_to,
        )
        return matches

    async def aclose(self) -> None:
        await self._client.aclose()
