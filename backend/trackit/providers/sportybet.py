"""
backend/trackit/providers/sportybet.py

Purpose:
    Resolve a SportyBet share/booking code into a NormalizedBet through the
    platform's public share-order endpoint.

Dependencies:
    - trackit.providers.http_client
    - trackit.models.bet
"""

import logging
import math
import time
from typing import Any, Optional

from trackit.models.bet import BetSelection, NormalizedBet
from trackit.providers.http_client import ResilientClient, UpstreamUnavailableError
from trackit.utils import parse_utc

logger = logging.getLogger("trackit.sportybet")

PLATFORM = "sportybet"

COUNTRY_CURRENCY = {
    "ng": "NGN",
    "gh": "GHS",
    "ke": "KES",
    "ug": "UGX",
    "tz": "TZS",
    "zm": "ZMW",
}

_BROWSER_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
}


class TicketParseError(Exception):
    """Booking code could not be resolved into a ticket."""


def _as_float(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def _first_positive(*values: Any) -> float:
    for value in values:
        number = _as_float(value)
        if number:
            return number
    return 0.0


def _pick_outcome(market: dict[str, Any], outcome_id: Optional[str]) -> dict[str, Any]:
    outcomes = [o for o in market.get("outcomes") or [] if isinstance(o, dict)]
    if outcome_id is not None:
        for item in outcomes:
            if str(item.get("id")) == str(outcome_id):
                return item
    return outcomes[0] if outcomes else {}


def map_ticket(data: dict[str, Any], *, booking_code: str, currency: str) -> NormalizedBet:
    """Map the share-order payload onto a NormalizedBet."""
    outcomes = [o for o in data.get("outcomes") or [] if isinstance(o, dict)]
    ticket = data.get("ticket") if isinstance(data.get("ticket"), dict) else {}
    picks = [s for s in ticket.get("selections") or [] if isinstance(s, dict)]

    total_odds = 1.0
    selections: list[BetSelection] = []
    for idx, outcome in enumerate(outcomes):
        markets = outcome.get("markets") or []
        market = markets[0] if markets and isinstance(markets[0], dict) else {}
        outcome_id = picks[idx].get("outcomeId") if idx < len(picks) else None
        chosen = _pick_outcome(market, outcome_id)

        odds = _as_float(chosen.get("odds"))
        total_odds *= odds

        tournament = (
            ((outcome.get("sport") or {}).get("category") or {}).get("tournament") or {}
        )
        market_name = market.get("desc") or market.get("name")
        selections.append(
            BetSelection(
                match_id=str(outcome["eventId"]) if outcome.get("eventId") is not None else None,
                home_team=str(outcome.get("homeTeamName") or ""),
                away_team=str(outcome.get("awayTeamName") or ""),
                league=str(tournament.get("name") or "Unknown"),
                market=market_name,
                selection=chosen.get("desc") or chosen.get("name"),
                odds=odds,
                start_time=parse_utc(outcome.get("estimateStartTime")),
                status=str(outcome.get("matchStatus") or "pending"),
            )
        )

    total_odds = round(total_odds, 2) if selections else 0.0
    stake = _first_positive(data.get("stake"), ticket.get("stake"), data.get("stakeAmount"))
    potential_win = _first_positive(
        data.get("maxWinAmount"), ticket.get("maxWinAmount"), stake * total_odds
    )

    return NormalizedBet(
        platform=PLATFORM,
        booking_code=booking_code,
        selections=selections,
        total_odds=total_odds,
        stake=stake,
        potential_win=potential_win,
        currency=currency,
    )


class SportyBetParser:
    """SportyBet share-code lookup."""

    platform = PLATFORM

    def __init__(self, *, base_url: str, country: str, client: ResilientClient):
        self._base_url = base_url.rstrip("/")
        self._country = country.lower()
        self._client = client

    @property
    def currency(self) -> str:
        return COUNTRY_CURRENCY.get(self._country, "NGN")

    async def fetch_ticket(self, booking_code: str) -> dict[str, Any]:
        url = f"{self._base_url}/api/{self._country}/orders/share/{booking_code}"
        headers = dict(_BROWSER_HEADERS)
        headers["Referer"] = f"{self._base_url}/"
        headers["Origin"] = self._base_url
        try:
            payload = await self._client.get_json(
                url,
                params={"_t": str(int(time.time() * 1000))},
                headers=headers,
            )
        except UpstreamUnavailableError as exc:
            raise TicketParseError(f"SportyBet request failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise TicketParseError("SportyBet returned an unexpected payload")
        code = payload.get("code")
        if code is not None and code != 0:
            raise TicketParseError(str(payload.get("msg") or "Invalid SportyBet booking code"))
        data = payload.get("data")
        return data if isinstance(data, dict) else payload

    async def parse(self, booking_code: str) -> NormalizedBet:
        code = str(booking_code or "").strip()
        if not code:
            raise TicketParseError("Booking code is required")
        if not code.isalnum():
            raise TicketParseError(f"Invalid booking code: {code!r}")
        data = await self.fetch_ticket(code)
        bet = map_ticket(data, booking_code=code, currency=self.currency)
        if not bet.selections:
            raise TicketParseError(f"Booking code {code} has no selections")
        logger.info(
            "SportyBet ticket %s: %d selections, total odds %.2f",
            code, len(bet.selections), bet.total_odds,
        )
        return bet

    async def aclose(self) -> None:
        await self._client.aclose()
