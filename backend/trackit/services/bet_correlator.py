"""
backend/trackit/services/bet_correlator.py

Purpose:
    Attach live scores to tracked bets. Each selection is matched against the
    live snapshot by fuzzy team-name equality; the output is a derived copy of
    every bet that has at least one live selection. Nothing here is
    persisted: the enriched view is rebuilt on each poll and thrown away after
    it is published.

Dependencies:
    - trackit.utils.team_matching
    - trackit.models.bet
    - trackit.models.live
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from trackit.models.bet import BetSelection, BetStatus, LiveInfo, TrackedBet
from trackit.models.live import LiveMatch, Snapshot
from trackit.utils.team_matching import fixture_matches

logger = logging.getLogger("trackit.bet_correlator")

# Same shape as TrackedBet; selections carry ``live`` where matched.
EnrichedBet = TrackedBet


def find_live_match(selection: BetSelection, matches: Sequence[LiveMatch]) -> LiveMatch | None:
    """First live record (snapshot order) that refers to the selection's fixture."""
    for match in matches:
        if fixture_matches(selection.home_team, selection.away_team, match.home_team, match.away_team):
            return match
    return None


def enrich_selection(selection: BetSelection, matches: Sequence[LiveMatch]) -> BetSelection:
    match = find_live_match(selection, matches)
    if match is None:
        return selection
    return selection.model_copy(
        update={
            "live": LiveInfo(
                home_score=match.home_score,
                away_score=match.away_score,
                status=match.status.value,
                event_id=match.id,
                source=match.source,
            )
        }
    )


def correlate_bet(bet: TrackedBet, matches: Sequence[LiveMatch]) -> EnrichedBet | None:
    """Enriched copy of ``bet``, or None when it is settled or nothing is live."""
    if bet.status == BetStatus.settled:
        return None
    selections = [enrich_selection(sel, matches) for sel in bet.selections]
    if not any(sel.live is not None for sel in selections):
        return None
    return bet.model_copy(update={"selections": selections})


def correlate(snapshot: Snapshot, tracked_bets: Iterable[TrackedBet]) -> list[EnrichedBet]:
    """Enriched views for every bet with at least one live-matched selection.

    A bet that blows up during matching is logged and skipped; the rest are
    still processed.
    """
    if not snapshot.matches:
        return []

    enriched: list[EnrichedBet] = []
    for bet in tracked_bets:
        try:
            result = correlate_bet(bet, snapshot.matches)
        except Exception:
            logger.exception("Correlation failed for bet %s; skipping", getattr(bet, "id", "?"))
            continue
        if result is not None:
            enriched.append(result)
    return enriched


def format_update_message(bet: EnrichedBet) -> str:
    """Plain-text summary of a bet's live selections, for notifications."""
    lines = [f"Bet ID: {bet.id}", "Live scores:"]
    for sel in bet.selections:
        if sel.live is None:
            continue
        home = "?" if sel.live.home_score is None else sel.live.home_score
        away = "?" if sel.live.away_score is None else sel.live.away_score
        lines.append(f"  {sel.home_team} vs {sel.away_team}: {home}-{away} ({sel.live.status})")
    return "\n".join(lines)
