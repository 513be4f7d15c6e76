"""
backend/trackit/services/event_handlers/notification_handlers.py

Purpose:
    ``bet.live_updated`` subscriber that notifies every subscription of the
    bet. A bet is only notified again once its live view has changed, so an
    unchanged scoreline is not re-sent on every poll. A view counts as sent
    only after at least one delivery succeeded, and bets that drop out of a
    poll tick (deleted, settled, no longer live) are forgotten.

Dependencies:
    - trackit.services.notification_service
    - trackit.services.bet_correlator
"""

from __future__ import annotations

import logging

from trackit.models.bet import TrackedBet
from trackit.services.bet_correlator import format_update_message
from trackit.services.event_models import BaseEvent
from trackit.services.notification_service import NotificationService

logger = logging.getLogger("trackit.event_handlers.notifications")

LiveFingerprint = tuple[tuple[str, object, object, str], ...]


def live_fingerprint(bet: TrackedBet) -> LiveFingerprint:
    return tuple(
        (sel.live.event_id, sel.live.home_score, sel.live.away_score, sel.live.status)
        for sel in bet.selections
        if sel.live is not None
    )


def notification_subject(bet_id: str) -> str:
    return f"TrackIT - Live update for bet {bet_id[:8]}"


class BetUpdateNotifier:
    def __init__(self, notifications: NotificationService) -> None:
        self._notifications = notifications
        self._last_sent: dict[str, LiveFingerprint] = {}
        # Events of one poll tick share a correlation id.
        self._tick_id: str | None = None
        self._tick_bets: set[str] = set()

    def _track_tick(self, correlation_id: str, bet_id: str) -> None:
        if correlation_id != self._tick_id:
            # The previous tick is complete; forget bets it no longer carried.
            if self._tick_id is not None:
                self._last_sent = {k: v for k, v in self._last_sent.items() if k in self._tick_bets}
            self._tick_id = correlation_id
            self._tick_bets = set()
        self._tick_bets.add(bet_id)

    async def handle(self, event: BaseEvent) -> None:
        payload = getattr(event, "bet", None)
        if not isinstance(payload, dict):
            return
        bet = TrackedBet.model_validate(payload)
        self._track_tick(event.correlation_id, bet.id)

        fingerprint = live_fingerprint(bet)
        if self._last_sent.get(bet.id) == fingerprint:
            return

        subscriptions = await self._notifications.list_subscriptions(bet.id)
        if not subscriptions:
            return

        subject = notification_subject(bet.id)
        message = format_update_message(bet)
        sent = 0
        for sub in subscriptions:
            ok = await self._notifications.send(
                channel=sub.channel.value,
                target=sub.target,
                subject=subject,
                message=message,
            )
            sent += int(ok)
        if sent:
            self._last_sent[bet.id] = fingerprint
        logger.info("Bet %s: notified %d/%d subscriptions", bet.id, sent, len(subscriptions))
