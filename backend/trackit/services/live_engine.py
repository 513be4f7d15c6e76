"""
backend/trackit/services/live_engine.py

Purpose:
    Builds the live engine object graph from Settings: score providers, fetch
    adapter, snapshot cache, event bus, websocket manager, notification
    service, ticket parser and poller. Nothing here is a module singleton;
    the FastAPI lifespan owns the returned LiveEngine and hangs it on
    ``app.state``.

Dependencies:
    - apscheduler
    - trackit.config
    - trackit.providers.*
    - trackit.services.*
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Request

from trackit.config import Settings, provider_order
from trackit.models.live import SnapshotKind
from trackit.providers.api_football import ApiFootballProvider
from trackit.providers.base import BaseScoreProvider
from trackit.providers.football_data import FootballDataProvider
from trackit.providers.http_client import ResilientClient
from trackit.providers.sportybet import SportyBetParser
from trackit.services.bet_service import list_tracked_bets
from trackit.services.event_bus import InMemoryEventBus
from trackit.services.event_handlers import register_event_handlers
from trackit.services.live_data_service import LiveDataAdapter
from trackit.services.live_poller import LivePoller
from trackit.services.notification_service import NotificationService
from trackit.services.snapshot_cache import SnapshotCache
from trackit.services.websocket_manager import WebSocketManager

logger = logging.getLogger("trackit.live_engine")


def _upstream_client(cfg: Settings, name: str) -> ResilientClient:
    return ResilientClient(
        name,
        timeout=cfg.UPSTREAM_TIMEOUT_SECONDS,
        max_retries=cfg.UPSTREAM_MAX_RETRIES,
        base_delay=cfg.UPSTREAM_RETRY_BASE_DELAY_SECONDS,
        failure_threshold=cfg.UPSTREAM_CIRCUIT_FAILURE_THRESHOLD,
        recovery_timeout=cfg.UPSTREAM_CIRCUIT_RECOVERY_SECONDS,
    )


_PROVIDER_FACTORIES: dict[str, Callable[[Settings], BaseScoreProvider]] = {
    "api_football": lambda cfg: ApiFootballProvider(
        api_key=cfg.API_FOOTBALL_KEY,
        base_url=cfg.API_FOOTBALL_BASE_URL,
        client=_upstream_client(cfg, "api_football"),
    ),
    "football_data": lambda cfg: FootballDataProvider(
        api_key=cfg.FOOTBALL_DATA_API_KEY,
        base_url=cfg.FOOTBALL_DATA_BASE_URL,
        client=_upstream_client(cfg, "football_data"),
        days_ahead=cfg.SCHEDULE_DAYS_AHEAD,
    ),
}


def build_live_adapter(cfg: Settings) -> LiveDataAdapter:
    """Fetch adapter with one provider instance per configured name."""
    instances: dict[str, BaseScoreProvider] = {}

    def resolve(names: list[str]) -> list[BaseScoreProvider]:
        out: list[BaseScoreProvider] = []
        for name in names:
            factory = _PROVIDER_FACTORIES.get(name)
            if factory is None:
                logger.warning("Unknown score provider '%s' in provider order; ignoring", name)
                continue
            if name not in instances:
                instances[name] = factory(cfg)
            out.append(instances[name])
        return out

    live = resolve(provider_order(cfg.LIVE_PROVIDER_ORDER))
    schedule = resolve(provider_order(cfg.SCHEDULE_PROVIDER_ORDER))
    logger.info(
        "Providers: live=%s schedule=%s",
        [p.name for p in live if p.enabled],
        [p.name for p in schedule if p.enabled],
    )
    # Bounded per provider call; retries inside ResilientClient count against it.
    timeout = cfg.UPSTREAM_TIMEOUT_SECONDS * (cfg.UPSTREAM_MAX_RETRIES + 1) + cfg.UPSTREAM_RETRY_BASE_DELAY_SECONDS * 2
    return LiveDataAdapter(live_providers=live, schedule_providers=schedule, timeout_seconds=timeout)


@dataclass
class LiveEngine:
    adapter: LiveDataAdapter
    cache: SnapshotCache
    bus: InMemoryEventBus
    websocket_manager: WebSocketManager
    notifications: NotificationService
    ticket_parser: SportyBetParser
    scheduler: AsyncIOScheduler
    poller: LivePoller
    enabled: bool = True
    ws_enabled: bool = True

    async def start(self) -> None:
        if self.ws_enabled:
            await self.websocket_manager.start()
        await self.bus.start()
        self.scheduler.start()
        if self.enabled:
            await self.poller.start()
        else:
            logger.info("Live poller disabled via config")

    async def stop(self) -> None:
        await self.poller.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await self.bus.stop()
        await self.websocket_manager.stop()
        await self.adapter.aclose()
        await self.ticket_parser.aclose()
        await self.notifications.aclose()

    def stats(self) -> dict:
        return {
            "poller": self.poller.stats(),
            "cache": self.cache.stats(),
            "event_bus": self.bus.stats(),
            "websocket": self.websocket_manager.stats(),
        }


def build_engine(cfg: Settings) -> LiveEngine:
    adapter = build_live_adapter(cfg)
    cache = SnapshotCache(
        fetchers={
            SnapshotKind.live: adapter.fetch_live,
            SnapshotKind.schedule: adapter.fetch_schedule,
        },
        ttl_ms={
            SnapshotKind.live: cfg.LIVE_CACHE_TTL_MS,
            SnapshotKind.schedule: cfg.SCHEDULE_CACHE_TTL_MS,
        },
    )
    bus = InMemoryEventBus(
        ingress_maxsize=cfg.EVENT_BUS_INGRESS_QUEUE_MAXSIZE,
        handler_maxsize=cfg.EVENT_BUS_HANDLER_QUEUE_MAXSIZE,
        error_buffer_size=cfg.EVENT_BUS_ERROR_BUFFER_SIZE,
    )
    ws_manager = WebSocketManager(
        max_connections=cfg.WS_MAX_CONNECTIONS,
        heartbeat_seconds=cfg.WS_HEARTBEAT_SECONDS,
    )
    notifications = NotificationService(
        email_host=cfg.EMAIL_HOST,
        email_port=cfg.EMAIL_PORT,
        email_user=cfg.EMAIL_USER,
        email_password=cfg.EMAIL_PASS,
        email_from=cfg.EMAIL_FROM,
        webhook_timeout=cfg.WEBHOOK_TIMEOUT_SECONDS,
    )
    register_event_handlers(
        bus,
        websocket_manager=ws_manager if cfg.WS_EVENTS_ENABLED and cfg.EVENT_HANDLER_WS_BROADCAST_ENABLED else None,
        notifications=notifications if cfg.EVENT_HANDLER_NOTIFICATIONS_ENABLED else None,
    )
    ticket_parser = SportyBetParser(
        base_url=cfg.SPORTYBET_BASE_URL,
        country=cfg.SPORTYBET_COUNTRY,
        client=ResilientClient("sportybet", timeout=cfg.TICKET_TIMEOUT_SECONDS, max_retries=1),
    )
    scheduler = AsyncIOScheduler()
    poller = LivePoller(
        cache=cache,
        load_bets=list_tracked_bets,
        bus=bus,
        scheduler=scheduler,
        interval_ms=cfg.LIVE_POLL_INTERVAL_MS,
    )
    return LiveEngine(
        adapter=adapter,
        cache=cache,
        bus=bus,
        websocket_manager=ws_manager,
        notifications=notifications,
        ticket_parser=ticket_parser,
        scheduler=scheduler,
        poller=poller,
        enabled=cfg.LIVE_ENGINE_ENABLED,
        ws_enabled=cfg.WS_EVENTS_ENABLED,
    )


def get_engine(request: Request) -> LiveEngine:
    """FastAPI dependency: the engine built in the lifespan."""
    return request.app.state.engine
