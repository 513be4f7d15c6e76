"""
backend/trackit/config.py

Purpose:
    Central settings loading for the TrackIT backend.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "trackit"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Live engine (poll -> cache -> correlate -> publish)
    LIVE_ENGINE_ENABLED: bool = True
    LIVE_POLL_INTERVAL_MS: int = 60_000
    LIVE_CACHE_TTL_MS: int = 30_000
    SCHEDULE_CACHE_TTL_MS: int = 60_000

    # Upstream HTTP behaviour (shared by all score providers)
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0
    UPSTREAM_MAX_RETRIES: int = 1
    UPSTREAM_RETRY_BASE_DELAY_SECONDS: float = 1.0
    UPSTREAM_CIRCUIT_FAILURE_THRESHOLD: int = 3
    UPSTREAM_CIRCUIT_RECOVERY_SECONDS: int = 120
    # Comma separated, first provider wins when healthy
    LIVE_PROVIDER_ORDER: str = "api_football,football_data"
    SCHEDULE_PROVIDER_ORDER: str = "football_data"
    SCHEDULE_DAYS_AHEAD: int = 2

    # api-football (api-sports.io), live scores
    API_FOOTBALL_KEY: str = ""
    API_FOOTBALL_BASE_URL: str = "https://v3.football.api-sports.io"

    # football-data.org, live scores + fixtures
    FOOTBALL_DATA_API_KEY: str = ""
    FOOTBALL_DATA_BASE_URL: str = "https://api.football-data.org/v4"

    # Ticket platform
    SPORTYBET_BASE_URL: str = "https://www.sportybet.com"
    SPORTYBET_COUNTRY: str = "ng"
    TICKET_TIMEOUT_SECONDS: float = 15.0

    # Notifications
    EMAIL_HOST: str = ""
    EMAIL_PORT: int = 587
    EMAIL_USER: str = ""
    EMAIL_PASS: str = ""
    EMAIL_FROM: str = ""
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Event bus (in-process)
    EVENT_BUS_INGRESS_QUEUE_MAXSIZE: int = 1000
    EVENT_BUS_HANDLER_QUEUE_MAXSIZE: int = 500
    EVENT_BUS_ERROR_BUFFER_SIZE: int = 100
    EVENT_HANDLER_WS_BROADCAST_ENABLED: bool = True
    EVENT_HANDLER_NOTIFICATIONS_ENABLED: bool = True

    # WebSocket realtime stream
    WS_EVENTS_ENABLED: bool = True
    WS_HEARTBEAT_SECONDS: int = 30
    WS_MAX_CONNECTIONS: int = 500

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


def provider_order(raw: str) -> list[str]:
    """Split a comma separated provider list, dropping blanks and duplicates."""
    out: list[str] = []
    for item in str(raw or "").split(","):
        name = item.strip().lower()
        if name and name not in out:
            out.append(name)
    return out


settings = Settings()
