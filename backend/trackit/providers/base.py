from abc import ABC, abstractmethod
from typing import Any

from trackit.providers.http_client import UpstreamUnavailableError


class BaseScoreProvider(ABC):
    """Abstract base class for live-score / fixture providers.

    Implementations perform one upstream round trip per call and return raw
    match records; canonical normalization happens in
    ``trackit.providers.normalization``. Failures are raised as
    ``UpstreamUnavailableError`` / ``RateLimitedError``.
    """

    name: str = "unknown"

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """True when the provider is configured (API key present)."""
        ...

    @abstractmethod
    async def fetch_live(self) -> list[dict[str, Any]]:
        """Fetch matches currently in play."""
        ...

    async def fetch_schedule(self) -> list[dict[str, Any]]:
        """Fetch upcoming fixtures.

        Providers without a fixtures feed raise, so a schedule chain that lists
        one moves on to the next provider instead of reporting an empty window.
        """
        raise UpstreamUnavailableError(f"{self.name}: no fixtures feed")

    @property
    def circuit_open(self) -> bool:
        client = getattr(self, "_client", None)
        return bool(client is not None and client.circuit.is_open)

    async def aclose(self) -> None:
        return None
