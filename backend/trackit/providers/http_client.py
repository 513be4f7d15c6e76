"""
backend/trackit/providers/http_client.py

Purpose:
    Shared outbound HTTP for every upstream (score providers, ticket lookup).
    ``ResilientClient.get_json`` retries transient failures (5xx, connect and
    read errors) with exponential backoff, keeps a per-upstream circuit breaker,
    and reduces every other outcome to ``UpstreamUnavailableError`` or
    ``RateLimitedError`` so callers handle exactly two failure types.

Dependencies:
    - httpx
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger("trackit.http_client")

# 429 is absent on purpose: rate limits go straight back to the snapshot cache.
TRANSIENT_STATUSES = frozenset({500, 502, 503, 504})
TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)
RETRY_AFTER_HEADERS = ("retry-after", "x-ratelimit-retry-after")


class UpstreamUnavailableError(Exception):
    """Network failure, timeout, non-2xx answer or unreadable body."""


class RateLimitedError(UpstreamUnavailableError):
    """Upstream answered HTTP 429."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


@dataclass
class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failures; half-opens after ``recovery_timeout`` seconds."""

    name: str = "upstream"
    failure_threshold: int = 3
    recovery_timeout: float = 120
    failure_count: int = 0
    opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def allows_request(self) -> bool:
        if self.opened_at is None:
            return True
        if time.monotonic() - self.opened_at >= self.recovery_timeout:
            logger.info("[%s] circuit half-open, letting one request through", self.name)
            return True
        return False

    def succeeded(self) -> None:
        if self.opened_at is not None:
            logger.info("[%s] circuit closed", self.name)
        self.failure_count = 0
        self.opened_at = None

    def failed(self) -> None:
        self.failure_count += 1
        if self.failure_count < self.failure_threshold:
            return
        if self.opened_at is None:
            logger.warning("[%s] circuit OPEN after %d consecutive failures", self.name, self.failure_count)
        # A failed half-open probe restarts the recovery window.
        self.opened_at = time.monotonic()


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    for header in RETRY_AFTER_HEADERS:
        try:
            return float(response.headers[header])
        except (KeyError, ValueError):
            continue
    return None


def safe_url(url: str) -> str:
    """URL without its query string, which may carry API keys."""
    parts = urlsplit(str(url))
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


class ResilientClient:
    def __init__(
        self,
        name: str,
        timeout: float = 10.0,
        max_retries: int = 1,
        base_delay: float = 1.0,
        failure_threshold: int = 3,
        recovery_timeout: int = 120,
    ):
        self._client = httpx.AsyncClient(timeout=timeout)
        self._name = name
        self._attempts = max(0, int(max_retries)) + 1
        self._base_delay = base_delay
        self.circuit = CircuitBreaker(name, failure_threshold, recovery_timeout)

    async def _send(self, url: str, **kwargs) -> httpx.Response:
        """GET with backoff on transient failures. Returns the last response or raises the last error."""
        for attempt in range(1, self._attempts + 1):
            final = attempt == self._attempts
            try:
                resp = await self._client.get(url, **kwargs)
            except TRANSIENT_ERRORS as exc:
                logger.warning("[%s] %s on %s (try %d/%d)", self._name, type(exc).__name__, safe_url(url), attempt, self._attempts)
                if final:
                    raise
            else:
                if resp.status_code not in TRANSIENT_STATUSES or final:
                    return resp
                logger.warning("[%s] HTTP %d on %s (try %d/%d)", self._name, resp.status_code, safe_url(url), attempt, self._attempts)
            await asyncio.sleep(self._base_delay * 2 ** (attempt - 1))
        raise AssertionError("unreachable")

    async def get_json(self, url: str, **kwargs) -> Any:
        """GET a JSON document, mapping every failure onto the upstream error types."""
        if not self.circuit.allows_request():
            raise UpstreamUnavailableError(f"{self._name}: circuit open")

        try:
            resp = await self._send(url, **kwargs)
        except httpx.HTTPError as exc:
            self.circuit.failed()
            raise UpstreamUnavailableError(f"{self._name}: {exc!r}") from exc

        if resp.status_code == 429:
            # Not a health signal, the circuit stays as it is.
            retry_after = retry_after_seconds(resp)
            logger.warning("[%s] rate limited on %s (retry_after=%s)", self._name, safe_url(url), retry_after)
            raise RateLimitedError(f"{self._name}: HTTP 429", retry_after=retry_after)

        if resp.is_success:
            try:
                payload = resp.json()
            except ValueError as exc:
                self.circuit.failed()
                raise UpstreamUnavailableError(f"{self._name}: invalid JSON body") from exc
            self.circuit.succeeded()
            return payload

        self.circuit.failed()
        logger.error("[%s] giving up on %s with HTTP %d", self._name, safe_url(url), resp.status_code)
        raise UpstreamUnavailableError(f"{self._name}: HTTP {resp.status_code}")

    async def aclose(self) -> None:
        await self._client.aclose()
