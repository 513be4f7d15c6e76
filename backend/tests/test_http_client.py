"""
backend/tests/test_http_client.py

Purpose:
    ResilientClient error mapping: 5xx retry, 429 surfacing without retry or
    circuit trip, circuit breaker opening, and invalid JSON handling.
"""

from __future__ import annotations

import sys

import httpx
import pytest

sys.path.insert(0, "backend")

from trackit.providers.http_client import (
    RateLimitedError,
    ResilientClient,
    UpstreamUnavailableError,
    safe_url,
)


def _client(handler, **kwargs) -> ResilientClient:
    kwargs.setdefault("base_delay", 0)
    client = ResilientClient("test", **kwargs)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_get_json_success():
    client = _client(lambda request: httpx.Response(200, json={"ok": True}))
    assert await client.get_json("https://api.example/x") == {"ok": True}
    assert client.circuit.failure_count == 0


@pytest.mark.asyncio
async def test_server_error_is_retried_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json=[1, 2])

    client = _client(handler, max_retries=1)
    assert await client.get_json("https://api.example/x") == [1, 2]
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_rate_limit_is_not_retried_and_leaves_circuit_closed():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, headers={"Retry-After": "42"})

    client = _client(handler, max_retries=3, failure_threshold=1)
    with pytest.raises(RateLimitedError) as exc_info:
        await client.get_json("https://api.example/x")

    assert exc_info.value.retry_after == 42.0
    assert len(calls) == 1
    assert not client.circuit.is_open


@pytest.mark.asyncio
async def test_non_2xx_and_network_errors_open_the_circuit():
    def handler(request):
        if request.url.path == "/down":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(404)

    client = _client(handler, max_retries=0, failure_threshold=2)
    with pytest.raises(UpstreamUnavailableError):
        await client.get_json("https://api.example/missing")
    with pytest.raises(UpstreamUnavailableError):
        await client.get_json("https://api.example/down")
    assert client.circuit.is_open

    with pytest.raises(UpstreamUnavailableError, match="circuit open"):
        await client.get_json("https://api.example/missing")


@pytest.mark.asyncio
async def test_invalid_json_is_unavailable():
    client = _client(lambda request: httpx.Response(200, content=b"<html>"))
    with pytest.raises(UpstreamUnavailableError, match="invalid JSON"):
        await client.get_json("https://api.example/x")


def test_safe_url_drops_query_string():
    assert safe_url("https://api.example/v4/matches?token=secret&x=1") == "https://api.example/v4/matches"
