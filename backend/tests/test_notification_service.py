"""
backend/tests/test_notification_service.py

Purpose:
    Subscription storage and per-channel dispatch (console, email via SMTP,
    webhook via httpx), including swallowed delivery failures.
"""

from __future__ import annotations

import logging
import sys
from types import SimpleNamespace

import httpx
import pytest
from bson import ObjectId

sys.path.insert(0, "backend")

import trackit.database as _db
from trackit.services import notification_service
from trackit.services.notification_service import NotificationService


class _FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length=100):
        return [dict(d) for d in self.docs]


class _FakeCollection:
    def __init__(self):
        self.docs: list[dict] = []

    async def insert_one(self, doc):
        doc.setdefault("_id", ObjectId())
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    def find(self, query=None, projection=None):
        query = query or {}
        return _FakeCursor([d for d in self.docs if all(d.get(k) == v for k, v in query.items())])


class _FakeSMTP:
    instances: list["_FakeSMTP"] = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.steps: list[str] = []
        self.sent = []
        _FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        self.steps.append("ehlo")

    def starttls(self):
        self.steps.append("starttls")

    def login(self, user, password):
        self.steps.append(f"login:{user}")

    def send_message(self, msg):
        self.sent.append(msg)


@pytest.fixture
def fake_db(monkeypatch):
    db = SimpleNamespace(subscriptions=_FakeCollection(), event_logs=_FakeCollection())
    monkeypatch.setattr(_db, "db", db)
    return db


def _service(handler=None, **kwargs) -> NotificationService:
    transport = httpx.MockTransport(handler or (lambda request: httpx.Response(200)))
    return NotificationService(http_client=httpx.AsyncClient(transport=transport), **kwargs)


@pytest.mark.asyncio
async def test_subscribe_stores_and_logs(fake_db):
    service = _service()
    sub = await service.subscribe("bet-1", "EMAIL", "fan@example.com")

    assert sub.channel.value == "email"
    assert sub.bet_id == "bet-1"
    assert fake_db.event_logs.docs[0]["event_type"] == "subscription_created"

    subs = await service.list_subscriptions("bet-1")
    assert [(s.channel.value, s.target) for s in subs] == [("email", "fan@example.com")]
    assert await service.list_subscriptions("other") == []


@pytest.mark.asyncio
async def test_subscribe_defaults_to_console(fake_db):
    sub = await _service().subscribe("bet-1", "", "ops")
    assert sub.channel.value == "console"


@pytest.mark.asyncio
async def test_console_channel_logs_framed_block(caplog):
    service = _service()
    with caplog.at_level(logging.INFO, logger="trackit.notifications"):
        ok = await service.send(channel="console", target="ops", subject="Hello", message="line 1\nline 2")
    assert ok is True
    assert "NOTIFICATION" in caplog.text
    assert "|  line 2" in caplog.text


@pytest.mark.asyncio
async def test_webhook_posts_json_and_treats_non_2xx_as_failure():
    requests: list[httpx.Request] = []

    def handler(request):
        requests.append(request)
        return httpx.Response(500 if request.url.path == "/broken" else 204)

    service = _service(handler)
    assert await service.send(channel="webhook", target="https://hooks.example/ok", subject="S", message="M") is True
    assert await service.send(channel="webhook", target="https://hooks.example/broken", subject="S", message="M") is False

    body = requests[0].read().decode()
    assert '"subject":"S"' in body.replace(" ", "")
    assert '"timestamp"' in body


@pytest.mark.asyncio
async def test_email_uses_starttls_when_configured(monkeypatch):
    _FakeSMTP.instances.clear()
    monkeypatch.setattr(notification_service.smtplib, "SMTP", _FakeSMTP)
    service = _service(
        email_host="smtp.example.com",
        email_port=587,
        email_user="bot@example.com",
        email_password="secret",
    )

    ok = await service.send(channel="email", target="fan@example.com", subject="Live", message="1-0")

    assert ok is True
    smtp = _FakeSMTP.instances[0]
    assert smtp.steps == ["ehlo", "starttls", "ehlo", "login:bot@example.com"]
    assert smtp.sent[0]["To"] == "fan@example.com"
    assert smtp.sent[0]["From"] == "bot@example.com"


@pytest.mark.asyncio
async def test_email_without_config_falls_back_to_console(monkeypatch, caplog):
    _FakeSMTP.instances.clear()
    monkeypatch.setattr(notification_service.smtplib, "SMTP", _FakeSMTP)
    service = _service()
    with caplog.at_level(logging.INFO, logger="trackit.notifications"):
        ok = await service.send(channel="email", target="fan@example.com", subject="Live", message="1-0")
    assert ok is True
    assert _FakeSMTP.instances == []
    assert "NOTIFICATION" in caplog.text


@pytest.mark.asyncio
async def test_smtp_failure_is_swallowed(monkeypatch):
    class _BrokenSMTP(_FakeSMTP):
        def login(self, user, password):
            raise OSError("auth failed")

    monkeypatch.setattr(notification_service.smtplib, "SMTP", _BrokenSMTP)
    service = _service(email_host="smtp.example.com", email_user="u", email_password="p")
    assert await service.send(channel="email", target="x@example.com", subject="S", message="M") is False
