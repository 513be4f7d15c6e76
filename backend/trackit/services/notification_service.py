"""
backend/trackit/services/notification_service.py

Purpose:
    Per-bet notification subscriptions and channel dispatch.

    Channels:
        console  - framed block in the application log (always available)
        email    - SMTP with STARTTLS; falls back to console when unconfigured
        webhook  - JSON POST to the target URL

    Delivery failures are logged and swallowed; a broken target never breaks
    the poll loop that triggered it.

Dependencies:
    - httpx
    - smtplib
    - trackit.database
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

import httpx

import trackit.database as _db
from trackit.models.bet import NotificationChannel, Subscription
from trackit.services.bet_service import add_event_log
from trackit.utils import as_utc, utcnow

logger = logging.getLogger("trackit.notifications")


class NotificationService:
    def __init__(
        self,
        *,
        email_host: str = "",
        email_port: int = 587,
        email_user: str = "",
        email_password: str = "",
        email_from: str = "",
        webhook_timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._email_host = email_host.strip()
        self._email_port = int(email_port or 587)
        self._email_user = email_user.strip()
        self._email_password = email_password
        self._email_from = (email_from or email_user).strip()
        self._http = http_client or httpx.AsyncClient(timeout=webhook_timeout)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(self, bet_id: str, channel: str, target: str) -> Subscription:
        """Register a notification target for a bet."""
        doc = {
            "bet_id": str(bet_id),
            "channel": NotificationChannel(str(channel or "console").lower()).value,
            "target": str(target).strip(),
            "created_at": utcnow(),
        }
        result = await _db.db.subscriptions.insert_one(doc)
        subscription = Subscription(
            id=str(result.inserted_id),
            bet_id=doc["bet_id"],
            channel=doc["channel"],
            target=doc["target"],
            created_at=doc["created_at"],
        )
        await add_event_log("subscription_created", subscription.model_dump(mode="json"))
        logger.info("Subscribed bet=%s -> %s:%s", bet_id, subscription.channel.value, subscription.target)
        return subscription

    async def list_subscriptions(self, bet_id: str) -> list[Subscription]:
        docs = await _db.db.subscriptions.find({"bet_id": str(bet_id)}).to_list(length=100)
        return [
            Subscription(
                id=str(d["_id"]),
                bet_id=d["bet_id"],
                channel=d.get("channel") or "console",
                target=d.get("target") or "",
                created_at=as_utc(d.get("created_at")) or utcnow(),
            )
            for d in docs
        ]

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def send(self, *, channel: str, target: str, subject: str, message: str) -> bool:
        """Dispatch one notification. Returns False when delivery failed."""
        ch = str(channel or "console").lower()
        try:
            if ch == NotificationChannel.email.value:
                await self._send_email(to=target, subject=subject, message=message)
            elif ch == NotificationChannel.webhook.value:
                await self._send_webhook(url=target, subject=subject, message=message)
            else:
                self._log_notification(target=target, subject=subject, message=message)
            return True
        except Exception as e:
            logger.error("Notification send failed (%s -> %s): %s", ch, target, e)
            return False

    def _log_notification(self, *, target: str, subject: str, message: str) -> None:
        body = "\n".join(f"|  {line}" for line in message.splitlines())
        logger.info(
            "\n+--------------------------------------\n"
            "| NOTIFICATION\n"
            "|  To:      %s\n"
            "|  Subject: %s\n"
            "+--------------------------------------\n"
            "%s\n"
            "+--------------------------------------",
            target, subject, body,
        )

    async def _send_email(self, *, to: str, subject: str, message: str) -> None:
        if not self._email_host or not self._email_user or not self._email_password:
            logger.warning("Email not configured (EMAIL_HOST/EMAIL_USER/EMAIL_PASS); falling back to console")
            self._log_notification(target=to, subject=subject, message=message)
            return

        msg = EmailMessage()
        msg["From"] = self._email_from
        msg["To"] = to
        msg["Subject"] = str(subject or "").strip()[:160]
        msg.set_content(str(message or ""))
        await asyncio.to_thread(self._smtp_send, msg)
        logger.info("Email sent to %s: %s", to, subject)

    def _smtp_send(self, msg: EmailMessage) -> None:
        if self._email_port == 465:
            with smtplib.SMTP_SSL(self._email_host, self._email_port, timeout=15) as smtp:
                smtp.login(self._email_user, self._email_password)
                smtp.send_message(msg)
            return
        with smtplib.SMTP(self._email_host, self._email_port, timeout=15) as smtp:
            smtp.ehlo()
            smtp.starttls()
            smtp.ehlo()
            smtp.login(self._email_user, self._email_password)
            smtp.send_message(msg)

    async def _send_webhook(self, *, url: str, subject: str, message: str) -> None:
        resp = await self._http.post(
            url,
            json={"subject": subject, "message": message, "timestamp": utcnow().isoformat()},
        )
        if not 200 <= resp.status_code < 300:
            raise RuntimeError(f"Webhook HTTP {resp.status_code}")
        logger.info("Webhook posted to %s", url)

    async def aclose(self) -> None:
        await self._http.aclose()
