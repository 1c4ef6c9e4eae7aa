"""
Notifier — delivers SLA messages to a user.

Every delivery is stored as an in-app ``Notification`` first, then pushed to:
    - Slack incoming webhook  (``#os-conteudo``; urgent → ``#os-urgente``)
    - WhatsApp HTTP API       (``POST {WHATSAPP_API_URL}/messages``)

A channel without configuration logs the message instead of sending it.
Any channel failure raises ``NotificationError`` after the remaining channels
have been tried; the in-app record keeps the per-channel outcome.

Configuration (app.config / env vars):
    SLACK_WEBHOOK_URL, SLACK_CHANNEL, SLACK_URGENT_CHANNEL
    WHATSAPP_API_URL, WHATSAPP_API_TOKEN
    NOTIFY_TIMEOUT_SECONDS
"""

from __future__ import annotations

import logging

import requests
from sqlalchemy.exc import SQLAlchemyError

from osflow.core.exceptions import NotificationError
from osflow.models import db
from osflow.models.auth import User
from osflow.models.notification import Notification

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10


class Notifier:
    """Multi-channel notifier.

    Args:
        session: Optional ``requests.Session`` (tests inject a fake).
    """

    def __init__(
        self,
        *,
        slack_webhook_url: str | None = None,
        slack_channel: str = "#os-conteudo",
        slack_urgent_channel: str = "#os-urgente",
        whatsapp_api_url: str | None = None,
        whatsapp_api_token: str | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.slack_webhook_url = slack_webhook_url
        self.slack_channel = slack_channel
        self.slack_urgent_channel = slack_urgent_channel
        self.whatsapp_api_url = whatsapp_api_url.rstrip("/") if whatsapp_api_url else None
        self.whatsapp_api_token = whatsapp_api_token
        self.timeout = timeout
        self._session = session

    @classmethod
    def from_config(cls, config, session: requests.Session | None = None) -> "Notifier":
        return cls(
            slack_webhook_url=config.get("SLACK_WEBHOOK_URL"),
            slack_channel=config.get("SLACK_CHANNEL") or "#os-conteudo",
            slack_urgent_channel=config.get("SLACK_URGENT_CHANNEL") or "#os-urgente",
            whatsapp_api_url=config.get("WHATSAPP_API_URL"),
            whatsapp_api_token=config.get("WHATSAPP_API_TOKEN"),
            timeout=config.get("NOTIFY_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT),
            session=session,
        )

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Public API ───────────────────────────────────────────────────────

    def notify(
        self,
        user_id: str,
        message: str,
        *,
        urgent: bool = False,
        order_id: str | None = None,
        title: str = "SLA alert",
    ) -> Notification:
        """Deliver *message* to *user_id* on every channel.

        Raises:
            NotificationError: unknown user, or at least one channel failed.
        """
        try:
            user = db.session.get(User, user_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning("Recipient lookup failed for %s: %s", user_id, exc, extra={"channel": "in_app"})
            raise NotificationError("in_app", user_id, str(exc)) from exc
        if user is None:
            raise NotificationError("in_app", user_id, "unknown user")

        outcome = {
            "slack": self._send_slack(user, message, urgent),
            "whatsapp": self._send_whatsapp(user, message),
        }

        record = Notification(
            org_id=user.org_id,
            user_id=user.id,
            order_id=order_id,
            title=title,
            message=message,
            category="sla",
            severity="error" if urgent else "warning",
            channels={name: status for name, (status, _reason) in outcome.items()},
        )
        try:
            db.session.add(record)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise NotificationError("in_app", user_id, str(exc)) from exc

        failed = [(name, reason) for name, (status, reason) in outcome.items() if status == "failed"]
        if failed:
            channel, reason = failed[0]
            raise NotificationError(channel, user_id, reason)
        return record

    # ── Channels ─────────────────────────────────────────────────────────

    def _send_slack(self, user: User, message: str, urgent: bool) -> tuple[str, str | None]:
        channel = self.slack_urgent_channel if urgent else self.slack_channel
        text = f"<@{user.email}> {message}"
        if not self.slack_webhook_url:
            logger.info("Slack (log only): channel=%s to=%s\n%s", channel, user.email, text,
                        extra={"channel": "slack"})
            return "skipped", None
        payload = {
            "text": text,
            "channel": channel,
            "username": "SLA Monitor",
            "icon_emoji": ":warning:",
        }
        try:
            resp = self.session.post(self.slack_webhook_url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Slack delivery failed: to=%s error=%s", user.email, exc,
                           extra={"channel": "slack"})
            return "failed", str(exc)
        logger.info("Slack sent: channel=%s to=%s", channel, user.email, extra={"channel": "slack"})
        return "sent", None

    def _send_whatsapp(self, user: User, message: str) -> tuple[str, str | None]:
        if not self.whatsapp_api_url or not self.whatsapp_api_token:
            logger.info("WhatsApp (log only): to=%s\n%s", user.phone or user.email, message,
                        extra={"channel": "whatsapp"})
            return "skipped", None
        if not user.phone:
            logger.info("WhatsApp skipped: user %s has no phone", user.id, extra={"channel": "whatsapp"})
            return "skipped", None
        try:
            resp = self.session.post(
                f"{self.whatsapp_api_url}/messages",
                json={"to": user.phone, "type": "text", "text": {"body": message}},
                headers={"Authorization": f"Bearer {self.whatsapp_api_token}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("WhatsApp delivery failed: to=%s error=%s", user.phone, exc,
                           extra={"channel": "whatsapp"})
            return "failed", str(exc)
        logger.info("WhatsApp sent: to=%s", user.phone, extra={"channel": "whatsapp"})
        return "sent", None
