"""
Notifier tests.

Covers:
    - Slack payload and channel routing (urgent vs regular)
    - WhatsApp payload and bearer auth
    - Log-only mode when channels are not configured
    - Channel failure → NotificationError, in-app record still stored
    - Recipient lookup failure → NotificationError on the in-app channel
"""

import pytest
import requests
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from osflow.core.exceptions import NotificationError
from osflow.models import db
from osflow.models.notification import Notification
from osflow.models.workflow import Role
from osflow.services.notifier import Notifier


class _FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class _FakeSession:
    """Stand-in for requests.Session recording every POST."""

    def __init__(self, status_for=None):
        self.posts = []
        self.status_for = status_for or {}

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers or {}, "timeout": timeout})
        for prefix, status in self.status_for.items():
            if url.startswith(prefix):
                return _FakeResponse(status)
        return _FakeResponse(200)


def _notifier(session, **kw):
    kw.setdefault("slack_webhook_url", "https://hooks.slack.test/T000/B000")
    kw.setdefault("whatsapp_api_url", "https://wa.test/v1/")
    kw.setdefault("whatsapp_api_token", "wa-token")
    return Notifier(session=session, timeout=3, **kw)


def _stored():
    return db.session.execute(select(Notification).order_by(Notification.id)).scalars().all()


@pytest.fixture()
def editor(team):
    user = team[Role.EDITOR]
    user.phone = "+5511999990000"
    db.session.commit()
    return user


@pytest.mark.unit
class TestDelivery:
    def test_sends_to_slack_and_whatsapp(self, editor):
        session = _FakeSession()

        record = _notifier(session).notify(editor.id, "SLA AT RISK", order_id=None)

        slack, whatsapp = session.posts
        assert slack["url"] == "https://hooks.slack.test/T000/B000"
        assert slack["json"] == {
            "text": "<@editor@studio.test> SLA AT RISK",
            "channel": "#os-conteudo",
            "username": "SLA Monitor",
            "icon_emoji": ":warning:",
        }
        assert slack["timeout"] == 3
        assert whatsapp["url"] == "https://wa.test/v1/messages"
        assert whatsapp["json"] == {"to": "+5511999990000", "type": "text", "text": {"body": "SLA AT RISK"}}
        assert whatsapp["headers"]["Authorization"] == "Bearer wa-token"

        assert record.channels == {"slack": "sent", "whatsapp": "sent"}
        assert record.severity == "warning"
        assert record.user_id == editor.id

    def test_urgent_goes_to_urgent_channel(self, editor):
        session = _FakeSession()

        record = _notifier(session).notify(editor.id, "SLA OVERDUE", urgent=True)

        assert session.posts[0]["json"]["channel"] == "#os-urgente"
        assert record.severity == "error"

    def test_unconfigured_channels_only_log(self, editor, caplog):
        session = _FakeSession()
        notifier = Notifier(session=session)

        with caplog.at_level("INFO", logger="osflow.services.notifier"):
            record = notifier.notify(editor.id, "SLA AT RISK")

        assert session.posts == []
        assert record.channels == {"slack": "skipped", "whatsapp": "skipped"}
        assert "Slack (log only)" in caplog.text
        assert len(_stored()) == 1

    def test_user_without_phone_skips_whatsapp(self, team):
        session = _FakeSession()

        record = _notifier(session).notify(team[Role.VIDEO].id, "SLA AT RISK")

        assert [p["url"] for p in session.posts] == ["https://hooks.slack.test/T000/B000"]
        assert record.channels["whatsapp"] == "skipped"

    def test_from_config(self, app):
        notifier = Notifier.from_config({
            "SLACK_WEBHOOK_URL": "https://hooks.slack.test/x",
            "SLACK_CHANNEL": "#content",
            "NOTIFY_TIMEOUT_SECONDS": 7,
        })

        assert notifier.slack_channel == "#content"
        assert notifier.slack_urgent_channel == "#os-urgente"
        assert notifier.whatsapp_api_url is None
        assert notifier.timeout == 7


@pytest.mark.unit
class TestFailures:
    def test_slack_error_raises_after_trying_whatsapp(self, editor):
        session = _FakeSession(status_for={"https://hooks.slack.test": 500})

        with pytest.raises(NotificationError) as exc:
            _notifier(session).notify(editor.id, "SLA OVERDUE", urgent=True)

        assert exc.value.channel == "slack"
        assert exc.value.recipient == editor.id
        assert len(session.posts) == 2
        stored = _stored()
        assert len(stored) == 1
        assert stored[0].channels == {"slack": "failed", "whatsapp": "sent"}

    def test_unknown_user(self, team):
        with pytest.raises(NotificationError, match="unknown user"):
            _notifier(_FakeSession()).notify("nobody", "hello")
        assert _stored() == []

    def test_recipient_lookup_error_becomes_notification_error(self, editor, monkeypatch):
        session = _FakeSession()

        def get(*args, **kwargs):
            raise OperationalError("SELECT users", {}, Exception("connection reset"))

        monkeypatch.setattr(db.session, "get", get)
        with pytest.raises(NotificationError, match="connection reset") as exc:
            _notifier(session).notify(editor.id, "SLA OVERDUE", urgent=True)

        assert exc.value.channel == "in_app"
        assert exc.value.recipient == editor.id
        assert session.posts == []
        monkeypatch.undo()
        assert _stored() == []
