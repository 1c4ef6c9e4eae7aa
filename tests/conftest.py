"""
Shared pytest fixtures for the Content OS workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - clock: movable fake UTC clock
    - notifier: recording notifier (optionally failing for chosen users)
    - org / team: an organization with one active user per pipeline role + admins
"""

from datetime import datetime, timedelta, timezone

import pytest

from osflow import create_app
from osflow.core.exceptions import NotificationError
from osflow.models import db as _db
from osflow.models.auth import Organization, OrgRole, User
from osflow.models.workflow import Role
from osflow.services import metrics


class FakeClock:
    """Callable clock returning a fixed instant until moved."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class RecordingNotifier:
    """Records every notify() call; raises NotificationError for ``fail_for`` users."""

    def __init__(self, fail_for=()):
        self.calls: list[dict] = []
        self.fail_for = set(fail_for)

    def notify(self, user_id, message, *, urgent=False, order_id=None, title="SLA alert"):
        if user_id in self.fail_for:
            raise NotificationError("slack", user_id, "webhook returned 500")
        self.calls.append({"user_id": user_id, "message": message, "urgent": urgent, "order_id": order_id})

    def recipients(self) -> list[str]:
        return [c["user_id"] for c in self.calls]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    metrics.reset()
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Collaborator fakes ───────────────────────────────────────────────────


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def notifier():
    return RecordingNotifier()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def org():
    o = Organization(name="Studio Raytchel", slug="studio-raytchel")
    _db.session.add(o)
    _db.session.commit()
    return o


@pytest.fixture()
def team(org):
    """One active user per pipeline role, an org admin and a superadmin.

    Returns a dict keyed by Role plus "admin" / "superadmin".
    """
    members = {}
    for role in Role:
        user = User(
            org_id=org.id,
            name=f"{role.value.title()} User",
            email=f"{role.value.lower()}@studio.test",
            role=role,
            can_approve=role in (Role.REVISOR, Role.CRISPIM),
        )
        _db.session.add(user)
        members[role] = user
    members["admin"] = User(
        org_id=org.id, name="Org Admin", email="admin@studio.test", org_role=OrgRole.ORG_ADMIN,
    )
    members["superadmin"] = User(
        org_id=org.id, name="Super Admin", email="root@studio.test", org_role=OrgRole.SUPERADMIN,
    )
    _db.session.add_all([members["admin"], members["superadmin"]])
    _db.session.commit()
    return members
