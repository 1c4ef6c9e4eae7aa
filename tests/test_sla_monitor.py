"""
SLA monitor tests.

Covers:
    - At-risk / overdue classification during a sweep
    - Responsible-user notification and admin escalation rules
    - At most one alert per order, condition and 4h window
    - Notifier failures isolated per recipient
    - Store read failure aborts the sweep
    - SLA stats and the productivity report
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import Select
from sqlalchemy.exc import OperationalError

from osflow.core.exceptions import PersistenceError
from osflow.models import db
from osflow.models.audit import EventAction
from osflow.models.auth import User
from osflow.models.workflow import Priority, Role, ServiceOrder, Stage
from osflow.services import metrics
from osflow.services.directory import Directory
from osflow.services.notifier import Notifier
from osflow.services.order_store import OrderStore
from osflow.services.sla_monitor import SLAMonitor


def _make_order(org, stage=Stage.EDICAO, *, responsible=None, due_in=None, **kw):
    kw.setdefault("title", "Reel: summer launch")
    kw.setdefault("brand", "RAYTCHEL")
    kw.setdefault("priority", Priority.MEDIUM)
    order = ServiceOrder(
        org_id=org.id,
        stage=stage,
        responsible_user_id=responsible.id if responsible else None,
        sla_deadline=due_in,
        **kw,
    )
    db.session.add(order)
    db.session.commit()
    return order


def _alerts(order, action):
    return OrderStore().query_recent_events(order.id, action, datetime(2000, 1, 1, tzinfo=timezone.utc))


class _FailingSelects:
    def __init__(self, real):
        self._real = real

    def execute(self, stmt, *args, **kwargs):
        if isinstance(stmt, Select):
            raise OperationalError("SELECT service_orders", {}, Exception("connection reset"))
        return self._real.execute(stmt, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._real, name)


class _AdminsFailOnce(Directory):
    """Directory whose first admin lookup hits a storage error."""

    def __init__(self):
        super().__init__()
        self.failures_left = 1

    def list_admins(self, org_id):
        if self.failures_left:
            self.failures_left -= 1
            raise PersistenceError("Directory unavailable (list_admins)", operation="list_admins")
        return super().list_admins(org_id)


@pytest.fixture()
def monitor(notifier, clock):
    return SLAMonitor(notifier=notifier, clock=clock)


# ═════════════════════════════════════════════════════════════════════════════
# Sweep
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
class TestSweep:
    def test_high_priority_at_risk_escalates_to_admins(self, monitor, notifier, team, org, clock):
        editor = team[Role.EDITOR]
        order = _make_order(org, responsible=editor, priority=Priority.HIGH,
                            due_in=clock.now + timedelta(hours=2))

        result = monitor.sweep()

        assert result.checked == 1
        assert result.at_risk == 1
        assert result.overdue == 0
        assert notifier.recipients() == [editor.id, team["admin"].id, team["superadmin"].id]
        assert [c["urgent"] for c in notifier.calls] == [False, True, True]
        assert "Remaining: 2h" in notifier.calls[0]["message"]
        assert "HIGH PRIORITY" in notifier.calls[1]["message"]
        assert all(c["order_id"] == order.id for c in notifier.calls)

        events = _alerts(order, EventAction.SLA_AT_RISK)
        assert [e.detail for e in events] == [
            "SLA at risk (2 hours remaining). Stage: EDICAO. Priority: HIGH"
        ]
        assert events[0].payload["hours_remaining"] == 2
        assert events[0].user_id is None

    def test_medium_at_risk_notifies_only_responsible(self, monitor, notifier, team, org, clock):
        editor = team[Role.EDITOR]
        _make_order(org, responsible=editor, due_in=clock.now + timedelta(hours=3, minutes=30))

        result = monitor.sweep()

        assert result.at_risk == 1
        assert notifier.recipients() == [editor.id]
        assert "Remaining: 4h" in notifier.calls[0]["message"]

    def test_overdue_escalates_regardless_of_priority(self, monitor, notifier, team, org, clock):
        revisor = team[Role.REVISOR]
        order = _make_order(org, Stage.REVISAO, responsible=revisor, priority=Priority.LOW,
                            due_in=clock.now - timedelta(hours=3, minutes=30))

        result = monitor.sweep()

        assert result.overdue == 1
        assert notifier.recipients() == [revisor.id, team["admin"].id, team["superadmin"].id]
        assert "SLA OVERDUE - intervention needed" in notifier.calls[1]["message"]
        assert "Current responsible: Revisor User" in notifier.calls[1]["message"]
        events = _alerts(order, EventAction.SLA_OVERDUE)
        assert [e.detail for e in events] == ["SLA overdue by 3 hours. Stage: REVISAO. Priority: LOW"]
        assert metrics.get("sla_overdue") == 1

    def test_unassigned_overdue_order_goes_to_admins(self, monitor, notifier, team, org, clock):
        _make_order(org, due_in=clock.now - timedelta(hours=1))

        monitor.sweep()

        assert notifier.recipients() == [team["admin"].id, team["superadmin"].id]
        assert "Current responsible: Unassigned" in notifier.calls[0]["message"]

    def test_on_track_and_finished_orders_are_left_alone(self, monitor, notifier, team, org, clock):
        _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now + timedelta(hours=10))
        _make_order(org, Stage.POSTADO, due_in=None)
        _make_order(org, Stage.ROTEIRO, due_in=None)

        result = monitor.sweep()

        assert result.checked == 1
        assert result.at_risk == result.overdue == 0
        assert notifier.calls == []

    def test_inactive_admin_not_escalated(self, monitor, notifier, team, org, clock):
        team["superadmin"].is_active = False
        db.session.commit()
        _make_order(org, priority=Priority.HIGH, due_in=clock.now + timedelta(hours=1))

        monitor.sweep()

        assert notifier.recipients() == [team["admin"].id]

    def test_sweep_scoped_to_org(self, monitor, notifier, team, org, clock):
        _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now - timedelta(hours=1))

        result = monitor.sweep(org_id="another-org")

        assert result.checked == 0
        assert notifier.calls == []


@pytest.mark.unit
class TestDeduplication:
    def test_second_sweep_within_window_is_skipped(self, monitor, notifier, team, org, clock):
        order = _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now - timedelta(hours=1))

        monitor.sweep()
        clock.advance(hours=3)
        second = monitor.sweep()

        assert second.skipped == 1
        assert second.overdue == 0
        assert len(notifier.calls) == 3
        assert len(_alerts(order, EventAction.SLA_OVERDUE)) == 1

    def test_alert_repeats_after_window(self, monitor, notifier, team, org, clock):
        order = _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now - timedelta(hours=1))

        monitor.sweep()
        clock.advance(hours=5)
        again = monitor.sweep()

        assert again.overdue == 1
        assert len(_alerts(order, EventAction.SLA_OVERDUE)) == 2
        assert "Overdue by: 6h" in notifier.calls[-3]["message"]

    def test_at_risk_then_overdue_are_separate_conditions(self, monitor, notifier, team, org, clock):
        order = _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now + timedelta(hours=2))

        first = monitor.sweep()
        clock.advance(hours=3)
        second = monitor.sweep()

        assert first.at_risk == 1
        assert second.overdue == 1
        assert len(_alerts(order, EventAction.SLA_AT_RISK)) == 1
        assert len(_alerts(order, EventAction.SLA_OVERDUE)) == 1


@pytest.mark.unit
class TestFailures:
    def test_notifier_failure_is_isolated(self, clock, team, org, notifier):
        notifier.fail_for = {team["admin"].id}
        monitor = SLAMonitor(notifier=notifier, clock=clock)
        first = _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now - timedelta(hours=2))
        second = _make_order(org, responsible=team[Role.VIDEO], due_in=clock.now - timedelta(hours=1))

        result = monitor.sweep()

        assert result.overdue == 2
        assert result.notify_failures == 2
        assert result.notified == 4
        assert team["admin"].id not in notifier.recipients()
        assert notifier.recipients().count(team["superadmin"].id) == 2
        assert len(_alerts(first, EventAction.SLA_OVERDUE)) == 1
        assert len(_alerts(second, EventAction.SLA_OVERDUE)) == 1
        assert metrics.get("notification_failures") == 2

    def test_read_failure_aborts_sweep(self, notifier, clock, team, org):
        _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now - timedelta(hours=1))
        store = OrderStore(session=_FailingSelects(db.session))
        monitor = SLAMonitor(notifier=notifier, store=store, clock=clock)

        with pytest.raises(PersistenceError):
            monitor.sweep()

        assert notifier.calls == []
        assert metrics.get("sweep_failures") == 1
        assert metrics.get("sweeps") == 0

    def test_failed_alert_event_still_notifies(self, monitor, notifier, team, org, clock, monkeypatch):
        _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now + timedelta(hours=1))

        def boom(**kwargs):
            raise PersistenceError("Order store write failed (append_event)", operation="append_event")

        monkeypatch.setattr(monitor.store, "append_event", boom)
        result = monitor.sweep()

        assert result.event_failures == 1
        assert notifier.recipients() == [team[Role.EDITOR].id]
        assert metrics.get("audit_write_failures") == 1

    def test_admin_lookup_failure_records_nothing_and_retries(self, notifier, clock, team, org):
        editor = team[Role.EDITOR]
        order = _make_order(org, responsible=editor, due_in=clock.now - timedelta(hours=1))
        monitor = SLAMonitor(notifier=notifier, directory=_AdminsFailOnce(), clock=clock)

        with pytest.raises(PersistenceError):
            monitor.sweep()

        assert notifier.calls == []
        assert _alerts(order, EventAction.SLA_OVERDUE) == []

        clock.advance(minutes=15)
        retry = monitor.sweep()

        assert retry.overdue == 1
        assert retry.skipped == 0
        assert notifier.recipients() == [editor.id, team["admin"].id, team["superadmin"].id]
        assert len(_alerts(order, EventAction.SLA_OVERDUE)) == 1

    def test_recipient_lookup_error_counts_as_notify_failure(self, clock, team, org, monkeypatch):
        first = _make_order(org, responsible=team[Role.EDITOR], due_in=clock.now - timedelta(hours=2))
        second = _make_order(org, responsible=team[Role.VIDEO], due_in=clock.now - timedelta(hours=1))
        admin_id = team["admin"].id
        real_get = db.session.get

        def get(entity, ident, *args, **kwargs):
            if entity is User and ident == admin_id:
                raise OperationalError("SELECT users", {}, Exception("connection reset"))
            return real_get(entity, ident, *args, **kwargs)

        monkeypatch.setattr(db.session, "get", get)
        result = SLAMonitor(notifier=Notifier(), clock=clock).sweep()

        assert result.overdue == 2
        assert result.notify_failures == 2
        assert result.notified == 4
        assert len(_alerts(first, EventAction.SLA_OVERDUE)) == 1
        assert len(_alerts(second, EventAction.SLA_OVERDUE)) == 1
        assert metrics.get("sweep_failures") == 0


# ═════════════════════════════════════════════════════════════════════════════
# Reporting
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
def test_stats_per_brand(monitor, team, org, clock):
    _make_order(org, brand="RAYTCHEL", priority=Priority.HIGH, due_in=clock.now - timedelta(hours=1))
    _make_order(org, brand="ZAFFIRA", due_in=clock.now + timedelta(hours=1))
    _make_order(org, brand=None, due_in=clock.now + timedelta(hours=20))
    _make_order(org, Stage.POSTADO, brand="RAYTCHEL")

    stats = monitor.stats(org.id)

    assert stats["total_active"] == 3
    assert stats["overdue"] == 1
    assert stats["at_risk"] == 1
    assert stats["high_priority_overdue"] == 1
    assert stats["per_brand"] == {
        "RAYTCHEL": {"total": 1, "overdue": 1, "at_risk": 0},
        "ZAFFIRA": {"total": 1, "overdue": 0, "at_risk": 1},
        "unbranded": {"total": 1, "overdue": 0, "at_risk": 0},
    }
    assert [o["brand"] for o in stats["details"]["overdue"]] == ["RAYTCHEL"]


@pytest.mark.unit
def test_productivity_report(monitor, team, org, clock):
    store = OrderStore()
    raytchel = _make_order(org, brand="RAYTCHEL")
    zaffira = _make_order(org, brand="ZAFFIRA")
    editor, video = team[Role.EDITOR], team[Role.VIDEO]

    def transition(order, user, age):
        store.append_event(
            order_id=order.id, org_id=org.id, user_id=user.id if user else None,
            action=EventAction.STATUS_CHANGE, detail="Status changed",
            timestamp=clock.now - age,
        )

    transition(raytchel, editor, timedelta(days=1))
    transition(zaffira, editor, timedelta(days=2))
    transition(raytchel, video, timedelta(hours=5))
    transition(zaffira, video, timedelta(days=9))

    report = monitor.productivity_report(org.id, days=7)

    assert report["period_days"] == 7
    assert report["total_transitions"] == 3
    assert report["users"] == [
        {"user_id": editor.id, "name": "Editor User", "role": "EDITOR",
         "transitions": 2, "brands": ["RAYTCHEL", "ZAFFIRA"]},
        {"user_id": video.id, "name": "Video User", "role": "VIDEO",
         "transitions": 1, "brands": ["RAYTCHEL"]},
    ]
