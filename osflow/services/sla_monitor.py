"""
SLA monitor — periodic overdue / at-risk sweep with escalation.

Sweep, per active order with a deadline:
    1. classify: OVERDUE (deadline < now) or AT_RISK (now <= deadline < now + 4h)
    2. skip when the same condition was already recorded for the order in the
       last 4h (at most one alert per order per condition per window)
    3. append SLA_OVERDUE / SLA_AT_RISK, notify the responsible user, and
       escalate to every org admin when the order is HIGH priority or overdue

A store read failure aborts the sweep (``PersistenceError``) so the scheduler
retries on the next cadence. Notifier failures are isolated per recipient.
A re-run after an interrupted sweep only picks up orders without a recent
event, which makes the sweep safe to repeat.

Also provides the SLA statistics and weekly productivity report.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable

from osflow.core.exceptions import NotificationError, PersistenceError
from osflow.models.audit import EventAction
from osflow.models.workflow import Priority, ServiceOrder, as_utc
from osflow.services import metrics, sla
from osflow.services.directory import Directory
from osflow.services.order_store import OrderStore

logger = logging.getLogger(__name__)

PRODUCTIVITY_WINDOW_DAYS = 7

_ACTION_FOR = {
    sla.SLAStatus.OVERDUE: EventAction.SLA_OVERDUE,
    sla.SLAStatus.AT_RISK: EventAction.SLA_AT_RISK,
}


@dataclass
class SweepResult:
    checked: int = 0
    overdue: int = 0
    at_risk: int = 0
    skipped: int = 0
    notified: int = 0
    notify_failures: int = 0
    event_failures: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class SLAMonitor:
    """Scans active orders and escalates missed or imminent deadlines.

    ``notifier`` is anything with ``notify(user_id, message, *, urgent, order_id)``
    that raises ``NotificationError`` on failure.
    """

    def __init__(
        self,
        notifier,
        store: OrderStore | None = None,
        directory: Directory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.notifier = notifier
        self.store = store or OrderStore()
        self.directory = directory or Directory()
        self.clock = clock or sla.utcnow

    # ── Sweep ────────────────────────────────────────────────────────────

    def sweep(self, org_id: str | None = None) -> SweepResult:
        now = self.clock()
        result = SweepResult()
        try:
            orders = self.store.list_active_orders_with_deadline(org_id)
            for order in orders:
                result.checked += 1
                self._process(order, now, result)
        except PersistenceError:
            metrics.increment("sweep_failures")
            logger.error("SLA sweep aborted after %d orders", result.checked)
            raise

        metrics.increment("sweeps")
        logger.info(
            "SLA sweep done: checked=%d overdue=%d at_risk=%d skipped=%d notified=%d failures=%d",
            result.checked, result.overdue, result.at_risk, result.skipped,
            result.notified, result.notify_failures,
        )
        return result

    def _process(self, order: ServiceOrder, now: datetime, result: SweepResult) -> None:
        deadline = as_utc(order.sla_deadline)
        status = sla.classify(deadline, now)
        if status is sla.SLAStatus.ON_TRACK:
            return
        action = _ACTION_FOR[status]

        recent = self.store.query_recent_events(order.id, action, now - sla.NOTIFY_DEDUP_WINDOW)
        if recent:
            result.skipped += 1
            logger.debug("Already alerted within window", extra={"order_id": order.id, "action": action.value})
            return

        overdue = status is sla.SLAStatus.OVERDUE
        high_priority = order.priority is Priority.HIGH
        # admin lookup precedes the alert event: a failed read leaves nothing recorded
        admins = self.directory.list_admins(order.org_id) if (high_priority or overdue) else []

        hours = sla.hours_from_deadline(deadline, now)
        if overdue:
            result.overdue += 1
            metrics.increment("sla_overdue")
        else:
            result.at_risk += 1
            metrics.increment("sla_at_risk")

        responsible = order.responsible_user
        responsible_name = responsible.name if responsible else None
        self._append_alert(order, action, hours, responsible_name, now, result)

        base = _base_message(order, overdue, hours)
        if order.responsible_user_id:
            message = (
                f"{base}\n\nResponsible: {responsible_name}\n"
                f"Action needed {'urgently' if overdue else 'soon'}!"
            )
            self._notify(order.responsible_user_id, message, order, urgent=False, result=result)

        if admins:
            banner = "HIGH PRIORITY" if high_priority else "SLA OVERDUE"
            message = (
                f"{base}\n\n{banner} - intervention needed\n"
                f"Current responsible: {responsible_name or 'Unassigned'}"
            )
            for admin_id in admins:
                self._notify(admin_id, message, order, urgent=True, result=result)

    def _append_alert(self, order, action, hours, responsible_name, now, result) -> None:
        stage = order.stage.value
        priority = order.priority.value
        if action is EventAction.SLA_OVERDUE:
            detail = f"SLA overdue by {hours} hours. Stage: {stage}. Priority: {priority}"
            payload = {"hours_overdue": hours}
        else:
            detail = f"SLA at risk ({hours} hours remaining). Stage: {stage}. Priority: {priority}"
            payload = {"hours_remaining": hours}
        payload.update({
            "stage": stage,
            "priority": priority,
            "responsible_user_id": order.responsible_user_id,
            "responsible_name": responsible_name,
        })
        try:
            self.store.append_event(
                order_id=order.id,
                org_id=order.org_id,
                user_id=None,
                action=action,
                detail=detail,
                payload=payload,
                timestamp=now,
            )
        except PersistenceError:
            result.event_failures += 1
            metrics.increment("audit_write_failures")
            logger.exception("SLA alert event not recorded", extra={"order_id": order.id, "action": action.value})

    def _notify(self, user_id: str, message: str, order: ServiceOrder, *, urgent: bool, result: SweepResult) -> None:
        try:
            self.notifier.notify(user_id, message, urgent=urgent, order_id=order.id)
        except NotificationError as exc:
            result.notify_failures += 1
            metrics.increment("notification_failures")
            logger.warning("Notification failed: %s", exc, extra={"order_id": order.id})
            return
        result.notified += 1
        metrics.increment("notifications_sent")

    # ── Reporting ────────────────────────────────────────────────────────

    def stats(self, org_id: str | None = None) -> dict:
        """Active / at-risk / overdue totals with a per-brand breakdown."""
        now = self.clock()
        orders = self.store.list_active_orders(org_id)
        at_risk, overdue = [], []
        per_brand: dict[str, dict] = defaultdict(lambda: {"total": 0, "overdue": 0, "at_risk": 0})

        for order in orders:
            brand = per_brand[order.brand or "unbranded"]
            brand["total"] += 1
            status = sla.classify(order.sla_deadline, now)
            if status is sla.SLAStatus.OVERDUE:
                overdue.append(order)
                brand["overdue"] += 1
            elif status is sla.SLAStatus.AT_RISK:
                at_risk.append(order)
                brand["at_risk"] += 1

        return {
            "total_active": len(orders),
            "at_risk": len(at_risk),
            "overdue": len(overdue),
            "high_priority_overdue": sum(1 for o in overdue if o.priority is Priority.HIGH),
            "per_brand": dict(per_brand),
            "details": {
                "at_risk": [o.to_dict() for o in at_risk],
                "overdue": [o.to_dict() for o in overdue],
            },
        }

    def productivity_report(self, org_id: str | None = None, days: int = PRODUCTIVITY_WINDOW_DAYS) -> dict:
        """Stage transitions of the last *days* days grouped by acting user."""
        since = self.clock() - timedelta(days=days)
        events = self.store.list_events_since(EventAction.STATUS_CHANGE, since, org_id)

        by_user: dict[str, dict] = {}
        for event in events:
            if not event.user_id or event.user is None:
                continue
            entry = by_user.setdefault(event.user_id, {
                "user_id": event.user_id,
                "name": event.user.name,
                "role": event.user.role.value if event.user.role else None,
                "transitions": 0,
                "brands": set(),
            })
            entry["transitions"] += 1
            if event.order is not None and event.order.brand:
                entry["brands"].add(event.order.brand)

        users = sorted(by_user.values(), key=lambda u: (-u["transitions"], u["name"]))
        for entry in users:
            entry["brands"] = sorted(entry["brands"])
        return {
            "period_days": days,
            "users": users,
            "total_transitions": len(events),
        }


def _base_message(order: ServiceOrder, overdue: bool, hours: int) -> str:
    label = "OVERDUE" if overdue else "AT RISK"
    timing = f"Overdue by: {hours}h" if overdue else f"Remaining: {hours}h"
    return (
        f"SLA {label}\n\n"
        f"OS: {order.title}\n"
        f"Stage: {order.stage.value}\n"
        f"{timing}\n"
        f"Priority: {order.priority.value}"
    )
