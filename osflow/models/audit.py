"""
Content OS Workflow Platform
Audit domain model.

Models:
    - EventLog: immutable, append-only history of what happened to an order.
"""

import enum
import json
from datetime import datetime

from osflow.models import db
from osflow.models.workflow import _utcnow


class EventAction(str, enum.Enum):
    CREATE = "CREATE"
    STATUS_CHANGE = "STATUS_CHANGE"
    REJECT = "REJECT"
    APPROVE = "APPROVE"
    SLA_OVERDUE = "SLA_OVERDUE"
    SLA_AT_RISK = "SLA_AT_RISK"
    POST = "POST"


class EventLog(db.Model):
    """
    One row per event on an order.

    ``detail`` is the human-readable sentence shown in the order timeline;
    ``payload_json`` carries the structured counterpart (stages, hours, reason).
    ``user_id`` is NULL for system-originated events (sweep, webhook).
    """

    __tablename__ = "event_logs"
    __table_args__ = (
        db.Index("idx_event_order_action_ts", "order_id", "action", "timestamp"),
        db.Index("idx_event_org", "org_id"),
        db.Index("idx_event_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.String(36),
        db.ForeignKey("service_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    org_id = db.Column(
        db.String(36),
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Acting user; NULL for system events",
    )
    action = db.Column(db.Enum(EventAction, native_enum=False, length=20), nullable=False)
    detail = db.Column(db.Text, nullable=False, default="")
    payload_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    user = db.relationship("User", foreign_keys=[user_id], lazy="joined")
    order = db.relationship("ServiceOrder", foreign_keys=[order_id], viewonly=True)

    @property
    def payload(self) -> dict:
        try:
            return json.loads(self.payload_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "action": self.action.value,
            "detail": self.detail,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<EventLog {self.id}: {self.action.value} on {self.order_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_event(
    *,
    order_id: str,
    action: EventAction,
    detail: str,
    org_id: str | None = None,
    user_id: str | None = None,
    payload: dict | None = None,
    timestamp: datetime | None = None,
    session=None,
) -> EventLog:
    """
    Append a single event row.  Uses ``flush`` so callers keep
    transaction control.
    """
    session = session if session is not None else db.session
    event = EventLog(
        order_id=order_id,
        org_id=org_id,
        user_id=user_id,
        action=action,
        detail=detail,
        payload_json=json.dumps(payload or {}, default=str),
    )
    if timestamp is not None:
        event.timestamp = timestamp
    session.add(event)
    session.flush()
    return event
