"""
Content OS Workflow Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking and the
      outcome of each external channel push.
"""

from osflow.models import db
from osflow.models.workflow import _utcnow


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_CATEGORIES = {"sla", "workflow", "system"}
NOTIFICATION_SEVERITIES = {"info", "warning", "error"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    order_id = db.Column(
        db.String(36), db.ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="sla")
    severity = db.Column(db.String(20), default="info")

    # Channel outcome: {"slack": "sent" | "skipped" | "failed", "whatsapp": ...}
    channels = db.Column(db.JSON, default=dict)

    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def mark_read(self):
        self.is_read = True
        self.read_at = _utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "title": self.title,
            "message": self.message,
            "category": self.category,
            "severity": self.severity,
            "channels": self.channels or {},
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
