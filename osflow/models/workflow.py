"""
Content OS Workflow Platform
Workflow domain models.

Models:
    - ServiceOrder: one content item moving through the production pipeline
    - ChecklistItem: per-stage task, gates the ROTEIRO → AUDIO transition
    - Asset: produced artifact (audio, raw video, edit, caption, thumbnail)

Enums (closed vocabularies, stored by name):
    Stage, Role, Priority, AssetKind
"""

import enum
import uuid
from datetime import datetime, timezone

from osflow.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalise a datetime to UTC-aware.

    SQLite hands DateTime columns back naive; PostgreSQL returns tz-aware.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────────────────


class Stage(str, enum.Enum):
    """Pipeline stages, declared in pipeline order."""

    ROTEIRO = "ROTEIRO"
    AUDIO = "AUDIO"
    CAPTACAO = "CAPTACAO"
    EDICAO = "EDICAO"
    REVISAO = "REVISAO"
    APROVACAO = "APROVACAO"
    AGENDAMENTO = "AGENDAMENTO"
    POSTADO = "POSTADO"

    @property
    def position(self) -> int:
        return PIPELINE.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is Stage.POSTADO


class Role(str, enum.Enum):
    COPY = "COPY"
    AUDIO = "AUDIO"
    VIDEO = "VIDEO"
    EDITOR = "EDITOR"
    REVISOR = "REVISOR"
    CRISPIM = "CRISPIM"
    SOCIAL = "SOCIAL"


class Priority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AssetKind(str, enum.Enum):
    ROTEIRO = "ROTEIRO"
    AUDIO = "AUDIO"
    VIDEO_BRUTO = "VIDEO_BRUTO"
    EDIT_V1 = "EDIT_V1"
    LEGENDA = "LEGENDA"
    THUMB = "THUMB"
    ARTE = "ARTE"


PIPELINE: tuple[Stage, ...] = tuple(Stage)

STAGE_ROLES: dict[Stage, Role] = {
    Stage.ROTEIRO: Role.COPY,
    Stage.AUDIO: Role.AUDIO,
    Stage.CAPTACAO: Role.VIDEO,
    Stage.EDICAO: Role.EDITOR,
    Stage.REVISAO: Role.REVISOR,
    Stage.APROVACAO: Role.CRISPIM,
    Stage.AGENDAMENTO: Role.SOCIAL,
    Stage.POSTADO: Role.SOCIAL,
}


def previous_stage(stage: Stage) -> Stage | None:
    """Return the stage before *stage* in pipeline order, or None for ROTEIRO."""
    idx = PIPELINE.index(stage)
    return PIPELINE[idx - 1] if idx > 0 else None


# ═════════════════════════════════════════════════════════════════════════════
# ServiceOrder
# ═════════════════════════════════════════════════════════════════════════════


class ServiceOrder(db.Model):
    """
    A content item ("OS") tracked through the production pipeline.

    ``sla_deadline`` is set in every stage except POSTADO.
    Mutated only by the lifecycle service (advance / reject / mark_posted /
    approvals); never deleted by the workflow engine.
    """

    __tablename__ = "service_orders"
    __table_args__ = (
        db.Index("idx_os_org_stage", "org_id", "stage"),
        db.Index("idx_os_deadline", "sla_deadline"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(
        db.String(36),
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    brand = db.Column(db.String(50), nullable=True, comment="RAYTCHEL | ZAFFIRA | …")

    stage = db.Column(
        db.Enum(Stage, native_enum=False, length=20),
        nullable=False,
        default=Stage.ROTEIRO,
    )
    responsible_user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    sla_deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    priority = db.Column(
        db.Enum(Priority, native_enum=False, length=10),
        nullable=False,
        default=Priority.MEDIUM,
    )

    internal_approved = db.Column(db.Boolean, nullable=False, default=False)
    external_approved = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    responsible_user = db.relationship("User", foreign_keys=[responsible_user_id], lazy="joined")
    checklist_items = db.relationship(
        "ChecklistItem", backref="order", lazy="dynamic", cascade="all, delete-orphan",
    )
    assets = db.relationship(
        "Asset", backref="order", lazy="dynamic", cascade="all, delete-orphan",
    )

    @property
    def responsible_role(self) -> Role:
        return STAGE_ROLES[self.stage]

    def to_dict(self):
        deadline = as_utc(self.sla_deadline)
        return {
            "id": self.id,
            "org_id": self.org_id,
            "title": self.title,
            "brand": self.brand,
            "stage": self.stage.value,
            "responsible_role": self.responsible_role.value,
            "responsible_user_id": self.responsible_user_id,
            "sla_deadline": deadline.isoformat() if deadline else None,
            "priority": self.priority.value,
            "internal_approved": self.internal_approved,
            "external_approved": self.external_approved,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ServiceOrder {self.id[:8]} [{self.stage.value}]>"


class ChecklistItem(db.Model):
    """Checklist task attached to an order and a stage."""

    __tablename__ = "checklist_items"
    __table_args__ = (
        db.Index("idx_checklist_order_stage", "order_id", "stage"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(
        db.String(36), db.ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=False,
    )
    stage = db.Column(db.Enum(Stage, native_enum=False, length=20), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    done = db.Column(db.Boolean, nullable=False, default=False)
    required = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "stage": self.stage.value,
            "name": self.name,
            "done": self.done,
            "required": self.required,
        }


class Asset(db.Model):
    """Produced artifact uploaded against an order."""

    __tablename__ = "assets"
    __table_args__ = (
        db.Index("idx_asset_order_kind", "order_id", "kind"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(
        db.String(36), db.ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=False,
    )
    kind = db.Column(db.Enum(AssetKind, native_enum=False, length=20), nullable=False)
    url = db.Column(db.Text, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "kind": self.kind.value,
            "url": self.url,
            "version": self.version,
        }
