"""content_workflow_initial

Creates the content production workflow schema:
  - organizations, users          — tenant boundary and directory
  - service_orders                — orders moving through the pipeline
  - checklist_items, assets       — stage prerequisites
  - event_logs                    — append-only order history
  - notifications                 — in-app SLA alerts with channel outcome
  - scheduled_jobs                — scheduler registry and run history

Tables created conditionally (IF NOT EXISTS semantics) so the revision can run
against a development database that already received them via db.create_all().

Revision ID: 0f1c2a7b9d41
Revises:
Create Date: 2026-10-18 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '0f1c2a7b9d41'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Organizations ─────────────────────────────────────────────────────
    if "organizations" not in existing:
        op.create_table(
            "organizations",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=80), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=True),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("phone", sa.String(length=40), nullable=True,
                      comment="E.164, used for WhatsApp delivery"),
            sa.Column("role", sa.String(length=20), nullable=True,
                      comment="COPY | AUDIO | VIDEO | EDITOR | REVISOR | CRISPIM | SOCIAL"),
            sa.Column("org_role", sa.String(length=20), nullable=False,
                      server_default="MEMBER", comment="MEMBER | ORG_ADMIN | SUPERADMIN"),
            sa.Column("can_approve", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_org_id", "users", ["org_id"])
        op.create_index("idx_users_org_role", "users", ["org_id", "role"])

    # ── Service orders ────────────────────────────────────────────────────
    if "service_orders" not in existing:
        op.create_table(
            "service_orders",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("brand", sa.String(length=50), nullable=True),
            sa.Column("stage", sa.String(length=20), nullable=False, server_default="ROTEIRO"),
            sa.Column("responsible_user_id", sa.String(length=36), nullable=True),
            sa.Column("sla_deadline", sa.DateTime(timezone=True), nullable=True),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="MEDIUM"),
            sa.Column("internal_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("external_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["responsible_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_service_orders_org_id", "service_orders", ["org_id"])
        op.create_index("ix_service_orders_responsible_user_id", "service_orders", ["responsible_user_id"])
        op.create_index("idx_os_org_stage", "service_orders", ["org_id", "stage"])
        op.create_index("idx_os_deadline", "service_orders", ["sla_deadline"])

    # ── Checklist items ───────────────────────────────────────────────────
    if "checklist_items" not in existing:
        op.create_table(
            "checklist_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("stage", sa.String(length=20), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["order_id"], ["service_orders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_checklist_order_stage", "checklist_items", ["order_id", "stage"])

    # ── Assets ────────────────────────────────────────────────────────────
    if "assets" not in existing:
        op.create_table(
            "assets",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False,
                      comment="ROTEIRO | AUDIO | VIDEO_BRUTO | EDIT_V1 | LEGENDA | THUMB | ARTE"),
            sa.Column("url", sa.Text(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["order_id"], ["service_orders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_asset_order_kind", "assets", ["order_id", "kind"])

    # ── Event logs ────────────────────────────────────────────────────────
    if "event_logs" not in existing:
        op.create_table(
            "event_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=True),
            sa.Column("user_id", sa.String(length=36), nullable=True,
                      comment="Acting user; NULL for system events"),
            sa.Column("action", sa.String(length=20), nullable=False),
            sa.Column("detail", sa.Text(), nullable=False, server_default=""),
            sa.Column("payload_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["order_id"], ["service_orders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_event_order_action_ts", "event_logs", ["order_id", "action", "timestamp"])
        op.create_index("idx_event_org", "event_logs", ["org_id"])
        op.create_index("idx_event_ts", "event_logs", ["timestamp"])
        op.create_index("ix_event_logs_user_id", "event_logs", ["user_id"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=True),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("order_id", sa.String(length=36), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("channels", sa.JSON(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["order_id"], ["service_orders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_org_id", "notifications", ["org_id"])
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_order_id", "notifications", ["order_id"])

    # ── Scheduled jobs ────────────────────────────────────────────────────
    if "scheduled_jobs" not in existing:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    for table in (
        "scheduled_jobs",
        "notifications",
        "event_logs",
        "assets",
        "checklist_items",
        "service_orders",
        "users",
        "organizations",
    ):
        op.drop_table(table)
