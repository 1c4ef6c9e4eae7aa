"""
Order store — persistence boundary for service orders.

All reads and writes the workflow engines need go through ``OrderStore``.
SQLAlchemy failures are re-raised as ``PersistenceError`` so the engines and
blueprints deal with one transient-failure type.

Stage writes are compare-on-stage:

    UPDATE service_orders SET ... WHERE id = :id AND stage = :expected

so two callers racing on the same order cannot both apply a transition; the
loser gets ``StageConflictError``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from osflow.core.exceptions import NotFoundError, PersistenceError, StageConflictError
from osflow.models import db
from osflow.models.audit import EventAction, EventLog, write_event
from osflow.models.workflow import (
    Asset,
    AssetKind,
    ChecklistItem,
    Priority,
    ServiceOrder,
    Stage,
    _utcnow,
)

logger = logging.getLogger(__name__)


class OrderStore:
    """SQLAlchemy-backed order store.

    ``session`` defaults to the Flask-SQLAlchemy scoped session; tests pass a
    wrapper to inject failures.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # ── Reads ────────────────────────────────────────────────────────────

    def get_order(self, order_id: str, org_id: str | None = None) -> ServiceOrder:
        """Load an order; an order outside *org_id* is reported as missing."""
        try:
            order = self.session.get(ServiceOrder, order_id)
        except SQLAlchemyError as exc:
            raise self._read_failed("get_order", exc) from exc
        if order is None or (org_id is not None and order.org_id != org_id):
            raise NotFoundError(resource="ServiceOrder", resource_id=order_id, org_id=org_id)
        return order

    def list_active_orders_with_deadline(self, org_id: str | None = None) -> list[ServiceOrder]:
        stmt = select(ServiceOrder).where(
            ServiceOrder.stage != Stage.POSTADO,
            ServiceOrder.sla_deadline.is_not(None),
        )
        if org_id is not None:
            stmt = stmt.where(ServiceOrder.org_id == org_id)
        return self._scalars("list_active_orders_with_deadline", stmt.order_by(ServiceOrder.sla_deadline))

    def list_active_orders(self, org_id: str | None = None) -> list[ServiceOrder]:
        stmt = select(ServiceOrder).where(ServiceOrder.stage != Stage.POSTADO)
        if org_id is not None:
            stmt = stmt.where(ServiceOrder.org_id == org_id)
        return self._scalars("list_active_orders", stmt.order_by(ServiceOrder.created_at))

    def list_checklist_items(self, order_id: str, stage: Stage) -> list[ChecklistItem]:
        stmt = (
            select(ChecklistItem)
            .where(ChecklistItem.order_id == order_id, ChecklistItem.stage == stage)
            .order_by(ChecklistItem.created_at)
        )
        return self._scalars("list_checklist_items", stmt)

    def list_assets(self, order_id: str, kind: AssetKind | None = None) -> list[Asset]:
        stmt = select(Asset).where(Asset.order_id == order_id)
        if kind is not None:
            stmt = stmt.where(Asset.kind == kind)
        return self._scalars("list_assets", stmt.order_by(Asset.version))

    def query_recent_events(self, order_id: str, action: EventAction, since: datetime) -> list[EventLog]:
        stmt = (
            select(EventLog)
            .where(
                EventLog.order_id == order_id,
                EventLog.action == action,
                EventLog.timestamp >= since,
            )
            .order_by(EventLog.timestamp.desc())
        )
        return self._scalars("query_recent_events", stmt)

    def list_events(self, order_id: str) -> list[EventLog]:
        stmt = select(EventLog).where(EventLog.order_id == order_id).order_by(EventLog.id)
        return self._scalars("list_events", stmt)

    def list_events_since(
        self, action: EventAction, since: datetime, org_id: str | None = None,
    ) -> list[EventLog]:
        stmt = select(EventLog).where(EventLog.action == action, EventLog.timestamp >= since)
        if org_id is not None:
            stmt = stmt.where(EventLog.org_id == org_id)
        return self._scalars("list_events_since", stmt.order_by(EventLog.timestamp))

    # ── Writes ───────────────────────────────────────────────────────────

    def create_order(
        self,
        *,
        org_id: str | None,
        title: str,
        brand: str | None,
        priority: Priority,
        responsible_user_id: str | None,
        sla_deadline: datetime | None,
        checklist: list[dict] | None = None,
    ) -> ServiceOrder:
        """Insert an order in ROTEIRO together with its checklist."""
        order = ServiceOrder(
            org_id=org_id,
            title=title,
            brand=brand,
            priority=priority,
            stage=Stage.ROTEIRO,
            responsible_user_id=responsible_user_id,
            sla_deadline=sla_deadline,
        )
        try:
            self.session.add(order)
            self.session.flush()
            for item in checklist or []:
                self.session.add(ChecklistItem(
                    order_id=order.id,
                    stage=Stage(item.get("stage", Stage.ROTEIRO)),
                    name=item["name"],
                    required=bool(item.get("required", False)),
                    done=bool(item.get("done", False)),
                ))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise self._write_failed("create_order", exc) from exc
        return order

    def update_order(self, order_id: str, expected_stage: Stage, fields: dict) -> None:
        """Atomically apply *fields* if the order is still in *expected_stage*.

        Raises:
            StageConflictError: the order exists but left ``expected_stage``.
            NotFoundError: the order no longer exists.
            PersistenceError: the write failed.
        """
        values = dict(fields)
        values["updated_at"] = _utcnow()
        stmt = (
            update(ServiceOrder)
            .where(ServiceOrder.id == order_id, ServiceOrder.stage == expected_stage)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            if result.rowcount == 0:
                self.session.rollback()
                exists = self.session.execute(
                    select(ServiceOrder.id).where(ServiceOrder.id == order_id)
                ).first()
                if exists is None:
                    raise NotFoundError(resource="ServiceOrder", resource_id=order_id)
                raise StageConflictError(order_id, expected_stage)
            # commit expires loaded instances, so callers see the new row on next access
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise self._write_failed("update_order", exc) from exc

    def append_event(
        self,
        *,
        order_id: str,
        action: EventAction,
        detail: str,
        org_id: str | None = None,
        user_id: str | None = None,
        payload: dict | None = None,
        timestamp: datetime | None = None,
    ) -> EventLog:
        try:
            event = write_event(
                order_id=order_id,
                action=action,
                detail=detail,
                org_id=org_id,
                user_id=user_id,
                payload=payload,
                timestamp=timestamp,
                session=self.session,
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise self._write_failed("append_event", exc) from exc
        return event

    # ── Helpers ──────────────────────────────────────────────────────────

    def _scalars(self, operation: str, stmt) -> list:
        try:
            return list(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise self._read_failed(operation, exc) from exc

    def _read_failed(self, operation: str, exc: Exception) -> PersistenceError:
        logger.error("Order store read failed: %s: %s", operation, exc)
        try:
            self.session.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback after failed %s also failed", operation)
        return PersistenceError(f"Order store unavailable ({operation})", operation=operation)

    def _write_failed(self, operation: str, exc: Exception) -> PersistenceError:
        logger.error("Order store write failed: %s: %s", operation, exc)
        return PersistenceError(f"Order store write failed ({operation})", operation=operation)
