"""
Order lifecycle — transition table and the engines that apply it.

    ROTEIRO → AUDIO → CAPTACAO → EDICAO → REVISAO → APROVACAO → AGENDAMENTO → POSTADO

``TRANSITION_RULES`` holds exactly one rule per non-terminal stage. Each rule
carries a validator: a plain function ``(order, store) -> ValidationResult``
whose failure message is returned to the caller verbatim.

Operations (``OrderLifecycle``):
    advance(order_id, acting_user_id)          one step forward, validated
    reject(order_id, reason, acting_user_id)   one step back, flat 24h rework window
    mark_posted(order_id)                      AGENDAMENTO → POSTADO, webhook only
    create_order(...)                          new order in ROTEIRO
    record_approval(order_id, gate, user_id)   internal / external approval flags
    preview(order_id)                          next rule and validator verdict

Every state write is compare-on-stage (see ``OrderStore.update_order``).
The event appended after a successful write is best-effort: a failed append
is logged and counted, never rolled back into the state change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from osflow.core.exceptions import (
    NoTransitionError,
    NotFoundError,
    PersistenceError,
    TransitionValidationError,
    ValidationError,
)
from osflow.models.audit import EventAction
from osflow.models.workflow import (
    STAGE_ROLES,
    AssetKind,
    Priority,
    Role,
    ServiceOrder,
    Stage,
    previous_stage,
)
from osflow.services import metrics, sla
from osflow.services.directory import Directory
from osflow.services.order_store import OrderStore

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Validators
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    message: str | None = None

    @classmethod
    def passed(cls) -> "ValidationResult":
        return cls(True)

    @classmethod
    def failed(cls, message: str) -> "ValidationResult":
        return cls(False, message)


Validator = Callable[[ServiceOrder, OrderStore], ValidationResult]


def required_checklist_done(order: ServiceOrder, store: OrderStore) -> ValidationResult:
    """Every required ROTEIRO checklist item is done; an empty required set fails."""
    items = store.list_checklist_items(order.id, Stage.ROTEIRO)
    required = [item for item in items if item.required]
    if not required:
        return ValidationResult.failed("No required checklist items configured for ROTEIRO")
    done = sum(1 for item in required if item.done)
    if done < len(required):
        return ValidationResult.failed(
            f"Required checklist incomplete: {done}/{len(required)} items done"
        )
    return ValidationResult.passed()


def has_asset(kind: AssetKind, message: str) -> Validator:
    def _validator(order: ServiceOrder, store: OrderStore) -> ValidationResult:
        if store.list_assets(order.id, kind):
            return ValidationResult.passed()
        return ValidationResult.failed(message)

    _validator.__name__ = f"has_{kind.value.lower()}_asset"
    return _validator


def has_edit_deliverables(order: ServiceOrder, store: OrderStore) -> ValidationResult:
    present = {asset.kind for asset in store.list_assets(order.id)}
    for kind in (AssetKind.EDIT_V1, AssetKind.LEGENDA, AssetKind.THUMB):
        if kind not in present:
            return ValidationResult.failed(f"A {kind.value} asset is required to advance to REVISAO")
    return ValidationResult.passed()


def internal_approved(order: ServiceOrder, store: OrderStore) -> ValidationResult:
    if order.internal_approved:
        return ValidationResult.passed()
    return ValidationResult.failed("Internal approval is required to advance to APROVACAO")


def external_approved(order: ServiceOrder, store: OrderStore) -> ValidationResult:
    if order.external_approved:
        return ValidationResult.passed()
    return ValidationResult.failed("External approval is required to advance to AGENDAMENTO")


def webhook_only(order: ServiceOrder, store: OrderStore) -> ValidationResult:
    return ValidationResult.failed("Transition to POSTADO is only permitted via webhook")


# ═════════════════════════════════════════════════════════════════════════════
# Transition table
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TransitionRule:
    source: Stage
    destination: Stage
    validator: Validator
    responsible_role: Role

    @property
    def sla_hours(self) -> int | None:
        return sla.SLA_HOURS.get(self.destination)

    def to_dict(self) -> dict:
        return {
            "from": self.source.value,
            "to": self.destination.value,
            "responsible_role": self.responsible_role.value,
            "sla_hours": self.sla_hours,
            "validator": self.validator.__name__,
        }


def _rule(source: Stage, destination: Stage, validator: Validator) -> TransitionRule:
    return TransitionRule(source, destination, validator, STAGE_ROLES[destination])


TRANSITION_RULES: tuple[TransitionRule, ...] = (
    _rule(Stage.ROTEIRO, Stage.AUDIO, required_checklist_done),
    _rule(Stage.AUDIO, Stage.CAPTACAO,
          has_asset(AssetKind.AUDIO, "An AUDIO asset is required to advance to CAPTACAO")),
    _rule(Stage.CAPTACAO, Stage.EDICAO,
          has_asset(AssetKind.VIDEO_BRUTO, "A VIDEO_BRUTO asset is required to advance to EDICAO")),
    _rule(Stage.EDICAO, Stage.REVISAO, has_edit_deliverables),
    _rule(Stage.REVISAO, Stage.APROVACAO, internal_approved),
    _rule(Stage.APROVACAO, Stage.AGENDAMENTO, external_approved),
    _rule(Stage.AGENDAMENTO, Stage.POSTADO, webhook_only),
)

APPROVAL_GATES = {
    "internal": (Stage.REVISAO, "internal_approved"),
    "external": (Stage.APROVACAO, "external_approved"),
}


def rule_for(stage: Stage, rules: tuple[TransitionRule, ...] = TRANSITION_RULES) -> TransitionRule | None:
    for rule in rules:
        if rule.source is stage:
            return rule
    return None


# ═════════════════════════════════════════════════════════════════════════════
# Engine
# ═════════════════════════════════════════════════════════════════════════════


class OrderLifecycle:
    """Applies transitions, rejections, postings and approvals to orders.

    Args:
        store: Order store (defaults to the SQLAlchemy-backed one).
        directory: Role → user resolver.
        clock: Returns the current UTC time; injected for tests.
    """

    def __init__(
        self,
        store: OrderStore | None = None,
        directory: Directory | None = None,
        clock: Callable[[], datetime] | None = None,
        rules: tuple[TransitionRule, ...] = TRANSITION_RULES,
    ) -> None:
        self.store = store or OrderStore()
        self.directory = directory or Directory()
        self.clock = clock or sla.utcnow
        self.rules = rules

    # ── Advance ──────────────────────────────────────────────────────────

    def advance(self, order_id: str, acting_user_id: str | None, *, org_id: str | None = None) -> Stage:
        order = self.store.get_order(order_id, org_id)
        self._check_actor(acting_user_id, order.org_id)
        source = order.stage
        rule = rule_for(source, self.rules)
        if rule is None:
            raise NoTransitionError(f"No transition available from {source.value}", stage=source)

        result = rule.validator(order, self.store)
        if not result.ok:
            logger.info("Advance blocked: %s", result.message,
                        extra={"order_id": order.id, "stage": source.value})
            raise TransitionValidationError(result.message, source=source, destination=rule.destination)

        responsible = self.directory.resolve_user_for_role(rule.responsible_role, order.org_id)
        deadline = sla.deadline_at(rule.destination, self.clock())
        self.store.update_order(order.id, source, {
            "stage": rule.destination,
            "responsible_user_id": responsible,
            "sla_deadline": deadline,
        })
        metrics.increment("transitions")
        logger.info("Order advanced %s → %s", source.value, rule.destination.value,
                    extra={"order_id": order_id, "stage": rule.destination.value})

        self._record(
            order_id=order_id,
            org_id=order.org_id,
            user_id=acting_user_id,
            action=EventAction.STATUS_CHANGE,
            detail=f"Status changed from {source.value} to {rule.destination.value}",
            payload={
                "from": source.value,
                "to": rule.destination.value,
                "responsible_user_id": responsible,
                "sla_deadline": deadline.isoformat() if deadline else None,
            },
        )
        return rule.destination

    # ── Reject ───────────────────────────────────────────────────────────

    def reject(
        self,
        order_id: str,
        reason: str,
        acting_user_id: str | None,
        *,
        org_id: str | None = None,
    ) -> Stage:
        order = self.store.get_order(order_id, org_id)
        self._check_actor(acting_user_id, order.org_id)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required", details={"reason": "required"})

        source = order.stage
        target = previous_stage(source)
        if target is None:
            raise ValidationError("Cannot reject from the first stage")

        responsible = self.directory.resolve_user_for_role(STAGE_ROLES[target], order.org_id)
        deadline = self.clock() + sla.REWORK_WINDOW
        fields = {
            "stage": target,
            "responsible_user_id": responsible,
            "sla_deadline": deadline,
        }
        if target is Stage.REVISAO:
            fields["internal_approved"] = False
        elif target is Stage.APROVACAO:
            fields["external_approved"] = False

        self.store.update_order(order.id, source, fields)
        metrics.increment("rejections")
        logger.info("Order rejected %s → %s", source.value, target.value,
                    extra={"order_id": order_id, "stage": target.value})

        self._record(
            order_id=order_id,
            org_id=order.org_id,
            user_id=acting_user_id,
            action=EventAction.REJECT,
            detail=f"Rejected: {reason}. Returned to {target.value}",
            payload={"from": source.value, "to": target.value, "reason": reason},
        )
        return target

    # ── Terminal webhook ─────────────────────────────────────────────────

    def mark_posted(self, order_id: str, *, org_id: str | None = None) -> Stage:
        order = self.store.get_order(order_id, org_id)
        if order.stage is not Stage.AGENDAMENTO:
            raise ValidationError(
                "Order must be in AGENDAMENTO to be marked as posted",
                details={"stage": order.stage.value},
            )

        self.store.update_order(order.id, Stage.AGENDAMENTO, {
            "stage": Stage.POSTADO,
            "responsible_user_id": None,
            "sla_deadline": None,
        })
        metrics.increment("posts")
        logger.info("Order posted", extra={"order_id": order_id, "stage": Stage.POSTADO.value})

        self._record(
            order_id=order_id,
            org_id=order.org_id,
            user_id=None,
            action=EventAction.POST,
            detail="Marked as posted via webhook",
            payload={"from": Stage.AGENDAMENTO.value, "to": Stage.POSTADO.value},
        )
        return Stage.POSTADO

    # ── Creation & approvals ─────────────────────────────────────────────

    def create_order(
        self,
        org_id: str | None,
        title: str,
        brand: str | None = None,
        priority: Priority | str = Priority.MEDIUM,
        checklist: list[dict] | None = None,
        acting_user_id: str | None = None,
    ) -> ServiceOrder:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required", details={"title": "required"})
        try:
            priority = Priority(priority)
        except ValueError:
            raise ValidationError(
                f"priority must be one of {[p.value for p in Priority]}",
                details={"priority": str(priority)},
            ) from None
        for item in checklist or []:
            if not isinstance(item, dict) or not (item.get("name") or "").strip():
                raise ValidationError("Each checklist item needs a name", details={"checklist": "invalid"})
        self._check_actor(acting_user_id, org_id)

        responsible = self.directory.resolve_user_for_role(STAGE_ROLES[Stage.ROTEIRO], org_id)
        order = self.store.create_order(
            org_id=org_id,
            title=title,
            brand=brand,
            priority=priority,
            responsible_user_id=responsible,
            sla_deadline=sla.deadline_at(Stage.ROTEIRO, self.clock()),
            checklist=checklist,
        )
        metrics.increment("orders_created")
        logger.info("Order created", extra={"order_id": order.id, "org_id": org_id})

        self._record(
            order_id=order.id,
            org_id=org_id,
            user_id=acting_user_id,
            action=EventAction.CREATE,
            detail=f"Order created in {Stage.ROTEIRO.value}",
            payload={"title": title, "brand": brand, "priority": priority.value},
        )
        return order

    def record_approval(
        self, order_id: str, gate: str, user_id: str, *, org_id: str | None = None,
    ) -> ServiceOrder:
        """Set the internal (REVISAO) or external (APROVACAO) approval flag."""
        if gate not in APPROVAL_GATES:
            raise ValidationError(
                f"gate must be one of {sorted(APPROVAL_GATES)}", details={"gate": gate},
            )
        order = self.store.get_order(order_id, org_id)
        user = self.directory.get_user(user_id)
        if user is None or user.org_id != order.org_id:
            raise NotFoundError(resource="User", resource_id=user_id)
        if not user.can_approve:
            raise ValidationError(f"User {user.name} is not allowed to approve")

        required_stage, flag = APPROVAL_GATES[gate]
        if order.stage is not required_stage:
            raise ValidationError(
                f"{gate.capitalize()} approval is only possible in {required_stage.value}",
                details={"stage": order.stage.value},
            )

        self.store.update_order(order.id, required_stage, {flag: True})
        metrics.increment("approvals")
        self._record(
            order_id=order_id,
            org_id=order.org_id,
            user_id=user_id,
            action=EventAction.APPROVE,
            detail=f"{gate.capitalize()} approval granted by {user.name}",
            payload={"gate": gate, "stage": required_stage.value},
        )
        return self.store.get_order(order_id, org_id)

    def preview(self, order_id: str, *, org_id: str | None = None) -> dict:
        """Next rule for the order and whether its validator currently passes."""
        order = self.store.get_order(order_id, org_id)
        rule = rule_for(order.stage, self.rules)
        data = {"order_id": order.id, "stage": order.stage.value, "next": None}
        if rule is None:
            return data
        result = rule.validator(order, self.store)
        data["next"] = {
            **rule.to_dict(),
            "allowed": result.ok,
            "reason": result.message,
            "webhook_only": rule.destination is Stage.POSTADO,
        }
        return data

    # ── Event append (best-effort) ───────────────────────────────────────

    def _check_actor(self, user_id: str | None, org_id: str | None) -> None:
        """An acting user, when given, must exist in the order's organization."""
        if user_id is None:
            return
        user = self.directory.get_user(user_id)
        if user is None or user.org_id != org_id:
            raise NotFoundError(resource="User", resource_id=user_id, org_id=org_id)

    def _record(self, **event) -> None:
        try:
            self.store.append_event(timestamp=self.clock(), **event)
        except PersistenceError:
            metrics.increment("audit_write_failures")
            logger.exception(
                "Event append failed after state change; audit history lost",
                extra={"order_id": event.get("order_id"), "action": event["action"].value},
            )
