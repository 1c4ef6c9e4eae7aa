"""
Service order blueprint.

Endpoints:
    POST /api/v1/orders                       — create an order in ROTEIRO
    GET  /api/v1/orders/<id>                  — order detail
    GET  /api/v1/orders/<id>/events           — event history
    GET  /api/v1/orders/<id>/transitions      — next rule + validator verdict
    POST /api/v1/orders/<id>/advance          — {user_id}
    POST /api/v1/orders/<id>/reject           — {user_id, reason}
    POST /api/v1/orders/<id>/approve          — {user_id, gate: internal|external}

Organization scope comes from the optional ``X-Org-Id`` header.
Service exceptions are mapped to JSON errors by the app-level handlers.
"""

import logging

from flask import Blueprint, jsonify

from osflow.blueprints import json_body, request_org_id
from osflow.models.workflow import PIPELINE, previous_stage
from osflow.services.order_lifecycle import OrderLifecycle
from osflow.services.order_store import OrderStore
from osflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/v1/orders")


@orders_bp.route("", methods=["POST"])
def create_order():
    """Body: {title, brand?, priority?, checklist?: [{name, required, done}], user_id?}"""
    data = json_body()
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    checklist = data.get("checklist") or []
    if not isinstance(checklist, list):
        return api_error(E.VALIDATION_INVALID, "checklist must be an array")

    order = OrderLifecycle().create_order(
        org_id=request_org_id() or data.get("org_id"),
        title=data["title"],
        brand=data.get("brand"),
        priority=data.get("priority") or "MEDIUM",
        checklist=checklist,
        acting_user_id=data.get("user_id"),
    )
    return jsonify(order.to_dict()), 201


@orders_bp.route("/<order_id>", methods=["GET"])
def get_order(order_id):
    store = OrderStore()
    order = store.get_order(order_id, request_org_id())
    data = order.to_dict()
    data["checklist"] = [item.to_dict() for item in order.checklist_items]
    data["assets"] = [asset.to_dict() for asset in store.list_assets(order.id)]
    return jsonify(data)


@orders_bp.route("/<order_id>/events", methods=["GET"])
def list_events(order_id):
    store = OrderStore()
    order = store.get_order(order_id, request_org_id())
    return jsonify([event.to_dict() for event in store.list_events(order.id)])


@orders_bp.route("/<order_id>/transitions", methods=["GET"])
def preview_transition(order_id):
    return jsonify(OrderLifecycle().preview(order_id, org_id=request_org_id()))


@orders_bp.route("/<order_id>/advance", methods=["POST"])
def advance(order_id):
    data = json_body()
    user_id = data.get("user_id")
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")

    new_stage = OrderLifecycle().advance(order_id, user_id, org_id=request_org_id())
    return jsonify({
        "order_id": order_id,
        "previous_stage": previous_stage(new_stage).value,
        "new_stage": new_stage.value,
    })


@orders_bp.route("/<order_id>/reject", methods=["POST"])
def reject(order_id):
    data = json_body()
    user_id = data.get("user_id")
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    reason = (data.get("reason") or "").strip()
    if not reason:
        return api_error(E.VALIDATION_REQUIRED, "reason is required")

    new_stage = OrderLifecycle().reject(order_id, reason, user_id, org_id=request_org_id())
    return jsonify({
        "order_id": order_id,
        "previous_stage": PIPELINE[new_stage.position + 1].value,
        "new_stage": new_stage.value,
    })


@orders_bp.route("/<order_id>/approve", methods=["POST"])
def approve(order_id):
    data = json_body()
    user_id = data.get("user_id")
    gate = data.get("gate")
    if not user_id or not gate:
        return api_error(E.VALIDATION_REQUIRED, "user_id and gate are required")

    order = OrderLifecycle().record_approval(order_id, gate, user_id, org_id=request_org_id())
    return jsonify(order.to_dict())
