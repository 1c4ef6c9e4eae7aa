"""
Inbound webhooks.

Endpoints:
    POST /api/v1/webhooks/posted  — {order_id}; the scheduling tool reports a
                                    publication, moving the order to POSTADO
"""

import logging

from flask import Blueprint, jsonify

from osflow.blueprints import json_body, request_org_id
from osflow.services.order_lifecycle import OrderLifecycle
from osflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/v1/webhooks")


@webhooks_bp.route("/posted", methods=["POST"])
def order_posted():
    order_id = json_body().get("order_id")
    if not order_id:
        return api_error(E.VALIDATION_REQUIRED, "order_id is required")

    new_stage = OrderLifecycle().mark_posted(str(order_id), org_id=request_org_id())
    logger.info("Posted webhook accepted", extra={"order_id": order_id})
    return jsonify({"order_id": order_id, "new_stage": new_stage.value})
