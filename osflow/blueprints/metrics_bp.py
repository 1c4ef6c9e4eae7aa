"""
Metrics blueprint — workflow counters, request stats, error distribution.

All metrics are in-memory (no external dependency).
Endpoints:
    GET /api/v1/metrics/workflow   — transition / sweep / failure counters + stage distribution
    GET /api/v1/metrics/requests   — request stats (last hour)
    GET /api/v1/metrics/errors     — error distribution
"""

import logging
from collections import Counter, defaultdict

from flask import Blueprint, jsonify, request
from sqlalchemy import func, select

from osflow.blueprints import request_org_id
from osflow.middleware.timing import get_recent_metrics
from osflow.models import db
from osflow.models.workflow import PIPELINE, ServiceOrder
from osflow.services import metrics

logger = logging.getLogger(__name__)

metrics_bp = Blueprint("metrics_bp", __name__, url_prefix="/api/v1/metrics")


@metrics_bp.route("/workflow", methods=["GET"])
def workflow_metrics():
    """Engine counters since process start plus the current stage distribution."""
    stmt = select(ServiceOrder.stage, func.count(ServiceOrder.id)).group_by(ServiceOrder.stage)
    org_id = request_org_id()
    if org_id:
        stmt = stmt.where(ServiceOrder.org_id == org_id)
    counts = {stage: count for stage, count in db.session.execute(stmt).all()}

    return jsonify({
        "counters": metrics.snapshot(),
        "orders_by_stage": {stage.value: counts.get(stage, 0) for stage in PIPELINE},
    })


@metrics_bp.route("/requests", methods=["GET"])
def request_stats():
    """Aggregate request stats over the last hour (or custom window)."""
    window = request.args.get("window", 3600, type=int)
    recent = get_recent_metrics(seconds=window)

    if not recent:
        return jsonify({
            "window_seconds": window,
            "total_requests": 0,
            "avg_latency_ms": 0,
            "p95_latency_ms": 0,
            "status_distribution": {},
        })

    latencies = sorted(m["ms"] for m in recent)
    p95_idx = max(0, int(len(latencies) * 0.95) - 1)
    status_dist: Counter = Counter(str(m["status"]) for m in recent)

    return jsonify({
        "window_seconds": window,
        "total_requests": len(recent),
        "avg_latency_ms": round(sum(latencies) / len(latencies), 1),
        "p95_latency_ms": latencies[p95_idx],
        "max_latency_ms": latencies[-1],
        "status_distribution": dict(status_dist),
    })


@metrics_bp.route("/errors", methods=["GET"])
def error_distribution():
    """Error breakdown by status code and endpoint."""
    window = request.args.get("window", 3600, type=int)
    recent = get_recent_metrics(seconds=window)
    errors = [m for m in recent if m["status"] >= 400]

    by_status: Counter = Counter()
    by_endpoint: defaultdict = defaultdict(int)
    for m in errors:
        by_status[str(m["status"])] += 1
        by_endpoint[f'{m["method"]} {m["path"]}'] += 1

    top_endpoints = sorted(by_endpoint.items(), key=lambda x: -x[1])[:10]

    return jsonify({
        "window_seconds": window,
        "total_errors": len(errors),
        "error_rate": round(len(errors) / max(len(recent), 1) * 100, 1),
        "by_status": dict(by_status),
        "top_error_endpoints": [{"endpoint": ep, "count": c} for ep, c in top_endpoints],
    })
