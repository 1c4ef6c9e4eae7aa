"""
SLA monitoring & scheduler blueprint.

Endpoints:
    POST /api/v1/sla/sweep            — run one SLA sweep now
    GET  /api/v1/sla/stats            — active / at-risk / overdue totals per brand
    GET  /api/v1/sla/productivity     — transitions per user over the last N days
    GET  /api/v1/jobs                 — registered jobs with run history
    POST /api/v1/jobs/<name>/run      — trigger a job manually
    POST /api/v1/jobs/<name>/toggle   — {enabled: bool}
"""

import logging

from flask import Blueprint, jsonify, request

from osflow.blueprints import get_notifier, json_body, request_org_id
from osflow.services.scheduler_service import SchedulerService, get_registered_jobs
from osflow.services.sla_monitor import PRODUCTIVITY_WINDOW_DAYS, SLAMonitor
from osflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

sla_bp = Blueprint("sla_bp", __name__, url_prefix="/api/v1")


@sla_bp.route("/sla/sweep", methods=["POST"])
def run_sweep():
    result = SLAMonitor(notifier=get_notifier()).sweep(org_id=request_org_id())
    return jsonify({"success": True, **result.to_dict()})


@sla_bp.route("/sla/stats", methods=["GET"])
def sla_stats():
    return jsonify(SLAMonitor(notifier=get_notifier()).stats(org_id=request_org_id()))


@sla_bp.route("/sla/productivity", methods=["GET"])
def productivity():
    days = request.args.get("days", PRODUCTIVITY_WINDOW_DAYS, type=int)
    if days < 1 or days > 90:
        return api_error(E.VALIDATION_INVALID, "days must be between 1 and 90")
    report = SLAMonitor(notifier=get_notifier()).productivity_report(org_id=request_org_id(), days=days)
    return jsonify(report)


# ── Scheduler ────────────────────────────────────────────────────────────


@sla_bp.route("/jobs", methods=["GET"])
def list_jobs():
    return jsonify(SchedulerService.list_jobs())


@sla_bp.route("/jobs/<job_name>/run", methods=["POST"])
def run_job(job_name):
    if job_name not in get_registered_jobs():
        return api_error(E.NOT_FOUND, f"Unknown job: {job_name}")
    outcome = SchedulerService.run_job(job_name)
    status = 200 if outcome["status"] == "success" else 500
    return jsonify(outcome), status


@sla_bp.route("/jobs/<job_name>/toggle", methods=["POST"])
def toggle_job(job_name):
    enabled = json_body().get("enabled")
    if not isinstance(enabled, bool):
        return api_error(E.VALIDATION_REQUIRED, "enabled (boolean) is required")
    SchedulerService.ensure_jobs_registered()
    record = SchedulerService.toggle_job(job_name, enabled)
    if record is None:
        return api_error(E.NOT_FOUND, f"Unknown job: {job_name}")
    return jsonify(record)
