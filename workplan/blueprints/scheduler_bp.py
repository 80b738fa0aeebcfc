"""
Workplan
Scheduled job management blueprint (list, trigger, toggle).
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from workplan.services.scheduler_service import SchedulerService
from workplan.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

scheduler_bp = Blueprint("scheduler", __name__, url_prefix="/api/v1/scheduler")
register_error_handlers(scheduler_bp)


@scheduler_bp.route("/jobs", methods=["GET"])
def list_jobs():
    SchedulerService.ensure_jobs_registered()
    return jsonify({"items": SchedulerService.list_jobs()}), 200


@scheduler_bp.route("/jobs/<job_name>", methods=["GET"])
def get_job(job_name):
    SchedulerService.ensure_jobs_registered()
    return jsonify(SchedulerService.get_job_status(job_name)), 200


@scheduler_bp.route("/jobs/<job_name>/run", methods=["POST"])
def run_job(job_name):
    """Manually trigger a job; runs even when the job is disabled."""
    result = SchedulerService.run_job(job_name, force=True)
    return jsonify(result), 200 if result["status"] != "failed" else 500


@scheduler_bp.route("/jobs/<job_name>", methods=["PATCH"])
def toggle_job(job_name):
    """Body: {is_enabled: bool}"""
    data = request.get_json(silent=True) or {}
    enabled = data.get("is_enabled")
    if not isinstance(enabled, bool):
        return api_error(E.VALIDATION_REQUIRED, "is_enabled (boolean) is required")
    return jsonify(SchedulerService.toggle_job(job_name, enabled)), 200
