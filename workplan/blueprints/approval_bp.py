"""
Approval workflow blueprint.

Routes:
  POST   /requests                    – submit a change proposal
  GET    /requests/pending            – decision Requests awaiting an approver
  GET    /requests/<rid>              – single Request (snapshot included)
  POST   /requests/<rid>/decide       – accept / reject a pending Request
"""

import logging

from flask import Blueprint, jsonify, request

from workplan.blueprints import actor_id, today_arg
from workplan.services import approval_service, hierarchy_service
from workplan.services.notification import NotificationService
from workplan.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

approval_bp = Blueprint("approval", __name__, url_prefix="/api/v1")
register_error_handlers(approval_bp)


@approval_bp.route("/requests", methods=["POST"])
def submit_request():
    """Body: {kind, snapshot}  snapshot is a JSON object or its JSON text."""
    data = request.get_json(silent=True) or {}
    kind = (data.get("kind") or "").strip()
    if not kind:
        return api_error(E.VALIDATION_REQUIRED, "kind is required")
    if data.get("snapshot") in (None, ""):
        return api_error(E.VALIDATION_REQUIRED, "snapshot is required")
    submitter = actor_id()
    if submitter is None:
        return api_error(E.VALIDATION_REQUIRED, "X-Employee-ID header is required")

    req = approval_service.submit_request(kind, data["snapshot"], submitter)
    return jsonify(req), 201


@approval_bp.route("/requests/pending", methods=["GET"])
def pending_requests():
    hierarchy_service.require_approver(actor_id(), "review pending requests")
    items = NotificationService.pending_for_approver()
    return jsonify({
        "items": [r.to_dict() for r in items],
        "total": len(items),
    }), 200


@approval_bp.route("/requests/<int:rid>", methods=["GET"])
def get_request(rid):
    return jsonify(approval_service.get_request(rid)), 200


@approval_bp.route("/requests/<int:rid>/decide", methods=["POST"])
def decide_request(rid):
    """Body: {accept: true|false, message?}  or  {decision: "accept"|"reject", message?}"""
    data = request.get_json(silent=True) or {}
    accept = data.get("accept")
    if accept is None and "decision" in data:
        decision = str(data["decision"]).lower()
        if decision not in ("accept", "reject"):
            return api_error(E.VALIDATION_INVALID, "decision must be 'accept' or 'reject'")
        accept = decision == "accept"
    if not isinstance(accept, bool):
        return api_error(E.VALIDATION_REQUIRED, "accept (boolean) is required")

    result = approval_service.decide_request(
        rid,
        actor_id(),
        accept,
        message=(data.get("message") or None),
        today=today_arg(),
    )
    return jsonify(result), 200
