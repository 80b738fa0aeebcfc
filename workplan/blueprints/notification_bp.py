"""
Workplan
Notification inbox blueprint.

Provides:
    - Per-user inbox over the Request store (decisions + automatic notices)
    - Unseen counter and mark-seen
    - Resolve and soft-delete flags
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from workplan.blueprints import page_args
from workplan.services.notification import NotificationService
from workplan.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


# ═══════════════════════════════════════════════════════════════════════════
#  INBOX
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/users/<int:uid>/notifications", methods=["GET"])
def list_notifications(uid):
    """Query params: automatic_only, unseen_only, limit, offset."""
    limit, offset = page_args()
    automatic_only = _flag("automatic_only")
    items = NotificationService.notifications_for_user(
        uid,
        automatic_only=automatic_only,
        unseen_only=_flag("unseen_only"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [r.to_dict(include_snapshot=False) for r in items],
        "unseen": NotificationService.unseen_count(uid, automatic_only=automatic_only),
        "limit": limit,
        "offset": offset,
    }), 200


@notification_bp.route("/users/<int:uid>/notifications/unseen-count", methods=["GET"])
def unseen_count(uid):
    return jsonify({
        "user_id": uid,
        "unseen": NotificationService.unseen_count(uid, automatic_only=_flag("automatic_only")),
    }), 200


@notification_bp.route("/users/<int:uid>/notifications/mark-seen", methods=["POST"])
def mark_seen(uid):
    data = request.get_json(silent=True) or {}
    automatic_only = bool(data.get("automatic_only", _flag("automatic_only")))
    count = NotificationService.mark_seen(uid, automatic_only=automatic_only)
    return jsonify({"marked": count}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  FLAGS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/requests/<int:rid>/resolve", methods=["POST"])
def mark_resolved(rid):
    req = NotificationService.mark_resolved(rid)
    return jsonify(req.to_dict(include_snapshot=False)), 200


@notification_bp.route("/requests/delete", methods=["POST"])
def mark_deleted():
    """Body: {ids: [int, ...]}"""
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids:
        return api_error(E.VALIDATION_REQUIRED, "ids must be a non-empty list")
    try:
        ids = [int(i) for i in ids]
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "ids must be integers")
    count = NotificationService.mark_deleted(ids)
    return jsonify({"deleted": count}), 200
