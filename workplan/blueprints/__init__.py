"""
Workplan
Blueprint registry and shared request helpers.
"""

from flask import request

from workplan.utils.helpers import parse_date


def actor_id() -> int | None:
    """Acting employee id: ``X-Employee-ID`` header, else JSON ``actor_id``."""
    raw = request.headers.get("X-Employee-ID")
    if raw is None:
        data = request.get_json(silent=True) or {}
        raw = data.get("actor_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def today_arg():
    """Optional ``?today=YYYY-MM-DD`` override for date-driven operations."""
    raw = request.args.get("today")
    return parse_date(raw) if raw else None


def page_args(default_limit=50, max_limit=500):
    """Read limit/offset query params.

    Query params:
        limit  - max items (default 50, capped at max_limit)
        offset - starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def all_blueprints():
    from workplan.blueprints.approval_bp import approval_bp
    from workplan.blueprints.health_bp import health_bp
    from workplan.blueprints.hierarchy_bp import hierarchy_bp
    from workplan.blueprints.notification_bp import notification_bp
    from workplan.blueprints.scheduler_bp import scheduler_bp

    return [health_bp, hierarchy_bp, approval_bp, notification_bp, scheduler_bp]
