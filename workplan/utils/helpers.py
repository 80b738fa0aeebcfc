"""Shared utility functions.

local_today / local_now:  calendar in the configured APP_TIMEZONE
parse_date:               lenient parser, returns None on bad input
parse_date_input:         strict parser, raises ValueError on bad input
"""
import logging
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)


def app_timezone():
    """Return the tzinfo every day comparison is made in."""
    name = current_app.config.get("APP_TIMEZONE", "UTC") if has_app_context() else "UTC"
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_now():
    return datetime.now(app_timezone())


def local_today():
    """Today's date, truncated in APP_TIMEZONE."""
    return local_now().date()


def parse_date(value):
    """Parse a date string (ISO or DD/MM/YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD/MM/YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Same as parse_date() but raises instead of returning None, so blueprints
    can turn a malformed date into a 400.
    """
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD/MM/YYYY.")
    return parsed
