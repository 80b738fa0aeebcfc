"""
Best-effort user alerts.

Every automatic Request and every approval decision produces a short
user-facing alert (title + body + recipient). Alerts are queued on the
application context while a unit of work runs and handed to the alert
sink only after the commit; a rollback discards them.

The sink is any callable taking an ``Alert``, registered as
``app.extensions["alert_sink"]``. Without one, alerts are only logged.
Delivery failures are logged and never propagate.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass

from flask import current_app, g

from workplan.models import db

logger = logging.getLogger(__name__)


@dataclass
class Alert:
    recipient_id: int
    title: str
    body: str
    request_id: int | None = None
    task_id: int | None = None


def queue_alert(recipient_id: int, title: str, body: str, *,
                request_id: int | None = None, task_id: int | None = None) -> Alert:
    alert = Alert(recipient_id=recipient_id, title=title, body=body,
                  request_id=request_id, task_id=task_id)
    g.setdefault("pending_alerts", []).append(alert)
    return alert


def discard_pending() -> int:
    pending = g.pop("pending_alerts", [])
    return len(pending)


def dispatch_pending() -> int:
    """Deliver queued alerts. Returns how many were delivered."""
    pending = g.pop("pending_alerts", [])
    delivered = 0
    for alert in pending:
        if send_alert(alert):
            delivered += 1
    return delivered


def send_alert(alert: Alert) -> bool:
    sink = current_app.extensions.get("alert_sink")
    try:
        if sink is None:
            logger.info(
                "Alert for employee %s: %s: %s",
                alert.recipient_id, alert.title, alert.body,
                extra={"request_record_id": alert.request_id, "task_id": alert.task_id},
            )
        else:
            sink(alert)
        return True
    except Exception:
        logger.warning(
            "Alert delivery failed for employee %s (%s)",
            alert.recipient_id, alert.title, exc_info=True,
            extra={"request_record_id": alert.request_id, "task_id": alert.task_id},
        )
        return False


@contextmanager
def unit_of_work():
    """Commit the session on success and deliver queued alerts afterwards.

    Any exception rolls back the session, drops the queued alerts and
    propagates.
    """
    try:
        yield
        db.session.commit()
    except Exception:
        db.session.rollback()
        discard_pending()
        raise
    dispatch_pending()
