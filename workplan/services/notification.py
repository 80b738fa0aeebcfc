"""
Workplan
Notification / Request store service.

Single source of truth for both approval Requests and system notifications.
Methods add to the session; the calling operation owns the commit unless
the method says otherwise.
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from workplan.core.exceptions import NotFoundError
from workplan.models import db
from workplan.models.request import AUTOMATIC_KINDS, Request, category_for_kind
from workplan.services import alerts

logger = logging.getLogger(__name__)

ALERT_TITLES = {
    "deadline_approaching": "Deadline approaching",
    "deadline_overdue": "Task overdue",
    "deadline_changed": "Deadline changed",
    "task_completed": "Task completed",
    "assignee_added": "You were assigned",
    "assignee_removed": "Assignment removed",
}


class NotificationService:
    """Stateless service class for Request store operations."""

    # ── Automatic notifications ───────────────────────────────────────────

    @staticmethod
    def exists_exact(*, task_id, recipient_id, kind, message):
        """True if a Request with this exact (task, recipient, kind, message) exists.

        Deleted rows count: a notification is never re-created once sent.
        A failed lookup is treated as "not a duplicate".
        """
        try:
            found = db.session.execute(
                select(Request.id).where(
                    Request.task_id == task_id,
                    Request.submitter_id == recipient_id,
                    Request.kind == kind,
                    Request.response_message == message,
                ).limit(1)
            ).first()
        except SQLAlchemyError:
            logger.warning(
                "Dedup lookup failed for task %s recipient %s kind %s; assuming new",
                task_id, recipient_id, kind, exc_info=True,
            )
            return False
        return found is not None

    @staticmethod
    def create_automatic(*, kind, task_id, recipient_id, message, dedup=True):
        """
        Create an informational Request (status accepted, unseen).

        Returns:
            The new Request, or None when an identical one already exists.
        """
        if kind not in AUTOMATIC_KINDS:
            raise ValueError(f"{kind!r} is not an automatic Request kind")
        if dedup and NotificationService.exists_exact(
            task_id=task_id, recipient_id=recipient_id, kind=kind, message=message,
        ):
            return None

        req = Request(
            kind=kind,
            category=category_for_kind(kind),
            task_id=task_id,
            submitter_id=recipient_id,
            status="accepted",
            response_message=message,
            is_seen=False,
        )
        db.session.add(req)
        db.session.flush()
        alerts.queue_alert(recipient_id, ALERT_TITLES[kind], message,
                           request_id=req.id, task_id=task_id)
        logger.debug("Automatic request %s created", kind,
                     extra={"task_id": task_id, "request_record_id": req.id})
        return req

    @staticmethod
    def delete_kind_for_task(task_id, kind):
        """Physically remove every Request of ``kind`` targeting the task."""
        result = db.session.execute(
            delete(Request).where(Request.task_id == task_id, Request.kind == kind)
        )
        return result.rowcount or 0

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def get(request_id):
        req = db.session.get(Request, request_id)
        if req is None:
            raise NotFoundError(resource="Request", resource_id=request_id)
        return req

    @staticmethod
    def pending_for_approver():
        """Decision Requests still awaiting an approver, oldest first."""
        return db.session.execute(
            select(Request).where(
                Request.category == "decision",
                Request.status == "pending",
                Request.is_deleted.is_(False),
            ).order_by(Request.submitted_at, Request.id)
        ).scalars().all()

    @staticmethod
    def pending_count():
        return db.session.execute(
            select(func.count(Request.id)).where(
                Request.category == "decision",
                Request.status == "pending",
                Request.is_deleted.is_(False),
            )
        ).scalar_one()

    @staticmethod
    def notifications_for_user(user_id, *, automatic_only=False, unseen_only=False,
                               limit=None, offset=0):
        """Requests addressed to (or submitted by) a user, newest first."""
        q = select(Request).where(
            Request.submitter_id == user_id,
            Request.is_deleted.is_(False),
        )
        if automatic_only:
            q = q.where(Request.category == "automatic")
        if unseen_only:
            q = q.where(Request.is_seen.is_(False))
        q = q.order_by(Request.submitted_at.desc(), Request.id.desc()).offset(offset)
        if limit:
            q = q.limit(limit)
        return db.session.execute(q).scalars().all()

    @staticmethod
    def unseen_count(user_id, *, automatic_only=False):
        q = select(func.count(Request.id)).where(
            Request.submitter_id == user_id,
            Request.is_seen.is_(False),
            Request.is_deleted.is_(False),
        )
        if automatic_only:
            q = q.where(Request.category == "automatic")
        return db.session.execute(q).scalar_one()

    # ── Inbox flags (commit here) ─────────────────────────────────────────

    @staticmethod
    def mark_seen(user_id, *, automatic_only=False):
        """Mark every unseen Request of a user as seen. Returns the row count."""
        stmt = update(Request).where(
            Request.submitter_id == user_id,
            Request.is_seen.is_(False),
        )
        if automatic_only:
            stmt = stmt.where(Request.category == "automatic")
        count = db.session.execute(
            stmt.values(is_seen=True).execution_options(synchronize_session="fetch")
        ).rowcount
        db.session.commit()
        return count or 0

    @staticmethod
    def mark_resolved(request_id):
        req = NotificationService.get(request_id)
        req.is_resolved = True
        db.session.commit()
        return req

    @staticmethod
    def mark_deleted(request_ids):
        """Soft-delete Requests by id. Returns the number of rows flagged."""
        ids = [int(i) for i in request_ids]
        if not ids:
            return 0
        count = db.session.execute(
            update(Request)
            .where(Request.id.in_(ids), Request.is_deleted.is_(False))
            .values(is_deleted=True, deleted_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session="fetch")
        ).rowcount
        db.session.commit()
        return count or 0

    @staticmethod
    def archive_deleted(older_than_days=None):
        """Physically remove Requests soft-deleted more than N days ago."""
        if older_than_days is None:
            older_than_days = current_app.config.get("REQUEST_ARCHIVE_AFTER_DAYS", 30)
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        count = db.session.execute(
            delete(Request).where(
                Request.is_deleted.is_(True),
                Request.deleted_at < cutoff,
            )
        ).rowcount
        db.session.commit()
        return count or 0, cutoff
