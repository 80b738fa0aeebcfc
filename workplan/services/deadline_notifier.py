"""Deadline notifier: turns Task deadlines and edits into automatic Requests.

Daily sweep (``run_deadline_sweep``):
  - approaching scan: a notice per assignee when the days left hit a
    milestone (30, 15, 7) or the final countdown (6..1)
  - overdue scan: Tasks whose deadline is before today flip to overdue,
    lose their approaching notices and get an overdue notice
  - overdue re-check: every overdue Task has its overdue notice

On-demand notices, called by the approval workflow and by direct edits:
  - ``notify_completion``
  - ``handle_deadline_change``
  - ``notify_assignee_change``

Every notice is deduplicated on the exact (task, recipient, kind, message)
tuple, so re-running any of these is harmless. Only ``run_deadline_sweep``
commits; the notices join the caller's transaction.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from flask import current_app
from sqlalchemy import select

from workplan.models import db
from workplan.models.hierarchy import Task
from workplan.services import alerts
from workplan.services.notification import NotificationService
from workplan.services.status_resolver import task_is_past_due
from workplan.utils.helpers import app_timezone, local_now, local_today

logger = logging.getLogger(__name__)


# ── Messages ─────────────────────────────────────────────────────────────────


def approaching_message(name: str, days: int) -> str:
    if days in milestone_days():
        return f"Task '{name}' is {days} days away from its deadline."
    unit = "day" if days == 1 else "days"
    return f"{days} {unit} left until task '{name}' is due."


def overdue_message(name: str) -> str:
    return f"Task '{name}' is overdue and can no longer be completed."


def completion_message(name: str, when: datetime) -> str:
    return f"Task '{name}' was completed on {when.strftime('%d/%m/%Y %H:%M')}."


def deadline_changed_message(name: str, deadline: date) -> str:
    return f"The deadline of task '{name}' was changed to {deadline.strftime('%d/%m/%Y')}."


def assignee_added_message(name: str) -> str:
    return f"You were assigned to task '{name}'."


def assignee_removed_message(name: str) -> str:
    return f"You were removed from task '{name}'."


# ── Thresholds ───────────────────────────────────────────────────────────────


def milestone_days() -> tuple[int, ...]:
    return tuple(current_app.config.get("DEADLINE_MILESTONE_DAYS", (30, 15, 7)))


def countdown_days() -> int:
    return int(current_app.config.get("DEADLINE_COUNTDOWN_DAYS", 6))


def days_remaining(deadline: date, today: date) -> int:
    return (deadline - today).days


def is_notify_day(days: int) -> bool:
    return days in milestone_days() or 1 <= days <= countdown_days()


def task_recipients(task: Task) -> list[int]:
    """Assignee set plus the primary assignee."""
    ids = set(task.assignee_ids)
    if task.assignee_id is not None:
        ids.add(task.assignee_id)
    return sorted(ids)


def _notify_all(task: Task, kind: str, message: str, recipients=None) -> int:
    created = 0
    for recipient_id in (task_recipients(task) if recipients is None else recipients):
        req = NotificationService.create_automatic(
            kind=kind, task_id=task.id, recipient_id=recipient_id, message=message,
        )
        if req is not None:
            created += 1
    return created


# ═════════════════════════════════════════════════════════════════════════════
# Scans
# ═════════════════════════════════════════════════════════════════════════════


def notify_approaching(task: Task, today: date) -> int:
    """Create approaching notices for one Task if today is a notify day."""
    if task.deadline is None or task.status == "completed":
        return 0
    days = days_remaining(task.deadline, today)
    if not is_notify_day(days):
        return 0
    return _notify_all(task, "deadline_approaching", approaching_message(task.name, days))


def scan_approaching(today: date) -> int:
    tasks = db.session.execute(
        select(Task).where(Task.deadline.isnot(None), Task.status != "completed")
    ).scalars().all()
    return sum(notify_approaching(task, today) for task in tasks)


def scan_overdue(today: date) -> tuple[int, int]:
    """Flip past-due Tasks to overdue. Returns (tasks flipped, notices created)."""
    tasks = db.session.execute(
        select(Task).where(
            Task.deadline < today,
            Task.status.notin_(["completed", "overdue"]),
        )
    ).scalars().all()

    flipped = notices = 0
    for task in tasks:
        if not task_is_past_due(task.status, task.deadline, today):
            continue
        task.status = "overdue"
        flipped += 1
        NotificationService.delete_kind_for_task(task.id, "deadline_approaching")
        notices += _notify_all(task, "deadline_overdue", overdue_message(task.name))
        logger.info("Task %s is overdue", task.id, extra={"task_id": task.id})
    return flipped, notices


def recheck_overdue() -> int:
    """Ensure every overdue Task carries its overdue notice."""
    tasks = db.session.execute(
        select(Task).where(Task.status == "overdue")
    ).scalars().all()
    return sum(
        _notify_all(task, "deadline_overdue", overdue_message(task.name))
        for task in tasks
    )


def run_deadline_sweep(today: date | None = None) -> dict:
    """Run all three scans in one transaction and commit.

    Safe to re-run: the second run on the same day creates nothing.
    """
    today = today or local_today()
    with alerts.unit_of_work():
        approaching = scan_approaching(today)
        flipped, overdue_notices = scan_overdue(today)
        rechecked = recheck_overdue()

    result = {
        "date": today.isoformat(),
        "approaching_notices": approaching,
        "tasks_marked_overdue": flipped,
        "overdue_notices": overdue_notices + rechecked,
    }
    logger.info("Deadline sweep: %s", result)
    return result


# ═════════════════════════════════════════════════════════════════════════════
# On-demand notices
# ═════════════════════════════════════════════════════════════════════════════


def notify_completion(task: Task, when: datetime | None = None) -> int:
    """One completion notice per assignee, stamped with the completion time."""
    when = when or task.completed_at or local_now()
    if when.tzinfo is not None:
        when = when.astimezone(app_timezone())
    return _notify_all(task, "task_completed", completion_message(task.name, when))


def handle_deadline_change(task: Task, old_deadline: date | None,
                           today: date | None = None) -> dict:
    """React to an edited Task deadline. ``task.deadline`` already holds the new date.

    - new deadline today or earlier: the Task becomes overdue, nothing else
    - overdue Task moved into the future: back to pending
    - date actually changed: a change notice per assignee, stale approaching
      notices dropped, approaching thresholds re-evaluated for the new date
    """
    today = today or local_today()
    result = {"status": task.status, "changed_notices": 0, "approaching_notices": 0}
    new_deadline = task.deadline
    if task.status == "completed" or new_deadline is None:
        return result

    if new_deadline <= today:
        task.status = "overdue"
        result["status"] = task.status
        return result

    if task.status == "overdue":
        task.status = "pending"

    if new_deadline != old_deadline:
        result["changed_notices"] = _notify_all(
            task, "deadline_changed", deadline_changed_message(task.name, new_deadline),
        )
        NotificationService.delete_kind_for_task(task.id, "deadline_approaching")
        result["approaching_notices"] = notify_approaching(task, today)

    result["status"] = task.status
    return result


def notify_assignee_change(task: Task, old_ids, new_ids) -> tuple[int, int]:
    """Notices for added and removed assignees. Returns (added, removed) counts."""
    old_set, new_set = set(old_ids), set(new_ids)
    added = _notify_all(task, "assignee_added", assignee_added_message(task.name),
                        recipients=sorted(new_set - old_set))
    removed = _notify_all(task, "assignee_removed", assignee_removed_message(task.name),
                          recipients=sorted(old_set - new_set))
    return added, removed
