"""
Lifecycle status rules for the work hierarchy.

Pure functions of (current status, progress, deadline, today): no session
access, no side effects. ``hierarchy_service.recompute_statuses`` applies
them to stored rows.

Program rule, in priority order:
    1. deleted stays deleted
    2. completed with progress 1.0 stays completed
    3. overdue whose deadline moved to today or later reopens
    4. progress 1.0 past the deadline → completed
    5. progress < 1.0 past the deadline → overdue
    6. completed that gained open work reopens
    7. progress 0 → planned
    8. otherwise → in_progress

A reopened item (rules 3 and 6) is settled by rules 7-8, so applying the
rule to its own output never changes it again.
"""

from __future__ import annotations

from datetime import date

FULL = 1.0


def _past(deadline: date | None, today: date) -> bool:
    return deadline is not None and today > deadline


def _open_status(progress: float) -> str:
    return "planned" if progress <= 0 else "in_progress"


def resolve_program_status(current: str, progress: float,
                           deadline: date | None, today: date) -> str:
    """Return the Program status implied by its progress and deadline."""
    if current == "deleted":
        return current
    if current == "completed" and progress >= FULL:
        return current
    if current == "overdue" and deadline is not None and today <= deadline:
        return _open_status(progress)
    if progress >= FULL and _past(deadline, today):
        return "completed"
    if progress < FULL and _past(deadline, today):
        return "overdue"
    if progress < FULL and current == "completed":
        return _open_status(progress)
    return _open_status(progress)


def resolve_sub_program_status(current: str, progress: float) -> str:
    """Sub-programs carry no overdue state; cancelled is terminal."""
    if current == "cancelled":
        return current
    if progress >= FULL:
        return "completed"
    return _open_status(progress)


def resolve_initiative_status(task_total: int, progress: float,
                              deadline: date | None, today: date) -> str:
    """Initiatives: no tasks → planned, all done → completed, late → overdue."""
    if task_total == 0:
        return "planned"
    if progress >= FULL:
        return "completed"
    if _past(deadline, today):
        return "overdue"
    return "in_progress"


def task_is_past_due(status: str, deadline: date | None, today: date) -> bool:
    """True when a not-yet-completed Task's deadline is strictly before today."""
    return status != "completed" and _past(deadline, today)


def is_completion_eligible(progress: float, deadline: date | None, today: date) -> bool:
    """Manual completion needs all work done while the deadline still holds."""
    return progress >= FULL and not _past(deadline, today)
