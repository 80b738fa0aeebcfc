"""Approval workflow: submit change proposals, decide them, materialize them.

State machine per decision Request: pending → accepted | rejected.

Submit
    Validates the proposal synchronously (kind, submitter, snapshot shape,
    parent linkage, deadline bounds) and stores it as a pending Request.
    No hierarchy row is touched.

Decide
    The approver's decision is written with a conditional update
    (``WHERE status = 'pending'``); losing that race, or deciding an
    already-decided Request, raises ConflictError and changes nothing.
    On acceptance the snapshot is materialized by the strategy registered
    for the Request kind. If materialization fails, every change it made
    is rolled back and the Request is rejected in place with the reason.
    The submitter is alerted either way (best effort, after commit).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable

from sqlalchemy import update

from workplan.core.exceptions import (
    ConflictError,
    MaterializationError,
    NotFoundError,
    ValidationError,
)
from workplan.models import db
from workplan.models.hierarchy import Initiative, Task
from workplan.models.request import DECISION_KINDS, Request, category_for_kind
from workplan.services import alerts, deadline_notifier
from workplan.services import hierarchy_service as hierarchy
from workplan.services.notification import NotificationService
from workplan.services.snapshots import (
    InitiativeSnapshot,
    SnapshotError,
    TaskSnapshot,
    decode_snapshot,
    encode_snapshot,
)
from workplan.utils.helpers import local_today

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_MESSAGE = "Request accepted."
DEFAULT_REJECT_MESSAGE = "Request rejected."
NOT_COMPLETABLE_MESSAGE = "Task is overdue or has no assignee."

# Failures that turn an acceptance into an in-place rejection
_MATERIALIZATION_FAILURES = (MaterializationError, ValidationError, NotFoundError, SnapshotError)


# ═════════════════════════════════════════════════════════════════════════════
# Materializer registry
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class MutationResult:
    """What an accepted Request changed in the hierarchy."""
    kind: str
    initiative_id: int | None = None
    task_id: int | None = None
    created: bool = False
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "initiative_id": self.initiative_id,
            "task_id": self.task_id,
            "created": self.created,
            "details": self.details,
        }


_materializers: dict[str, Callable] = {}


def register_materializer(kind: str):
    """Decorator to register the materialization strategy for a Request kind.

    Usage:
        @register_materializer("create_task")
        def _create_task(snapshot, req, today) -> MutationResult:
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _materializers[kind] = fn
        return fn
    return decorator


def get_materializers() -> dict[str, Callable]:
    return dict(_materializers)


def _upsert_initiative(snapshot: InitiativeSnapshot, req: Request, today: date,
                       kind: str) -> MutationResult:
    initiative = db.session.get(Initiative, snapshot.id) if snapshot.id is not None else None
    if kind == "edit_initiative" and initiative is None:
        raise MaterializationError(f"Initiative id={snapshot.id} no longer exists.")

    if initiative is not None:
        hierarchy.validate_initiative_edit(initiative, snapshot)
        hierarchy.edit_initiative(initiative, snapshot, today)
        return MutationResult(kind=kind, initiative_id=initiative.id)

    hierarchy.validate_initiative_snapshot(snapshot)
    initiative = Initiative(status="planned",
                            creator_id=snapshot.creator_id or req.submitter_id)
    db.session.add(initiative)
    hierarchy.apply_initiative_snapshot(initiative, snapshot)
    hierarchy.refresh_statuses(initiative, today)
    return MutationResult(kind=kind, initiative_id=initiative.id, created=True)


@register_materializer("create_initiative")
def _create_initiative(snapshot: InitiativeSnapshot, req: Request, today: date) -> MutationResult:
    return _upsert_initiative(snapshot, req, today, "create_initiative")


@register_materializer("edit_initiative")
def _edit_initiative(snapshot: InitiativeSnapshot, req: Request, today: date) -> MutationResult:
    if snapshot.id is None:
        raise MaterializationError("Initiative proposal carries no id.")
    return _upsert_initiative(snapshot, req, today, "edit_initiative")


@register_materializer("create_task")
def _create_task(snapshot: TaskSnapshot, req: Request, today: date) -> MutationResult:
    if not snapshot.assignee_ids:
        raise MaterializationError("Task proposal has no assignee.")
    initiative = hierarchy.validate_task_snapshot(snapshot)

    task = Task(status="pending", creator_id=snapshot.creator_id or req.submitter_id)
    hierarchy.apply_task_snapshot(task, snapshot)
    db.session.add(task)
    db.session.flush()
    added, _ = deadline_notifier.notify_assignee_change(task, [], task.assignee_ids)
    hierarchy.refresh_statuses(initiative, today)
    return MutationResult(kind="create_task", initiative_id=initiative.id, task_id=task.id,
                          created=True, details={"assignees_added": added})


@register_materializer("edit_task")
def _edit_task(snapshot: TaskSnapshot, req: Request, today: date) -> MutationResult:
    if snapshot.id is None:
        raise MaterializationError("Task proposal carries no id.")
    task = db.session.get(Task, snapshot.id)
    if task is None:
        raise MaterializationError(f"Task id={snapshot.id} no longer exists.")
    hierarchy.validate_task_snapshot(snapshot, require_assignee=False)
    details = hierarchy.edit_task(task, snapshot, today)
    return MutationResult(kind="edit_task", initiative_id=task.initiative_id,
                          task_id=task.id, details=details)


@register_materializer("complete_task")
def _complete_task(snapshot: TaskSnapshot, req: Request, today: date) -> MutationResult:
    task = db.session.get(Task, snapshot.id) if snapshot.id is not None else None
    if task is None:
        raise MaterializationError(NOT_COMPLETABLE_MESSAGE)
    deadline = snapshot.deadline or task.deadline
    has_assignee = bool(snapshot.assignee_ids or task.assignee_ids or task.assignee_id)
    if (deadline is not None and deadline < today) or not has_assignee:
        raise MaterializationError(NOT_COMPLETABLE_MESSAGE)
    if task.status == "completed":
        raise MaterializationError("Task is already completed.")

    notices = hierarchy.mark_task_completed(task, today)
    return MutationResult(kind="complete_task", initiative_id=task.initiative_id,
                          task_id=task.id, details={"completion_notices": notices})


# ═════════════════════════════════════════════════════════════════════════════
# Submit
# ═════════════════════════════════════════════════════════════════════════════


def _validate_proposal(kind: str, snapshot) -> dict:
    """Synchronous submit-time checks. Returns the Request target ids."""
    if kind == "create_initiative":
        hierarchy.validate_initiative_snapshot(snapshot)
        return {}
    if kind == "edit_initiative":
        if snapshot.id is None:
            raise ValidationError("id is required to edit an initiative", details={"id": None})
        initiative = hierarchy.get_initiative(snapshot.id)
        hierarchy.validate_initiative_edit(initiative, snapshot)
        return {"initiative_id": snapshot.id}
    if kind == "create_task":
        initiative = hierarchy.validate_task_snapshot(snapshot, require_assignee=True)
        return {"initiative_id": initiative.id}
    if kind == "edit_task":
        if snapshot.id is None:
            raise ValidationError("id is required to edit a task", details={"id": None})
        task = hierarchy.get_task(snapshot.id)
        hierarchy.validate_task_snapshot(snapshot, require_assignee=False)
        return {"task_id": task.id, "initiative_id": snapshot.initiative_id}
    # complete_task: eligibility is judged when the Request is decided
    task = db.session.get(Task, snapshot.id) if snapshot.id is not None else None
    if task is None:
        return {}
    return {"task_id": task.id, "initiative_id": task.initiative_id}


def submit_request(kind: str, snapshot_payload, submitter_id: int) -> dict:
    """Store a change proposal as a pending decision Request.

    Args:
        kind:              One of the decision kinds.
        snapshot_payload:  JSON text or dict of the proposed Initiative/Task.
        submitter_id:      Acting employee.

    Returns:
        Serialized Request (status ``pending``).

    Raises:
        ValidationError: unknown kind, malformed snapshot, bad linkage or bounds.
        NotFoundError:   submitter or referenced entity does not exist.
    """
    if kind not in DECISION_KINDS:
        raise ValidationError(
            f"kind must be one of: {', '.join(sorted(DECISION_KINDS))}",
            details={"kind": kind},
        )
    hierarchy.get_employee(submitter_id)
    try:
        snapshot = decode_snapshot(kind, snapshot_payload)
    except SnapshotError as exc:
        raise ValidationError(str(exc), details={"snapshot": str(exc)}) from exc
    if snapshot.creator_id is None:
        snapshot.creator_id = submitter_id
    targets = _validate_proposal(kind, snapshot)

    req = Request(
        kind=kind,
        category=category_for_kind(kind),
        snapshot=encode_snapshot(snapshot),
        submitter_id=submitter_id,
        status="pending",
        **targets,
    )
    with alerts.unit_of_work():
        db.session.add(req)
    logger.info("Request %s submitted (%s) by employee %s", req.id, kind, submitter_id,
                extra={"request_record_id": req.id, "request_kind": kind})
    return req.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Decide
# ═════════════════════════════════════════════════════════════════════════════


def _claim(request_id: int, approver_id: int, status: str, message: str) -> bool:
    """Move a Request out of pending. False when someone else already did."""
    result = db.session.execute(
        update(Request)
        .where(Request.id == request_id, Request.status == "pending")
        .values(
            status=status,
            responded_at=datetime.now(timezone.utc),
            approver_id=approver_id,
            response_message=message,
        )
        .execution_options(synchronize_session="fetch")
    )
    return (result.rowcount or 0) == 1


def _conflict(req: Request) -> ConflictError:
    db.session.rollback()
    db.session.refresh(req)
    return ConflictError(resource="Request", field="status", value=req.status)


def decide_request(request_id: int, approver_id: int, accept: bool,
                   message: str | None = None, today: date | None = None) -> dict:
    """Accept or reject a pending decision Request.

    Returns:
        Serialized Request plus ``result`` (MutationResult dict or None).

    Raises:
        PermissionDeniedError: the actor is not an approver.
        NotFoundError:         no such Request.
        ConflictError:         the Request is no longer pending.
    """
    hierarchy.require_approver(approver_id, "decide requests")
    today = today or local_today()
    req = NotificationService.get(request_id)
    if req.category != "decision":
        raise ConflictError(resource="Request", field="category", value=req.category)

    log_extra = {"request_record_id": req.id, "request_kind": req.kind}

    if not accept:
        text = message or DEFAULT_REJECT_MESSAGE
        with alerts.unit_of_work():
            if not _claim(req.id, approver_id, "rejected", text):
                raise _conflict(req)
            alerts.queue_alert(req.submitter_id, "Request rejected", text, request_id=req.id)
        logger.info("Request %s rejected by employee %s", req.id, approver_id, extra=log_extra)
        return {**req.to_dict(), "result": None}

    text = message or DEFAULT_ACCEPT_MESSAGE
    try:
        with alerts.unit_of_work():
            if not _claim(req.id, approver_id, "accepted", text):
                raise _conflict(req)
            strategy = _materializers[req.kind]
            result = strategy(decode_snapshot(req.kind, req.snapshot), req, today)
            if result.task_id is not None and req.task_id is None:
                req.task_id = result.task_id
            if result.initiative_id is not None and req.initiative_id is None:
                req.initiative_id = result.initiative_id
            alerts.queue_alert(req.submitter_id, "Request accepted", text, request_id=req.id)
    except _MATERIALIZATION_FAILURES as exc:
        reason = str(exc)
        logger.warning("Request %s could not be applied: %s", req.id, reason, extra=log_extra)
        with alerts.unit_of_work():
            if not _claim(req.id, approver_id, "rejected", reason):
                raise _conflict(req)
            alerts.queue_alert(req.submitter_id, "Request rejected", reason, request_id=req.id)
        db.session.refresh(req)
        return {**req.to_dict(), "result": None}

    db.session.refresh(req)
    logger.info("Request %s accepted by employee %s", req.id, approver_id, extra=log_extra)
    return {**req.to_dict(), "result": result.to_dict()}


def get_request(request_id: int) -> dict:
    return NotificationService.get(request_id).to_dict()
