"""Work hierarchy service layer.

Direct (privileged) create/edit operations on Programs, SubPrograms,
Initiatives and Tasks, the validation rules shared with the approval
workflow, and status recomputation.

Rules:
  - the acting employee id is always an explicit parameter
  - db.session.commit() happens only in the public mutating functions,
    through ``alerts.unit_of_work``
  - helpers prefixed ``apply_`` / ``validate_`` / ``refresh_`` never commit
"""

from __future__ import annotations

import logging
from datetime import date

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select

from workplan.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from workplan.models import db
from workplan.models.hierarchy import (
    EMPLOYEE_ROLES,
    TASK_PRIORITIES,
    Employee,
    Initiative,
    InitiativeAssignee,
    Program,
    SubProgram,
    Task,
    TaskAssignee,
)
from workplan.services import alerts, deadline_notifier
from workplan.services import progress_service as progress
from workplan.services.snapshots import InitiativeSnapshot, SnapshotError, TaskSnapshot
from workplan.services.status_resolver import (
    is_completion_eligible,
    resolve_initiative_status,
    resolve_program_status,
    resolve_sub_program_status,
)
from workplan.utils.helpers import local_now, local_today, parse_date

logger = logging.getLogger(__name__)


# ── Lookups ──────────────────────────────────────────────────────────────────


def _get(model, pk, label=None):
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def get_employee(employee_id: int) -> Employee:
    return _get(Employee, employee_id)


def get_program(program_id: int) -> Program:
    return _get(Program, program_id)


def get_sub_program(sub_program_id: int) -> SubProgram:
    return _get(SubProgram, sub_program_id)


def get_initiative(initiative_id: int) -> Initiative:
    return _get(Initiative, initiative_id)


def get_task(task_id: int) -> Task:
    return _get(Task, task_id)


def require_approver(actor_id: int | None, action: str) -> Employee:
    """Return the acting employee, who must hold an approver role."""
    if actor_id is None:
        raise PermissionDeniedError(actor_id, action)
    actor = get_employee(actor_id)
    if not actor.is_approver:
        raise PermissionDeniedError(actor_id, action)
    return actor


# ── Employees ────────────────────────────────────────────────────────────────


def create_employee(data: dict) -> dict:
    full_name = (data.get("full_name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    role = (data.get("role") or "support").lower()
    errors = {}
    if not full_name:
        errors["full_name"] = "required"
    if not email:
        errors["email"] = "required"
    if role not in EMPLOYEE_ROLES:
        errors["role"] = f"must be one of: {', '.join(sorted(EMPLOYEE_ROLES))}"
    if email and "email" not in errors:
        try:
            email = validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError as exc:
            errors["email"] = str(exc)
    if errors:
        raise ValidationError("Invalid employee", details=errors)
    if db.session.execute(select(Employee.id).where(Employee.email == email)).first():
        raise ValidationError("Email already registered", details={"email": email})

    employee = Employee(full_name=full_name, email=email, role=role)
    with alerts.unit_of_work():
        db.session.add(employee)
    logger.info("Employee %s created", employee.id)
    return employee.to_dict()


def list_employees() -> list[dict]:
    rows = db.session.execute(select(Employee).order_by(Employee.id)).scalars().all()
    return [e.to_dict() for e in rows]


# ═════════════════════════════════════════════════════════════════════════════
# Validation shared with the approval workflow
# ═════════════════════════════════════════════════════════════════════════════


def validate_deadline_within(deadline: date | None, parent_deadline: date | None,
                             parent_label: str) -> None:
    if deadline is not None and parent_deadline is not None and deadline > parent_deadline:
        raise ValidationError(
            f"deadline exceeds the {parent_label} deadline",
            details={"deadline": deadline.isoformat(),
                     f"{parent_label}_deadline": parent_deadline.isoformat()},
        )


def latest_deadline(column, *criteria) -> date | None:
    """Largest non-null deadline among the child rows matching ``criteria``."""
    return db.session.execute(select(func.max(column)).where(*criteria)).scalar()


def validate_deadline_covers(deadline: date | None, child_deadline: date | None,
                             child_label: str) -> None:
    """A parent deadline may not move before any of its children's deadlines."""
    if deadline is not None and child_deadline is not None and deadline < child_deadline:
        raise ValidationError(
            f"deadline precedes a {child_label} deadline",
            details={"deadline": deadline.isoformat(),
                     f"latest_{child_label}_deadline": child_deadline.isoformat()},
        )


def validate_initiative_parent(program_id: int | None, sub_program_id: int | None):
    """Exactly one parent id must be given and must exist. Returns the parent.

    A Program holds either SubPrograms or Initiatives directly, never both.
    """
    if (program_id is None) == (sub_program_id is None):
        raise ValidationError(
            "An initiative belongs to exactly one of program_id or sub_program_id",
            details={"program_id": program_id, "sub_program_id": sub_program_id},
        )
    if program_id is not None:
        parent = get_program(program_id)
        if parent.status == "deleted":
            raise ValidationError("Program is deleted", details={"program_id": program_id})
        if progress.sub_program_ids_under(program_id):
            raise ValidationError(
                "Program is organized in sub-programs; attach the initiative to one of them",
                details={"program_id": program_id},
            )
        return parent
    return get_sub_program(sub_program_id)


def validate_employees(ids: list[int], field: str = "assignee_ids") -> None:
    if not ids:
        return
    found = set(db.session.execute(
        select(Employee.id).where(Employee.id.in_(ids))
    ).scalars().all())
    missing = [i for i in ids if i not in found]
    if missing:
        raise ValidationError("Unknown employees", details={field: missing})


def validate_initiative_snapshot(snapshot) -> None:
    parent = validate_initiative_parent(snapshot.program_id, snapshot.sub_program_id)
    label = "program" if isinstance(parent, Program) else "sub_program"
    validate_deadline_within(snapshot.deadline, parent.deadline, label)
    validate_employees(snapshot.assignee_ids)


def validate_initiative_edit(initiative: Initiative, snapshot) -> None:
    """Edit checks on top of the snapshot rules: the deadline must still cover the Tasks."""
    validate_initiative_snapshot(snapshot)
    validate_deadline_covers(
        snapshot.deadline,
        latest_deadline(Task.deadline, Task.initiative_id == initiative.id),
        "task",
    )


def validate_task_snapshot(snapshot, *, require_assignee=True) -> Initiative:
    if snapshot.initiative_id is None:
        raise ValidationError("initiative_id is required", details={"initiative_id": None})
    initiative = get_initiative(snapshot.initiative_id)
    validate_deadline_within(snapshot.deadline, initiative.deadline, "initiative")
    if snapshot.priority not in TASK_PRIORITIES:
        raise ValidationError(
            f"priority must be one of: {', '.join(sorted(TASK_PRIORITIES))}",
            details={"priority": snapshot.priority},
        )
    if require_assignee and not snapshot.assignee_ids:
        raise ValidationError("At least one assignee is required", details={"assignee_ids": []})
    validate_employees(snapshot.assignee_ids)
    return initiative


# ═════════════════════════════════════════════════════════════════════════════
# Field application (no commit)
# ═════════════════════════════════════════════════════════════════════════════


def _sync_links(links, link_cls, ids: list[int]) -> None:
    """Make an assignee link collection match ``ids`` without re-inserting kept rows."""
    wanted = set(ids)
    for link in list(links):
        if link.employee_id not in wanted:
            links.remove(link)
    present = {link.employee_id for link in links}
    for emp_id in ids:
        if emp_id not in present:
            links.append(link_cls(employee_id=emp_id))
            present.add(emp_id)


def apply_initiative_snapshot(initiative: Initiative, snapshot) -> Initiative:
    initiative.name = snapshot.name
    initiative.description = snapshot.description
    initiative.program_id = snapshot.program_id if snapshot.sub_program_id is None else None
    initiative.sub_program_id = snapshot.sub_program_id
    initiative.start_date = snapshot.start_date
    initiative.deadline = snapshot.deadline
    if initiative.creator_id is None:
        initiative.creator_id = snapshot.creator_id
    _sync_links(initiative.assignee_links, InitiativeAssignee, snapshot.assignee_ids)
    return initiative


def apply_task_snapshot(task: Task, snapshot) -> Task:
    """Copy proposal fields onto a Task; the first assignee becomes primary."""
    task.name = snapshot.name
    task.description = snapshot.description
    task.initiative_id = snapshot.initiative_id
    task.start_date = snapshot.start_date
    task.deadline = snapshot.deadline
    task.priority = snapshot.priority
    if task.creator_id is None:
        task.creator_id = snapshot.creator_id
    task.assignee_id = snapshot.assignee_ids[0] if snapshot.assignee_ids else None
    _sync_links(task.assignee_links, TaskAssignee, snapshot.assignee_ids)
    return task


def refresh_statuses(initiative: Initiative, today: date | None = None) -> None:
    """Re-resolve an Initiative and its ancestors after its Tasks changed."""
    today = today or local_today()
    db.session.flush()
    _refresh_initiative(initiative, today)
    refresh_parents(initiative.program_id, initiative.sub_program_id, today)


def refresh_parents(program_id: int | None, sub_program_id: int | None,
                    today: date) -> None:
    """Re-resolve the SubProgram/Program an Initiative hangs (or hung) under."""
    if sub_program_id is not None:
        sub_program = get_sub_program(sub_program_id)
        sub_program.status = resolve_sub_program_status(
            sub_program.status, progress.sub_program_progress(sub_program))
        _refresh_program(get_program(sub_program.program_id), today)
    elif program_id is not None:
        _refresh_program(get_program(program_id), today)


def _refresh_initiative(initiative: Initiative, today: date) -> bool:
    total, _ = progress.task_counts([initiative.id]).get(initiative.id, (0, 0))
    new_status = resolve_initiative_status(
        total, progress.initiative_progress(initiative), initiative.deadline, today)
    changed = new_status != initiative.status
    initiative.status = new_status
    return changed


def _refresh_program(program: Program, today: date) -> bool:
    new_status = resolve_program_status(
        program.status, progress.program_progress(program), program.deadline, today)
    changed = new_status != program.status
    if changed and new_status == "completed":
        program.completion_date = today
    elif changed and program.status == "completed":
        program.completion_date = None
    program.status = new_status
    return changed


# ═════════════════════════════════════════════════════════════════════════════
# Programs
# ═════════════════════════════════════════════════════════════════════════════


def _program_fields(data: dict, program: Program | None = None) -> dict:
    fields = {}
    if program is None or "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        fields["name"] = name
    if "description" in data:
        fields["description"] = data.get("description") or ""
    for key in ("start_date", "deadline"):
        if key in data:
            fields[key] = parse_date(data.get(key))
    start = fields.get("start_date", program.start_date if program else None)
    deadline = fields.get("deadline", program.deadline if program else None)
    if start and deadline and deadline < start:
        raise ValidationError("deadline precedes start_date",
                              details={"deadline": deadline.isoformat()})
    return fields


def create_program(data: dict, actor_id: int) -> dict:
    require_approver(actor_id, "create programs")
    program = Program(status="planned", creator_id=actor_id, **_program_fields(data))
    with alerts.unit_of_work():
        db.session.add(program)
    logger.info("Program %s created", program.id, extra={"program_id": program.id})
    return program.to_dict()


def list_programs(include_deleted: bool = False) -> list[dict]:
    q = select(Program).order_by(Program.id)
    if not include_deleted:
        q = q.where(Program.deleted_at.is_(None))
    return [p.to_dict() for p in db.session.execute(q).scalars().all()]


def update_program(program_id: int, data: dict, actor_id: int,
                   today: date | None = None) -> dict:
    require_approver(actor_id, "edit programs")
    program = get_program(program_id)
    if program.status == "deleted":
        raise ValidationError("Program is deleted", details={"program_id": program_id})
    fields = _program_fields(data, program)
    if "deadline" in fields:
        deadline = fields["deadline"]
        validate_deadline_covers(
            deadline, latest_deadline(SubProgram.deadline, SubProgram.program_id == program.id),
            "sub_program")
        validate_deadline_covers(
            deadline, latest_deadline(Initiative.deadline, Initiative.program_id == program.id),
            "initiative")
    with alerts.unit_of_work():
        for key, value in fields.items():
            setattr(program, key, value)
        _refresh_program(program, today or local_today())
    return program.to_dict()


def complete_program(program_id: int, actor_id: int, today: date | None = None) -> dict:
    """Manual completion, allowed only when all work is done before the deadline."""
    require_approver(actor_id, "complete programs")
    today = today or local_today()
    program = get_program(program_id)
    value = progress.program_progress(program)
    if program.status == "deleted" or not is_completion_eligible(value, program.deadline, today):
        raise ValidationError(
            "Program is not eligible for completion",
            details={"progress": round(value, 4),
                     "deadline": program.deadline.isoformat() if program.deadline else None,
                     "status": program.status},
        )
    with alerts.unit_of_work():
        program.status = "completed"
        program.completion_date = today
    logger.info("Program %s completed manually", program.id, extra={"program_id": program.id})
    return program.to_dict()


def soft_delete_program(program_id: int, actor_id: int) -> dict:
    require_approver(actor_id, "delete programs")
    program = get_program(program_id)
    with alerts.unit_of_work():
        program.status = "deleted"
        program.soft_delete()
    logger.info("Program %s soft-deleted", program.id, extra={"program_id": program.id})
    return program.to_dict()


def hard_delete_program(program_id: int, actor_id: int) -> None:
    """Remove the Program and its whole subtree, Requests included."""
    require_approver(actor_id, "delete programs")
    program = get_program(program_id)
    with alerts.unit_of_work():
        db.session.delete(program)
    logger.info("Program %s deleted with its subtree", program_id,
                extra={"program_id": program_id})


# ── Sub-programs ─────────────────────────────────────────────────────────────


def create_sub_program(program_id: int, data: dict, actor_id: int) -> dict:
    require_approver(actor_id, "create sub-programs")
    program = get_program(program_id)
    if program.status == "deleted":
        raise ValidationError("Program is deleted", details={"program_id": program_id})
    direct = progress.initiative_ids_under(program_id=program.id)
    if direct:
        raise ValidationError(
            "Program already holds initiatives directly; it cannot take sub-programs",
            details={"program_id": program_id, "initiative_ids": direct},
        )
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    deadline = parse_date(data.get("deadline"))
    validate_deadline_within(deadline, program.deadline, "program")

    sub_program = SubProgram(program_id=program.id, name=name,
                             description=data.get("description") or "",
                             deadline=deadline, status="planned")
    with alerts.unit_of_work():
        db.session.add(sub_program)
    return sub_program.to_dict()


def update_sub_program(sub_program_id: int, data: dict, actor_id: int) -> dict:
    """Partial edit of name, description and deadline."""
    require_approver(actor_id, "edit sub-programs")
    sub_program = get_sub_program(sub_program_id)
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("name is required", details={"name": "required"})
    if "deadline" in data:
        deadline = parse_date(data.get("deadline"))
        validate_deadline_within(deadline, sub_program.program.deadline, "program")
        validate_deadline_covers(
            deadline,
            latest_deadline(Initiative.deadline, Initiative.sub_program_id == sub_program.id),
            "initiative",
        )
    with alerts.unit_of_work():
        if "name" in data:
            sub_program.name = data["name"].strip()
        if "description" in data:
            sub_program.description = data.get("description") or ""
        if "deadline" in data:
            sub_program.deadline = deadline
    return sub_program.to_dict()


def delete_sub_program(sub_program_id: int, actor_id: int, today: date | None = None) -> None:
    """Remove a SubProgram with its Initiatives and Tasks, then re-resolve the Program."""
    require_approver(actor_id, "delete sub-programs")
    sub_program = get_sub_program(sub_program_id)
    program = get_program(sub_program.program_id)
    with alerts.unit_of_work():
        db.session.delete(sub_program)
        db.session.flush()
        _refresh_program(program, today or local_today())
    logger.info("SubProgram %s deleted with its subtree", sub_program_id,
                extra={"program_id": program.id})


# ═════════════════════════════════════════════════════════════════════════════
# Initiatives & tasks (direct privileged path)
# ═════════════════════════════════════════════════════════════════════════════


def create_initiative(snapshot, actor_id: int, today: date | None = None) -> dict:
    require_approver(actor_id, "create initiatives")
    validate_initiative_snapshot(snapshot)
    initiative = Initiative(status="planned", creator_id=snapshot.creator_id or actor_id)
    with alerts.unit_of_work():
        apply_initiative_snapshot(initiative, snapshot)
        db.session.add(initiative)
        refresh_statuses(initiative, today)
    return initiative.to_dict()


def edit_initiative(initiative: Initiative, snapshot, today: date) -> None:
    """Apply an Initiative edit and re-resolve old and new parents (no commit)."""
    old_parent = (initiative.program_id, initiative.sub_program_id)
    apply_initiative_snapshot(initiative, snapshot)
    refresh_statuses(initiative, today)
    if old_parent != (initiative.program_id, initiative.sub_program_id):
        refresh_parents(old_parent[0], old_parent[1], today)


def snapshot_of_initiative(initiative: Initiative) -> dict:
    return {
        "id": initiative.id,
        "name": initiative.name,
        "description": initiative.description or "",
        "program_id": initiative.program_id,
        "sub_program_id": initiative.sub_program_id,
        "start_date": initiative.start_date.isoformat() if initiative.start_date else None,
        "deadline": initiative.deadline.isoformat() if initiative.deadline else None,
        "creator_id": initiative.creator_id,
        "assignee_ids": initiative.assignee_ids,
    }


def update_initiative(initiative_id: int, data: dict, actor_id: int,
                      today: date | None = None) -> dict:
    """Direct edit: unspecified fields keep their current values.

    Naming only one of ``program_id`` / ``sub_program_id`` moves the
    Initiative under that parent.
    """
    require_approver(actor_id, "edit initiatives")
    today = today or local_today()
    initiative = get_initiative(initiative_id)
    merged = {**snapshot_of_initiative(initiative), **data, "id": initiative.id}
    if data.get("sub_program_id") is not None and "program_id" not in data:
        merged["program_id"] = None
    elif data.get("program_id") is not None and "sub_program_id" not in data:
        merged["sub_program_id"] = None
    try:
        snapshot = InitiativeSnapshot.from_dict(merged)
    except SnapshotError as exc:
        raise ValidationError(str(exc)) from exc
    validate_initiative_edit(initiative, snapshot)
    with alerts.unit_of_work():
        edit_initiative(initiative, snapshot, today)
    logger.info("Initiative %s edited", initiative.id)
    return initiative.to_dict()


def create_task(snapshot, actor_id: int, today: date | None = None) -> dict:
    require_approver(actor_id, "create tasks")
    initiative = validate_task_snapshot(snapshot)
    task = Task(status="pending", creator_id=snapshot.creator_id or actor_id)
    with alerts.unit_of_work():
        apply_task_snapshot(task, snapshot)
        db.session.add(task)
        db.session.flush()
        deadline_notifier.notify_assignee_change(task, [], task.assignee_ids)
        refresh_statuses(initiative, today)
    logger.info("Task %s created", task.id, extra={"task_id": task.id})
    return task.to_dict()


def edit_task(task: Task, snapshot, today: date) -> dict:
    """Apply an edit and emit assignee/deadline notices (no commit)."""
    old_initiative = task.initiative
    old_deadline = task.deadline
    old_assignees = list(task.assignee_ids)

    apply_task_snapshot(task, snapshot)
    db.session.flush()
    added, removed = deadline_notifier.notify_assignee_change(
        task, old_assignees, task.assignee_ids)
    change = deadline_notifier.handle_deadline_change(task, old_deadline, today)

    refresh_statuses(get_initiative(task.initiative_id), today)
    if old_initiative is not None and old_initiative.id != task.initiative_id:
        refresh_statuses(old_initiative, today)
    return {"assignees_added": added, "assignees_removed": removed, **change}


def update_task(task_id: int, data: dict, actor_id: int, today: date | None = None) -> dict:
    """Direct edit: unspecified fields keep their current values."""
    require_approver(actor_id, "edit tasks")
    today = today or local_today()
    task = get_task(task_id)
    merged = {**snapshot_of_task(task), **data, "id": task.id}
    try:
        snapshot = TaskSnapshot.from_dict(merged)
    except SnapshotError as exc:
        raise ValidationError(str(exc)) from exc
    validate_task_snapshot(snapshot, require_assignee=False)
    with alerts.unit_of_work():
        edit_task(task, snapshot, today)
    return task.to_dict()


def delete_task(task_id: int, actor_id: int, today: date | None = None) -> None:
    """Remove a Task (its Requests go with it) and re-resolve its ancestors."""
    require_approver(actor_id, "delete tasks")
    task = get_task(task_id)
    initiative = get_initiative(task.initiative_id)
    with alerts.unit_of_work():
        db.session.delete(task)
        refresh_statuses(initiative, today)
    logger.info("Task %s deleted", task_id, extra={"task_id": task_id})


def ensure_completable(task: Task, today: date) -> None:
    """A Task can be completed while its deadline holds and someone owns it."""
    if task.status == "completed":
        raise ValidationError("Task is already completed", details={"task_id": task.id})
    if task.deadline is not None and task.deadline < today:
        raise ValidationError("Task is overdue or has no assignee.",
                              details={"deadline": task.deadline.isoformat()})
    if task.assignee_id is None and not task.assignee_ids:
        raise ValidationError("Task is overdue or has no assignee.",
                              details={"assignee_ids": []})


def mark_task_completed(task: Task, today: date) -> int:
    """Complete the Task and notify its assignees (no commit)."""
    task.status = "completed"
    task.completed_at = local_now()
    notices = deadline_notifier.notify_completion(task, task.completed_at)
    refresh_statuses(get_initiative(task.initiative_id), today)
    return notices


def complete_task(task_id: int, actor_id: int, today: date | None = None) -> dict:
    require_approver(actor_id, "complete tasks")
    today = today or local_today()
    task = get_task(task_id)
    ensure_completable(task, today)
    with alerts.unit_of_work():
        mark_task_completed(task, today)
    logger.info("Task %s completed", task.id, extra={"task_id": task.id})
    return task.to_dict()


def snapshot_of_task(task: Task) -> dict:
    """Current Task state in snapshot form, primary assignee first."""
    ids = task.assignee_ids
    if task.assignee_id is not None:
        ids = [task.assignee_id] + [i for i in ids if i != task.assignee_id]
    return {
        "id": task.id,
        "initiative_id": task.initiative_id,
        "name": task.name,
        "description": task.description or "",
        "start_date": task.start_date.isoformat() if task.start_date else None,
        "deadline": task.deadline.isoformat() if task.deadline else None,
        "priority": task.priority,
        "creator_id": task.creator_id,
        "assignee_ids": ids,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Status recomputation
# ═════════════════════════════════════════════════════════════════════════════


def recompute_statuses(today: date | None = None) -> dict:
    """Re-resolve every Initiative, SubProgram and Program and commit.

    Idempotent: a second run with the same ``today`` changes nothing.
    """
    today = today or local_today()
    result = {"date": today.isoformat(), "initiatives_changed": 0,
              "sub_programs_changed": 0, "programs_changed": 0}
    with alerts.unit_of_work():
        for initiative in db.session.execute(select(Initiative)).scalars().all():
            if _refresh_initiative(initiative, today):
                result["initiatives_changed"] += 1
        for sub_program in db.session.execute(select(SubProgram)).scalars().all():
            new_status = resolve_sub_program_status(
                sub_program.status, progress.sub_program_progress(sub_program))
            if new_status != sub_program.status:
                sub_program.status = new_status
                result["sub_programs_changed"] += 1
        for program in db.session.execute(select(Program)).scalars().all():
            if _refresh_program(program, today):
                result["programs_changed"] += 1
    logger.info("Status recompute: %s", result)
    return result


def program_progress_view(program_id: int, today: date | None = None) -> dict:
    """Progress for display; re-resolves the Program status on the way."""
    program = get_program(program_id)
    value = progress.program_progress(program)
    with alerts.unit_of_work():
        _refresh_program(program, today or local_today())
    return {"program_id": program.id, "progress": round(value, 4), "status": program.status}

