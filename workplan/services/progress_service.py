"""
Progress aggregation over the work hierarchy.

Progress is a fraction in [0, 1], always recomputed from the current Task
rows and never persisted.

    Initiative   completed tasks / total tasks (0 when it has none)
    SubProgram   task-weighted over its Initiatives
    Program      mean of its SubPrograms' progress when it has any,
                 otherwise task-weighted over its own Initiatives

Children are looked up with fresh queries rather than relationship
collections, so rows added earlier in the same session are counted.
Read-only: nothing here writes to the session.
"""

from __future__ import annotations

import logging

from sqlalchemy import case, func, select

from workplan.core.exceptions import NotFoundError, ValidationError
from workplan.models import db
from workplan.models.hierarchy import Initiative, Program, SubProgram, Task

logger = logging.getLogger(__name__)

NODE_TYPES = ("program", "sub_program", "initiative", "task")


# ── Task counts ──────────────────────────────────────────────────────────────


def task_counts(initiative_ids: list[int]) -> dict[int, tuple[int, int]]:
    """Return ``{initiative_id: (total, completed)}`` for the given Initiatives."""
    if not initiative_ids:
        return {}
    rows = db.session.execute(
        select(
            Task.initiative_id,
            func.count(Task.id),
            func.sum(case((Task.status == "completed", 1), else_=0)),
        )
        .where(Task.initiative_id.in_(initiative_ids))
        .group_by(Task.initiative_id)
    ).all()
    counts = {iid: (0, 0) for iid in initiative_ids}
    for initiative_id, total, completed in rows:
        counts[initiative_id] = (int(total or 0), int(completed or 0))
    return counts


def _fraction(completed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(1.0, max(0.0, completed / total))


def _weighted(initiative_ids: list[int]) -> float:
    # Σ(progress_i · total_i) / Σ total_i reduces to Σ completed / Σ total
    counts = task_counts(initiative_ids)
    total = sum(t for t, _ in counts.values())
    completed = sum(c for _, c in counts.values())
    return _fraction(completed, total)


def initiative_ids_under(*, program_id: int | None = None,
                         sub_program_id: int | None = None) -> list[int]:
    """Ids of the Initiatives directly under a Program or a SubProgram."""
    q = select(Initiative.id).order_by(Initiative.id)
    if sub_program_id is not None:
        q = q.where(Initiative.sub_program_id == sub_program_id)
    else:
        q = q.where(Initiative.program_id == program_id)
    return list(db.session.execute(q).scalars().all())


def sub_program_ids_under(program_id: int) -> list[int]:
    return list(db.session.execute(
        select(SubProgram.id).where(SubProgram.program_id == program_id).order_by(SubProgram.id)
    ).scalars().all())


# ── Per-node progress ────────────────────────────────────────────────────────


def initiative_progress(initiative: Initiative) -> float:
    total, completed = task_counts([initiative.id]).get(initiative.id, (0, 0))
    return _fraction(completed, total)


def sub_program_progress(sub_program: SubProgram) -> float:
    return _weighted(initiative_ids_under(sub_program_id=sub_program.id))


def program_progress(program: Program) -> float:
    """Mean of SubProgram progress when present; otherwise task-weighted."""
    sub_ids = sub_program_ids_under(program.id)
    if sub_ids:
        values = [_weighted(initiative_ids_under(sub_program_id=sid)) for sid in sub_ids]
        return sum(values) / len(values)
    return _weighted(initiative_ids_under(program_id=program.id))


def progress_of(node_type: str, node_id: int) -> float:
    """Progress fraction for any node of the hierarchy.

    Raises:
        ValidationError: unknown node type.
        NotFoundError: no such node.
    """
    if node_type not in NODE_TYPES:
        raise ValidationError(
            f"node_type must be one of: {', '.join(NODE_TYPES)}",
            details={"node_type": node_type},
        )
    if node_type == "program":
        program = db.session.get(Program, node_id)
        if program is None:
            raise NotFoundError(resource="Program", resource_id=node_id)
        return program_progress(program)
    if node_type == "sub_program":
        sub_program = db.session.get(SubProgram, node_id)
        if sub_program is None:
            raise NotFoundError(resource="SubProgram", resource_id=node_id)
        return sub_program_progress(sub_program)
    if node_type == "initiative":
        initiative = db.session.get(Initiative, node_id)
        if initiative is None:
            raise NotFoundError(resource="Initiative", resource_id=node_id)
        return initiative_progress(initiative)
    task = db.session.get(Task, node_id)
    if task is None:
        raise NotFoundError(resource="Task", resource_id=node_id)
    return 1.0 if task.status == "completed" else 0.0


# ── Dashboard summary ────────────────────────────────────────────────────────


def program_initiative_ids(program_id: int) -> list[int]:
    """Direct Initiatives plus those of every SubProgram."""
    ids = initiative_ids_under(program_id=program_id)
    for sub_id in sub_program_ids_under(program_id):
        ids.extend(initiative_ids_under(sub_program_id=sub_id))
    return ids


def program_summary(program_id: int) -> dict:
    """Initiative/Task counts and progress for a Program dashboard.

    Raises:
        NotFoundError: no such Program.
    """
    program = db.session.get(Program, program_id)
    if program is None:
        raise NotFoundError(resource="Program", resource_id=program_id)

    initiative_ids = program_initiative_ids(program.id)
    by_status = {"completed": 0, "open": 0, "overdue": 0}
    total_tasks = 0
    if initiative_ids:
        rows = db.session.execute(
            select(Task.status, func.count(Task.id))
            .where(Task.initiative_id.in_(initiative_ids))
            .group_by(Task.status)
        ).all()
        for status, count in rows:
            total_tasks += count
            if status == "completed":
                by_status["completed"] += count
            elif status == "overdue":
                by_status["overdue"] += count
            else:
                by_status["open"] += count

    return {
        "program_id": program.id,
        "status": program.status,
        "progress": round(program_progress(program), 4),
        "initiatives": len(initiative_ids),
        "tasks": total_tasks,
        "tasks_completed": by_status["completed"],
        "tasks_in_progress": by_status["open"],
        "tasks_overdue": by_status["overdue"],
    }
