"""
Workplan
Work hierarchy domain models.

Models:
    - Employee: people who create, own and approve work
    - Program: top-level container (soft-deletable)
    - SubProgram: optional grouping level below a Program
    - Initiative: belongs to exactly one Program or SubProgram
    - Task: leaf work item with a primary assignee and an assignee set
    - InitiativeAssignee / TaskAssignee: many-to-many assignee links

Progress and lifecycle statuses are derived from the Task rows; see
``workplan.services.progress_service`` and ``workplan.services.status_resolver``.
"""

from datetime import datetime, timezone

from workplan.models import db
from workplan.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────────

EMPLOYEE_ROLES = {"coordinator", "manager", "support"}
APPROVER_ROLES = {"coordinator"}

PROGRAM_STATUSES = {"planned", "in_progress", "completed", "overdue", "deleted"}
SUB_PROGRAM_STATUSES = {"planned", "in_progress", "completed", "cancelled"}
INITIATIVE_STATUSES = {"planned", "in_progress", "completed", "overdue"}
TASK_STATUSES = {"pending", "in_progress", "completed", "overdue"}
TASK_PRIORITIES = {"low", "medium", "high"}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Employee(db.Model):
    """A person in the organisation. Coordinators act as approvers."""

    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(db.String(20), nullable=False, default="support",
                     comment="coordinator, manager, support")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @property
    def is_approver(self):
        return self.role in APPROVER_ROLES

    def to_dict(self):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "is_approver": self.is_approver,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Employee {self.id}: {self.full_name} [{self.role}]>"


class Program(SoftDeleteMixin, db.Model):
    """
    Top-level work container.

    Owns either SubPrograms or Initiatives directly. Deleting a Program
    flips its status to ``deleted``; ``hierarchy_service.hard_delete_program``
    removes the whole subtree.
    """

    __tablename__ = "programs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    start_date = db.Column(db.Date, nullable=True)
    deadline = db.Column(db.Date, nullable=True)
    completion_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="planned",
                       comment="planned, in_progress, completed, overdue, deleted")
    creator_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"),
                           nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    sub_programs = db.relationship(
        "SubProgram", back_populates="program",
        cascade="all, delete-orphan", order_by="SubProgram.id",
    )
    initiatives = db.relationship(
        "Initiative", back_populates="program",
        cascade="all, delete-orphan", order_by="Initiative.id",
    )

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "deadline": _iso(self.deadline),
            "completion_date": _iso(self.completion_date),
            "status": self.status,
            "creator_id": self.creator_id,
            "deleted_at": _iso(self.deleted_at),
            "created_at": _iso(self.created_at),
        }
        if include_children:
            d["sub_programs"] = [s.to_dict() for s in self.sub_programs]
            d["initiatives"] = [i.to_dict() for i in self.initiatives]
        return d

    def __repr__(self):
        return f"<Program {self.id}: {self.name} [{self.status}]>"


class SubProgram(db.Model):
    """Grouping level under a Program; its deadline never exceeds the Program's."""

    __tablename__ = "sub_programs"

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey("programs.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    deadline = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="planned",
                       comment="planned, in_progress, completed, cancelled")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    program = db.relationship("Program", back_populates="sub_programs")
    initiatives = db.relationship(
        "Initiative", back_populates="sub_program",
        cascade="all, delete-orphan", order_by="Initiative.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "program_id": self.program_id,
            "name": self.name,
            "description": self.description,
            "deadline": _iso(self.deadline),
            "status": self.status,
        }

    def __repr__(self):
        return f"<SubProgram {self.id}: {self.name}>"


class Initiative(db.Model):
    """
    Unit of planned work holding Tasks.

    Exactly one of ``program_id`` / ``sub_program_id`` is set.
    """

    __tablename__ = "initiatives"
    __table_args__ = (
        db.CheckConstraint(
            "(program_id IS NULL AND sub_program_id IS NOT NULL) OR "
            "(program_id IS NOT NULL AND sub_program_id IS NULL)",
            name="ck_initiative_single_parent",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey("programs.id", ondelete="CASCADE"),
                           nullable=True, index=True)
    sub_program_id = db.Column(db.Integer, db.ForeignKey("sub_programs.id", ondelete="CASCADE"),
                               nullable=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    start_date = db.Column(db.Date, nullable=True)
    deadline = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="planned",
                       comment="planned, in_progress, completed, overdue")
    creator_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"),
                           nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    program = db.relationship("Program", back_populates="initiatives")
    sub_program = db.relationship("SubProgram", back_populates="initiatives")
    tasks = db.relationship(
        "Task", back_populates="initiative",
        cascade="all, delete-orphan", order_by="Task.id",
    )
    assignee_links = db.relationship(
        "InitiativeAssignee", cascade="all, delete-orphan",
    )

    @property
    def assignee_ids(self):
        return sorted(link.employee_id for link in self.assignee_links)

    @property
    def owning_program_id(self):
        """Program id, resolved through the SubProgram when needed."""
        if self.program_id is not None:
            return self.program_id
        return self.sub_program.program_id if self.sub_program else None

    def to_dict(self, include_tasks=False):
        d = {
            "id": self.id,
            "program_id": self.program_id,
            "sub_program_id": self.sub_program_id,
            "name": self.name,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "deadline": _iso(self.deadline),
            "status": self.status,
            "creator_id": self.creator_id,
            "assignee_ids": self.assignee_ids,
        }
        if include_tasks:
            d["tasks"] = [t.to_dict() for t in self.tasks]
        return d

    def __repr__(self):
        return f"<Initiative {self.id}: {self.name} [{self.status}]>"


class Task(db.Model):
    """Leaf work item. ``assignee_id`` is the primary owner; links hold the full set."""

    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    initiative_id = db.Column(db.Integer, db.ForeignKey("initiatives.id", ondelete="CASCADE"),
                              nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    start_date = db.Column(db.Date, nullable=True)
    deadline = db.Column(db.Date, nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending, in_progress, completed, overdue")
    priority = db.Column(db.String(10), nullable=False, default="medium",
                         comment="low, medium, high")
    assignee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"),
                            nullable=True, index=True)
    creator_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"),
                           nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    initiative = db.relationship("Initiative", back_populates="tasks")
    assignee_links = db.relationship(
        "TaskAssignee", cascade="all, delete-orphan",
    )

    @property
    def assignee_ids(self):
        return sorted(link.employee_id for link in self.assignee_links)

    def to_dict(self):
        return {
            "id": self.id,
            "initiative_id": self.initiative_id,
            "name": self.name,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "deadline": _iso(self.deadline),
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "assignee_ids": self.assignee_ids,
            "creator_id": self.creator_id,
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.name} [{self.status}]>"


class InitiativeAssignee(db.Model):
    __tablename__ = "initiative_assignees"
    __table_args__ = (
        db.UniqueConstraint("initiative_id", "employee_id", name="uq_initiative_assignee"),
    )

    id = db.Column(db.Integer, primary_key=True)
    initiative_id = db.Column(db.Integer, db.ForeignKey("initiatives.id", ondelete="CASCADE"),
                              nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"),
                            nullable=False, index=True)


class TaskAssignee(db.Model):
    __tablename__ = "task_assignees"
    __table_args__ = (
        db.UniqueConstraint("task_id", "employee_id", name="uq_task_assignee"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"),
                            nullable=False, index=True)
