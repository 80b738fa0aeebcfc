"""initial_work_hierarchy

Creates the work hierarchy, the unified Request store and the job registry:
  - employees
  - programs, sub_programs, initiatives, tasks
  - initiative_assignees, task_assignees
  - requests              - approval proposals and automatic notices
  - scheduled_jobs

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: a1f3c9d2e7b4
Revises:
Create Date: 2026-10-17 09:12:44.318205
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1f3c9d2e7b4'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Employee ──────────────────────────────────────────────────────────
    if "employees" not in existing:
        op.create_table(
            "employees",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False,
                      server_default="support",
                      comment="coordinator | supervisor | support"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    # ── Program ───────────────────────────────────────────────────────────
    if "programs" not in existing:
        op.create_table(
            "programs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("deadline", sa.Date(), nullable=True),
            sa.Column("completion_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False,
                      server_default="planned",
                      comment="planned | in_progress | completed | deleted"),
            sa.Column("creator_id", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["creator_id"], ["employees.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_programs_deleted_at", "programs", ["deleted_at"])

    # ── SubProgram ────────────────────────────────────────────────────────
    if "sub_programs" not in existing:
        op.create_table(
            "sub_programs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("program_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("deadline", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False,
                      server_default="planned",
                      comment="planned | in_progress | completed | cancelled"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sub_programs_program_id", "sub_programs", ["program_id"])

    # ── Initiative ────────────────────────────────────────────────────────
    if "initiatives" not in existing:
        op.create_table(
            "initiatives",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("program_id", sa.Integer(), nullable=True),
            sa.Column("sub_program_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("deadline", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False,
                      server_default="planned",
                      comment="planned | in_progress | completed | overdue"),
            sa.Column("creator_id", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.CheckConstraint(
                "(program_id IS NULL AND sub_program_id IS NOT NULL) OR "
                "(program_id IS NOT NULL AND sub_program_id IS NULL)",
                name="ck_initiative_single_parent",
            ),
            sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["sub_program_id"], ["sub_programs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["creator_id"], ["employees.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_initiatives_program_id", "initiatives", ["program_id"])
        op.create_index("ix_initiatives_sub_program_id", "initiatives", ["sub_program_id"])

    # ── Task ──────────────────────────────────────────────────────────────
    if "tasks" not in existing:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("initiative_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("deadline", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False,
                      server_default="pending",
                      comment="pending | in_progress | completed | overdue"),
            sa.Column("priority", sa.String(length=10), nullable=False,
                      server_default="medium", comment="low | medium | high"),
            sa.Column("assignee_id", sa.Integer(), nullable=True),
            sa.Column("creator_id", sa.Integer(), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["initiative_id"], ["initiatives.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assignee_id"], ["employees.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["creator_id"], ["employees.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tasks_initiative_id", "tasks", ["initiative_id"])
        op.create_index("ix_tasks_deadline", "tasks", ["deadline"])
        op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"])

    # ── Assignee links ────────────────────────────────────────────────────
    if "initiative_assignees" not in existing:
        op.create_table(
            "initiative_assignees",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("initiative_id", sa.Integer(), nullable=False),
            sa.Column("employee_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["initiative_id"], ["initiatives.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("initiative_id", "employee_id", name="uq_initiative_assignee"),
        )
        op.create_index("ix_initiative_assignees_initiative_id",
                        "initiative_assignees", ["initiative_id"])
        op.create_index("ix_initiative_assignees_employee_id",
                        "initiative_assignees", ["employee_id"])

    if "task_assignees" not in existing:
        op.create_table(
            "task_assignees",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("employee_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("task_id", "employee_id", name="uq_task_assignee"),
        )
        op.create_index("ix_task_assignees_task_id", "task_assignees", ["task_id"])
        op.create_index("ix_task_assignees_employee_id", "task_assignees", ["employee_id"])

    # ── Request store ─────────────────────────────────────────────────────
    if "requests" not in existing:
        op.create_table(
            "requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("kind", sa.String(length=30), nullable=False),
            sa.Column("category", sa.String(length=20), nullable=False,
                      server_default="decision", comment="decision | automatic"),
            sa.Column("snapshot", sa.Text(), nullable=True,
                      comment="Serialized Initiative/Task proposal"),
            sa.Column("task_id", sa.Integer(), nullable=True),
            sa.Column("initiative_id", sa.Integer(), nullable=True),
            sa.Column("submitter_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False,
                      server_default="pending", comment="pending | accepted | rejected"),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approver_id", sa.Integer(), nullable=True),
            sa.Column("response_message", sa.Text(), nullable=True),
            sa.Column("is_seen", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["initiative_id"], ["initiatives.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["submitter_id"], ["employees.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["approver_id"], ["employees.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_requests_kind", "requests", ["kind"])
        op.create_index("ix_requests_task_id", "requests", ["task_id"])
        op.create_index("ix_requests_initiative_id", "requests", ["initiative_id"])
        op.create_index("ix_requests_submitter_id", "requests", ["submitter_id"])
        op.create_index("ix_requests_dedup", "requests", ["task_id", "submitter_id", "kind"])

    # ── Scheduled jobs ────────────────────────────────────────────────────
    if "scheduled_jobs" not in existing:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    for table in (
        "scheduled_jobs",
        "requests",
        "task_assignees",
        "initiative_assignees",
        "tasks",
        "initiatives",
        "sub_programs",
        "programs",
        "employees",
    ):
        op.drop_table(table)
