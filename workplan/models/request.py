"""
Workplan
Request domain model.

One table serves two purposes, separated by ``category``:
    - decision:  a change proposal (snapshot) awaiting an approver
    - automatic: an informational notification created by the system,
                 born ``accepted`` and never decided

For automatic rows ``submitter_id`` holds the recipient and
``response_message`` holds the notification text.
"""

from datetime import datetime, timezone

from workplan.models import db


# ── Constants ────────────────────────────────────────────────────────────────

DECISION_KINDS = {
    "create_initiative",
    "edit_initiative",
    "create_task",
    "edit_task",
    "complete_task",
}
AUTOMATIC_KINDS = {
    "deadline_approaching",
    "deadline_overdue",
    "deadline_changed",
    "task_completed",
    "assignee_added",
    "assignee_removed",
}
REQUEST_KINDS = DECISION_KINDS | AUTOMATIC_KINDS
REQUEST_CATEGORIES = {"decision", "automatic"}
REQUEST_STATUSES = {"pending", "accepted", "rejected"}


def category_for_kind(kind):
    return "automatic" if kind in AUTOMATIC_KINDS else "decision"


class Request(db.Model):
    """Approval request or system notification, see module docstring."""

    __tablename__ = "requests"
    __table_args__ = (
        db.Index("ix_requests_dedup", "task_id", "submitter_id", "kind"),
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(30), nullable=False, index=True)
    category = db.Column(db.String(20), nullable=False, default="decision",
                         comment="decision, automatic")
    snapshot = db.Column(db.Text, nullable=True, comment="Serialized Initiative/Task proposal")

    # Target entities
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"),
                        nullable=True, index=True)
    initiative_id = db.Column(db.Integer, db.ForeignKey("initiatives.id", ondelete="CASCADE"),
                              nullable=True, index=True)

    submitter_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending, accepted, rejected")
    submitted_at = db.Column(db.DateTime(timezone=True),
                             default=lambda: datetime.now(timezone.utc))
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL"),
                            nullable=True)
    response_message = db.Column(db.Text, nullable=True)

    # Inbox flags, independent of status
    is_seen = db.Column(db.Boolean, nullable=False, default=False)
    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_automatic(self):
        return self.category == "automatic"

    @property
    def recipient_id(self):
        return self.submitter_id

    def to_dict(self, include_snapshot=True):
        d = {
            "id": self.id,
            "kind": self.kind,
            "category": self.category,
            "task_id": self.task_id,
            "initiative_id": self.initiative_id,
            "submitter_id": self.submitter_id,
            "status": self.status,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "approver_id": self.approver_id,
            "response_message": self.response_message,
            "is_seen": self.is_seen,
            "is_resolved": self.is_resolved,
            "is_deleted": self.is_deleted,
        }
        if include_snapshot:
            d["snapshot"] = self.snapshot
        return d

    def __repr__(self):
        return f"<Request {self.id}: {self.kind} [{self.status}]>"
