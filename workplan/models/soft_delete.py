"""
Soft delete mixin.

Adds a ``deleted_at`` timestamp and query helpers. Programs use it so a
delete flips status and keeps the row; cascading hard deletes are a
separate, explicit operation.

Usage:
    class Program(SoftDeleteMixin, db.Model):
        ...

    program.soft_delete()
    db.session.commit()

    Program.query_active().all()
"""

from datetime import datetime, timezone

from workplan.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)

    def restore(self):
        self.deleted_at = None

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))
