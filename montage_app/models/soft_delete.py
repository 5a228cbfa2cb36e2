"""
Soft Delete Mixin

Adds `deleted_at` timestamp column and query helpers for soft delete.
Montages are marked as deleted rather than physically removed, so their
checklist rows survive until an explicit purge.

Usage:
    class Montage(SoftDeleteMixin, db.Model):
        ...

    montage.soft_delete()
    db.session.commit()

    Montage.query_active().all()
"""

from datetime import datetime, timezone

from montage_app.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))
