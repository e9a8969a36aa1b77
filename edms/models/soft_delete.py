"""
Soft Delete Mixin — single lifecycle policy for configuration records.

Approval levels and workflow templates are never physically removed:
documents in flight and the audit trail still point at them. Deleting one
flips ``is_active`` to False and stamps ``deactivated_at``; every read path
(``TenantModel.query_for_tenant``, ``get_scoped``) hides inactive rows.

Usage:
    class MyModel(SoftDeleteMixin, TenantModel):
        ...

    obj.soft_delete()
    db.session.commit()

    MyModel.query_for_tenant(tid).all()                         # active only
    MyModel.query_for_tenant(tid, include_inactive=True).all()  # everything
"""

from datetime import datetime, timezone

from edms.models import db


class SoftDeleteMixin:
    """Mixin that adds the is_active soft-delete flag to a model."""

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deactivated_at = db.Column(db.DateTime, nullable=True, default=None)

    def soft_delete(self):
        """Mark this record as inactive."""
        self.is_active = False
        self.deactivated_at = datetime.now(timezone.utc)
