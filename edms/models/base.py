"""
TenantModel — Abstract base class for tenant-scoped models.

All models that need tenant isolation inherit from TenantModel
instead of db.Model directly. This adds:
  - tenant_id FK column with index
  - query_for_tenant(tenant_id) classmethod (hides deactivated rows)
"""

from edms.models import db


class TenantModel(db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_tenant(cls, tenant_id, include_inactive=False):
        """Return a query filtered by tenant_id.

        Models carrying the ``is_active`` soft-delete flag only return
        active rows unless ``include_inactive`` is set.
        """
        q = cls.query.filter_by(tenant_id=tenant_id)
        if not include_inactive and hasattr(cls, "is_active"):
            q = q.filter(cls.is_active.is_(True))
        return q
