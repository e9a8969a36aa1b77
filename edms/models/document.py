"""
Document models — Document and DocumentApprovalAction.

Only the metadata the approval engine needs is stored here; file contents
live in the storage service. ``Document.version`` is the SQLAlchemy
``version_id_col``: every UPDATE carries ``WHERE version = <loaded>`` so two
approvers acting on the same snapshot cannot both win.

DocumentApprovalAction is append-only. Backward routing marks earlier
outcomes ``superseded`` instead of deleting them, so the full history of a
document remains readable.
"""

from datetime import datetime, timezone

from edms.models import db
from edms.models.base import TenantModel

DOCUMENT_STATUSES = ("draft", "pending_approval", "approved", "rejected")
TERMINAL_STATUSES = frozenset({"approved", "rejected"})

APPROVAL_ACTIONS = frozenset({
    "submitted",
    "approved",
    "rejected",
    "routed",
    "skipped",
    "auto_skipped",
    "auto_approved",
})


class Document(TenantModel):
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    document_type = db.Column(db.String(60), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="draft")

    workflow_template_id = db.Column(
        db.Integer,
        db.ForeignKey("workflow_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    current_step_order = db.Column(db.Integer, nullable=True)
    rejection_reason = db.Column(db.Text)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    submitted_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    submitted_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        db.Index("ix_documents_tenant_status", "tenant_id", "status"),
        db.Index("ix_documents_tenant_doc_type", "tenant_id", "document_type"),
    )

    workflow_template = db.relationship("WorkflowTemplate")
    actions = db.relationship(
        "DocumentApprovalAction",
        back_populates="document",
        order_by="DocumentApprovalAction.id",
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "document_type": self.document_type,
            "status": self.status,
            "workflow_template_id": self.workflow_template_id,
            "current_step_order": self.current_step_order,
            "rejection_reason": self.rejection_reason,
            "created_by": self.created_by,
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "is_terminal": self.is_terminal,
            "version": self.version,
        }

    def __repr__(self):
        return f"<Document {self.id} {self.document_type} status={self.status} step={self.current_step_order}>"


class DocumentApprovalAction(db.Model):
    """
    Immutable approval trail entry.

    - Records are never deleted; only ``superseded`` flips when a backward
      route sends the document to an earlier step.
    - ``actor_name_snapshot`` is captured at action time so the trail stays
      readable after the user row is renamed or removed.
    - System actions (auto_skipped, auto_approved) have no actor_id.
    """

    __tablename__ = "document_approval_actions"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_id = db.Column(
        db.Integer,
        db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_order = db.Column(db.Integer, nullable=True)  # NULL for "submitted"
    approval_level_id = db.Column(
        db.Integer,
        db.ForeignKey("approval_levels.id", ondelete="SET NULL"),
        nullable=True,
    )
    action = db.Column(db.String(20), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_name_snapshot = db.Column(db.String(255), nullable=False)
    comment = db.Column(db.Text)
    target_step_order = db.Column(db.Integer, nullable=True)  # route target
    superseded = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    document = db.relationship("Document", back_populates="actions")
    approval_level = db.relationship("ApprovalLevel")

    @property
    def satisfies_step(self):
        """Whether this outcome counts as the step being done.

        A route only satisfies its source step when it moves forward; a
        backward route sends the document back through that step.
        """
        if self.superseded or self.step_order is None:
            return False
        if self.action == "routed":
            return (self.target_step_order or 0) > self.step_order
        return self.action in {"approved", "auto_approved", "skipped", "auto_skipped"}

    def to_dict(self):
        return {
            "id": self.id,
            "document_id": self.document_id,
            "step_order": self.step_order,
            "approval_level_id": self.approval_level_id,
            "approval_level_name": self.approval_level.name if self.approval_level else None,
            "action": self.action,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name_snapshot,
            "comment": self.comment,
            "target_step_order": self.target_step_order,
            "superseded": self.superseded,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"<DocumentApprovalAction id={self.id} doc={self.document_id} "
            f"step={self.step_order} action={self.action!r}>"
        )
