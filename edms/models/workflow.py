"""
Approval hierarchy models — ApprovalLevel, WorkflowTemplate, WorkflowStep.

An ApprovalLevel is one named rung of a tenant's hierarchy (numeric rank
1–100, higher = more authority) carrying a fixed permission set. A
WorkflowTemplate binds a document type to an ordered list of steps, each
step pointing at an ApprovalLevel of the same tenant.

Business rules enforced here (DB level):
    - (tenant_id, name) and (tenant_id, level) unique among active levels
    - level rank between 1 and 100
    - (workflow_template_id, order) unique
Rules enforced in the services (they need cross-row reads):
    - step orders are exactly 1..n
    - every step's level is an active level of the template's tenant
"""

from datetime import datetime, timezone

from edms.models import db
from edms.models.base import TenantModel
from edms.models.soft_delete import SoftDeleteMixin

MIN_LEVEL_RANK = 1
MAX_LEVEL_RANK = 100

PERMISSION_FLAGS = (
    "can_approve",
    "can_reject",
    "can_route",
    "can_view",
    "can_edit",
    "can_delete",
)

STEP_FLAGS = ("is_required", "can_skip", "auto_approve")


def step_order_problems(orders):
    """Return human-readable problems with a list of step orders.

    Valid orders are exactly 1..n with no gaps and no duplicates.
    """
    problems = []
    if not orders:
        return ["Workflow must have at least one step"]
    seen = set()
    for order in orders:
        if not isinstance(order, int) or isinstance(order, bool):
            problems.append(f"Step order must be an integer, got {order!r}")
            continue
        if order in seen:
            problems.append(f"Duplicate step order {order}")
        seen.add(order)
    if not problems and sorted(seen) != list(range(1, len(orders) + 1)):
        problems.append(
            f"Step orders must be contiguous starting at 1, got {sorted(seen)}"
        )
    return problems


class ApprovalLevel(SoftDeleteMixin, TenantModel):
    __tablename__ = "approval_levels"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    level = db.Column(db.Integer, nullable=False)  # rank, immutable after creation
    description = db.Column(db.Text)

    can_approve = db.Column(db.Boolean, nullable=False, default=False)
    can_reject = db.Column(db.Boolean, nullable=False, default=False)
    can_route = db.Column(db.Boolean, nullable=False, default=False)
    can_view = db.Column(db.Boolean, nullable=False, default=True)
    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)

    document_types = db.Column(db.JSON, nullable=False, default=list)

    created_by = db.Column(db.Integer)
    updated_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            f"level >= {MIN_LEVEL_RANK} AND level <= {MAX_LEVEL_RANK}",
            name="ck_approval_level_rank_range",
        ),
        db.Index(
            "uq_approval_level_tenant_name", "tenant_id", "name", unique=True,
            postgresql_where=db.text("is_active"),
            sqlite_where=db.text("is_active = 1"),
        ),
        db.Index(
            "uq_approval_level_tenant_rank", "tenant_id", "level", unique=True,
            postgresql_where=db.text("is_active"),
            sqlite_where=db.text("is_active = 1"),
        ),
    )

    @property
    def permissions(self):
        return {flag: bool(getattr(self, flag)) for flag in PERMISSION_FLAGS}

    def handles_document_type(self, document_type):
        """Empty document_types means the level is not restricted."""
        return not self.document_types or document_type in self.document_types

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "level": self.level,
            "description": self.description,
            "permissions": self.permissions,
            "document_types": list(self.document_types or []),
            "is_active": self.is_active,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ApprovalLevel {self.id} {self.name!r} rank={self.level} tenant={self.tenant_id}>"


class WorkflowTemplate(SoftDeleteMixin, TenantModel):
    __tablename__ = "workflow_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    document_type = db.Column(db.String(60), nullable=False)

    created_by = db.Column(db.Integer)
    updated_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    steps = db.relationship(
        "WorkflowStep",
        back_populates="workflow_template",
        order_by="WorkflowStep.order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_workflow_templates_tenant_doc_type", "tenant_id", "document_type"),
    )

    def step_at(self, order):
        for step in self.steps:
            if step.order == order:
                return step
        return None

    def to_dict(self, include_steps=True):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "document_type": self.document_type,
            "is_active": self.is_active,
            "step_count": len(self.steps),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.steps]
        return d

    def __repr__(self):
        return f"<WorkflowTemplate {self.id} {self.name!r} doc_type={self.document_type}>"


class WorkflowStep(db.Model):
    __tablename__ = "workflow_steps"

    id = db.Column(db.Integer, primary_key=True)
    workflow_template_id = db.Column(
        db.Integer,
        db.ForeignKey("workflow_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order = db.Column("step_order", db.Integer, nullable=False)
    approval_level_id = db.Column(
        db.Integer,
        db.ForeignKey("approval_levels.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    can_skip = db.Column(db.Boolean, nullable=False, default=False)
    auto_approve = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (
        db.UniqueConstraint("workflow_template_id", "step_order", name="uq_workflow_step_order"),
    )

    workflow_template = db.relationship("WorkflowTemplate", back_populates="steps")
    approval_level = db.relationship("ApprovalLevel")

    @property
    def auto_bypass(self):
        """Optional skippable steps are passed over without anyone acting."""
        return not self.is_required and self.can_skip

    @property
    def skippable(self):
        """Only ``can_skip`` steps accept a manual skip; optional ones without it still need an approval."""
        return self.can_skip

    def to_dict(self):
        level = self.approval_level
        return {
            "order": self.order,
            "approval_level_id": self.approval_level_id,
            "approval_level_name": level.name if level else None,
            "approval_level_rank": level.level if level else None,
            "is_required": self.is_required,
            "can_skip": self.can_skip,
            "auto_approve": self.auto_approve,
        }
