"""approval_workflow_schema

Tenants, users and roles, the approval hierarchy (approval_levels,
workflow_templates, workflow_steps), documents with their append-only
approval trail, audit logs and notifications.

Revision ID: 0001_approval_workflow
Revises:
Create Date: 2026-03-02 10:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_approval_workflow"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("plan", sa.String(50)),
        sa.Column("max_users", sa.Integer()),
        sa.Column("is_active", sa.Boolean()),
        sa.Column("settings", sa.JSON()),
        sa.Column("industry_type", sa.String(50)),
        sa.Column("setup_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("setup_status", sa.String(20), nullable=False, server_default="pending_setup"),
        sa.Column("created_by", sa.Integer()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )

    op.create_table(
        "approval_levels",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("can_approve", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_reject", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_route", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_view", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("can_edit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_delete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("document_types", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.Integer()),
        sa.Column("updated_by", sa.Integer()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deactivated_at", sa.DateTime()),
        sa.CheckConstraint("level >= 1 AND level <= 100", name="ck_approval_level_rank_range"),
    )
    op.create_index("ix_approval_levels_tenant_id", "approval_levels", ["tenant_id"])
    op.create_index("ix_approval_levels_is_active", "approval_levels", ["is_active"])
    op.create_index(
        "uq_approval_level_tenant_name", "approval_levels", ["tenant_id", "name"], unique=True,
        postgresql_where=sa.text("is_active"), sqlite_where=sa.text("is_active = 1"),
    )
    op.create_index(
        "uq_approval_level_tenant_rank", "approval_levels", ["tenant_id", "level"], unique=True,
        postgresql_where=sa.text("is_active"), sqlite_where=sa.text("is_active = 1"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(200), nullable=False),
        sa.Column("password_hash", sa.String(256)),
        sa.Column("full_name", sa.String(200)),
        sa.Column("status", sa.String(20)),
        sa.Column("must_change_password", sa.Boolean()),
        sa.Column(
            "approval_level_id", sa.Integer(),
            sa.ForeignKey("approval_levels.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("last_login_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(200)),
        sa.Column("description", sa.Text()),
        sa.Column("is_system", sa.Boolean()),
        sa.Column("level", sa.Integer()),
        sa.Column("created_at", sa.DateTime()),
        sa.UniqueConstraint("tenant_id", "name", name="uq_role_tenant_name"),
    )

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assigned_at", sa.DateTime()),
        sa.Column("assigned_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    op.create_table(
        "workflow_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("document_type", sa.String(60), nullable=False),
        sa.Column("created_by", sa.Integer()),
        sa.Column("updated_by", sa.Integer()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deactivated_at", sa.DateTime()),
    )
    op.create_index("ix_workflow_templates_tenant_id", "workflow_templates", ["tenant_id"])
    op.create_index("ix_workflow_templates_is_active", "workflow_templates", ["is_active"])
    op.create_index(
        "ix_workflow_templates_tenant_doc_type", "workflow_templates", ["tenant_id", "document_type"],
    )

    op.create_table(
        "workflow_steps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "workflow_template_id", sa.Integer(),
            sa.ForeignKey("workflow_templates.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column(
            "approval_level_id", sa.Integer(),
            sa.ForeignKey("approval_levels.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("can_skip", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_approve", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("workflow_template_id", "step_order", name="uq_workflow_step_order"),
    )
    op.create_index("ix_workflow_steps_workflow_template_id", "workflow_steps", ["workflow_template_id"])
    op.create_index("ix_workflow_steps_approval_level_id", "workflow_steps", ["approval_level_id"])

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("document_type", sa.String(60), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column(
            "workflow_template_id", sa.Integer(),
            sa.ForeignKey("workflow_templates.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("current_step_order", sa.Integer(), nullable=True),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("submitted_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("submitted_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_documents_tenant_id", "documents", ["tenant_id"])
    op.create_index("ix_documents_tenant_status", "documents", ["tenant_id", "status"])
    op.create_index("ix_documents_tenant_doc_type", "documents", ["tenant_id", "document_type"])

    op.create_table(
        "document_approval_actions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=True),
        sa.Column(
            "approval_level_id", sa.Integer(),
            sa.ForeignKey("approval_levels.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_name_snapshot", sa.String(255), nullable=False),
        sa.Column("comment", sa.Text()),
        sa.Column("target_step_order", sa.Integer(), nullable=True),
        sa.Column("superseded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_document_approval_actions_tenant_id", "document_approval_actions", ["tenant_id"])
    op.create_index("ix_document_approval_actions_document_id", "document_approval_actions", ["document_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(60), nullable=False),
        sa.Column("actor", sa.String(150), nullable=False, server_default="system"),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("diff_json", sa.Text()),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True),
        sa.Column("recipient", sa.String(150)),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text()),
        sa.Column("category", sa.String(30)),
        sa.Column("severity", sa.String(20)),
        sa.Column("entity_type", sa.String(30)),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"])
    op.create_index("ix_notifications_recipient", "notifications", ["recipient"])


def downgrade():
    op.drop_table("notifications")
    op.drop_table("audit_logs")
    op.drop_table("document_approval_actions")
    op.drop_table("documents")
    op.drop_table("workflow_steps")
    op.drop_table("workflow_templates")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_table("users")
    op.drop_table("approval_levels")
    op.drop_table("tenants")
