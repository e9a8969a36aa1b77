"""
Auth Models — tenants, users, roles, user_roles.

A tenant is one company running the EDMS. Users belong to exactly one
tenant; platform roles (``super_admin``, ``platform_admin``) are system roles
with ``tenant_id`` NULL. A user's place in the document approval hierarchy is
the ApprovalLevel they are assigned to (``users.approval_level_id``), which is
independent of their platform role.
"""

from datetime import datetime, timezone

from edms.models import db

# Role hierarchy levels (higher = more authority)
TENANT_USER_LEVEL = 10
SUPER_ADMIN_LEVEL = 100
PLATFORM_ADMIN_LEVEL = 1000

SETUP_STATUS_PENDING = "pending_setup"
SETUP_STATUS_CONFIGURED = "configured"
SETUP_STATUSES = {SETUP_STATUS_PENDING, SETUP_STATUS_CONFIGURED}


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    plan = db.Column(db.String(50), default="trial")
    max_users = db.Column(db.Integer, default=10)
    is_active = db.Column(db.Boolean, default=True)
    settings = db.Column(db.JSON, default=dict)  # features + per-instance config
    # Workflow bootstrap state
    industry_type = db.Column(db.String(50))  # court_system, banking_system, ..., custom
    setup_completed = db.Column(db.Boolean, nullable=False, default=False)
    setup_status = db.Column(db.String(20), nullable=False, default=SETUP_STATUS_PENDING)
    created_by = db.Column(db.Integer)  # platform admin user id, NULL for self-signup
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    users = db.relationship("User", back_populates="tenant", lazy="dynamic")

    def mark_configured(self, industry_type):
        self.industry_type = industry_type
        self.setup_completed = True
        self.setup_status = SETUP_STATUS_CONFIGURED

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "plan": self.plan,
            "max_users": self.max_users,
            "is_active": self.is_active,
            "settings": self.settings or {},
            "industry_type": self.industry_type,
            "setup_completed": bool(self.setup_completed),
            "setup_status": self.setup_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "user_count": self.users.count() if self.users else 0,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    email = db.Column(db.String(200), nullable=False)
    password_hash = db.Column(db.String(256))
    full_name = db.Column(db.String(200))
    status = db.Column(db.String(20), default="active")  # active, invited, inactive
    must_change_password = db.Column(db.Boolean, default=False)
    # Rung in the tenant's approval hierarchy (NULL = cannot act on approvals)
    approval_level_id = db.Column(
        db.Integer, db.ForeignKey("approval_levels.id", ondelete="SET NULL"), nullable=True
    )
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Composite unique: same email can exist in different tenants
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        db.Index("ix_users_tenant_id", "tenant_id"),
        db.Index("ix_users_email", "email"),
    )

    # Relationships
    tenant = db.relationship("Tenant", back_populates="users")
    approval_level = db.relationship("ApprovalLevel", foreign_keys=[approval_level_id])
    user_roles = db.relationship(
        "UserRole", back_populates="user", lazy="dynamic",
        cascade="all, delete-orphan", foreign_keys="UserRole.user_id",
    )

    def to_dict(self, include_roles=False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "full_name": self.full_name,
            "status": self.status,
            "must_change_password": bool(self.must_change_password),
            "approval_level_id": self.approval_level_id,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_roles:
            d["roles"] = self.role_names
        return d

    @property
    def display_name(self):
        return self.full_name or self.email

    @property
    def role_names(self):
        """List of role names for this user."""
        return [ur.role.name for ur in self.user_roles.all()]

    @property
    def role_level(self):
        """Highest role hierarchy level held by this user (0 when none)."""
        levels = [ur.role.level or 0 for ur in self.user_roles.all()]
        return max(levels, default=0)

    @property
    def is_platform_admin(self):
        return self.role_level >= PLATFORM_ADMIN_LEVEL


# ═══════════════════════════════════════════════════════════════
# 3. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True
    )  # NULL = system role
    name = db.Column(db.String(100), nullable=False)
    display_name = db.Column(db.String(200))
    description = db.Column(db.Text)
    is_system = db.Column(db.Boolean, default=False)
    level = db.Column(db.Integer, default=0)  # Hierarchy level (higher = more authority)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_role_tenant_name"),
    )

    user_roles = db.relationship("UserRole", back_populates="role", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "is_system": self.is_system,
            "level": self.level,
        }


# ═══════════════════════════════════════════════════════════════
# 4. USER_ROLES (Junction table)
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    assigned_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    assigned_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    user = db.relationship("User", back_populates="user_roles", foreign_keys=[user_id])
    role = db.relationship("Role", back_populates="user_roles")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role_id": self.role_id,
            "role_name": self.role.name if self.role else None,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "assigned_by": self.assigned_by,
        }
