"""
Industry Instance Service — platform-admin tenant bootstrap.

``create_industry_instance`` creates, in ONE transaction:
    1. the tenant (plan + config from the catalog's default_config merged
       with the caller's overrides), status ``pending_setup``
    2. its super-admin user with a one-time temporary password
    3. the industry's approval levels and workflow templates
    4. an invitation notification and an audit record

The temporary password is returned once and stored only as a werkzeug hash.
The tenant stays ``pending_setup`` until its super admin runs system setup.
"""

import logging
import re
import secrets

from flask import current_app
from sqlalchemy import func
from werkzeug.security import generate_password_hash

from edms.core.exceptions import ConflictError, InvalidIndustryType, ValidationError
from edms.models import db
from edms.models.audit import write_audit
from edms.models.auth import (
    PLATFORM_ADMIN_LEVEL,
    SETUP_STATUSES,
    SUPER_ADMIN_LEVEL,
    TENANT_USER_LEVEL,
    Role,
    Tenant,
    User,
    UserRole,
)
from edms.models.workflow import ApprovalLevel, WorkflowTemplate
from edms.services.industry_catalog import get_template
from edms.services.notification import NotificationService
from edms.services.provisioning_service import materialise_blueprint

logger = logging.getLogger(__name__)

SYSTEM_ROLES = (
    ("platform_admin", "Platform Admin", PLATFORM_ADMIN_LEVEL),
    ("super_admin", "Super Admin", SUPER_ADMIN_LEVEL),
    ("tenant_user", "User", TENANT_USER_LEVEL),
)


def ensure_system_roles() -> dict[str, Role]:
    """Create the system roles if missing (flush only). Returns them by name."""
    roles = {}
    for name, display_name, level in SYSTEM_ROLES:
        role = Role.query.filter_by(name=name, tenant_id=None).first()
        if role is None:
            role = Role(name=name, display_name=display_name, level=level, is_system=True)
            db.session.add(role)
            logger.info("System role %s created", name)
        roles[name] = role
    db.session.flush()
    return roles


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _parse_super_admin(data) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("super_admin is required", details={"super_admin": "required"})
    email = (data.get("email") or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("super_admin.email must be a valid email", details={"super_admin.email": "invalid"})
    full_name = " ".join(
        part.strip() for part in (data.get("first_name") or "", data.get("last_name") or "") if part.strip()
    ) or data.get("full_name") or email
    return {"email": email, "full_name": full_name}


def create_industry_instance(
    industry_type: str,
    name: str,
    description: str | None,
    config: dict | None,
    super_admin: dict,
    actor: User,
) -> dict:
    """Create a tenant for ``industry_type`` with its super admin and workflow."""
    template = get_template(industry_type)
    if template is None:
        raise InvalidIndustryType(industry_type)
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", details={"name": "required"})
    if config is not None and not isinstance(config, dict):
        raise ValidationError("config must be an object", details={"config": "object required"})
    admin = _parse_super_admin(super_admin)

    if User.query.filter(func.lower(User.email) == admin["email"]).first() is not None:
        raise ConflictError("User", "email", admin["email"])
    slug = _slugify(name)
    if not slug:
        raise ValidationError("name must contain letters or digits", details={"name": "invalid"})
    if Tenant.query.filter_by(slug=slug).first() is not None:
        raise ConflictError("Tenant", "slug", slug)

    merged = {**template["default_config"], **(config or {})}
    plan = merged.pop("plan", None) or current_app.config.get("DEFAULT_TENANT_PLAN", "trial")

    try:
        tenant = Tenant(
            name=name.strip(),
            slug=slug,
            description=description,
            plan=plan,
            max_users=merged.get("max_users"),
            settings=merged,
            industry_type=industry_type,
            created_by=actor.id,
        )
        db.session.add(tenant)
        db.session.flush()

        temporary_password = secrets.token_urlsafe(12)
        user = User(
            tenant_id=tenant.id,
            email=admin["email"],
            full_name=admin["full_name"],
            password_hash=generate_password_hash(temporary_password),
            status="invited",
            must_change_password=True,
        )
        db.session.add(user)
        db.session.flush()
        roles = ensure_system_roles()
        db.session.add(UserRole(user_id=user.id, role_id=roles["super_admin"].id, assigned_by=actor.id))

        # Levels exist now, but the tenant stays pending_setup until its admin runs setup.
        result = materialise_blueprint(tenant, template, actor.id)

        write_audit(
            entity_type="tenant", entity_id=tenant.id, action="tenant.industry_instance_created",
            tenant_id=tenant.id, actor_user_id=actor.id,
            diff={"industry_type": industry_type, "super_admin": admin["email"], **result},
        )
        NotificationService.create(
            title=f"You have been invited to administer {tenant.name}",
            message="Sign in with the temporary password you were given and complete system setup.",
            category="invitation",
            recipient=admin["email"],
            tenant_id=tenant.id,
            entity_type="tenant",
            entity_id=tenant.id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Industry instance %s created for %s", tenant.slug, industry_type,
        extra={"tenant_id": tenant.id, "industry_type": industry_type},
    )
    return {
        "instance": _instance_dict(tenant),
        "super_admin": user.to_dict(include_roles=True),
        "temporary_password": temporary_password,
        "provisioned": result,
    }


def _instance_dict(tenant: Tenant) -> dict:
    return {
        **tenant.to_dict(),
        "approval_levels": ApprovalLevel.query_for_tenant(tenant.id).count(),
        "workflow_templates": WorkflowTemplate.query_for_tenant(tenant.id).count(),
    }


def list_industry_instances(status: str | None = None, industry_type: str | None = None) -> list[dict]:
    """Tenants created from an industry template, newest first."""
    q = Tenant.query.filter(Tenant.industry_type.isnot(None))
    if status:
        if status not in SETUP_STATUSES:
            raise ValidationError(f"Unknown status {status!r}", details={"status": sorted(SETUP_STATUSES)})
        q = q.filter(Tenant.setup_status == status)
    if industry_type:
        q = q.filter(Tenant.industry_type == industry_type)
    return [_instance_dict(t) for t in q.order_by(Tenant.created_at.desc(), Tenant.id.desc()).all()]


def create_platform_admin(email: str, password: str, tenant_slug: str = "platform") -> User:
    """Operator bootstrap: the platform tenant plus a platform_admin user (idempotent)."""
    email = email.strip().lower()
    tenant = Tenant.query.filter_by(slug=tenant_slug).first()
    if tenant is None:
        tenant = Tenant(name="Platform Operations", slug=tenant_slug, plan="enterprise", max_users=None)
        db.session.add(tenant)
        db.session.flush()

    user = User.query.filter_by(tenant_id=tenant.id, email=email).first()
    if user is None:
        user = User(tenant_id=tenant.id, email=email, full_name="Platform Admin", status="active")
        db.session.add(user)
    user.password_hash = generate_password_hash(password)
    db.session.flush()

    roles = ensure_system_roles()
    if "platform_admin" not in user.role_names:
        db.session.add(UserRole(user_id=user.id, role_id=roles["platform_admin"].id))
    write_audit(
        entity_type="user", entity_id=user.id, action="platform_admin.bootstrap",
        tenant_id=tenant.id, actor="cli",
    )
    db.session.commit()
    return user
