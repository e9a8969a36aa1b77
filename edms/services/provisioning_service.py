"""
Workflow Provisioning Service — materialises a tenant's approval hierarchy.

Three entry points share one pipeline:

    provision_from_template(tenant_id, industry_type, actor_id)
    provision_manual(tenant_id, actor_id)
    apply_custom_overrides(tenant_id, custom_config, actor_id)

and ``run_system_setup`` composes them for the setup endpoint.

Guarantees:
  - One transaction per call. The tenant row is locked with
    SELECT ... FOR UPDATE so two setups for the same tenant serialise; any
    failure rolls back every level and template and leaves the tenant
    unconfigured.
  - Every workflow step's level name is resolved against the blueprint
    BEFORE the first write (UnresolvedApprovalLevel).
  - Idempotent: an active level with the blueprint name (or, failing that,
    the blueprint rank, so renamed levels are still recognised), or an active
    template with the same name and document type, is reused and logged as
    "already exists" instead of duplicated.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import select

from edms.core.exceptions import (
    InvalidIndustryType,
    NotFoundError,
    TenantOwnershipViolation,
    UnresolvedApprovalLevel,
    ValidationError,
)
from edms.models import db
from edms.models.audit import write_audit
from edms.models.auth import SUPER_ADMIN_LEVEL, Tenant
from edms.models.workflow import ApprovalLevel, WorkflowTemplate, step_order_problems
from edms.services import approval_level_service, workflow_template_service
from edms.services.industry_catalog import CUSTOM_INDUSTRY, get_manual_blueprint, get_template
from edms.services.notification import NotificationService
from edms.services.plan_limits import check_plan_limit

logger = logging.getLogger(__name__)

SETUP_METHOD_TEMPLATE = "template"
SETUP_METHOD_MANUAL = "manual"
SETUP_METHODS = (SETUP_METHOD_TEMPLATE, SETUP_METHOD_MANUAL)


# ═══════════════════════════════════════════════════════════════
# Transaction + resolution helpers
# ═══════════════════════════════════════════════════════════════

def _lock_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.execute(
        select(Tenant).where(Tenant.id == tenant_id).with_for_update()
    ).scalar_one_or_none()
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    return tenant


@contextmanager
def provisioning_transaction(tenant_id: int):
    """Lock the tenant row, yield it, commit on success, roll back on any error."""
    try:
        tenant = _lock_tenant(tenant_id)
        yield tenant
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.warning("Provisioning rolled back", extra={"tenant_id": tenant_id})
        raise


def resolve_blueprint(blueprint: dict) -> None:
    """Check every workflow step against the blueprint's own levels.

    Raises UnresolvedApprovalLevel or ValidationError without touching the DB.
    """
    level_names = {lvl["name"] for lvl in blueprint.get("approval_levels", [])}
    for wf in blueprint.get("workflow_templates", []):
        problems = step_order_problems([s.get("order") for s in wf.get("steps", [])])
        if problems:
            raise ValidationError(f"{wf.get('name')}: {problems[0]}", details={"steps": problems})
        for step in wf["steps"]:
            if step["approval_level"] not in level_names:
                raise UnresolvedApprovalLevel(step["approval_level"], wf.get("name"))


def materialise_blueprint(tenant: Tenant, blueprint: dict, actor_id: int | None) -> dict:
    """Create the blueprint's levels and templates for ``tenant`` (flush only)."""
    resolve_blueprint(blueprint)

    active_levels = ApprovalLevel.query_for_tenant(tenant.id).all()
    existing_levels = {lvl.name: lvl for lvl in active_levels}
    existing_ranks = {lvl.level: lvl for lvl in active_levels}
    levels_by_name = {}
    created_levels = skipped_levels = 0
    for level_data in blueprint["approval_levels"]:
        current = existing_levels.get(level_data["name"]) or existing_ranks.get(level_data["level"])
        if current is not None:
            logger.info(
                "Approval level %r already exists as %r, skipping", level_data["name"], current.name,
                extra={"tenant_id": tenant.id, "approval_level_id": current.id},
            )
            levels_by_name[level_data["name"]] = current
            skipped_levels += 1
            continue
        levels_by_name[level_data["name"]] = approval_level_service.build_approval_level(
            tenant.id, level_data, actor_id,
        )
        created_levels += 1

    created_templates = skipped_templates = 0
    for wf in blueprint.get("workflow_templates", []):
        exists = (
            WorkflowTemplate.query_for_tenant(tenant.id)
            .filter_by(name=wf["name"], document_type=wf["document_type"])
            .first()
        )
        if exists is not None:
            logger.info(
                "Workflow template %r already exists, skipping", wf["name"],
                extra={"tenant_id": tenant.id, "workflow_template_id": exists.id},
            )
            skipped_templates += 1
            continue
        workflow_template_service.build_workflow_template(
            tenant.id,
            {
                "name": wf["name"],
                "description": wf.get("description"),
                "document_type": wf["document_type"],
                "steps": [
                    {
                        "order": step["order"],
                        "approval_level_id": levels_by_name[step["approval_level"]].id,
                        "is_required": step.get("is_required", True),
                        "can_skip": step.get("can_skip", False),
                        "auto_approve": step.get("auto_approve", False),
                    }
                    for step in wf["steps"]
                ],
            },
            actor_id,
        )
        created_templates += 1

    return {
        "approval_levels": created_levels,
        "workflow_templates": created_templates,
        "skipped_approval_levels": skipped_levels,
        "skipped_workflow_templates": skipped_templates,
    }


def _provision_from_template(tenant: Tenant, industry_type: str, actor_id: int | None) -> dict:
    template = get_template(industry_type)
    if template is None:
        raise InvalidIndustryType(industry_type)
    result = materialise_blueprint(tenant, template, actor_id)
    tenant.mark_configured(industry_type)
    logger.info(
        "Provisioned %d level(s), %d template(s) from %s",
        result["approval_levels"], result["workflow_templates"], industry_type,
        extra={"tenant_id": tenant.id, "industry_type": industry_type},
    )
    return {"industry_type": industry_type, **result}


def _provision_manual(tenant: Tenant, actor_id: int | None) -> dict:
    result = materialise_blueprint(tenant, get_manual_blueprint(), actor_id)
    tenant.mark_configured(CUSTOM_INDUSTRY)
    logger.info(
        "Provisioned manual hierarchy (%d level(s))", result["approval_levels"],
        extra={"tenant_id": tenant.id, "industry_type": CUSTOM_INDUSTRY},
    )
    return {"industry_type": CUSTOM_INDUSTRY, **result}


def _resolve_override_steps(tenant_id: int, wf: dict) -> list[dict]:
    """Override steps may name their level instead of giving its id."""
    steps = []
    for raw in wf.get("steps") or []:
        if not isinstance(raw, dict):
            raise ValidationError("each step must be an object", details={"steps": "object required"})
        step = dict(raw)
        level_name = step.pop("approval_level", None)
        if level_name is not None and "approval_level_id" not in step:
            level = ApprovalLevel.query_for_tenant(tenant_id).filter_by(name=level_name).first()
            if level is None:
                raise UnresolvedApprovalLevel(level_name, wf.get("name"))
            step["approval_level_id"] = level.id
        steps.append(step)
    return steps


def _apply_custom_overrides(tenant: Tenant, custom_config: dict, actor_id: int | None) -> dict:
    if not isinstance(custom_config, dict):
        raise ValidationError("custom_config must be an object", details={"custom_config": "object required"})

    summary = {
        "approval_levels": {"created": 0, "updated": 0},
        "workflow_templates": {"created": 0, "updated": 0},
    }

    for entry in custom_config.get("approval_levels") or []:
        if not isinstance(entry, dict):
            raise ValidationError("approval level override must be an object")
        if entry.get("id") is not None:
            approval_level_service.apply_level_update(tenant.id, entry["id"], entry, actor_id)
            summary["approval_levels"]["updated"] += 1
        else:
            check_plan_limit(
                tenant, "max_approval_levels", ApprovalLevel.query_for_tenant(tenant.id).count(),
            )
            approval_level_service.build_approval_level(tenant.id, entry, actor_id)
            summary["approval_levels"]["created"] += 1

    for entry in custom_config.get("workflow_templates") or []:
        if not isinstance(entry, dict):
            raise ValidationError("workflow template override must be an object")
        data = dict(entry)
        if "steps" in data:
            data["steps"] = _resolve_override_steps(tenant.id, entry)
        if entry.get("id") is not None:
            data.pop("id")
            workflow_template_service.apply_template_update(tenant.id, entry["id"], data, actor_id)
            summary["workflow_templates"]["updated"] += 1
        else:
            check_plan_limit(
                tenant, "max_workflows", WorkflowTemplate.query_for_tenant(tenant.id).count(),
            )
            workflow_template_service.build_workflow_template(tenant.id, data, actor_id)
            summary["workflow_templates"]["created"] += 1

    return summary


# ═══════════════════════════════════════════════════════════════
# Public operations
# ═══════════════════════════════════════════════════════════════

def provision_from_template(tenant_id: int, industry_type: str, actor_id: int | None = None) -> dict:
    """Create the catalog hierarchy for ``industry_type``. Returns created counts."""
    with provisioning_transaction(tenant_id) as tenant:
        return _provision_from_template(tenant, industry_type, actor_id)


def provision_manual(tenant_id: int, actor_id: int | None = None) -> dict:
    """Create the default three-level hierarchy and its standard workflow."""
    with provisioning_transaction(tenant_id) as tenant:
        return _provision_manual(tenant, actor_id)


def apply_custom_overrides(tenant_id: int, custom_config: dict, actor_id: int | None = None) -> dict:
    """Update (entries with ``id``) or create levels and templates from ``custom_config``."""
    with provisioning_transaction(tenant_id) as tenant:
        return _apply_custom_overrides(tenant, custom_config, actor_id)


def run_system_setup(
    tenant_id: int,
    actor,
    industry_type: str | None,
    setup_method: str = SETUP_METHOD_TEMPLATE,
    custom_config: dict | None = None,
) -> dict:
    """
    Bootstrap a tenant's approval workflow in one transaction.

    Template path when ``setup_method == "template"`` and the industry is not
    "custom"; the manual hierarchy otherwise. Custom overrides are applied on
    top, then the tenant is marked configured.

    Raises:
        TenantOwnershipViolation: actor is not a super admin of ``tenant_id``.
        InvalidIndustryType / UnresolvedApprovalLevel / ValidationError.
    """
    if actor.tenant_id != tenant_id or actor.role_level < SUPER_ADMIN_LEVEL:
        raise TenantOwnershipViolation(actor.id, tenant_id)
    if setup_method not in SETUP_METHODS:
        raise ValidationError(
            f"setup_method must be one of {', '.join(SETUP_METHODS)}",
            details={"setup_method": setup_method},
        )

    with provisioning_transaction(tenant_id) as tenant:
        if setup_method == SETUP_METHOD_TEMPLATE and industry_type != CUSTOM_INDUSTRY:
            result = _provision_from_template(tenant, industry_type, actor.id)
        else:
            result = _provision_manual(tenant, actor.id)

        if custom_config:
            result["overrides"] = _apply_custom_overrides(tenant, custom_config, actor.id)

        result["setup_method"] = setup_method
        write_audit(
            entity_type="tenant", entity_id=tenant.id, action="tenant.system_setup",
            tenant_id=tenant.id, actor_user_id=actor.id, diff=result,
        )
        NotificationService.create(
            title="System setup completed",
            message=(
                f"{result['approval_levels']} approval level(s) and "
                f"{result['workflow_templates']} workflow template(s) configured."
            ),
            category="setup",
            severity="success",
            recipient=actor.email,
            tenant_id=tenant.id,
            entity_type="tenant",
            entity_id=tenant.id,
        )

    return {"tenant": tenant.to_dict(), **result}


def get_setup_status(tenant_id: int) -> dict:
    """Active configuration counts for the setup screen."""
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    level_count = ApprovalLevel.query_for_tenant(tenant_id).count()
    template_count = WorkflowTemplate.query_for_tenant(tenant_id).count()
    return {
        "tenant": {
            "id": tenant.id,
            "name": tenant.name,
            "industry_type": tenant.industry_type,
            "setup_completed": bool(tenant.setup_completed),
            "setup_status": tenant.setup_status,
        },
        "approval_levels": level_count,
        "workflow_templates": template_count,
        "is_configured": level_count > 0 and template_count > 0,
    }
