"""
Workflow Template Service — CRUD for document-type approval chains.

Every write re-validates the step list as a whole:
  - orders are exactly 1..n (``step_order_problems``)
  - each step's approval level is an ACTIVE level of the same tenant
  - step flags are booleans

Steps arrive either with ``approval_level_id`` (API) or, from provisioning
and custom overrides, already resolved by the caller.
"""

import logging

from edms.core.exceptions import ConflictError, NotFoundError, ValidationError
from edms.models import db
from edms.models.audit import write_audit
from edms.models.auth import Tenant
from edms.models.document import Document
from edms.models.workflow import STEP_FLAGS, ApprovalLevel, WorkflowStep, WorkflowTemplate, step_order_problems
from edms.services.helpers.scoped_queries import get_scoped, get_scoped_or_none
from edms.services.plan_limits import check_plan_limit

logger = logging.getLogger(__name__)

STEP_DEFAULTS = {"is_required": True, "can_skip": False, "auto_approve": False}


def _parse_text(data: dict, field: str, required: bool = True, max_len: int = 200) -> str | None:
    value = data.get(field)
    if value is None and not required:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters", details={field: "too long"})
    return value


def build_steps(tenant_id: int, steps_data) -> list[WorkflowStep]:
    """Validate a step list and return unsaved WorkflowStep rows.

    Steps without an explicit ``order`` take their 1-based list position.
    """
    if not isinstance(steps_data, list) or not steps_data:
        raise ValidationError("steps must be a non-empty list", details={"steps": "required"})

    normalised = []
    for position, raw in enumerate(steps_data, start=1):
        if not isinstance(raw, dict):
            raise ValidationError("each step must be an object", details={"steps": position})
        order = raw.get("order", position)
        normalised.append((order, raw))

    problems = step_order_problems([order for order, _ in normalised])
    if problems:
        raise ValidationError(problems[0], details={"steps": problems})

    steps = []
    for order, raw in sorted(normalised, key=lambda pair: pair[0]):
        level_id = raw.get("approval_level_id")
        if isinstance(level_id, bool) or not isinstance(level_id, int):
            raise ValidationError(
                f"Step {order}: approval_level_id is required",
                details={"steps": {order: "approval_level_id required"}},
            )
        level = get_scoped_or_none(ApprovalLevel, level_id, tenant_id=tenant_id)
        if level is None:
            raise ValidationError(
                f"Step {order}: approval level {level_id} not found or inactive",
                details={"steps": {order: "unknown approval level"}},
            )
        flags = {}
        for flag in STEP_FLAGS:
            value = raw.get(flag, STEP_DEFAULTS[flag])
            if not isinstance(value, bool):
                raise ValidationError(
                    f"Step {order}: {flag} must be true or false",
                    details={"steps": {order: f"{flag} boolean required"}},
                )
            flags[flag] = value
        steps.append(WorkflowStep(order=order, approval_level_id=level.id, **flags))
    return steps


def build_workflow_template(tenant_id: int, data: dict, actor_id: int | None = None) -> WorkflowTemplate:
    """Validate and add a template with its steps (flush, no commit)."""
    name = _parse_text(data, "name")
    document_type = _parse_text(data, "document_type", max_len=60)
    steps = build_steps(tenant_id, data.get("steps"))

    template = WorkflowTemplate(
        tenant_id=tenant_id,
        name=name,
        description=data.get("description"),
        document_type=document_type,
        created_by=actor_id,
        updated_by=actor_id,
    )
    template.steps = steps
    db.session.add(template)
    db.session.flush()
    logger.info(
        "Workflow template %r created with %d step(s)", name, len(steps),
        extra={"tenant_id": tenant_id, "workflow_template_id": template.id},
    )
    return template


def _check_no_documents_in_flight(template: WorkflowTemplate) -> None:
    """Steps are shared by every document on the template, so they stay fixed
    while any of those documents is still pending approval."""
    pending = (
        Document.query_for_tenant(template.tenant_id)
        .filter(
            Document.workflow_template_id == template.id,
            Document.status == "pending_approval",
        )
        .count()
    )
    if pending:
        raise ConflictError(
            "WorkflowTemplate", "steps", str(template.id),
            message=(
                f"Workflow template {template.name!r} has {pending} document(s) pending approval; "
                "steps cannot be replaced until they are approved or rejected"
            ),
        )


def apply_template_update(tenant_id: int, template_id: int, data: dict, actor_id: int | None = None):
    """Apply an update (flush, no commit). Returns (template, changed_fields)."""
    template = get_scoped(WorkflowTemplate, template_id, tenant_id=tenant_id)
    changed = []
    if "name" in data:
        template.name = _parse_text(data, "name")
        changed.append("name")
    if "description" in data:
        template.description = data.get("description")
        changed.append("description")
    if "document_type" in data:
        template.document_type = _parse_text(data, "document_type", max_len=60)
        changed.append("document_type")
    if "steps" in data:
        _check_no_documents_in_flight(template)
        new_steps = build_steps(tenant_id, data["steps"])
        template.steps.clear()
        db.session.flush()  # old step rows go before new orders are inserted
        template.steps.extend(new_steps)
        changed.append("steps")
    if changed:
        template.updated_by = actor_id
    db.session.flush()
    return template, changed


def _check_workflow_limit(tenant_id: int) -> None:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    check_plan_limit(tenant, "max_workflows", WorkflowTemplate.query_for_tenant(tenant_id).count())


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════

def create_workflow_template(tenant_id: int, data: dict, actor_id: int | None = None) -> WorkflowTemplate:
    _check_workflow_limit(tenant_id)
    template = build_workflow_template(tenant_id, data, actor_id)
    write_audit(
        entity_type="workflow_template", entity_id=template.id, action="create",
        tenant_id=tenant_id, actor_user_id=actor_id,
        diff={"name": template.name, "document_type": template.document_type,
              "steps": len(template.steps)},
    )
    db.session.commit()
    return template


def list_workflow_templates(tenant_id: int, document_type: str | None = None) -> list[WorkflowTemplate]:
    """Active templates sorted by name."""
    q = WorkflowTemplate.query_for_tenant(tenant_id)
    if document_type:
        q = q.filter(WorkflowTemplate.document_type == document_type)
    return q.order_by(WorkflowTemplate.name.asc()).all()


def list_by_document_type(tenant_id: int, document_type: str) -> list[WorkflowTemplate]:
    """Active templates for one document type, oldest first (engine preference order)."""
    return (
        WorkflowTemplate.query_for_tenant(tenant_id)
        .filter(WorkflowTemplate.document_type == document_type)
        .order_by(WorkflowTemplate.id.asc())
        .all()
    )


def get_workflow_template(tenant_id: int, template_id: int) -> WorkflowTemplate:
    return get_scoped(WorkflowTemplate, template_id, tenant_id=tenant_id)


def update_workflow_template(tenant_id: int, template_id: int, data: dict, actor_id: int | None = None) -> WorkflowTemplate:
    template, changed = apply_template_update(tenant_id, template_id, data, actor_id)
    if changed:
        write_audit(
            entity_type="workflow_template", entity_id=template.id, action="update",
            tenant_id=tenant_id, actor_user_id=actor_id, diff={"fields": changed},
        )
    db.session.commit()
    return template


def delete_workflow_template(tenant_id: int, template_id: int, actor_id: int | None = None) -> WorkflowTemplate:
    """Soft delete. Documents already in flight keep their template reference."""
    template = get_scoped(WorkflowTemplate, template_id, tenant_id=tenant_id)
    template.soft_delete()
    template.updated_by = actor_id
    write_audit(
        entity_type="workflow_template", entity_id=template.id, action="delete",
        tenant_id=tenant_id, actor_user_id=actor_id, diff={"name": template.name},
    )
    db.session.commit()
    logger.info("Workflow template %d deactivated", template.id, extra={"tenant_id": tenant_id})
    return template


def duplicate_workflow_template(tenant_id: int, template_id: int, data: dict | None = None,
                                actor_id: int | None = None) -> WorkflowTemplate:
    """Copy a template and its steps. Default name is "<name> (Copy)"."""
    source = get_scoped(WorkflowTemplate, template_id, tenant_id=tenant_id)
    _check_workflow_limit(tenant_id)
    data = data or {}
    copy_data = {
        "name": data.get("name") or f"{source.name} (Copy)",
        "description": data.get("description", source.description),
        "document_type": data.get("document_type") or source.document_type,
        "steps": [
            {
                "order": s.order,
                "approval_level_id": s.approval_level_id,
                "is_required": s.is_required,
                "can_skip": s.can_skip,
                "auto_approve": s.auto_approve,
            }
            for s in source.steps
        ],
    }
    template = build_workflow_template(tenant_id, copy_data, actor_id)
    write_audit(
        entity_type="workflow_template", entity_id=template.id, action="create",
        tenant_id=tenant_id, actor_user_id=actor_id,
        diff={"duplicated_from": source.id, "name": template.name},
    )
    db.session.commit()
    return template
