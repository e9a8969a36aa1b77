"""
Approval Level Service — tenant super-admin management of the hierarchy.

Rules:
  - name unique per tenant among active levels (ConflictError)
  - rank (``level``) 1–100, unique per tenant among active levels
    (DuplicateApprovalLevelRank)
  - ``tenant_id`` and ``level`` are immutable: updates ignore both keys
  - delete is a soft delete, refused while an active workflow template
    still has a step at the level
  - direct creation counts against the plan's ``max_approval_levels``

``build_approval_level`` / ``apply_level_update`` flush only; the provisioning
service composes them inside its own transaction. The public create / update /
delete functions commit.
"""

import logging

from edms.core.exceptions import ConflictError, DuplicateApprovalLevelRank, NotFoundError, ValidationError
from edms.models import db
from edms.models.audit import write_audit
from edms.models.auth import Tenant
from edms.models.workflow import (
    MAX_LEVEL_RANK,
    MIN_LEVEL_RANK,
    PERMISSION_FLAGS,
    ApprovalLevel,
    WorkflowStep,
    WorkflowTemplate,
)
from edms.services.helpers.scoped_queries import get_scoped
from edms.services.plan_limits import check_plan_limit

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = ("tenant_id", "level")


# ═══════════════════════════════════════════════════════════════
# Validation helpers
# ═══════════════════════════════════════════════════════════════

def _parse_rank(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("level must be an integer", details={"level": "integer required"})
    if not MIN_LEVEL_RANK <= value <= MAX_LEVEL_RANK:
        raise ValidationError(
            f"level must be between {MIN_LEVEL_RANK} and {MAX_LEVEL_RANK}",
            details={"level": f"{MIN_LEVEL_RANK}-{MAX_LEVEL_RANK}"},
        )
    return value


def _parse_name(value) -> str:
    name = (value or "").strip() if isinstance(value, str) else ""
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if len(name) > 120:
        raise ValidationError("name must be at most 120 characters", details={"name": "too long"})
    return name


def _parse_permissions(value) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("permissions must be an object", details={"permissions": "object required"})
    unknown = sorted(set(value) - set(PERMISSION_FLAGS))
    if unknown:
        raise ValidationError(
            f"Unknown permission flag(s): {', '.join(unknown)}",
            details={"permissions": unknown},
        )
    for flag, flag_value in value.items():
        if not isinstance(flag_value, bool):
            raise ValidationError(f"{flag} must be true or false", details={flag: "boolean required"})
    return value


def _parse_document_types(value) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValidationError(
            "document_types must be a list of strings",
            details={"document_types": "list of strings required"},
        )
    # keep first occurrence order
    return list(dict.fromkeys(v.strip() for v in value))


def _check_rank_free(tenant_id: int, rank: int) -> None:
    clash = ApprovalLevel.query_for_tenant(tenant_id).filter(ApprovalLevel.level == rank).first()
    if clash is not None:
        raise DuplicateApprovalLevelRank(tenant_id, rank, clash.name)


def _check_name_free(tenant_id: int, name: str, exclude_id: int | None = None) -> None:
    q = ApprovalLevel.query_for_tenant(tenant_id).filter(ApprovalLevel.name == name)
    if exclude_id is not None:
        q = q.filter(ApprovalLevel.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("ApprovalLevel", "name", name)


def _apply_fields(level: ApprovalLevel, data: dict) -> list[str]:
    """Copy mutable fields from ``data`` onto ``level``; return changed field names."""
    changed = []
    if "name" in data:
        name = _parse_name(data["name"])
        if name != level.name:
            level.name = name
            changed.append("name")
    if "description" in data:
        level.description = data["description"]
        changed.append("description")
    for flag, flag_value in _parse_permissions(data.get("permissions")).items():
        if getattr(level, flag) != flag_value:
            setattr(level, flag, flag_value)
            changed.append(flag)
    if "document_types" in data:
        level.document_types = _parse_document_types(data["document_types"])
        changed.append("document_types")
    return changed


# ═══════════════════════════════════════════════════════════════
# Flush-only builders (used by provisioning)
# ═══════════════════════════════════════════════════════════════

def build_approval_level(tenant_id: int, data: dict, actor_id: int | None = None) -> ApprovalLevel:
    """Validate and add a new level to the session (flush, no commit)."""
    name = _parse_name(data.get("name"))
    rank = _parse_rank(data.get("level"))
    _check_name_free(tenant_id, name)
    _check_rank_free(tenant_id, rank)

    level = ApprovalLevel(
        tenant_id=tenant_id,
        name=name,
        level=rank,
        description=data.get("description"),
        document_types=[],
        created_by=actor_id,
        updated_by=actor_id,
    )
    _apply_fields(level, {k: v for k, v in data.items() if k != "name"})
    db.session.add(level)
    db.session.flush()
    logger.info(
        "Approval level %r (rank %d) created", name, rank,
        extra={"tenant_id": tenant_id, "approval_level_id": level.id},
    )
    return level


def apply_level_update(tenant_id: int, level_id: int, data: dict, actor_id: int | None = None):
    """Apply an update (flush, no commit). Returns (level, changed_fields)."""
    level = get_scoped(ApprovalLevel, level_id, tenant_id=tenant_id)
    ignored = [f for f in IMMUTABLE_FIELDS if f in data]
    if ignored:
        logger.debug("Ignoring immutable field(s) %s on level %d", ignored, level_id)
    mutable = {k: v for k, v in data.items() if k not in IMMUTABLE_FIELDS}
    if "name" in mutable:
        _check_name_free(tenant_id, _parse_name(mutable["name"]), exclude_id=level.id)
    changed = _apply_fields(level, mutable)
    if changed:
        level.updated_by = actor_id
    db.session.flush()
    return level, changed


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════

def create_approval_level(tenant_id: int, data: dict, actor_id: int | None = None) -> ApprovalLevel:
    """Create a level for the tenant, enforcing the plan limit."""
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    check_plan_limit(tenant, "max_approval_levels", ApprovalLevel.query_for_tenant(tenant_id).count())

    level = build_approval_level(tenant_id, data, actor_id)
    write_audit(
        entity_type="approval_level", entity_id=level.id, action="create",
        tenant_id=tenant_id, actor_user_id=actor_id,
        diff={"name": level.name, "level": level.level},
    )
    db.session.commit()
    return level


def list_approval_levels(tenant_id: int, document_type: str | None = None) -> list[ApprovalLevel]:
    """Active levels ordered by rank; optionally only those handling ``document_type``."""
    levels = (
        ApprovalLevel.query_for_tenant(tenant_id)
        .order_by(ApprovalLevel.level.asc())
        .all()
    )
    if document_type:
        levels = [lvl for lvl in levels if lvl.handles_document_type(document_type)]
    return levels


def get_approval_level(tenant_id: int, level_id: int) -> ApprovalLevel:
    return get_scoped(ApprovalLevel, level_id, tenant_id=tenant_id)


def update_approval_level(tenant_id: int, level_id: int, data: dict, actor_id: int | None = None) -> ApprovalLevel:
    level, changed = apply_level_update(tenant_id, level_id, data, actor_id)
    if changed:
        write_audit(
            entity_type="approval_level", entity_id=level.id, action="update",
            tenant_id=tenant_id, actor_user_id=actor_id, diff={"fields": changed},
        )
    db.session.commit()
    return level


def delete_approval_level(tenant_id: int, level_id: int, actor_id: int | None = None) -> ApprovalLevel:
    """Soft delete. Refused while active workflow templates still use the level."""
    level = get_scoped(ApprovalLevel, level_id, tenant_id=tenant_id)
    in_use = (
        WorkflowTemplate.query_for_tenant(tenant_id)
        .join(WorkflowStep, WorkflowStep.workflow_template_id == WorkflowTemplate.id)
        .filter(WorkflowStep.approval_level_id == level.id)
        .distinct()
        .all()
    )
    if in_use:
        names = sorted(wf.name for wf in in_use)
        raise ValidationError(
            f"Approval level {level.name!r} is used by active workflow templates",
            details={"workflow_templates": names},
        )

    level.soft_delete()
    level.updated_by = actor_id
    write_audit(
        entity_type="approval_level", entity_id=level.id, action="delete",
        tenant_id=tenant_id, actor_user_id=actor_id, diff={"name": level.name},
    )
    db.session.commit()
    logger.info("Approval level %d deactivated", level.id, extra={"tenant_id": tenant_id})
    return level
