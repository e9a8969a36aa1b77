"""
Tenant-scoped query helpers.

Every get-by-id in the service layer goes through these helpers instead of
Model.query.get(pk) or db.session.get(Model, pk). Direct .get() calls bypass
tenant isolation.

Soft-deleted rows (``is_active`` False) are treated as missing unless the
caller passes ``include_inactive=True``; audit and history views are the only
callers that do.

Usage:
    level = get_scoped(ApprovalLevel, level_id, tenant_id=tenant_id)
    step_doc = get_scoped(Document, doc_id, tenant_id=tenant_id)
    maybe = get_scoped_or_none(WorkflowTemplate, wf_id, tenant_id=tenant_id)

Scope field resolution:
    Each keyword argument maps directly to a column name on the model.
    If none of the supplied scopes exists on the model a ValueError is raised
    at call time so the bug surfaces in tests, not as an unscoped lookup.
"""

import logging

from sqlalchemy import select

from edms.core.exceptions import NotFoundError
from edms.models import db

logger = logging.getLogger(__name__)


def get_scoped(
    model,
    pk: int,
    *,
    tenant_id: int | None = None,
    workflow_template_id: int | None = None,
    document_id: int | None = None,
    include_inactive: bool = False,
):
    """Fetch a single entity by PK with mandatory scope filter.

    Cross-tenant access is indistinguishable from a missing record: both
    raise NotFoundError → HTTP 404.

    Raises:
        ValueError: If no scope parameter is provided, or none of the
                    provided scope fields exist on the model.
        NotFoundError: If the entity does not exist, belongs to a different
                       scope, or is soft-deleted.
    """
    provided_scopes: dict[str, int] = {
        "tenant_id": tenant_id,
        "workflow_template_id": workflow_template_id,
        "document_id": document_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            "(tenant_id, workflow_template_id or document_id). "
            "Unscoped lookups are forbidden."
        )

    applicable_scopes = {
        field: value
        for field, value in provided_scopes.items()
        if hasattr(model, field)
    }

    missing_fields = set(provided_scopes) - set(applicable_scopes)
    if missing_fields:
        logger.warning(
            "get_scoped(%s, %s): scope field(s) %s not found on model — "
            "those filters were NOT applied.",
            model.__name__,
            pk,
            sorted(missing_fields),
        )

    if not applicable_scopes:
        raise ValueError(
            f"{model.__name__} id={pk}: no applicable scope — "
            f"none of {sorted(provided_scopes)} exist as columns on {model.__name__}."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in applicable_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)
    if not include_inactive and hasattr(model, "is_active"):
        stmt = stmt.where(model.is_active.is_(True))

    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug(
            "get_scoped: %s id=%s not found in scope %s",
            model.__name__,
            pk,
            applicable_scopes,
        )
        raise NotFoundError(resource=model.__name__, resource_id=pk)

    return result


def get_scoped_or_none(
    model,
    pk: int,
    *,
    tenant_id: int | None = None,
    workflow_template_id: int | None = None,
    document_id: int | None = None,
    include_inactive: bool = False,
):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(
            model,
            pk,
            tenant_id=tenant_id,
            workflow_template_id=workflow_template_id,
            document_id=document_id,
            include_inactive=include_inactive,
        )
    except NotFoundError:
        return None
