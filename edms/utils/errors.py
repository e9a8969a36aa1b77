"""Standardised API error responses.

Usage
-----
    from edms.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Document not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.PLAN_LIMIT, "Upgrade required", details={"limit": 5})

``init_error_handlers(app)`` registers the mapping from service exceptions
to these responses for the whole application.
"""

from __future__ import annotations

import logging

from flask import jsonify

from edms.core.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
    NoWorkflowForDocumentType,
    PermissionDenied,
    PlanLimitExceeded,
    TenantOwnershipViolation,
    TransitionError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention: ERR_ prefix for every application error.
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"
    PLAN_LIMIT = "ERR_PLAN_LIMIT"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"

    # Unprocessable – HTTP 422
    NO_WORKFLOW = "ERR_NO_WORKFLOW"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.PLAN_LIMIT: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_VERSION: 409,
    E.NO_WORKFLOW: 422,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, plan limits, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def init_error_handlers(app):
    """Map service exceptions to JSON responses for every blueprint.

    Each handler rolls back the session first so a half-applied unit of
    work never leaks into the next request on the same connection.
    """
    from edms.models import db

    @app.errorhandler(ValidationError)
    def _validation(exc):
        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        db.session.rollback()
        logger.info("Not found: %s", exc)
        return api_error(E.NOT_FOUND, f"{exc.resource} not found")

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(exc), details={"field": exc.field})

    @app.errorhandler(TransitionError)
    def _transition(exc):
        db.session.rollback()
        return api_error(
            E.CONFLICT_STATE, str(exc),
            details={"status": exc.current_status, "action": exc.action},
        )

    @app.errorhandler(ConcurrentModificationError)
    def _concurrent(exc):
        db.session.rollback()
        return api_error(
            E.CONFLICT_VERSION, str(exc),
            details={
                "expected_version": exc.expected_version,
                "actual_version": exc.actual_version,
            },
        )

    @app.errorhandler(PermissionDenied)
    def _permission_denied(exc):
        db.session.rollback()
        logger.warning(
            "Approval permission denied: %s", exc,
            extra={"security_code": "APPROVAL_DENIED", "event_type": exc.action},
        )
        return api_error(E.FORBIDDEN, str(exc))

    @app.errorhandler(TenantOwnershipViolation)
    def _ownership(exc):
        db.session.rollback()
        logger.warning(
            "Tenant ownership violation: %s", exc,
            extra={"security_code": "TENANT_OWNERSHIP", "tenant_id": exc.tenant_id},
        )
        return api_error(E.FORBIDDEN, "You can only manage your own company")

    @app.errorhandler(PlanLimitExceeded)
    def _plan_limit(exc):
        db.session.rollback()
        return api_error(
            E.PLAN_LIMIT, str(exc),
            details={
                "resource": exc.resource,
                "plan": exc.plan,
                "limit": exc.limit,
                "current": exc.current,
                "upgrade_required": True,
            },
        )

    @app.errorhandler(NoWorkflowForDocumentType)
    def _no_workflow(exc):
        db.session.rollback()
        return api_error(E.NO_WORKFLOW, str(exc), details={"document_type": exc.document_type})
