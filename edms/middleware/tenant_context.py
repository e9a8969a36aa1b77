"""
Tenant Context Middleware — Loads the acting user and their tenant.

When a JWT-authenticated user makes a request:
  1. g.jwt_user_id / g.jwt_tenant_id are already set by jwt_auth middleware
  2. The user row is loaded and must belong to the token's tenant
  3. The tenant must exist and be active (platform admins are exempt)
  4. g.current_user and g.tenant are set for the route handlers

Requests without a JWT pass through untouched; ``require_auth`` rejects
them where a route needs an actor.

Chain order:
  jwt_auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, request

from edms.models import db
from edms.models.auth import Tenant, User
from edms.utils.errors import E, api_error

logger = logging.getLogger(__name__)

TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.current_user = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        user_id = getattr(g, "jwt_user_id", None)
        if user_id is None:
            return None

        user = db.session.get(User, user_id)
        if user is None or user.status == "inactive":
            logger.warning(
                "JWT user %s not found or inactive", user_id,
                extra={"security_code": "JWT_USER_INVALID"},
            )
            return api_error(E.UNAUTHENTICATED, "User not found or inactive")

        tenant_id = getattr(g, "jwt_tenant_id", None)
        if tenant_id is not None and tenant_id != user.tenant_id:
            logger.warning(
                "JWT tenant %s does not match user %s tenant %s",
                tenant_id, user_id, user.tenant_id,
                extra={"security_code": "SCOPE_MISMATCH", "tenant_id": tenant_id},
            )
            return api_error(E.FORBIDDEN, "Token tenant does not match user")

        tenant = db.session.get(Tenant, user.tenant_id)
        if tenant is None:
            logger.warning("Tenant %d not found for user %d", user.tenant_id, user_id)
            return api_error(E.FORBIDDEN, "Tenant not found")

        if not tenant.is_active and not user.is_platform_admin:
            logger.warning(
                "Tenant %d is deactivated", tenant.id,
                extra={"security_code": "TENANT_DEACTIVATED", "tenant_id": tenant.id},
            )
            return api_error(E.FORBIDDEN, "Tenant account is deactivated")

        g.current_user = user
        g.tenant = tenant
        return None

    logger.info("Tenant context middleware installed")
