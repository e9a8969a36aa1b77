"""
Permission Decorators — route guards built on the tenant context.

Usage:
    @bp.route("", methods=["POST"])
    @require_role_level(SUPER_ADMIN_LEVEL)
    def create_level():
        ...

    @bp.route("/industry-instances", methods=["GET"])
    @require_platform_admin
    def list_instances():
        ...

Document approval authority is NOT decided here: the approval engine checks
the actor's assigned ApprovalLevel against the current step. These guards
only cover platform roles.
"""

import functools
import logging

from flask import g

from edms.models.auth import PLATFORM_ADMIN_LEVEL
from edms.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user():
    """The authenticated User for this request (None outside require_auth)."""
    return getattr(g, "current_user", None)


def require_auth(f):
    """Decorator: reject the request with 401 unless a valid JWT user is present."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_role_level(min_level: int):
    """
    Decorator: require the user's highest role level to be at least ``min_level``.

    Args:
        min_level: e.g. SUPER_ADMIN_LEVEL (100)
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if user.role_level < min_level:
                logger.warning(
                    "User %d denied: role level %d < %d on %s",
                    user.id, user.role_level, min_level, f.__name__,
                )
                return api_error(
                    E.FORBIDDEN, "Insufficient role level",
                    details={"required_level": min_level},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator


require_platform_admin = require_role_level(PLATFORM_ADMIN_LEVEL)
