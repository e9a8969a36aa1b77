"""
Subscription plan limits for tenant configuration objects.

Direct creation of approval levels and workflow templates (API and custom
overrides) is capped per plan. Catalog provisioning is not: a tenant always
receives its full industry blueprint.

``None`` means unlimited.
"""

import logging

from edms.core.exceptions import PlanLimitExceeded

logger = logging.getLogger(__name__)

DEFAULT_PLAN = "starter"

PLAN_LIMITS = {
    "trial": {"max_users": 10, "max_approval_levels": 5, "max_workflows": 3},
    "starter": {"max_users": 25, "max_approval_levels": 5, "max_workflows": 5},
    "professional": {"max_users": 100, "max_approval_levels": 10, "max_workflows": 15},
    "business": {"max_users": 500, "max_approval_levels": 25, "max_workflows": 50},
    "enterprise": {"max_users": None, "max_approval_levels": None, "max_workflows": None},
}

_RESOURCE_LABELS = {
    "max_users": "users",
    "max_approval_levels": "approval levels",
    "max_workflows": "workflows",
}


def get_plan_limits(plan: str | None) -> dict:
    """Limits for ``plan``; unknown plans fall back to the default plan."""
    return PLAN_LIMITS.get(plan or DEFAULT_PLAN, PLAN_LIMITS[DEFAULT_PLAN])


def is_limit_exceeded(plan: str | None, limit_key: str, current: int) -> bool:
    """True when adding one more item would go over the plan's limit."""
    limit = get_plan_limits(plan).get(limit_key)
    if limit is None:
        return False
    return current >= limit


def check_plan_limit(tenant, limit_key: str, current: int) -> None:
    """Raise PlanLimitExceeded when ``tenant`` cannot create another item."""
    plan = tenant.plan or DEFAULT_PLAN
    if not is_limit_exceeded(plan, limit_key, current):
        return
    limit = get_plan_limits(plan)[limit_key]
    logger.info(
        "Plan limit %s reached for plan %s (%d/%d)", limit_key, plan, current, limit,
        extra={"tenant_id": tenant.id},
    )
    raise PlanLimitExceeded(
        resource=_RESOURCE_LABELS.get(limit_key, limit_key),
        plan=plan,
        limit=limit,
        current=current,
    )
