"""
System Setup Blueprint — one-shot bootstrap of a tenant's approval workflow.

Endpoints:
  GET  /api/v1/system-setup/templates              — industries offered at setup
  POST /api/v1/system-setup/<tenant_id>            — run setup (super admin of that tenant)
  GET  /api/v1/system-setup/status/<tenant_id>     — configuration counts

POST body:
  { "industry_type": "court_system", "setup_method": "template",
    "custom_config": { "approval_levels": [...], "workflow_templates": [...] } }
"""

import logging

from flask import Blueprint, jsonify, request

from edms.core.exceptions import TenantOwnershipViolation, ValidationError
from edms.middleware.permission_required import current_user, require_auth, require_role_level
from edms.models.auth import SUPER_ADMIN_LEVEL
from edms.services import provisioning_service
from edms.services.industry_catalog import CATALOG_VERSION, list_setup_templates

logger = logging.getLogger(__name__)

system_setup_bp = Blueprint("system_setup", __name__, url_prefix="/api/v1/system-setup")


@system_setup_bp.route("/templates", methods=["GET"])
@require_auth
def list_templates():
    """Industry templates plus the "custom" entry (always last)."""
    return jsonify({"templates": list_setup_templates(), "catalog_version": CATALOG_VERSION}), 200


@system_setup_bp.route("/<int:tenant_id>", methods=["POST"])
@require_role_level(SUPER_ADMIN_LEVEL)
def run_setup(tenant_id):
    data = request.get_json(silent=True) or {}
    industry_type = data.get("industry_type")
    setup_method = data.get("setup_method") or provisioning_service.SETUP_METHOD_TEMPLATE
    if setup_method == provisioning_service.SETUP_METHOD_TEMPLATE and not industry_type:
        raise ValidationError("industry_type is required", details={"industry_type": "required"})

    result = provisioning_service.run_system_setup(
        tenant_id,
        current_user(),
        industry_type,
        setup_method=setup_method,
        custom_config=data.get("custom_config"),
    )
    return jsonify({"message": "System setup completed", **result}), 201


@system_setup_bp.route("/status/<int:tenant_id>", methods=["GET"])
@require_auth
def setup_status(tenant_id):
    user = current_user()
    if user.tenant_id != tenant_id and not user.is_platform_admin:
        raise TenantOwnershipViolation(user.id, tenant_id)
    return jsonify(provisioning_service.get_setup_status(tenant_id)), 200
