"""
Platform Admin Blueprint — cross-tenant industry instance management.

API Endpoints (JSON):
  GET  /api/v1/platform-admin/industries              — catalog industries (value/label/description)
  GET  /api/v1/platform-admin/industry-instances      — tenants created from a template (?status=&industry_type=)
  POST /api/v1/platform-admin/industry-instances      — create tenant + super admin + workflow

POST body:
  { "industry_type": "banking_system", "name": "Acme Bank", "description": "...",
    "config": {"plan": "professional", "max_users": 50},
    "super_admin": {"email": "...", "first_name": "...", "last_name": "..."} }

All endpoints require the platform_admin role (level 1000).
"""

import logging

from flask import Blueprint, jsonify, request

from edms.middleware.permission_required import current_user, require_platform_admin
from edms.services import industry_instance_service
from edms.services.industry_catalog import list_available_industries

logger = logging.getLogger(__name__)

platform_admin_bp = Blueprint("platform_admin", __name__, url_prefix="/api/v1/platform-admin")


@platform_admin_bp.route("/industries", methods=["GET"])
@require_platform_admin
def list_industries():
    return jsonify({"industries": list_available_industries()}), 200


@platform_admin_bp.route("/industry-instances", methods=["GET"])
@require_platform_admin
def list_instances():
    instances = industry_instance_service.list_industry_instances(
        status=request.args.get("status"),
        industry_type=request.args.get("industry_type"),
    )
    return jsonify({"items": instances, "total": len(instances)}), 200


@platform_admin_bp.route("/industry-instances", methods=["POST"])
@require_platform_admin
def create_instance():
    data = request.get_json(silent=True) or {}
    result = industry_instance_service.create_industry_instance(
        industry_type=data.get("industry_type"),
        name=data.get("name"),
        description=data.get("description"),
        config=data.get("config"),
        super_admin=data.get("super_admin"),
        actor=current_user(),
    )
    logger.info(
        "Platform admin %d created industry instance %s",
        current_user().id, result["instance"]["slug"],
        extra={"tenant_id": result["instance"]["id"], "industry_type": data.get("industry_type")},
    )
    return jsonify(result), 201
