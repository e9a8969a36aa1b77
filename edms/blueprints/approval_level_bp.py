"""
Approval Level Blueprint — the tenant's approval hierarchy.

Endpoints (all scoped to the caller's tenant):
  GET    /api/v1/approval-levels              — list active levels (?document_type=)
  POST   /api/v1/approval-levels              — create (super admin)
  GET    /api/v1/approval-levels/<id>         — detail
  PUT    /api/v1/approval-levels/<id>         — update; ``level`` and ``tenant_id`` are ignored
  DELETE /api/v1/approval-levels/<id>         — soft delete (super admin)
"""

from flask import Blueprint, jsonify, request

from edms.middleware.permission_required import current_user, require_auth, require_role_level
from edms.models.auth import SUPER_ADMIN_LEVEL
from edms.services import approval_level_service

approval_level_bp = Blueprint("approval_levels", __name__, url_prefix="/api/v1/approval-levels")


@approval_level_bp.route("", methods=["GET"])
@require_auth
def list_levels():
    user = current_user()
    levels = approval_level_service.list_approval_levels(
        user.tenant_id, document_type=request.args.get("document_type"),
    )
    return jsonify({"items": [lvl.to_dict() for lvl in levels], "total": len(levels)}), 200


@approval_level_bp.route("", methods=["POST"])
@require_role_level(SUPER_ADMIN_LEVEL)
def create_level():
    user = current_user()
    data = request.get_json(silent=True) or {}
    level = approval_level_service.create_approval_level(user.tenant_id, data, actor_id=user.id)
    return jsonify(level.to_dict()), 201


@approval_level_bp.route("/<int:level_id>", methods=["GET"])
@require_auth
def get_level(level_id):
    level = approval_level_service.get_approval_level(current_user().tenant_id, level_id)
    return jsonify(level.to_dict()), 200


@approval_level_bp.route("/<int:level_id>", methods=["PUT"])
@require_role_level(SUPER_ADMIN_LEVEL)
def update_level(level_id):
    user = current_user()
    data = request.get_json(silent=True) or {}
    level = approval_level_service.update_approval_level(user.tenant_id, level_id, data, actor_id=user.id)
    return jsonify(level.to_dict()), 200


@approval_level_bp.route("/<int:level_id>", methods=["DELETE"])
@require_role_level(SUPER_ADMIN_LEVEL)
def delete_level(level_id):
    user = current_user()
    level = approval_level_service.delete_approval_level(user.tenant_id, level_id, actor_id=user.id)
    return jsonify({"message": f"Approval level '{level.name}' deleted"}), 200
