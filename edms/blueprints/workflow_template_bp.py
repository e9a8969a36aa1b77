"""
Workflow Template Blueprint — ordered approval steps per document type.

Endpoints (all scoped to the caller's tenant):
  GET    /api/v1/workflow-templates                         — list (?document_type=)
  POST   /api/v1/workflow-templates                         — create (super admin)
  GET    /api/v1/workflow-templates/<id>                    — detail with steps
  PUT    /api/v1/workflow-templates/<id>                    — update; ``steps`` replaces all steps
  DELETE /api/v1/workflow-templates/<id>                    — soft delete (super admin)
  GET    /api/v1/workflow-templates/document-type/<type>    — templates for one document type
  POST   /api/v1/workflow-templates/<id>/duplicate          — copy with steps (super admin)

Step body: {"order": 1, "approval_level_id": 3, "is_required": true,
            "can_skip": false, "auto_approve": false}
"""

from flask import Blueprint, jsonify, request

from edms.middleware.permission_required import current_user, require_auth, require_role_level
from edms.models.auth import SUPER_ADMIN_LEVEL
from edms.services import workflow_template_service

workflow_template_bp = Blueprint(
    "workflow_templates", __name__, url_prefix="/api/v1/workflow-templates",
)


@workflow_template_bp.route("", methods=["GET"])
@require_auth
def list_templates():
    templates = workflow_template_service.list_workflow_templates(
        current_user().tenant_id, document_type=request.args.get("document_type"),
    )
    return jsonify({"items": [t.to_dict() for t in templates], "total": len(templates)}), 200


@workflow_template_bp.route("", methods=["POST"])
@require_role_level(SUPER_ADMIN_LEVEL)
def create_template():
    user = current_user()
    data = request.get_json(silent=True) or {}
    template = workflow_template_service.create_workflow_template(user.tenant_id, data, actor_id=user.id)
    return jsonify(template.to_dict()), 201


@workflow_template_bp.route("/document-type/<string:document_type>", methods=["GET"])
@require_auth
def templates_for_document_type(document_type):
    templates = workflow_template_service.list_by_document_type(current_user().tenant_id, document_type)
    return jsonify({
        "document_type": document_type,
        "items": [t.to_dict() for t in templates],
        "total": len(templates),
    }), 200


@workflow_template_bp.route("/<int:template_id>", methods=["GET"])
@require_auth
def get_template(template_id):
    template = workflow_template_service.get_workflow_template(current_user().tenant_id, template_id)
    return jsonify(template.to_dict()), 200


@workflow_template_bp.route("/<int:template_id>", methods=["PUT"])
@require_role_level(SUPER_ADMIN_LEVEL)
def update_template(template_id):
    user = current_user()
    data = request.get_json(silent=True) or {}
    template = workflow_template_service.update_workflow_template(
        user.tenant_id, template_id, data, actor_id=user.id,
    )
    return jsonify(template.to_dict()), 200


@workflow_template_bp.route("/<int:template_id>", methods=["DELETE"])
@require_role_level(SUPER_ADMIN_LEVEL)
def delete_template(template_id):
    user = current_user()
    template = workflow_template_service.delete_workflow_template(user.tenant_id, template_id, actor_id=user.id)
    return jsonify({"message": f"Workflow template '{template.name}' deleted"}), 200


@workflow_template_bp.route("/<int:template_id>/duplicate", methods=["POST"])
@require_role_level(SUPER_ADMIN_LEVEL)
def duplicate_template(template_id):
    user = current_user()
    data = request.get_json(silent=True) or {}
    template = workflow_template_service.duplicate_workflow_template(
        user.tenant_id, template_id, data, actor_id=user.id,
    )
    return jsonify(template.to_dict()), 201
