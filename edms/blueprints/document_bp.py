"""
Document Blueprint — document records and their approval transitions.

Endpoints (all scoped to the caller's tenant):
  POST /api/v1/documents                              — create a draft
  GET  /api/v1/documents                              — list (?status=&document_type=&limit=&offset=)
  GET  /api/v1/documents/pending                      — documents awaiting the caller's level
  GET  /api/v1/documents/<id>                         — detail + available actions
  POST /api/v1/documents/<id>/submit                  — {workflow_template_id?, comment?, expected_version?}
  POST /api/v1/documents/<id>/approve                 — {comment?, expected_version?}
  POST /api/v1/documents/<id>/reject                  — {reason, expected_version?}
  POST /api/v1/documents/<id>/route                   — {target_step, comment?, expected_version?}
  POST /api/v1/documents/<id>/skip                    — {comment?, expected_version?}
  GET  /api/v1/documents/<id>/approval-status         — steps with outcomes
  GET  /api/v1/documents/<id>/approval-history        — action trail (?include_superseded=false)
"""

from flask import Blueprint, jsonify, request

from edms.blueprints import paginate_query, parse_expected_version
from edms.middleware.permission_required import current_user, require_auth
from edms.services import approval_engine, document_service

document_bp = Blueprint("documents", __name__, url_prefix="/api/v1/documents")


def _document_payload(document, user):
    return {
        **document.to_dict(),
        "display_status": approval_engine.display_status(document),
        "available_actions": approval_engine.get_available_actions(document, user),
    }


def _load(document_id):
    user = current_user()
    return document_service.get_document(user.tenant_id, document_id), user


# ═════════════════════════════════════════════════════════════════════════════
# RECORDS
# ═════════════════════════════════════════════════════════════════════════════

@document_bp.route("", methods=["POST"])
@require_auth
def create_document():
    user = current_user()
    data = request.get_json(silent=True) or {}
    document = document_service.create_document(user.tenant_id, data, actor_id=user.id)
    return jsonify(_document_payload(document, user)), 201


@document_bp.route("", methods=["GET"])
@require_auth
def list_documents():
    user = current_user()
    query = document_service.list_documents(
        user.tenant_id,
        status=request.args.get("status"),
        document_type=request.args.get("document_type"),
    )
    items, total = paginate_query(query)
    return jsonify({
        "items": [{**d.to_dict(), "display_status": approval_engine.display_status(d)} for d in items],
        "total": total,
    }), 200


@document_bp.route("/pending", methods=["GET"])
@require_auth
def pending_documents():
    user = current_user()
    documents = approval_engine.list_pending_for_actor(user)
    return jsonify({
        "items": [_document_payload(d, user) for d in documents],
        "total": len(documents),
    }), 200


@document_bp.route("/<int:document_id>", methods=["GET"])
@require_auth
def get_document(document_id):
    document, user = _load(document_id)
    return jsonify(_document_payload(document, user)), 200


# ═════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════════

@document_bp.route("/<int:document_id>/submit", methods=["POST"])
@require_auth
def submit_document(document_id):
    document, user = _load(document_id)
    data = request.get_json(silent=True) or {}
    approval_engine.submit(
        document, user,
        workflow_template_id=data.get("workflow_template_id"),
        comment=data.get("comment"),
        expected_version=parse_expected_version(data),
    )
    return jsonify(_document_payload(document, user)), 200


@document_bp.route("/<int:document_id>/approve", methods=["POST"])
@require_auth
def approve_document(document_id):
    document, user = _load(document_id)
    data = request.get_json(silent=True) or {}
    approval_engine.approve(
        document, user, comment=data.get("comment"), expected_version=parse_expected_version(data),
    )
    return jsonify(_document_payload(document, user)), 200


@document_bp.route("/<int:document_id>/reject", methods=["POST"])
@require_auth
def reject_document(document_id):
    document, user = _load(document_id)
    data = request.get_json(silent=True) or {}
    approval_engine.reject(
        document, user, data.get("reason"), expected_version=parse_expected_version(data),
    )
    return jsonify(_document_payload(document, user)), 200


@document_bp.route("/<int:document_id>/route", methods=["POST"])
@require_auth
def route_document(document_id):
    document, user = _load(document_id)
    data = request.get_json(silent=True) or {}
    approval_engine.route(
        document, user, data.get("target_step"),
        comment=data.get("comment"), expected_version=parse_expected_version(data),
    )
    return jsonify(_document_payload(document, user)), 200


@document_bp.route("/<int:document_id>/skip", methods=["POST"])
@require_auth
def skip_step(document_id):
    document, user = _load(document_id)
    data = request.get_json(silent=True) or {}
    approval_engine.skip(
        document, user, comment=data.get("comment"), expected_version=parse_expected_version(data),
    )
    return jsonify(_document_payload(document, user)), 200


# ═════════════════════════════════════════════════════════════════════════════
# READ SIDE
# ═════════════════════════════════════════════════════════════════════════════

@document_bp.route("/<int:document_id>/approval-status", methods=["GET"])
@require_auth
def approval_status(document_id):
    document, user = _load(document_id)
    status = approval_engine.get_approval_status(document)
    status["available_actions"] = approval_engine.get_available_actions(document, user)
    return jsonify(status), 200


@document_bp.route("/<int:document_id>/approval-history", methods=["GET"])
@require_auth
def approval_history(document_id):
    document, _ = _load(document_id)
    include_superseded = request.args.get("include_superseded", "true").lower() != "false"
    history = approval_engine.get_history(document, include_superseded=include_superseded)
    return jsonify({"document_id": document.id, "items": history, "total": len(history)}), 200
