"""
Approval Workflow Template Blueprint.

Routes:
  GET    /holdings/<hid>/approval-workflows          – list templates (?active=true)
  POST   /holdings/<hid>/approval-workflows          – create template
  GET    /approval-workflows/<wid>                   – template detail
  PUT    /approval-workflows/<wid>                   – update template
  DELETE /approval-workflows/<wid>                   – delete template
  POST   /approval-workflows/<wid>/set-default       – make holding default

Layer contract:
    - Blueprint: parse input, call workflow_service, return JSON.
    - NO db.session calls here; all writes owned by workflow_service.
"""

from flask import Blueprint, jsonify, request

from approval_engine.blueprints import register_error_handlers
from approval_engine.services import workflow_service
from approval_engine.utils.errors import E, api_error

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_bp)


def _current_user():
    """Best-effort current user extraction (no auth enforcement)."""
    return (
        request.headers.get("X-User-Email", "")
        or request.headers.get("X-Forwarded-User", "")
        or "system"
    )


@workflow_bp.route("/holdings/<int:hid>/approval-workflows", methods=["GET"])
def list_workflows(hid):
    """List a holding's approval templates, optionally only active ones."""
    active_only = request.args.get("active") == "true"
    templates = workflow_service.list_templates(hid, active_only=active_only)
    return jsonify([t.to_dict() for t in templates])


@workflow_bp.route("/holdings/<int:hid>/approval-workflows", methods=["POST"])
def create_workflow(hid):
    """Create a new approval template.

    Body: { name, description?, is_default?, is_active?,
            steps: [{order?, name, approver_type, static_user_id?, ...}] }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    tpl = workflow_service.create_template(hid, data, created_by=_current_user())
    return jsonify(tpl.to_dict()), 201


@workflow_bp.route("/approval-workflows/<int:wid>", methods=["GET"])
def get_workflow(wid):
    return jsonify(workflow_service.get_template(wid).to_dict())


@workflow_bp.route("/approval-workflows/<int:wid>", methods=["PUT"])
def update_workflow(wid):
    """Update name, description, steps, is_active or is_default."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    tpl = workflow_service.update_template(wid, data)
    return jsonify(tpl.to_dict())


@workflow_bp.route("/approval-workflows/<int:wid>", methods=["DELETE"])
def delete_workflow(wid):
    workflow_service.delete_template(wid)
    return jsonify({"deleted": True})


@workflow_bp.route("/approval-workflows/<int:wid>/set-default", methods=["POST"])
def set_default_workflow(wid):
    """Make this template the holding default; any previous default is cleared."""
    tpl = workflow_service.set_default(wid)
    return jsonify(tpl.to_dict())
