"""
Requisition Approval Blueprint.

Routes:
  POST   /requisitions/<rq_id>/submit            – freeze workflow chain, open approval
  POST   /requisitions/<rq_id>/decide            – approve / reject the current step
  GET    /approvals/pending                      – my pending approvals
  GET    /requisitions/<rq_id>/approval-status   – facet + rendered chain
  GET    /requisitions/<rq_id>/approval-history  – decision log

The acting user comes from the body (actor_email / email) or, failing that,
from the X-User-Email header set by the gateway.

Layer contract:
    - Blueprint: parse input, call approval_service / approval_query.
    - NO db.session calls and NO approver checks here.
"""

from flask import Blueprint, jsonify, request

from approval_engine.blueprints import paginate, register_error_handlers
from approval_engine.services import approval_query, approval_service
from approval_engine.utils.errors import E, api_error

approval_bp = Blueprint("approval", __name__, url_prefix="/api/v1")
register_error_handlers(approval_bp)

_DECIDE_TEXT_FIELDS = ("action", "reason", "actor_email", "assigned_recruiter_email", "assigned_recruiter_name")


def _actor(data, key: str = "actor_email") -> str:
    value = data.get(key) or request.headers.get("X-User-Email", "")
    return str(value).strip()


# ═════════════════════════════════════════════════════════════════════════════
# SUBMIT / DECIDE
# ═════════════════════════════════════════════════════════════════════════════

@approval_bp.route("/requisitions/<int:rq_id>/submit", methods=["POST"])
def submit_requisition(rq_id):
    """Submit a requisition into its approval workflow.

    Body: { workflow_id? }  (defaults to the holding's default template)
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "JSON body must be an object")
    workflow_id = data.get("workflow_id")
    if workflow_id is not None:
        try:
            workflow_id = int(workflow_id)
        except (TypeError, ValueError):
            return api_error(E.VALIDATION_INVALID, "workflow_id must be an integer")

    rq = approval_service.submit_for_approval(rq_id, workflow_id=workflow_id)
    return jsonify(approval_query.approval_status(rq.id)), 201


@approval_bp.route("/requisitions/<int:rq_id>/decide", methods=["POST"])
def decide_requisition(rq_id):
    """Approve or reject the current step.

    Body: { action: "approve"|"reject", reason?, actor_email?,
            assigned_recruiter_email?, assigned_recruiter_name? }
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "JSON body must be an object")
    for field in _DECIDE_TEXT_FIELDS:
        if data.get(field) is not None and not isinstance(data[field], str):
            return api_error(E.VALIDATION_INVALID, f"{field} must be a string", details={"field": field})
    action = (data.get("action") or "").strip().lower()
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")

    actor_email = _actor(data)
    if not actor_email:
        return api_error(E.VALIDATION_REQUIRED, "actor_email is required")

    assigned_recruiter = None
    if data.get("assigned_recruiter_email"):
        assigned_recruiter = {
            "email": data.get("assigned_recruiter_email"),
            "name": data.get("assigned_recruiter_name"),
        }

    rq = approval_service.decide(
        rq_id,
        actor_email,
        action,
        reason=data.get("reason"),
        assigned_recruiter=assigned_recruiter,
    )
    return jsonify(approval_query.approval_status(rq.id))


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════

@approval_bp.route("/approvals/pending", methods=["GET"])
def pending_approvals():
    """List requisitions waiting on the given approver.

    Query params: email (or X-User-Email header), holding_id?, limit?, offset?
    """
    email = _actor(request.args, key="email")
    if not email:
        return api_error(E.VALIDATION_REQUIRED, "email is required")

    holding_id = request.args.get("holding_id", type=int)
    items = approval_service.list_actionable(email, holding_id=holding_id)
    page, total = paginate(items)
    return jsonify({
        "items": [rq.to_dict(include_decisions=False) for rq in page],
        "total": total,
    })


@approval_bp.route("/requisitions/<int:rq_id>/approval-status", methods=["GET"])
def requisition_approval_status(rq_id):
    return jsonify(approval_query.approval_status(rq_id))


@approval_bp.route("/requisitions/<int:rq_id>/approval-history", methods=["GET"])
def requisition_approval_history(rq_id):
    history = approval_query.decision_history(rq_id)
    return jsonify({"history": history, "total": len(history)})
