"""
Approval Query / Presentation Interface: read-only projections.

Used by dashboards and RQ cards.  Nothing in this module writes.

    list_actionable(identity)     "my pending approvals" queue
    render_chain(rq)              chain with a visual state per step
    approval_status(rq_id)        facet + rendered chain + current approver
    decision_history(rq_id)       aprobaciones, oldest first
"""

from __future__ import annotations

from sqlalchemy import select

from approval_engine.core.exceptions import NotFoundError
from approval_engine.models import db
from approval_engine.models.requisition import ACTION_REJECTED, STATUS_PENDING, ApprovalDecision, Requisition
from approval_engine.services.approval_state_machine import (
    current_approver,
    is_actionable_by,
    load_chain,
)

# Visual states of one chain entry
STEP_COMPLETED = "completed"
STEP_REJECTED = "rejected"
STEP_CURRENT = "current"
STEP_FUTURE = "future"
STEP_SKIPPED = "skipped"


def _get_requisition(requisition_id: int) -> Requisition:
    rq = db.session.get(Requisition, requisition_id)
    if rq is None:
        raise NotFoundError(resource="Requisition", resource_id=requisition_id)
    return rq


def list_actionable(identity: str, holding_id: int | None = None) -> list[Requisition]:
    """Requisitions whose current, non-skipped step resolves to identity.

    The indexed current_approver_email column narrows the scan; every hit is
    re-checked against the frozen chain.
    """
    email = (identity or "").strip().lower()
    if not email:
        return []

    stmt = select(Requisition).where(
        Requisition.status == STATUS_PENDING,
        Requisition.current_approver_email == email,
    )
    if holding_id is not None:
        stmt = stmt.where(Requisition.holding_id == holding_id)
    stmt = stmt.order_by(Requisition.submitted_at.asc(), Requisition.id.asc())

    rows = db.session.execute(stmt).scalars().all()
    return [rq for rq in rows if is_actionable_by(rq, email)]


def render_chain(rq: Requisition) -> list[dict]:
    """Return one entry per resolved step with its visual state.

    States: completed (approved decision), rejected (rejected decision),
    current, future, skipped.
    """
    decisions = {d.step: d for d in rq.aprobaciones}
    rendered = []
    for entry in load_chain(rq):
        decision = decisions.get(entry.step_order)
        if entry.skipped:
            state = STEP_SKIPPED
        elif decision is not None:
            state = STEP_REJECTED if decision.action == ACTION_REJECTED else STEP_COMPLETED
        elif rq.status == STATUS_PENDING and entry.step_order == rq.current_step:
            state = STEP_CURRENT
        else:
            state = STEP_FUTURE

        item = entry.to_dict()
        item["state"] = state
        item["decision"] = decision.to_dict() if decision else None
        rendered.append(item)
    return rendered


def approval_status(requisition_id: int) -> dict:
    """Full approval projection for one requisition (RQ card / detail modal)."""
    rq = _get_requisition(requisition_id)
    entry = current_approver(load_chain(rq), rq.current_step) if rq.status == STATUS_PENDING else None
    data = rq.to_dict()
    data["chain"] = render_chain(rq)
    data["current_approver"] = entry.to_dict() if entry else None
    return data


def decision_history(requisition_id: int) -> list[dict]:
    """Return the append-only decision log, oldest first."""
    _get_requisition(requisition_id)
    decisions = db.session.execute(
        select(ApprovalDecision)
        .where(ApprovalDecision.requisition_id == requisition_id)
        .order_by(ApprovalDecision.created_at.asc(), ApprovalDecision.id.asc())
    ).scalars().all()
    return [d.to_dict() for d in decisions]
