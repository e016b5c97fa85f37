"""
Approval Service: the engine's external operations.

    submit_for_approval(rq_id, workflow_id=None)   freeze a chain onto an RQ
    decide(rq_id, actor_email, action, reason)     approve / reject the current step
    list_actionable(identity)                      re-exported from approval_query

Submission is resolve-then-write-once: the chain is computed completely in
memory and persisted in one commit.  A requisition that already carries a
chain is never resolved again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import update

from approval_engine.core.exceptions import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    ValidationError,
)
from approval_engine.models import db
from approval_engine.models.requisition import STATUS_APPROVED, STATUS_DRAFT, STATUS_PENDING, Requisition
from approval_engine.services import approval_state_machine, workflow_service
from approval_engine.services.approval_query import list_actionable  # noqa: F401
from approval_engine.services.approver_resolution import RequisitionContext, resolve
from approval_engine.services.org_directory import OrgDirectory, SqlOrgDirectory

logger = logging.getLogger(__name__)

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
VALID_DECIDE_ACTIONS = frozenset({ACTION_APPROVE, ACTION_REJECT})


def _select_template(rq: Requisition, workflow_id: int | None):
    if workflow_id is not None:
        tpl = workflow_service.get_template(workflow_id)
        if tpl.holding_id != rq.holding_id:
            # Another holding's template is indistinguishable from a missing one
            raise NotFoundError(resource="WorkflowTemplate", resource_id=workflow_id)
        if not tpl.is_active:
            raise ValidationError(f"Workflow template {tpl.id} is inactive", details={"workflow_id": tpl.id})
        return tpl

    tpl = workflow_service.get_default_template(rq.holding_id)
    if tpl is None:
        raise NotFoundError(resource="Default WorkflowTemplate for holding", resource_id=rq.holding_id)
    return tpl


def submit_for_approval(
    requisition_id: int,
    workflow_id: int | None = None,
    directory: OrgDirectory | None = None,
) -> Requisition:
    """Resolve a workflow onto a requisition and open its approval.

    Args:
        requisition_id: Requisition PK (created by the RQ lifecycle module).
        workflow_id:    Explicit template; defaults to the holding's default.
        directory:      OrgDirectory override (defaults to SqlOrgDirectory).

    Returns:
        The Requisition, either pending_approval at its first actionable step
        or already approved when every step resolved to skipped.

    Raises:
        NotFoundError:   unknown requisition, template, or no default template.
        ConflictError:   the requisition already has a resolved chain.
        ValidationError: the template's steps are malformed.
        ResolutionError: an org lookup failed; nothing was persisted.
    """
    rq = db.session.get(Requisition, requisition_id)
    if rq is None:
        raise NotFoundError(resource="Requisition", resource_id=requisition_id)
    if rq.resolved_approvers is not None or rq.status != STATUS_DRAFT:
        raise ConflictError(resource="Requisition approval", field="requisition_id", value=str(rq.id))

    tpl = _select_template(rq, workflow_id)
    directory = directory or SqlOrgDirectory()
    collapse = bool(current_app.config.get("APPROVAL_COLLAPSE_DUPLICATE_APPROVERS", False))

    try:
        context = RequisitionContext.from_requisition(rq, directory)
        chain = resolve(context, tpl.steps or [], directory, collapse_duplicates=collapse)
    except Exception:
        db.session.rollback()
        raise

    first = approval_state_machine.first_actionable_step(chain)
    now = datetime.now(timezone.utc)

    values = {
        "workflow_id": tpl.id,
        "workflow_name": tpl.name,
        "resolved_approvers": [a.to_dict() for a in chain],
        "submitted_at": now,
        "updated_at": now,
    }
    if first is None:
        values.update(status=STATUS_APPROVED, current_step=None, current_approver_email=None, decided_at=now)
    else:
        values.update(
            status=STATUS_PENDING,
            current_step=first.step_order,
            current_approver_email=first.email.strip().lower(),
        )

    # Write-once: only a draft without a chain may take one
    result = db.session.execute(
        update(Requisition)
        .where(
            Requisition.id == requisition_id,
            Requisition.status == STATUS_DRAFT,
            Requisition.resolved_approvers.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.info(
            "Submission lost a concurrent race",
            extra={"requisition_id": requisition_id, "event_type": "approval.submit_conflict"},
        )
        raise ConflictError(resource="Requisition approval", field="requisition_id", value=str(requisition_id))
    db.session.commit()
    rq = db.session.get(Requisition, requisition_id)

    logger.info(
        "Requisition submitted for approval",
        extra={
            "requisition_id": rq.id,
            "holding_id": rq.holding_id,
            "workflow_id": tpl.id,
            "step": rq.current_step,
            "event_type": "approval.auto_approved" if first is None else "approval.submitted",
        },
    )
    return rq


def decide(
    requisition_id: int,
    actor_email: str,
    action: str,
    reason: str | None = None,
    assigned_recruiter: dict | None = None,
) -> Requisition:
    """Apply an approve / reject decision from the approval dashboard."""
    if not isinstance(actor_email, str) or not actor_email.strip():
        raise InvalidArgumentError("actor_email is required", field="actor_email")
    if action not in VALID_DECIDE_ACTIONS:
        raise InvalidArgumentError(
            f"action must be one of {sorted(VALID_DECIDE_ACTIONS)}",
            field="action",
        )

    if action == ACTION_APPROVE:
        return approval_state_machine.approve(
            requisition_id, actor_email, assigned_recruiter=assigned_recruiter,
        )
    return approval_state_machine.reject(requisition_id, actor_email, reason)
