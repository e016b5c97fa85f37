"""
Approval State Machine: approve / reject transitions for one requisition.

    pending_approval ──approve (more steps)──> pending_approval (next step)
    pending_approval ──approve (last step)───> approved   (terminal)
    pending_approval ──reject────────────────> rejected   (terminal)

Business rules enforced here (not in blueprint):
    - Only the approver of the current, non-skipped step may act; the email
      match is case-insensitive.
    - Rejection needs a non-empty reason.
    - Terminal requisitions refuse every action with InvalidStateError.
    - aprobaciones is append-only: one ApprovalDecision per transition.

Concurrency:
    Each transition is a compare-and-swap UPDATE guarded on
    (status = pending_approval AND current_step = <step the actor saw>).
    The loser of a race matches zero rows and gets InvalidStateError; the
    (requisition_id, step) unique constraint on approval_decisions backs this
    up so the audit log can never hold two decisions for one step.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from approval_engine.core.exceptions import (
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from approval_engine.models import db
from approval_engine.models.requisition import (
    ACTION_APPROVED,
    ACTION_REJECTED,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    ApprovalDecision,
    Requisition,
)
from approval_engine.models.workflow import RECRUITMENT_LEAD
from approval_engine.services.approver_resolution import ResolvedApprover

logger = logging.getLogger(__name__)


# ── Chain helpers ──────────────────────────────────────────────────────────────


def _normalise_email(value: str | None) -> str:
    return (value or "").strip().lower()


def load_chain(rq: Requisition) -> list[ResolvedApprover]:
    """Deserialize the frozen chain stored on a requisition."""
    return [ResolvedApprover.from_dict(d) for d in (rq.resolved_approvers or [])]


def current_approver(chain: list[ResolvedApprover], current_step: int | None) -> ResolvedApprover | None:
    """Return the non-skipped entry at current_step, or None."""
    if current_step is None:
        return None
    for entry in chain:
        if entry.step_order == current_step and not entry.skipped:
            return entry
    return None


def next_actionable_step(chain: list[ResolvedApprover], after_step: int) -> ResolvedApprover | None:
    """Return the first non-skipped entry with step_order > after_step."""
    candidates = [a for a in chain if a.step_order > after_step and not a.skipped]
    return min(candidates, key=lambda a: a.step_order) if candidates else None


def first_actionable_step(chain: list[ResolvedApprover]) -> ResolvedApprover | None:
    return next_actionable_step(chain, 0)


def is_actionable_by(rq: Requisition, identity: str | None) -> bool:
    """True iff the requisition is pending and its current step resolves to identity."""
    if rq.status != STATUS_PENDING or not identity:
        return False
    entry = current_approver(load_chain(rq), rq.current_step)
    return entry is not None and _normalise_email(entry.email) == _normalise_email(identity)


# ── Guards ─────────────────────────────────────────────────────────────────────


def _load_pending(requisition_id: int) -> Requisition:
    rq = db.session.get(Requisition, requisition_id)
    if rq is None:
        raise NotFoundError(resource="Requisition", resource_id=requisition_id)
    if rq.status != STATUS_PENDING:
        logger.info(
            "Approval action refused: requisition not pending",
            extra={"requisition_id": rq.id, "status": rq.status, "event_type": "approval.invalid_state"},
        )
        raise InvalidStateError(
            f"Requisition {rq.code} is not pending approval (status: {rq.status})",
            status=rq.status,
            step=rq.current_step,
        )
    return rq


def _authorize(rq: Requisition, actor_email: str) -> ResolvedApprover:
    entry = current_approver(load_chain(rq), rq.current_step)
    if entry is None:
        # current_step does not point at an actionable entry; the chain is broken
        raise InvalidStateError(
            f"Requisition {rq.code} has no actionable approver at step {rq.current_step}",
            status=rq.status,
            step=rq.current_step,
        )
    if _normalise_email(entry.email) != _normalise_email(actor_email):
        logger.info(
            "Approval action refused: actor is not the current approver",
            extra={
                "requisition_id": rq.id,
                "step": rq.current_step,
                "actor_email": actor_email,
                "event_type": "approval.unauthorized",
            },
        )
        raise UnauthorizedError(actor=actor_email, step=rq.current_step, expected=entry.email)
    return entry


# ── Persistence ────────────────────────────────────────────────────────────────


def _persist_transition(
    requisition_id: int,
    expected_step: int,
    entry: ResolvedApprover,
    action: str,
    next_entry: ResolvedApprover | None,
    reason: str | None = None,
    extra_values: dict | None = None,
) -> None:
    """Compare-and-swap the requisition facet and append the decision.

    Commits on success.  Rolls back and raises InvalidStateError when another
    writer moved the requisition first.
    """
    now = datetime.now(timezone.utc)
    if action == ACTION_REJECTED:
        values = {"status": STATUS_REJECTED, "current_step": None, "current_approver_email": None, "decided_at": now}
    elif next_entry is None:
        values = {"status": STATUS_APPROVED, "current_step": None, "current_approver_email": None, "decided_at": now}
    else:
        values = {
            "status": STATUS_PENDING,
            "current_step": next_entry.step_order,
            "current_approver_email": _normalise_email(next_entry.email),
        }
    values["updated_at"] = now
    values.update(extra_values or {})

    result = db.session.execute(
        update(Requisition)
        .where(
            Requisition.id == requisition_id,
            Requisition.status == STATUS_PENDING,
            Requisition.current_step == expected_step,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.info(
            "Approval transition lost a concurrent race",
            extra={"requisition_id": requisition_id, "step": expected_step, "event_type": "approval.race_lost"},
        )
        raise InvalidStateError(
            f"Requisition {requisition_id} changed before step {expected_step} could be decided",
            step=expected_step,
        )

    db.session.add(ApprovalDecision(
        requisition_id=requisition_id,
        step=expected_step,
        step_name=entry.step_name,
        approver_email=entry.email,
        approver_name=entry.name,
        action=action,
        reason=reason,
        created_at=now,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise InvalidStateError(
            f"Step {expected_step} of requisition {requisition_id} was already decided",
            step=expected_step,
        )


# ── Transitions ────────────────────────────────────────────────────────────────


def approve(
    requisition_id: int,
    actor_email: str,
    assigned_recruiter: dict | None = None,
) -> Requisition:
    """Approve the current step and advance to the next non-skipped one.

    Args:
        requisition_id:     Requisition PK.
        actor_email:        Who is approving; must match the current approver.
        assigned_recruiter: Optional {"email", "name"} of the recruiter who
                            will run the hiring process.  Only accepted on a
                            recruitment_lead step.

    Returns:
        The refreshed Requisition.

    Raises:
        NotFoundError, InvalidStateError, UnauthorizedError, InvalidArgumentError
    """
    rq = _load_pending(requisition_id)
    entry = _authorize(rq, actor_email)

    extra_values = {}
    if assigned_recruiter:
        if entry.approver_type != RECRUITMENT_LEAD:
            raise InvalidArgumentError(
                "A recruiter can only be assigned on the recruitment lead step",
                field="assigned_recruiter_email",
            )
        recruiter_email = assigned_recruiter.get("email") or ""
        recruiter_name = assigned_recruiter.get("name") or ""
        if not isinstance(recruiter_email, str) or not isinstance(recruiter_name, str):
            raise InvalidArgumentError("assigned recruiter email and name must be strings", field="assigned_recruiter_email")
        recruiter_email = recruiter_email.strip()
        if not recruiter_email:
            raise InvalidArgumentError("assigned recruiter email is required", field="assigned_recruiter_email")
        extra_values = {
            "assigned_recruiter_email": recruiter_email,
            "assigned_recruiter_name": recruiter_name.strip() or recruiter_email,
        }

    step = rq.current_step
    next_entry = next_actionable_step(load_chain(rq), step)
    _persist_transition(rq.id, step, entry, ACTION_APPROVED, next_entry, extra_values=extra_values)

    logger.info(
        "Requisition step approved",
        extra={
            "requisition_id": rq.id,
            "holding_id": rq.holding_id,
            "step": step,
            "actor_email": actor_email,
            "event_type": "approval.approved" if next_entry is None else "approval.step_approved",
        },
    )
    return rq


def reject(requisition_id: int, actor_email: str, reason: str | None) -> Requisition:
    """Reject the requisition at its current step.  Terminal and immediate.

    Raises:
        NotFoundError, InvalidStateError, InvalidArgumentError, UnauthorizedError
    """
    rq = _load_pending(requisition_id)
    if reason is not None and not isinstance(reason, str):
        raise InvalidArgumentError("reason must be a string", field="reason")
    reason = (reason or "").strip()
    if not reason:
        raise InvalidArgumentError("A reason is required to reject a requisition", field="reason")
    entry = _authorize(rq, actor_email)

    step = rq.current_step
    _persist_transition(rq.id, step, entry, ACTION_REJECTED, None, reason=reason)

    logger.info(
        "Requisition rejected",
        extra={
            "requisition_id": rq.id,
            "holding_id": rq.holding_id,
            "step": step,
            "actor_email": actor_email,
            "event_type": "approval.rejected",
        },
    )
    return rq
