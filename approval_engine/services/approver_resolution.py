"""
Approver Resolution Engine.

Binds every abstract step of a workflow template to a concrete person, or
to a skip marker, for ONE requisition, at the moment it is submitted.

    resolve(context, steps, directory) -> [ResolvedApprover]

Guarantees:
    - Output has the same length and order as the template steps.
    - Every entry is either a populated identity or a skip marker with a
      reason; never None.
    - Deterministic for a fixed directory snapshot.
    - All-or-nothing: a directory failure raises ResolutionError and nothing
      is returned (the caller persists nothing).

The returned chain is frozen onto the requisition and never recomputed, so
later organisational changes do not alter in-flight approvals.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from approval_engine.core.exceptions import ResolutionError, ValidationError
from approval_engine.models.workflow import (
    APPROVER_TYPE_LABELS,
    AREA_MANAGER,
    GERENCIA_MANAGER,
    HIRING_MANAGER,
    RECRUITMENT_LEAD,
    SPECIFIC_USER,
)
from approval_engine.services.org_directory import Identity, OrgDirectory
from approval_engine.services.workflow_service import check_step_sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedApprover:
    """One step of a frozen approval chain."""

    step_order: int
    step_name: str
    approver_type: str
    user_id: str
    email: str
    name: str
    skipped: bool = False
    skip_reason: str | None = None

    @classmethod
    def bound(cls, step: dict, identity: Identity) -> "ResolvedApprover":
        return cls(
            step_order=step["order"],
            step_name=step.get("name", ""),
            approver_type=step["approver_type"],
            user_id=identity.user_id,
            email=identity.email,
            name=identity.name or identity.email,
        )

    @classmethod
    def skip(cls, step: dict, reason: str) -> "ResolvedApprover":
        return cls(
            step_order=step["order"],
            step_name=step.get("name", ""),
            approver_type=step["approver_type"],
            user_id="",
            email="",
            name="",
            skipped=True,
            skip_reason=reason,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ResolvedApprover":
        return cls(
            step_order=int(data["step_order"]),
            step_name=data.get("step_name", ""),
            approver_type=data.get("approver_type", ""),
            user_id=data.get("user_id", ""),
            email=data.get("email", ""),
            name=data.get("name", ""),
            skipped=bool(data.get("skipped", False)),
            skip_reason=data.get("skip_reason"),
        )


@dataclass(frozen=True)
class RequisitionContext:
    """Organisational coordinates of the requisition being resolved."""

    holding_id: int
    creator: Identity
    puesto_id: int | None = None
    area_id: int | None = None
    gerencia_id: int | None = None

    @classmethod
    def from_requisition(cls, rq, directory: OrgDirectory) -> "RequisitionContext":
        """Build a context from a Requisition row.

        area_id / gerencia_id missing on the RQ are filled from the
        puesto → area → gerencia chain.
        """
        area_id, gerencia_id = rq.area_id, rq.gerencia_id
        if (not area_id or not gerencia_id) and rq.puesto_id:
            located = directory.locate_puesto(rq.puesto_id)
            if located:
                area_id = area_id or located[0]
                gerencia_id = gerencia_id or located[1]
        creator = Identity(
            user_id=str(rq.created_by_id) if rq.created_by_id else "",
            email=rq.created_by_email,
            name=rq.created_by_name or rq.created_by_email,
        )
        return cls(
            holding_id=rq.holding_id,
            creator=creator,
            puesto_id=rq.puesto_id,
            area_id=area_id,
            gerencia_id=gerencia_id,
        )


def _vacant_reason(approver_type: str, node_kind: str, node_id) -> str:
    label = APPROVER_TYPE_LABELS.get(approver_type, approver_type)
    return f"no {label} assigned for {node_kind} {node_id if node_id else 'unknown'}"


def _lookup(step: dict, context: RequisitionContext, directory: OrgDirectory):
    """Return (identity, skip_reason) for one step.  Exactly one is None."""
    approver_type = step["approver_type"]

    if approver_type == SPECIFIC_USER:
        return Identity(
            user_id=str(step.get("static_user_id") or ""),
            email=step["static_user_email"],
            name=step.get("static_user_name") or step["static_user_email"],
        ), None

    if approver_type == HIRING_MANAGER:
        return context.creator, None

    if approver_type == AREA_MANAGER:
        identity = directory.manager_of_area(context.area_id)
        return identity, None if identity else _vacant_reason(approver_type, "area", context.area_id)

    if approver_type == GERENCIA_MANAGER:
        identity = directory.manager_of_gerencia(context.gerencia_id)
        return identity, None if identity else _vacant_reason(approver_type, "gerencia", context.gerencia_id)

    if approver_type == RECRUITMENT_LEAD:
        identity = directory.recruitment_lead_of(context.holding_id)
        return identity, None if identity else _vacant_reason(approver_type, "holding", context.holding_id)

    raise ValidationError(
        f"Unknown approver_type {approver_type!r} on step {step.get('order')}",
        details={f"steps[{step.get('order')}].approver_type": approver_type},
    )


def resolve(
    context: RequisitionContext,
    steps: list[dict],
    directory: OrgDirectory,
    collapse_duplicates: bool = False,
) -> list[ResolvedApprover]:
    """Resolve a template's steps into a frozen approval chain.

    Args:
        context:    Organisational coordinates of the requisition.
        steps:      Template steps (dicts), contiguously ordered 1..N.
        directory:  Role → identity lookups.
        collapse_duplicates: When True, a step whose approver already approved
                    an earlier (non-skipped) step is skipped instead of asking
                    the same person twice.

    Returns:
        One ResolvedApprover per step, in step order.

    Raises:
        ValidationError: steps empty or not contiguous 1..N.
        ResolutionError: a directory lookup failed; nothing may be persisted.
    """
    ordered = check_step_sequence(steps)

    chain: list[ResolvedApprover] = []
    seen: dict[str, ResolvedApprover] = {}
    for step in ordered:
        try:
            identity, skip_reason = _lookup(step, context, directory)
        except ResolutionError as exc:
            if exc.step is None:
                exc.step = step["order"]
            raise

        if identity is None:
            chain.append(ResolvedApprover.skip(step, skip_reason))
            continue

        key = identity.email.strip().lower()
        if collapse_duplicates and key in seen:
            previous = seen[key]
            chain.append(ResolvedApprover.skip(
                step,
                f"same approver as step {previous.step_order} ({previous.step_name})",
            ))
            continue

        entry = ResolvedApprover.bound(step, identity)
        seen.setdefault(key, entry)
        chain.append(entry)

    logger.debug(
        "Resolved approval chain: %d steps, %d skipped",
        len(chain),
        sum(1 for a in chain if a.skipped),
        extra={"holding_id": context.holding_id},
    )
    return chain
