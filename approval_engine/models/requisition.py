"""
Requisition approval facet: Requisition and ApprovalDecision models.

The Requisition row is created by the RQ lifecycle module (status="draft").
The approval engine owns only the approval facet columns:

    workflow_id / workflow_name   template chosen at submission
    resolved_approvers            frozen chain (JSON list of ResolvedApprover)
    status                        pending_approval | approved | rejected
    current_step                  stepOrder of the actionable entry, NULL when terminal
    current_approver_email        lower-cased email of that entry (indexed, for queues)

ApprovalDecision rows ("aprobaciones") are APPEND-ONLY: never updated or
deleted.  One row per step transition, enforced by a unique constraint on
(requisition_id, step) so a lost race can never produce a duplicate entry.
"""

from datetime import datetime, timezone

from approval_engine.models import db
from approval_engine.models.base import HoldingModel

# ── Constants ─────────────────────────────────────────────────────────────────

STATUS_DRAFT = "draft"
STATUS_PENDING = "pending_approval"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

REQUISITION_STATUSES = frozenset({STATUS_DRAFT, STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED})
TERMINAL_STATUSES = frozenset({STATUS_APPROVED, STATUS_REJECTED})

ACTION_APPROVED = "approved"
ACTION_REJECTED = "rejected"

DECISION_ACTIONS = frozenset({ACTION_APPROVED, ACTION_REJECTED})


class Requisition(HoldingModel):
    """Hiring requisition (RQ) with its approval facet."""

    __tablename__ = "requisitions"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(30), nullable=False, unique=True)
    title = db.Column(db.String(255), nullable=False, default="")
    positions = db.Column(db.Integer, nullable=False, default=1)

    # Organisational coordinates (copied from the puesto at creation time)
    puesto_id = db.Column(db.Integer, db.ForeignKey("puestos.id", ondelete="SET NULL"), nullable=True)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id", ondelete="SET NULL"), nullable=True)
    gerencia_id = db.Column(db.Integer, db.ForeignKey("gerencias.id", ondelete="SET NULL"), nullable=True)

    # Creator, i.e. the hiring manager identity
    created_by_id = db.Column(
        db.Integer,
        db.ForeignKey("talent_users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_email = db.Column(db.String(255), nullable=False)
    created_by_name = db.Column(db.String(200), nullable=True)

    # ── Approval facet ──
    workflow_id = db.Column(
        db.Integer,
        db.ForeignKey("approval_workflows.id", ondelete="SET NULL"),
        nullable=True,
    )
    workflow_name = db.Column(db.String(120), nullable=True)
    resolved_approvers = db.Column(
        db.JSON,
        nullable=True,
        comment="Frozen approval chain; NULL until submitted, never recomputed afterwards",
    )
    status = db.Column(
        db.String(30),
        nullable=False,
        default=STATUS_DRAFT,
        comment="draft | pending_approval | approved | rejected",
    )
    current_step = db.Column(db.Integer, nullable=True)
    current_approver_email = db.Column(db.String(255), nullable=True, index=True)
    assigned_recruiter_email = db.Column(db.String(255), nullable=True)
    assigned_recruiter_name = db.Column(db.String(200), nullable=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    aprobaciones = db.relationship(
        "ApprovalDecision",
        back_populates="requisition",
        order_by="ApprovalDecision.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_requisitions_status_approver", "status", "current_approver_email"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_decisions=True) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "positions": self.positions,
            "holding_id": self.holding_id,
            "puesto_id": self.puesto_id,
            "area_id": self.area_id,
            "gerencia_id": self.gerencia_id,
            "created_by_email": self.created_by_email,
            "created_by_name": self.created_by_name,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "resolved_approvers": self.resolved_approvers or [],
            "status": self.status,
            "current_step": self.current_step,
            "assigned_recruiter_email": self.assigned_recruiter_email,
            "assigned_recruiter_name": self.assigned_recruiter_name,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_decisions:
            data["aprobaciones"] = [d.to_dict() for d in self.aprobaciones]
        return data

    def __repr__(self) -> str:
        return f"<Requisition #{self.id} {self.code} {self.status} step={self.current_step}>"


class ApprovalDecision(db.Model):
    """
    Immutable audit record of one approve / reject transition.

    approver_email / approver_name are snapshots taken from the frozen chain,
    so the trail stays readable after the organisation changes.
    """

    __tablename__ = "approval_decisions"

    id = db.Column(db.Integer, primary_key=True)
    requisition_id = db.Column(
        db.Integer,
        db.ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step = db.Column(db.Integer, nullable=False)
    step_name = db.Column(db.String(200), nullable=False, default="")
    approver_email = db.Column(db.String(255), nullable=False)
    approver_name = db.Column(db.String(200), nullable=True)
    action = db.Column(db.String(20), nullable=False, comment="approved | rejected")
    reason = db.Column(db.Text, nullable=True, comment="Mandatory when action=rejected")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    requisition = db.relationship("Requisition", back_populates="aprobaciones")

    __table_args__ = (
        db.UniqueConstraint("requisition_id", "step", name="uq_approval_decision_step"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requisition_id": self.requisition_id,
            "step": self.step,
            "step_name": self.step_name,
            "approver_email": self.approver_email,
            "approver_name": self.approver_name,
            "action": self.action,
            "reason": self.reason,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<ApprovalDecision rq={self.requisition_id} step={self.step} {self.action}>"
