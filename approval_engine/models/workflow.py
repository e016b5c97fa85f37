"""
Approval Workflow Templates: WorkflowTemplate model.

A template is a named, reusable, ordered list of approval steps for one
holding.  Each step declares an approver *type* (an abstract role) that is
bound to a concrete person only when a requisition is submitted
(see services/approver_resolution.py).

Step JSON shape (stored in WorkflowTemplate.steps, ordered, gapless 1..N):
    {
        "order": 1,
        "name": "Area Manager review",
        "approver_type": "area_manager",
        "static_user_id": null,
        "static_user_email": null,
        "static_user_name": null
    }

Business rules:
- At most ONE template per holding may have is_default=True.  Enforced by
  workflow_service.set_default() (single transaction) and backed by a partial
  unique index so a concurrent writer can never leave two defaults behind.
- static_user_* fields are set if and only if approver_type == specific_user.
"""

from datetime import datetime, timezone

from approval_engine.models import db
from approval_engine.models.base import HoldingModel

# ── Constants ─────────────────────────────────────────────────────────────────

HIRING_MANAGER = "hiring_manager"
AREA_MANAGER = "area_manager"
GERENCIA_MANAGER = "gerencia_manager"
SPECIFIC_USER = "specific_user"
RECRUITMENT_LEAD = "recruitment_lead"

APPROVER_TYPES = frozenset({
    HIRING_MANAGER,
    AREA_MANAGER,
    GERENCIA_MANAGER,
    SPECIFIC_USER,
    RECRUITMENT_LEAD,
})

APPROVER_TYPE_LABELS = {
    HIRING_MANAGER: "hiring manager",
    AREA_MANAGER: "area manager",
    GERENCIA_MANAGER: "gerencia manager",
    SPECIFIC_USER: "specific user",
    RECRUITMENT_LEAD: "recruitment lead",
}


class WorkflowTemplate(HoldingModel):
    """Named approval sequence for a holding's requisitions."""

    __tablename__ = "approval_workflows"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    steps = db.Column(db.JSON, nullable=False, default=list)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.String(255), default="")
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

    __table_args__ = (
        db.Index(
            "uq_approval_workflow_default_per_holding",
            "holding_id",
            unique=True,
            sqlite_where=db.text("is_default = 1"),
            postgresql_where=db.text("is_default IS TRUE"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "holding_id": self.holding_id,
            "name": self.name,
            "description": self.description,
            "steps": self.steps or [],
            "is_default": self.is_default,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<WorkflowTemplate #{self.id} {self.name!r} holding={self.holding_id}>"
