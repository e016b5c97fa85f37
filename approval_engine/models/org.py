"""
Organisation Models: holdings, talent users, gerencias, areas, puestos.

The approval engine only READS these tables: they are the directory that
abstract approver roles are resolved against (see services/org_directory.py).
Editing the hierarchy belongs to the organisation admin module.

Hierarchy:
    Holding
      └── Gerencia (manager_id → TalentUser)
            └── Area (manager_id → TalentUser)
                  └── Puesto
"""

from datetime import datetime, timezone

from approval_engine.models import db
from approval_engine.models.base import HoldingModel

RECRUITMENT_LEAD_ROLE = "recruitment_lead"


# ═══════════════════════════════════════════════════════════════
# 1. HOLDINGS
# ═══════════════════════════════════════════════════════════════
class Holding(db.Model):
    __tablename__ = "holdings"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Holding {self.slug}>"


# ═══════════════════════════════════════════════════════════════
# 2. TALENT USERS
# ═══════════════════════════════════════════════════════════════
class TalentUser(HoldingModel):
    __tablename__ = "talent_users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False, default="")
    role = db.Column(
        db.String(50),
        nullable=False,
        default="member",
        comment="member | recruiter | recruitment_lead | admin",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("holding_id", "email", name="uq_talent_user_holding_email"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "holding_id": self.holding_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<TalentUser {self.email} ({self.role})>"


# ═══════════════════════════════════════════════════════════════
# 3. GERENCIAS / AREAS / PUESTOS
# ═══════════════════════════════════════════════════════════════
class Gerencia(HoldingModel):
    __tablename__ = "gerencias"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    manager_id = db.Column(
        db.Integer,
        db.ForeignKey("talent_users.id", ondelete="SET NULL"),
        nullable=True,
    )

    manager = db.relationship("TalentUser", foreign_keys=[manager_id])
    areas = db.relationship("Area", back_populates="gerencia", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "holding_id": self.holding_id,
            "name": self.name,
            "manager_id": self.manager_id,
        }


class Area(HoldingModel):
    __tablename__ = "areas"

    id = db.Column(db.Integer, primary_key=True)
    gerencia_id = db.Column(
        db.Integer,
        db.ForeignKey("gerencias.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    manager_id = db.Column(
        db.Integer,
        db.ForeignKey("talent_users.id", ondelete="SET NULL"),
        nullable=True,
    )

    gerencia = db.relationship("Gerencia", back_populates="areas")
    manager = db.relationship("TalentUser", foreign_keys=[manager_id])

    def to_dict(self):
        return {
            "id": self.id,
            "holding_id": self.holding_id,
            "gerencia_id": self.gerencia_id,
            "name": self.name,
            "manager_id": self.manager_id,
        }


class Puesto(HoldingModel):
    __tablename__ = "puestos"

    id = db.Column(db.Integer, primary_key=True)
    area_id = db.Column(
        db.Integer,
        db.ForeignKey("areas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)

    area = db.relationship("Area")

    def to_dict(self):
        return {
            "id": self.id,
            "holding_id": self.holding_id,
            "area_id": self.area_id,
            "gerencia_id": self.area.gerencia_id if self.area else None,
            "name": self.name,
        }
