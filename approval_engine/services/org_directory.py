"""
Organisation directory: role → identity lookups used by approver resolution.

The resolution engine never queries organisation tables directly.  It talks
to an ``OrgDirectory`` so the requirement ("who manages this area right
now?") stays separate from whatever store answers it.

    OrgDirectory        abstract interface
    SqlOrgDirectory     implementation over holdings / areas / gerencias /
                        puestos / talent_users

Every SQLAlchemy failure surfaces as ResolutionError so the caller can retry
the whole submission.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from approval_engine.core.exceptions import ResolutionError
from approval_engine.models import db
from approval_engine.models.org import RECRUITMENT_LEAD_ROLE, Area, Gerencia, Puesto, TalentUser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A concrete person an approval step can be bound to."""

    user_id: str
    email: str
    name: str

    @classmethod
    def from_user(cls, user: TalentUser) -> "Identity":
        return cls(user_id=str(user.id), email=user.email, name=user.name or user.email)


class OrgDirectory(ABC):
    """Lookups the resolution engine needs.  Return None when a role is vacant."""

    @abstractmethod
    def manager_of_area(self, area_id: int | None) -> Identity | None:
        ...

    @abstractmethod
    def manager_of_gerencia(self, gerencia_id: int | None) -> Identity | None:
        ...

    @abstractmethod
    def recruitment_lead_of(self, holding_id: int) -> Identity | None:
        ...

    @abstractmethod
    def locate_puesto(self, puesto_id: int | None) -> tuple[int, int] | None:
        """Return (area_id, gerencia_id) for a puesto, or None if unknown."""


class SqlOrgDirectory(OrgDirectory):
    """OrgDirectory backed by the organisation tables."""

    def __init__(self, session=None):
        self.session = session or db.session

    def manager_of_area(self, area_id):
        if not area_id:
            return None
        try:
            area = self.session.get(Area, area_id)
            return self._active_identity(area.manager if area else None)
        except SQLAlchemyError as exc:
            logger.warning("Area manager lookup failed area_id=%s: %s", area_id, exc)
            raise ResolutionError(f"area lookup failed for area {area_id}") from exc

    def manager_of_gerencia(self, gerencia_id):
        if not gerencia_id:
            return None
        try:
            gerencia = self.session.get(Gerencia, gerencia_id)
            return self._active_identity(gerencia.manager if gerencia else None)
        except SQLAlchemyError as exc:
            logger.warning("Gerencia manager lookup failed gerencia_id=%s: %s", gerencia_id, exc)
            raise ResolutionError(f"gerencia lookup failed for gerencia {gerencia_id}") from exc

    def recruitment_lead_of(self, holding_id):
        try:
            lead = self.session.execute(
                select(TalentUser)
                .where(
                    TalentUser.holding_id == holding_id,
                    TalentUser.role == RECRUITMENT_LEAD_ROLE,
                    TalentUser.is_active.is_(True),
                )
                .order_by(TalentUser.id.asc())
                .limit(1)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.warning("Recruitment lead lookup failed holding_id=%s: %s", holding_id, exc)
            raise ResolutionError(f"recruitment lead lookup failed for holding {holding_id}") from exc
        return Identity.from_user(lead) if lead else None

    def locate_puesto(self, puesto_id):
        if not puesto_id:
            return None
        try:
            puesto = self.session.get(Puesto, puesto_id)
            if puesto is None or puesto.area is None:
                return None
            return puesto.area_id, puesto.area.gerencia_id
        except SQLAlchemyError as exc:
            logger.warning("Puesto lookup failed puesto_id=%s: %s", puesto_id, exc)
            raise ResolutionError(f"puesto lookup failed for puesto {puesto_id}") from exc

    @staticmethod
    def _active_identity(user: TalentUser | None) -> Identity | None:
        # A deactivated manager counts as a vacant role
        if user is None or not user.is_active:
            return None
        return Identity.from_user(user)
