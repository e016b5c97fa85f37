"""
Shared pytest fixtures for the Requisition Approval Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org: Seeded holding with gerencia → area → puesto and their managers
    - make_requisition: Factory for draft requisitions in the seeded holding
    - make_workflow: Factory for workflow templates via workflow_service
"""

import itertools
from types import SimpleNamespace

import pytest

from approval_engine import create_app
from approval_engine.models import db as _db
from approval_engine.models.org import RECRUITMENT_LEAD_ROLE, Area, Gerencia, Holding, Puesto, TalentUser
from approval_engine.models.requisition import Requisition
from approval_engine.services import workflow_service


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Organisation fixtures ────────────────────────────────────────────────


def _add_user(holding_id, email, name, role="member"):
    user = TalentUser(holding_id=holding_id, email=email, name=name, role=role)
    _db.session.add(user)
    _db.session.flush()
    return user


@pytest.fixture()
def org():
    """Seed one holding with a complete, fully staffed hierarchy.

    Operaciones (gerencia, managed by Gema) → Logistica (area, managed by
    Arturo) → Analista (puesto).  Lucia is the holding's recruitment lead.
    """
    holding = Holding(name="Grupo Prueba", slug="grupo-prueba")
    _db.session.add(holding)
    _db.session.flush()

    creator = _add_user(holding.id, "hilda.manager@corp.test", "Hilda Manager")
    area_manager = _add_user(holding.id, "arturo.area@corp.test", "Arturo Area")
    gerencia_manager = _add_user(holding.id, "gema.gerente@corp.test", "Gema Gerente")
    lead = _add_user(holding.id, "lucia.lead@corp.test", "Lucia Lead", role=RECRUITMENT_LEAD_ROLE)
    cfo = _add_user(holding.id, "carlos.cfo@corp.test", "Carlos CFO", role="admin")
    recruiter = _add_user(holding.id, "rita.recruiter@corp.test", "Rita Recruiter", role="recruiter")

    gerencia = Gerencia(holding_id=holding.id, name="Operaciones", manager_id=gerencia_manager.id)
    _db.session.add(gerencia)
    _db.session.flush()
    area = Area(holding_id=holding.id, gerencia_id=gerencia.id, name="Logistica", manager_id=area_manager.id)
    _db.session.add(area)
    _db.session.flush()
    puesto = Puesto(holding_id=holding.id, area_id=area.id, name="Analista")
    _db.session.add(puesto)
    _db.session.commit()

    return SimpleNamespace(
        holding=holding,
        creator=creator,
        area_manager=area_manager,
        gerencia_manager=gerencia_manager,
        lead=lead,
        cfo=cfo,
        recruiter=recruiter,
        gerencia=gerencia,
        area=area,
        puesto=puesto,
    )


@pytest.fixture()
def make_requisition(org):
    """Return a factory that persists a draft requisition for the seeded holding."""
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        data = {
            "holding_id": org.holding.id,
            "code": f"RQ-{n:04d}",
            "title": f"Analista de logistica #{n}",
            "puesto_id": org.puesto.id,
            "area_id": org.area.id,
            "gerencia_id": org.gerencia.id,
            "created_by_id": org.creator.id,
            "created_by_email": org.creator.email,
            "created_by_name": org.creator.name,
        }
        data.update(overrides)
        rq = Requisition(**data)
        _db.session.add(rq)
        _db.session.commit()
        return rq

    return _make


@pytest.fixture()
def make_workflow(org):
    """Return a factory that creates a template from a list of approver types.

    Each entry is either an approver_type string or a full step dict.
    """

    def _make(step_specs, name="Standard approval", holding_id=None, **extra):
        steps = []
        for i, spec in enumerate(step_specs, 1):
            if isinstance(spec, dict):
                steps.append({"order": i, **spec})
            else:
                steps.append({"order": i, "name": spec.replace("_", " ").title(), "approver_type": spec})
        data = {"name": name, "steps": steps, **extra}
        return workflow_service.create_template(holding_id or org.holding.id, data, created_by="tests")

    return _make
