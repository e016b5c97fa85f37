"""
Approver resolution tests.

Resolution runs against an in-memory directory so every role assignment is
explicit in the test.  One test class exercises SqlOrgDirectory against the
seeded organisation tables.
"""
import pytest
from sqlalchemy.exc import OperationalError

from approval_engine.core.exceptions import ResolutionError, ValidationError
from approval_engine.models import db as _db
from approval_engine.services.approver_resolution import (
    RequisitionContext,
    ResolvedApprover,
    resolve,
)
from approval_engine.services.org_directory import Identity, OrgDirectory, SqlOrgDirectory


HM = Identity(user_id="1", email="hm@x.com", name="Hiring Manager")
AREA = Identity(user_id="2", email="a@x.com", name="Area Manager")
GERENCIA = Identity(user_id="3", email="g@x.com", name="Gerencia Manager")
LEAD = Identity(user_id="4", email="r@x.com", name="Recruitment Lead")


class FakeDirectory(OrgDirectory):
    """Dict-backed directory; a missing key is a vacant role."""

    def __init__(self, areas=None, gerencias=None, leads=None, puestos=None, fail_on=None):
        self.areas = areas or {}
        self.gerencias = gerencias or {}
        self.leads = leads or {}
        self.puestos = puestos or {}
        self.fail_on = fail_on
        self.calls = []

    def _maybe_fail(self, kind):
        self.calls.append(kind)
        if self.fail_on == kind:
            raise ResolutionError(f"{kind} lookup timed out")

    def manager_of_area(self, area_id):
        self._maybe_fail("area")
        return self.areas.get(area_id)

    def manager_of_gerencia(self, gerencia_id):
        self._maybe_fail("gerencia")
        return self.gerencias.get(gerencia_id)

    def recruitment_lead_of(self, holding_id):
        self._maybe_fail("lead")
        return self.leads.get(holding_id)

    def locate_puesto(self, puesto_id):
        return self.puestos.get(puesto_id)


def _step(order, approver_type, **extra):
    return {"order": order, "name": f"Step {order}", "approver_type": approver_type, **extra}


def _context(**overrides):
    data = {"holding_id": 1, "creator": HM, "puesto_id": 7, "area_id": 10, "gerencia_id": 20}
    data.update(overrides)
    return RequisitionContext(**data)


def _full_directory():
    return FakeDirectory(areas={10: AREA}, gerencias={20: GERENCIA}, leads={1: LEAD})


STANDARD_STEPS = [
    _step(1, "hiring_manager"),
    _step(2, "area_manager"),
    _step(3, "gerencia_manager"),
    _step(4, "recruitment_lead"),
]


# ═════════════════════════════════════════════════════════════════════════
# BINDING
# ═════════════════════════════════════════════════════════════════════════

class TestResolve:
    def test_binds_every_role(self):
        chain = resolve(_context(), STANDARD_STEPS, _full_directory())

        assert [a.email for a in chain] == ["hm@x.com", "a@x.com", "g@x.com", "r@x.com"]
        assert [a.step_order for a in chain] == [1, 2, 3, 4]
        assert not any(a.skipped for a in chain)

    def test_specific_user_uses_static_identity(self):
        steps = [_step(1, "specific_user", static_user_id="99",
                       static_user_email="cfo@x.com", static_user_name="CFO")]
        chain = resolve(_context(), steps, FakeDirectory())
        assert chain[0].email == "cfo@x.com"
        assert chain[0].name == "CFO"
        assert chain[0].user_id == "99"

    def test_output_follows_step_order_not_input_order(self):
        steps = [_step(2, "recruitment_lead"), _step(1, "area_manager")]
        chain = resolve(_context(), steps, _full_directory())
        assert [a.approver_type for a in chain] == ["area_manager", "recruitment_lead"]

    def test_deterministic_for_fixed_snapshot(self):
        directory = _full_directory()
        first = resolve(_context(), STANDARD_STEPS, directory)
        second = resolve(_context(), STANDARD_STEPS, directory)
        assert first == second
        assert [a.to_dict() for a in first] == [a.to_dict() for a in second]

    def test_round_trips_through_dict(self):
        entry = resolve(_context(), STANDARD_STEPS, _full_directory())[1]
        assert ResolvedApprover.from_dict(entry.to_dict()) == entry


# ═════════════════════════════════════════════════════════════════════════
# SKIPS
# ═════════════════════════════════════════════════════════════════════════

class TestSkips:
    def test_vacant_area_manager_is_skipped_with_reason(self):
        directory = FakeDirectory(gerencias={20: GERENCIA}, leads={1: LEAD})
        chain = resolve(_context(), STANDARD_STEPS, directory)

        area_entry = chain[1]
        assert area_entry.skipped is True
        assert area_entry.email == ""
        assert area_entry.skip_reason == "no area manager assigned for area 10"
        assert len(chain) == len(STANDARD_STEPS)

    def test_missing_area_id_is_skipped_as_unknown(self):
        chain = resolve(_context(area_id=None), [_step(1, "area_manager")], _full_directory())
        assert chain[0].skipped is True
        assert chain[0].skip_reason == "no area manager assigned for area unknown"

    def test_vacant_recruitment_lead_is_skipped(self):
        chain = resolve(_context(), [_step(1, "recruitment_lead")], FakeDirectory())
        assert chain[0].skip_reason == "no recruitment lead assigned for holding 1"

    def test_all_vacant_roles_skip_every_step(self):
        steps = [_step(1, "area_manager"), _step(2, "gerencia_manager"), _step(3, "recruitment_lead")]
        chain = resolve(_context(), steps, FakeDirectory())
        assert all(a.skipped for a in chain)
        assert all(a.skip_reason for a in chain)


# ═════════════════════════════════════════════════════════════════════════
# FAILURES
# ═════════════════════════════════════════════════════════════════════════

class TestFailures:
    def test_empty_steps_rejected(self):
        with pytest.raises(ValidationError):
            resolve(_context(), [], _full_directory())

    def test_non_contiguous_steps_rejected(self):
        with pytest.raises(ValidationError):
            resolve(_context(), [_step(1, "area_manager"), _step(3, "recruitment_lead")], _full_directory())

    def test_unknown_approver_type_rejected(self):
        with pytest.raises(ValidationError):
            resolve(_context(), [_step(1, "board_of_directors")], _full_directory())

    def test_directory_failure_aborts_and_tags_step(self):
        directory = FakeDirectory(areas={10: AREA}, gerencias={20: GERENCIA}, leads={1: LEAD}, fail_on="gerencia")
        with pytest.raises(ResolutionError) as exc:
            resolve(_context(), STANDARD_STEPS, directory)
        assert exc.value.step == 3
        # resolution stops at the failing step
        assert "lead" not in directory.calls


# ═════════════════════════════════════════════════════════════════════════
# DUPLICATE COLLAPSE
# ═════════════════════════════════════════════════════════════════════════

class TestCollapseDuplicates:
    def test_same_person_kept_twice_by_default(self):
        directory = FakeDirectory(areas={10: GERENCIA}, gerencias={20: GERENCIA})
        steps = [_step(1, "area_manager"), _step(2, "gerencia_manager")]
        chain = resolve(_context(), steps, directory)
        assert [a.skipped for a in chain] == [False, False]

    def test_collapse_skips_repeated_approver(self):
        directory = FakeDirectory(areas={10: GERENCIA}, gerencias={20: GERENCIA}, leads={1: LEAD})
        steps = [_step(1, "area_manager"), _step(2, "gerencia_manager"), _step(3, "recruitment_lead")]
        chain = resolve(_context(), steps, directory, collapse_duplicates=True)

        assert [a.skipped for a in chain] == [False, True, False]
        assert chain[1].skip_reason == "same approver as step 1 (Step 1)"

    def test_collapse_compares_emails_case_insensitively(self):
        shouting = Identity(user_id="3", email="G@X.COM", name="Gerencia Manager")
        directory = FakeDirectory(areas={10: GERENCIA}, gerencias={20: shouting})
        steps = [_step(1, "area_manager"), _step(2, "gerencia_manager")]
        chain = resolve(_context(), steps, directory, collapse_duplicates=True)
        assert chain[1].skipped is True


# ═════════════════════════════════════════════════════════════════════════
# SQL DIRECTORY
# ═════════════════════════════════════════════════════════════════════════

class TestSqlOrgDirectory:
    def test_resolves_against_org_tables(self, org, make_requisition):
        rq = make_requisition()
        directory = SqlOrgDirectory()
        chain = resolve(RequisitionContext.from_requisition(rq, directory), STANDARD_STEPS, directory)

        assert [a.email for a in chain] == [
            org.creator.email,
            org.area_manager.email,
            org.gerencia_manager.email,
            org.lead.email,
        ]

    def test_area_and_gerencia_located_from_puesto(self, org, make_requisition):
        rq = make_requisition(area_id=None, gerencia_id=None)
        context = RequisitionContext.from_requisition(rq, SqlOrgDirectory())
        assert context.area_id == org.area.id
        assert context.gerencia_id == org.gerencia.id

    def test_inactive_manager_counts_as_vacant(self, org):
        org.area_manager.is_active = False
        _db.session.commit()
        assert SqlOrgDirectory().manager_of_area(org.area.id) is None

    def test_unassigned_gerencia_manager_is_vacant(self, org):
        org.gerencia.manager_id = None
        _db.session.commit()
        assert SqlOrgDirectory().manager_of_gerencia(org.gerencia.id) is None

    def test_recruitment_lead_lookup(self, org):
        lead = SqlOrgDirectory().recruitment_lead_of(org.holding.id)
        assert lead == Identity.from_user(org.lead)

    @pytest.mark.parametrize("lookup", ["manager_of_area", "manager_of_gerencia"])
    def test_manager_load_failure_is_resolution_error(self, lookup):
        class _BrokenNode:
            @property
            def manager(self):
                raise OperationalError("SELECT talent_users", {}, Exception("connection reset"))

        class _Session:
            def get(self, model, pk):
                return _BrokenNode()

        with pytest.raises(ResolutionError):
            getattr(SqlOrgDirectory(session=_Session()), lookup)(7)
