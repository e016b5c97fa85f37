"""
Approval API tests: submit / decide / pending / status / history endpoints
and the HTTP mapping of engine errors.
"""
import pytest

from approval_engine.models import db as _db


STANDARD = ["hiring_manager", "area_manager", "gerencia_manager", "recruitment_lead"]


@pytest.fixture()
def submitted(client, make_workflow, make_requisition):
    """A requisition submitted against the standard four-step default workflow."""
    make_workflow(STANDARD, is_default=True)
    rq = make_requisition()
    res = client.post(f"/api/v1/requisitions/{rq.id}/submit", json={})
    assert res.status_code == 201
    return res.get_json()


class TestSubmitEndpoint:
    def test_submit_returns_status_projection(self, org, submitted):
        assert submitted["status"] == "pending_approval"
        assert submitted["current_step"] == 1
        assert submitted["current_approver"]["email"] == org.creator.email
        assert [e["state"] for e in submitted["chain"]] == ["current", "future", "future", "future"]

    def test_submit_twice_is_conflict(self, client, submitted):
        res = client.post(f"/api/v1/requisitions/{submitted['id']}/submit", json={})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_submit_with_explicit_workflow(self, client, org, make_workflow, make_requisition):
        tpl = make_workflow(["recruitment_lead"], name="Lead only")
        rq = make_requisition()
        res = client.post(f"/api/v1/requisitions/{rq.id}/submit", json={"workflow_id": tpl.id})
        assert res.status_code == 201
        assert res.get_json()["workflow_name"] == "Lead only"

    def test_submit_with_bad_workflow_id(self, client, make_requisition):
        rq = make_requisition()
        res = client.post(f"/api/v1/requisitions/{rq.id}/submit", json={"workflow_id": "abc"})
        assert res.status_code == 400

    def test_submit_without_template(self, client, make_requisition):
        rq = make_requisition()
        res = client.post(f"/api/v1/requisitions/{rq.id}/submit", json={})
        assert res.status_code == 404

    def test_submit_all_skipped_is_approved(self, client, org, make_workflow, make_requisition):
        org.area.manager_id = None
        _db.session.commit()
        make_workflow(["area_manager"], is_default=True)
        rq = make_requisition()

        res = client.post(f"/api/v1/requisitions/{rq.id}/submit", json={})

        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "approved"
        assert data["aprobaciones"] == []
        assert data["chain"][0]["state"] == "skipped"


class TestDecideEndpoint:
    def test_approve_advances(self, client, org, submitted):
        res = client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            json={"action": "approve", "actor_email": org.creator.email},
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["current_step"] == 2
        assert len(data["aprobaciones"]) == 1

    def test_actor_from_header(self, client, org, submitted):
        res = client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            json={"action": "approve"},
            headers={"X-User-Email": org.creator.email},
        )
        assert res.status_code == 200

    def test_wrong_actor_is_forbidden(self, client, org, submitted):
        res = client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            json={"action": "approve", "actor_email": "wrong@x.com"},
        )
        assert res.status_code == 403
        body = res.get_json()
        assert body["code"] == "APPROVAL_NOT_CURRENT_APPROVER"
        assert body["details"]["step"] == 1
        assert body["details"]["expected_approver"] == org.creator.email

    def test_error_body_carries_request_id(self, client, submitted):
        res = client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            json={"action": "approve", "actor_email": "wrong@x.com"},
            headers={"X-Request-ID": "trace-42"},
        )
        assert res.get_json()["request_id"] == "trace-42"
        assert res.headers["X-Request-ID"] == "trace-42"

    def test_reject_without_reason(self, client, org, submitted):
        res = client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            json={"action": "reject", "actor_email": org.creator.email},
        )
        assert res.status_code == 400
        assert res.get_json()["details"]["field"] == "reason"

    def test_reject_then_decide_again_is_invalid_state(self, client, org, submitted):
        url = f"/api/v1/requisitions/{submitted['id']}/decide"
        res = client.post(url, json={"action": "reject", "actor_email": org.creator.email, "reason": "Duplicate RQ"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "rejected"

        res = client.post(url, json={"action": "approve", "actor_email": org.creator.email})
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "APPROVAL_INVALID_STATE"
        assert body["details"]["status"] == "rejected"

    @pytest.mark.parametrize("body", [
        {"action": "reject", "reason": 123},
        {"action": "approve", "assigned_recruiter_email": ["r@corp.test"]},
        {"action": "approve", "assigned_recruiter_email": "r@corp.test", "assigned_recruiter_name": 7},
        {"action": 1},
    ])
    def test_non_string_fields_are_bad_request(self, client, org, submitted, body):
        res = client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            json={"actor_email": org.creator.email, **body},
        )
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_unknown_action(self, client, org, submitted):
        res = client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            json={"action": "escalate", "actor_email": org.creator.email},
        )
        assert res.status_code == 400

    def test_missing_action_and_actor(self, client, submitted):
        url = f"/api/v1/requisitions/{submitted['id']}/decide"
        assert client.post(url, json={}).status_code == 400
        assert client.post(url, json={"action": "approve"}).status_code == 400

    def test_unknown_requisition(self, client, org):
        res = client.post(
            "/api/v1/requisitions/9999/decide",
            json={"action": "approve", "actor_email": org.creator.email},
        )
        assert res.status_code == 404

    def test_lead_assigns_recruiter(self, client, org, make_workflow, make_requisition):
        make_workflow(["recruitment_lead"], is_default=True)
        rq = make_requisition()
        client.post(f"/api/v1/requisitions/{rq.id}/submit", json={})

        res = client.post(
            f"/api/v1/requisitions/{rq.id}/decide",
            json={
                "action": "approve",
                "actor_email": org.lead.email,
                "assigned_recruiter_email": org.recruiter.email,
                "assigned_recruiter_name": org.recruiter.name,
            },
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "approved"
        assert data["assigned_recruiter_email"] == org.recruiter.email

    def test_non_json_body_rejected(self, client, submitted):
        res = client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            data="action=approve",
            content_type="text/plain",
        )
        assert res.status_code == 415


class TestQueryEndpoints:
    def test_pending_for_email(self, client, org, submitted):
        res = client.get(f"/api/v1/approvals/pending?email={org.creator.email}")
        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == submitted["id"]
        assert "aprobaciones" not in data["items"][0]

    def test_pending_from_header(self, client, org, submitted):
        res = client.get("/api/v1/approvals/pending", headers={"X-User-Email": org.area_manager.email})
        assert res.status_code == 200
        assert res.get_json()["total"] == 0

    def test_pending_requires_email(self, client):
        res = client.get("/api/v1/approvals/pending")
        assert res.status_code == 400

    def test_pending_pagination(self, client, org, make_workflow, make_requisition):
        make_workflow(["hiring_manager"], is_default=True)
        for _ in range(3):
            client.post(f"/api/v1/requisitions/{make_requisition().id}/submit", json={})

        res = client.get(f"/api/v1/approvals/pending?email={org.creator.email}&limit=2&offset=1")
        data = res.get_json()
        assert data["total"] == 3
        assert len(data["items"]) == 2

    def test_approval_status(self, client, submitted):
        res = client.get(f"/api/v1/requisitions/{submitted['id']}/approval-status")
        assert res.status_code == 200
        assert res.get_json()["current_step"] == 1

    def test_approval_history(self, client, org, submitted):
        client.post(
            f"/api/v1/requisitions/{submitted['id']}/decide",
            json={"action": "approve", "actor_email": org.creator.email},
        )
        res = client.get(f"/api/v1/requisitions/{submitted['id']}/approval-history")
        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 1
        assert data["history"][0]["action"] == "approved"

    def test_status_unknown_requisition(self, client):
        res = client.get("/api/v1/requisitions/9999/approval-status")
        assert res.status_code == 404


class TestPlatform:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"

    def test_unexpected_error_rolls_back_session(self, client, submitted, monkeypatch):
        from approval_engine.services import approval_query

        def _boom(rq_id):
            raise RuntimeError("projection failed")

        rollbacks = []
        real_rollback = _db.session.rollback

        def _rollback():
            rollbacks.append(True)
            real_rollback()

        monkeypatch.setattr(approval_query, "approval_status", _boom)
        monkeypatch.setattr(_db.session, "rollback", _rollback)

        res = client.get(f"/api/v1/requisitions/{submitted['id']}/approval-status")

        assert res.status_code == 500
        assert res.get_json()["code"] == "ERR_INTERNAL"
        assert rollbacks

    def test_unknown_config_name(self):
        from approval_engine import create_app

        with pytest.raises(ValueError, match="staging"):
            create_app("staging")
