"""
Document API tests — /api/v1/documents and its approval transitions.

Uses the banking blueprint provisioned through the service layer. Its only
workflow is "Loan Application":
    Teller(10) → Senior Teller(20) → Branch Manager(30) → Regional Manager(50, optional)
Only the two manager levels can approve.
"""

import pytest

from edms.models.workflow import ApprovalLevel
from edms.services import provisioning_service


@pytest.fixture()
def bank(tenant):
    provisioning_service.provision_from_template(tenant.id, "banking_system")
    return {lvl.name: lvl for lvl in ApprovalLevel.query_for_tenant(tenant.id).all()}


@pytest.fixture()
def staff(tenant, bank, make_user):
    return {
        "author": make_user(tenant, "author@acme.test"),
        "teller": make_user(tenant, "teller@acme.test", approval_level=bank["Teller"]),
        "branch": make_user(tenant, "branch@acme.test", approval_level=bank["Branch Manager"]),
        "regional": make_user(tenant, "regional@acme.test", approval_level=bank["Regional Manager"]),
    }


def _create(client, headers, document_type="loan_application", title="Wire transfer #1"):
    res = client.post("/api/v1/documents", headers=headers, json={
        "title": title, "document_type": document_type,
    })
    assert res.status_code == 201
    return res.get_json()


def _submitted(client, staff, auth_headers, **kw):
    h = auth_headers(staff["author"])
    doc = _create(client, h, **kw)
    res = client.post(f"/api/v1/documents/{doc['id']}/submit", headers=h, json={})
    assert res.status_code == 200
    return res.get_json()


class TestDocumentRecords:
    def test_create_draft(self, client, staff, auth_headers):
        body = _create(client, auth_headers(staff["author"]))
        assert body["status"] == "draft"
        assert body["display_status"] == "draft"
        assert body["version"] == 1
        assert body["available_actions"] == ["submit"]

    def test_create_requires_title_and_type(self, client, staff, auth_headers):
        res = client.post("/api/v1/documents", headers=auth_headers(staff["author"]), json={"title": ""})
        assert res.status_code == 400
        details = res.get_json()["details"]
        assert set(details) == {"title", "document_type"}

    def test_list_and_filter(self, client, staff, auth_headers):
        h = auth_headers(staff["author"])
        _create(client, h, title="A")
        _create(client, h, title="B", document_type="compliance")
        res = client.get("/api/v1/documents?document_type=compliance", headers=h)
        assert res.status_code == 200
        assert [d["title"] for d in res.get_json()["items"]] == ["B"]

        res = client.get("/api/v1/documents?limit=1", headers=h)
        body = res.get_json()
        assert body["total"] == 2
        assert len(body["items"]) == 1

    def test_unknown_status_filter(self, client, staff, auth_headers):
        res = client.get("/api/v1/documents?status=archived", headers=auth_headers(staff["author"]))
        assert res.status_code == 400

    def test_other_tenant_document_is_404(self, client, staff, make_tenant, make_user, auth_headers):
        doc = _create(client, auth_headers(staff["author"]))
        stranger = make_user(make_tenant("Other Co"), "x@other.test")
        h = auth_headers(stranger)
        assert client.get(f"/api/v1/documents/{doc['id']}", headers=h).status_code == 404
        assert client.post(f"/api/v1/documents/{doc['id']}/submit", headers=h, json={}).status_code == 404

    def test_requires_auth(self, client):
        assert client.get("/api/v1/documents").status_code == 401


class TestTransitionsAPI:
    def test_submit_without_workflow_is_422(self, client, staff, auth_headers):
        h = auth_headers(staff["author"])
        doc = _create(client, h, document_type="claims_document")
        res = client.post(f"/api/v1/documents/{doc['id']}/submit", headers=h, json={})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_NO_WORKFLOW"
        assert body["details"]["document_type"] == "claims_document"

    def test_approval_flow(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        assert doc["status"] == "pending_approval"
        doc_id = doc["id"]

        steps = client.get(
            f"/api/v1/documents/{doc_id}/approval-status", headers=auth_headers(staff["author"]),
        ).get_json()["steps"]
        approver_for = {s["order"]: s["approval_level_name"] for s in steps}
        actor_for = {"Branch Manager": staff["branch"], "Regional Manager": staff["regional"]}

        for order in sorted(approver_for):
            actor = actor_for.get(approver_for[order], staff["regional"])
            res = client.post(f"/api/v1/documents/{doc_id}/approve", headers=auth_headers(actor),
                              json={"comment": f"step {order} ok"})
            assert res.status_code == 200, res.get_json()

        assert res.get_json()["status"] == "approved"
        assert res.get_json()["available_actions"] == []

    def test_teller_cannot_approve(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        res = client.post(f"/api/v1/documents/{doc['id']}/approve", headers=auth_headers(staff["teller"]), json={})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_reject_needs_reason(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        h = auth_headers(staff["regional"])
        res = client.post(f"/api/v1/documents/{doc['id']}/reject", headers=h, json={})
        assert res.status_code == 400

        res = client.post(f"/api/v1/documents/{doc['id']}/reject", headers=h, json={"reason": "Limit exceeded"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "rejected"
        assert body["rejection_reason"] == "Limit exceeded"
        assert body["is_terminal"] is True

    def test_action_on_terminal_document_is_409(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        h = auth_headers(staff["regional"])
        client.post(f"/api/v1/documents/{doc['id']}/reject", headers=h, json={"reason": "No"})
        res = client.post(f"/api/v1/documents/{doc['id']}/approve", headers=h, json={})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_stale_expected_version_is_409(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        res = client.post(f"/api/v1/documents/{doc['id']}/approve", headers=auth_headers(staff["regional"]),
                          json={"expected_version": doc["version"] - 1})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_VERSION"

    def test_expected_version_must_be_integer(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        res = client.post(f"/api/v1/documents/{doc['id']}/approve", headers=auth_headers(staff["regional"]),
                          json={"expected_version": "2"})
        assert res.status_code == 400

    def test_route_requires_valid_target(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        res = client.post(f"/api/v1/documents/{doc['id']}/route", headers=auth_headers(staff["regional"]),
                          json={"target_step": 42})
        assert res.status_code == 400

    def test_non_json_body_rejected(self, client, staff, auth_headers):
        doc = _create(client, auth_headers(staff["author"]))
        h = dict(auth_headers(staff["author"]), **{"Content-Type": "text/plain"})
        res = client.post(f"/api/v1/documents/{doc['id']}/submit", headers=h, data="submit please")
        assert res.status_code == 415


class TestReadSideAPI:
    def test_history(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        h = auth_headers(staff["regional"])
        client.post(f"/api/v1/documents/{doc['id']}/reject", headers=h, json={"reason": "Missing KYC"})
        client.post(f"/api/v1/documents/{doc['id']}/submit", headers=auth_headers(staff["author"]), json={})

        res = client.get(f"/api/v1/documents/{doc['id']}/approval-history", headers=h)
        assert res.status_code == 200
        body = res.get_json()
        assert [e["action"] for e in body["items"]] == ["submitted", "rejected", "submitted"]
        assert body["items"][1]["comment"] == "Missing KYC"
        assert body["items"][1]["actor_name"] == staff["regional"].display_name

        res = client.get(
            f"/api/v1/documents/{doc['id']}/approval-history?include_superseded=false", headers=h,
        )
        assert [e["action"] for e in res.get_json()["items"]] == ["submitted"]

    def test_approval_status(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        res = client.get(f"/api/v1/documents/{doc['id']}/approval-status", headers=auth_headers(staff["regional"]))
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "pending_approval"
        assert body["display_status"].startswith("pending_")
        assert "approve" in body["available_actions"]
        assert sum(1 for s in body["steps"] if s["is_current"]) == 1

    def test_pending_queue(self, client, staff, auth_headers):
        doc = _submitted(client, staff, auth_headers)
        res = client.get("/api/v1/documents/pending", headers=auth_headers(staff["regional"]))
        assert res.status_code == 200
        assert [d["id"] for d in res.get_json()["items"]] == [doc["id"]]

        res = client.get("/api/v1/documents/pending", headers=auth_headers(staff["author"]))
        assert res.get_json()["total"] == 0
