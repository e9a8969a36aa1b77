"""
System setup API tests — /api/v1/system-setup.

The tenant's own super admin bootstraps its approval workflow; nobody else may.
"""

from edms.models.auth import Tenant
from edms.models.notification import Notification
from edms.models.workflow import ApprovalLevel
from edms.services.industry_catalog import CATALOG_VERSION


class TestSetupTemplates:
    def test_requires_auth(self, client):
        assert client.get("/api/v1/system-setup/templates").status_code == 401

    def test_lists_industries_then_custom(self, client, tenant, make_user, auth_headers):
        user = make_user(tenant, "clerk@acme.test")
        res = client.get("/api/v1/system-setup/templates", headers=auth_headers(user))
        assert res.status_code == 200
        body = res.get_json()
        assert body["catalog_version"] == CATALOG_VERSION
        ids = [t["id"] for t in body["templates"]]
        assert ids[:4] == ["court_system", "banking_system", "healthcare_system", "manufacturing_system"]
        assert ids[-1] == "custom"


class TestRunSetup:
    def test_court_setup(self, client, tenant, super_admin, auth_headers):
        res = client.post(f"/api/v1/system-setup/{tenant.id}", headers=auth_headers(super_admin), json={
            "industry_type": "court_system", "setup_method": "template",
        })
        assert res.status_code == 201
        body = res.get_json()
        assert body["message"] == "System setup completed"
        assert body["approval_levels"] == 4
        assert body["workflow_templates"] == 2
        assert body["tenant"]["setup_completed"] is True
        assert body["tenant"]["industry_type"] == "court_system"

        ranks = [lvl.level for lvl in ApprovalLevel.query_for_tenant(tenant.id).order_by(ApprovalLevel.level)]
        assert ranks == [10, 20, 50, 70]
        assert Notification.query.filter_by(recipient=super_admin.email, category="setup").count() == 1

    def test_manual_method(self, client, tenant, super_admin, auth_headers):
        res = client.post(f"/api/v1/system-setup/{tenant.id}", headers=auth_headers(super_admin), json={
            "setup_method": "manual",
        })
        assert res.status_code == 201
        assert res.get_json()["approval_levels"] == 3

    def test_template_method_needs_industry(self, client, tenant, super_admin, auth_headers):
        res = client.post(f"/api/v1/system-setup/{tenant.id}", headers=auth_headers(super_admin), json={})
        assert res.status_code == 400

    def test_unknown_industry(self, client, tenant, super_admin, auth_headers):
        res = client.post(f"/api/v1/system-setup/{tenant.id}", headers=auth_headers(super_admin), json={
            "industry_type": "space_agency",
        })
        assert res.status_code == 400
        assert ApprovalLevel.query_for_tenant(tenant.id).count() == 0

    def test_other_tenant_forbidden(self, client, super_admin, make_tenant, auth_headers):
        other = make_tenant("Other Co")
        res = client.post(f"/api/v1/system-setup/{other.id}", headers=auth_headers(super_admin), json={
            "industry_type": "court_system",
        })
        assert res.status_code == 403
        assert res.get_json()["error"] == "You can only manage your own company"
        assert ApprovalLevel.query_for_tenant(other.id).count() == 0

    def test_plain_user_forbidden(self, client, tenant, make_user, auth_headers):
        user = make_user(tenant, "clerk@acme.test")
        res = client.post(f"/api/v1/system-setup/{tenant.id}", headers=auth_headers(user), json={
            "industry_type": "court_system",
        })
        assert res.status_code == 403

    def test_custom_overrides(self, client, tenant, super_admin, auth_headers):
        res = client.post(f"/api/v1/system-setup/{tenant.id}", headers=auth_headers(super_admin), json={
            "industry_type": "custom",
            "setup_method": "template",
            "custom_config": {
                "approval_levels": [
                    {"name": "Board", "level": 90, "permissions": {"can_approve": True}},
                ],
            },
        })
        assert res.status_code == 201
        names = {lvl.name for lvl in ApprovalLevel.query_for_tenant(tenant.id)}
        assert names == {"Department Head", "Manager", "Director", "Board"}

    def test_failed_override_leaves_tenant_untouched(self, client, tenant, super_admin, auth_headers, session):
        res = client.post(f"/api/v1/system-setup/{tenant.id}", headers=auth_headers(super_admin), json={
            "industry_type": "court_system",
            "custom_config": {
                "workflow_templates": [
                    {"name": "Appeal", "document_type": "appeal",
                     "steps": [{"order": 1, "approval_level": "Supreme Judge"}]},
                ],
            },
        })
        assert res.status_code == 400
        assert ApprovalLevel.query_for_tenant(tenant.id).count() == 0
        assert session.get(Tenant, tenant.id).setup_completed is False


class TestSetupStatus:
    def test_own_tenant(self, client, tenant, super_admin, auth_headers):
        h = auth_headers(super_admin)
        res = client.get(f"/api/v1/system-setup/status/{tenant.id}", headers=h)
        assert res.status_code == 200
        assert res.get_json()["is_configured"] is False

        client.post(f"/api/v1/system-setup/{tenant.id}", headers=h, json={"industry_type": "banking_system"})
        body = client.get(f"/api/v1/system-setup/status/{tenant.id}", headers=h).get_json()
        assert body["is_configured"] is True
        assert body["tenant"]["setup_status"] == "configured"

    def test_other_tenant_forbidden(self, client, super_admin, make_tenant, auth_headers):
        other = make_tenant("Other Co")
        res = client.get(f"/api/v1/system-setup/status/{other.id}", headers=auth_headers(super_admin))
        assert res.status_code == 403

    def test_platform_admin_sees_any_tenant(self, client, tenant, platform_admin, auth_headers):
        res = client.get(f"/api/v1/system-setup/status/{tenant.id}", headers=auth_headers(platform_admin))
        assert res.status_code == 200
        assert res.get_json()["tenant"]["id"] == tenant.id
