"""
Shared pytest fixtures for the EDMS approval workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_tenant / make_user: factories for tenants and role-bearing users
    - auth_headers: JWT Authorization headers for a user
    - tenant, super_admin, platform_admin: ready-made actors
"""

import pytest

from edms import create_app
from edms.models import db as _db
from edms.models.auth import Tenant, User, UserRole
from edms.services.industry_instance_service import ensure_system_roles
from edms.services.jwt_service import generate_access_token


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
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_tenant():
    """Factory: make_tenant(name, plan="professional") -> committed Tenant."""
    def _make(name="Acme Records", plan="professional", **kwargs):
        slug = kwargs.pop("slug", None) or name.lower().replace(" ", "-")
        t = Tenant(name=name, slug=slug, plan=plan, **kwargs)
        _db.session.add(t)
        _db.session.commit()
        return t
    return _make


@pytest.fixture()
def make_user():
    """Factory: make_user(tenant, email, role="tenant_user", approval_level=None)."""
    def _make(tenant, email, role="tenant_user", approval_level=None, full_name=None):
        roles = ensure_system_roles()
        u = User(
            tenant_id=tenant.id,
            email=email,
            full_name=full_name or email.split("@")[0].replace(".", " ").title(),
            status="active",
            approval_level_id=approval_level.id if approval_level is not None else None,
        )
        _db.session.add(u)
        _db.session.flush()
        if role:
            _db.session.add(UserRole(user_id=u.id, role_id=roles[role].id))
        _db.session.commit()
        return u
    return _make


def _headers(user):
    token = generate_access_token(user.id, user.tenant_id, user.role_names)
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


@pytest.fixture()
def auth_headers():
    """auth_headers(user) -> JWT Authorization + Content-Type headers."""
    return _headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def tenant(make_tenant):
    return make_tenant()


@pytest.fixture()
def super_admin(tenant, make_user):
    return make_user(tenant, "admin@acme.test", role="super_admin")


@pytest.fixture()
def platform_admin(make_tenant, make_user):
    ops = make_tenant("Platform Ops", plan="enterprise", slug="platform")
    return make_user(ops, "ops@platform.test", role="platform_admin")
