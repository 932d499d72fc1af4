"""
Shared pytest fixtures for the ISP Operations Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test cron job + DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - organization / other_organization: two active tenants
    - headers / other_headers: X-Organization-Id request headers
"""

import pytest

from ispops import create_app
from ispops.models import db as _db
from ispops.models.organization import Organization, User


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
    """Per-test: open app context, drop cron jobs, rollback, recreate tables."""
    with app.app_context():
        yield
        app.extensions["org_cron_scheduler"].stop_all()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Tenant fixtures ──────────────────────────────────────────────────────


def _make_organization(name, slug, is_active=True):
    org = Organization(name=name, slug=slug, is_active=is_active)
    _db.session.add(org)
    _db.session.commit()
    return org


def _make_user(organization_id, email, role="team_member"):
    user = User(organization_id=organization_id, email=email, role=role)
    _db.session.add(user)
    _db.session.commit()
    return user


def _org_headers(organization_id):
    return {"X-Organization-Id": str(organization_id)}


@pytest.fixture()
def organization_factory():
    """Callable creating extra tenants: factory(name, slug, is_active=True)."""
    return _make_organization


@pytest.fixture()
def user_factory():
    """Callable creating users: factory(organization_id, email, role=...)."""
    return _make_user


@pytest.fixture()
def organization():
    """First tenant (id 1 on a fresh database)."""
    return _make_organization("Northwind Fibre", "northwind")


@pytest.fixture()
def other_organization(organization):
    """Second tenant, created after `organization`."""
    return _make_organization("Southbank Broadband", "southbank")


@pytest.fixture()
def headers(organization):
    return _org_headers(organization.id)


@pytest.fixture()
def other_headers(other_organization):
    return _org_headers(other_organization.id)
