import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from fastapi.testclient import TestClient

from leave_engine.database import Base, get_db
from leave_engine.main import app
from leave_engine.schemas.principal import Principal, UserRole
from leave_engine.services.defaults import seed_default_workflows, seed_global_defaults
from leave_engine.services.policy_resolver import PolicyResolver

TENANT_ID = 1
OTHER_TENANT_ID = 2

# A Monday, so weekend arithmetic in tests is easy to follow
TODAY = date(2026, 3, 2)


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test; services commit for real."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def make_principal():
    def _make(user_id, role=UserRole.EMPLOYEE, tenant_id=TENANT_ID, gender=None, hired_on=None):
        return Principal(user_id=user_id, tenant_id=tenant_id, role=role, gender=gender, hired_on=hired_on)
    return _make


@pytest.fixture(scope="function")
def employee(make_principal):
    return make_principal(100, gender="female")


@pytest.fixture(scope="function")
def group_admin(make_principal):
    return make_principal(200, role=UserRole.GROUP_ADMIN)


@pytest.fixture(scope="function")
def manager(make_principal):
    return make_principal(300, role=UserRole.MANAGEMENT)


@pytest.fixture(scope="function")
def catalogue(db_session):
    """Global defaults plus the default two-level workflows for TENANT_ID, keyed by name."""
    seed_global_defaults(db_session)
    seed_default_workflows(db_session, TENANT_ID)
    resolver = PolicyResolver(db_session, TENANT_ID)
    return {leave_type.name: leave_type for leave_type in resolver.resolve_leave_types()}


@pytest.fixture(scope="function")
def casual_leave(catalogue):
    """default_days=12, carry_forward_days=0, notice_period_days=1, max_consecutive_days=3."""
    return catalogue["Casual Leave (CL)"]


@pytest.fixture(scope="function")
def client(db_session):
    """TestClient using the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def headers():
    def _headers(principal):
        result = {
            "X-User-Id": str(principal.user_id),
            "X-Tenant-Id": str(principal.tenant_id),
            "X-User-Role": principal.role.value,
        }
        if principal.gender:
            result["X-User-Gender"] = principal.gender
        if principal.hired_on:
            result["X-User-Hired-On"] = principal.hired_on.isoformat()
        return result
    return _headers
