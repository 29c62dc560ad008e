import pytest
import os
import tempfile
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SEED_POLICIES_ON_STARTUP"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="leave-uploads-")

from leave_engine.database import Base, get_db
from leave_engine.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Fresh schema per test. Services commit on their own, so tables are
    recreated instead of wrapping each test in a rolled-back transaction.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def seeded_policies(db_session):
    """The default policy set, as a fresh installation would have it."""
    from leave_engine.core.seed_policies import seed_default_policies
    from leave_engine.services.policy_repository import SqlPolicyRepository

    seed_default_policies(SqlPolicyRepository(db_session))
    return db_session


@pytest.fixture(scope="function")
def today():
    return datetime.now(timezone.utc).date()


@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create access tokens for a role."""
    from leave_engine.services.auth import create_access_token

    def _get_token(role="HR_ADMIN", sub="admin-1", permissions=None, employee_id=None):
        return create_access_token(sub, role, permissions=permissions, employee_id=employee_id)
    return _get_token


@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _headers(role="HR_ADMIN", **kwargs):
        return {"Authorization": f"Bearer {get_token(role, **kwargs)}"}
    return _headers


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
