import pytest
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["APPROVALS_ALLOW_REDECISION"] = "false"

import hrops.models  # noqa: F401
from hrops.database import Base, get_db
from hrops.main import app
from hrops.models.user import User, UserRole
from hrops.schemas.approval import ApprovalCreate
from hrops.services import auth as auth_service
from hrops.services.approval_service import ApprovalService
from fastapi.testclient import TestClient

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
DEFAULT_PASSWORD = "Passw0rd-123"


@pytest.fixture(scope="function")
def db_session():
    """
    A fresh in-memory database per test. Services commit and roll back on
    their own, so each test gets its own engine instead of an outer transaction.
    """
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def make_user(db_session):
    def _make_user(email, role=UserRole.EMPLOYEE, first_name="Test", last_name="User", is_active=True):
        user = User(
            email=email,
            hashed_password=auth_service.get_password_hash(DEFAULT_PASSWORD),
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture(scope="function")
def superadmin(make_user):
    return make_user("super@acme-corp.com", UserRole.SUPERADMIN, "Sam", "Super")


@pytest.fixture(scope="function")
def admin_user(make_user):
    return make_user("admin@acme-corp.com", UserRole.ADMIN, "Adam", "Admin")


@pytest.fixture(scope="function")
def employee(make_user):
    return make_user("emma@acme-corp.com", UserRole.EMPLOYEE, "Emma", "Employee")


@pytest.fixture(scope="function")
def other_employee(make_user):
    return make_user("omar@acme-corp.com", UserRole.EMPLOYEE, "Omar", "Other")


@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create access tokens for a user."""
    def _get_token(user):
        return auth_service.create_user_token(user)
    return _get_token


@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _auth_headers(user):
        return {"Authorization": f"Bearer {get_token(user)}"}
    return _auth_headers


@pytest.fixture(scope="function")
def make_approval(db_session):
    """Submit an approval through the service layer."""
    def _make_approval(submitter, **overrides):
        payload = {
            "type": "EXPENSE_CLAIM",
            "title": "Client dinner",
            "description": "Dinner with the Northwind account team",
            "amount": "£100.00",
            "priority": "MEDIUM",
        }
        payload.update(overrides)
        return ApprovalService(db_session).create_approval(submitter, ApprovalCreate(**payload))
    return _make_approval


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
