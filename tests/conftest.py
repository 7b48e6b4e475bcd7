"""
Test configuration for pytest
"""

import pytest
import os
from typing import Callable, Generator

# Test environment variables (must be set before the application is imported)
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["EXPOSE_RESET_TOKENS"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"

from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

import tenant_hub.models  # noqa: F401
from tenant_hub.core.auth import create_access_token
from tenant_hub.core.database import engine
from tenant_hub.core.rate_limit import limiter
from tenant_hub.main import app
from tenant_hub.models.organization import MembershipRole, Organization, OrganizationMembership
from tenant_hub.models.user import User, UserRole
from tenant_hub.schemas.user import UserCreate
from tenant_hub.services import directory

DEFAULT_PASSWORD = "password123"


@pytest.fixture(autouse=True)
def db_tables() -> Generator[None, None, None]:
    """Fresh schema and rate limit window for each test"""
    SQLModel.metadata.create_all(engine)
    limiter.reset()
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """Database session sharing the application's engine"""
    with Session(engine) as session:
        yield session


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """API client; dependency overrides are cleared afterwards"""
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def auth_headers(user: User, **extra: str) -> dict:
    """Bearer headers for a user, plus any extra headers"""
    token = create_access_token(user_id=user.id, role=user.role.value)
    return {"Authorization": f"Bearer {token}", **extra}


@pytest.fixture
def make_user(session: Session) -> Callable[..., User]:
    """Factory creating committed users with an optional global role"""
    counter = {"value": 0}

    def _make_user(email: str = None, role: UserRole = UserRole.USER, password: str = DEFAULT_PASSWORD) -> User:
        counter["value"] += 1
        user = directory.create_user(session, UserCreate(
            email=email or f"user{counter['value']}@example.com",
            password=password,
            first_name="Test",
            last_name=f"User{counter['value']}",
        ))
        if role != UserRole.USER:
            user.role = role
            session.add(user)
            session.commit()
            session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def admin(make_user) -> User:
    return make_user(email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def owner(make_user) -> User:
    return make_user(email="owner@example.com")


@pytest.fixture
def outsider(make_user) -> User:
    return make_user(email="outsider@example.com")


@pytest.fixture
def make_organization(session: Session) -> Callable[..., Organization]:
    """Factory creating an organization with an admin member"""

    def _make_organization(admin_user: User, name: str = "Acme Corp") -> Organization:
        organization = Organization(name=name, created_by=admin_user.id)
        session.add(organization)
        session.flush()
        session.add(OrganizationMembership(
            organization_id=organization.id,
            user_id=admin_user.id,
            role=MembershipRole.ADMIN,
        ))
        session.commit()
        session.refresh(organization)
        return organization

    return _make_organization


@pytest.fixture
def organization(make_organization, owner) -> Organization:
    return make_organization(owner)


@pytest.fixture
def create_tenant(client: TestClient, owner: User, organization: Organization) -> Callable[..., dict]:
    """Create a tenant through the API and return its payload"""

    def _create_tenant(domain: str = "acme.example.com", **fields) -> dict:
        body = {"organizationId": str(organization.id), "name": "Acme", "domain": domain, **fields}
        response = client.post("/api/tenants", json=body, headers=auth_headers(owner))
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create_tenant
