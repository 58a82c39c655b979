"""
Test configuration and fixtures.

Requests authenticate with HS256 session tokens signed by a test key; the
identity provider's backend API is replaced by FakeIdentityProvider.
"""
import time
import uuid

import jwt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clientportal.config import settings
from clientportal.db import Base, get_db
from clientportal.models import (
    User, Role, ServiceTemplate, TemplateTask, TemplateMilestone, FormTemplate,
)
from clientportal.services.identity_provider import IdentityProviderError, get_identity_provider

# Test database URL (in-memory SQLite)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

TEST_JWT_KEY = "test-session-signing-key-0123456789abcdef"
TEST_WEBHOOK_SECRET = "whsec_dGVzdC13ZWJob29rLXNpZ25pbmctc2VjcmV0"

# Create test engine
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeIdentityProvider:
    """Records calls instead of talking to the provider."""

    def __init__(self):
        self.invitations = []
        self.created_users = []
        self.role_updates = []
        self.error = None

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error

    def create_invitation(self, email, role, redirect_url):
        self._maybe_fail()
        self.invitations.append({"email": email, "role": role, "redirect_url": redirect_url})
        return {"id": f"inv_{len(self.invitations)}", "email_address": email}

    def create_user(self, email, first_name, last_name, role):
        self._maybe_fail()
        external_id = f"user_{uuid.uuid4().hex[:12]}"
        self.created_users.append({
            "id": external_id, "email": email, "first_name": first_name, "last_name": last_name, "role": role,
        })
        return {"id": external_id}

    def update_user_role(self, external_id, role):
        self._maybe_fail()
        self.role_updates.append((external_id, role))
        return {"id": external_id}

    def reject(self, message="That email address is taken.", code="form_identifier_exists"):
        self.error = IdentityProviderError(message, 422, code)


def make_token(external_id: str, expires_in: int = 3600, **claims) -> str:
    payload = {"sub": external_id, "exp": int(time.time()) + expires_in, **claims}
    return jwt.encode(payload, TEST_JWT_KEY, algorithm="HS256")


def auth_for(user: User) -> dict:
    return {"Authorization": f"Bearer {make_token(user.external_id)}"}


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Point token and webhook verification at the test secrets."""
    monkeypatch.setattr(settings, "IDENTITY_JWT_KEY", TEST_JWT_KEY)
    monkeypatch.setattr(settings, "IDENTITY_JWT_ALGORITHMS", "HS256")
    monkeypatch.setattr(settings, "IDENTITY_JWT_ISSUER", None)
    monkeypatch.setattr(settings, "IDENTITY_JWT_AUDIENCE", None)
    monkeypatch.setattr(settings, "IDENTITY_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "FRONTEND_URL", "https://portal.test")
    yield settings


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture(scope="function")
def client(db_session, identity_provider):
    """Create a test client with database and identity provider overrides."""
    from fastapi.testclient import TestClient
    from clientportal.main import app
    from clientportal.rate_limit import limiter

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    limiter.reset()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _make_user(db_session, external_id, email, role, first_name=None, last_name=None):
    user = User(
        external_id=external_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        name=f"{first_name} {last_name}" if first_name and last_name else None,
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_user(db_session):
    """Create an admin user for testing."""
    return _make_user(db_session, "user_admin", "admin@test.com", Role.ADMIN, "Ada", "Admin")


@pytest.fixture
def manager_user(db_session):
    """Create a manager user for testing."""
    return _make_user(db_session, "user_manager", "manager@test.com", Role.MANAGER, "Max", "Manager")


@pytest.fixture
def client_user(db_session):
    """Create a client user for testing."""
    return _make_user(db_session, "user_client", "client@test.com", Role.CLIENT, "Cleo", "Client")


@pytest.fixture
def other_client(db_session):
    return _make_user(db_session, "user_other", "other@test.com", Role.CLIENT, "Otto", "Other")


@pytest.fixture
def auth_headers(admin_user):
    """Get authentication headers for admin user."""
    return auth_for(admin_user)


@pytest.fixture
def manager_auth_headers(manager_user):
    return auth_for(manager_user)


@pytest.fixture
def client_auth_headers(client_user):
    return auth_for(client_user)


@pytest.fixture
def other_client_auth_headers(other_client):
    return auth_for(other_client)


@pytest.fixture
def intake_form(db_session):
    """A form with a required text field and a required select."""
    form = FormTemplate(
        name="Business Intake",
        description="Tell us about your business",
        fields={
            "version": 1,
            "sections": [{
                "id": "main",
                "title": "Form Fields",
                "fields": [
                    {"id": "company", "type": "text", "label": "Company", "required": True},
                    {"id": "size", "type": "select", "label": "Team size", "required": True,
                     "options": ["1-10", "11-50", "51+"]},
                    {"id": "notes", "type": "textarea", "label": "Notes"},
                ],
            }],
        },
    )
    db_session.add(form)
    db_session.commit()
    db_session.refresh(form)
    return form


@pytest.fixture
def service_template(db_session, intake_form):
    """Active template: 3 tasks, 2 milestones, 1 required form."""
    template = ServiceTemplate(
        name="Website Launch",
        description="Design and launch a marketing site",
        is_active=True,
        tasks=[
            TemplateTask(title="Kickoff call", order=0),
            TemplateTask(title="Design mockups", order=1),
            TemplateTask(title="Go live", order=2),
        ],
        milestones=[
            TemplateMilestone(title="Design approved", order=0),
            TemplateMilestone(title="Launched", order=1),
        ],
        required_forms=[intake_form],
    )
    db_session.add(template)
    db_session.commit()
    db_session.refresh(template)
    return template


@pytest.fixture
def assigned_service(client, auth_headers, service_template, client_user):
    """A service instantiated from service_template for client_user."""
    response = client.post(
        "/api/services",
        json={"template_id": str(service_template.id), "client_id": str(client_user.id)},
        headers=auth_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def session_token():
    """Factory for signed session tokens: session_token(external_id, expires_in=..., **claims)."""
    return make_token
