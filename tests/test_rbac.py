"""
Tests for the role capability table and authentication.
"""
import uuid

import pytest
from fastapi import status

from clientportal.models import Role, User
from clientportal.rbac import (
    CAPABILITIES, ROLE_PERMISSIONS, get_permissions, has_permission, has_any_permission, parse_role,
)


@pytest.mark.unit
class TestPermissionTable:
    """The capability grid per role."""

    def test_every_role_defines_every_capability(self):
        for role in Role:
            assert set(ROLE_PERMISSIONS[role]) == set(CAPABILITIES)

    def test_admin_has_everything_but_requests(self):
        perms = get_permissions(Role.ADMIN)
        assert perms["can_submit_requests"] is False
        assert all(value for key, value in perms.items() if key != "can_submit_requests")

    def test_manager_assigns_but_does_not_manage(self):
        assert has_permission(Role.MANAGER, "can_assign_services")
        assert has_permission(Role.MANAGER, "can_view_admin_panel")
        assert not has_permission(Role.MANAGER, "can_manage_users")
        assert not has_permission(Role.MANAGER, "can_manage_services")
        assert not has_permission(Role.MANAGER, "can_manage_forms")

    def test_client_only_sees_own_data(self):
        perms = get_permissions(Role.CLIENT)
        assert {key for key, value in perms.items() if value} == {"can_submit_requests", "can_view_own_data"}

    def test_unknown_role_gets_nothing(self):
        assert get_permissions("SUPERUSER") == {capability: False for capability in CAPABILITIES}
        assert get_permissions(None) == {capability: False for capability in CAPABILITIES}
        assert not has_permission("SUPERUSER", "can_view_own_data")

    def test_parse_role_is_case_insensitive(self):
        assert parse_role("admin") is Role.ADMIN
        assert parse_role(" Manager ") is Role.MANAGER
        assert parse_role("") is None
        assert parse_role("owner") is None

    def test_has_any_permission(self):
        assert has_any_permission(Role.MANAGER, "can_manage_users", "can_assign_services")
        assert not has_any_permission(Role.CLIENT, "can_manage_users", "can_assign_services")

    def test_get_permissions_returns_a_copy(self):
        perms = get_permissions(Role.CLIENT)
        perms["can_manage_users"] = True
        assert ROLE_PERMISSIONS[Role.CLIENT]["can_manage_users"] is False


@pytest.mark.unit
class TestPermissionEndpoints:

    def test_permission_table_is_public(self, client):
        response = client.get("/api/permissions")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert set(data) == {"ADMIN", "MANAGER", "CLIENT"}
        assert data["CLIENT"]["can_submit_requests"] is True

    def test_my_permissions(self, client, manager_auth_headers):
        response = client.get("/api/users/me/permissions", headers=manager_auth_headers)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["role"] == "MANAGER"
        assert data["permissions"] == ROLE_PERMISSIONS[Role.MANAGER]


@pytest.mark.unit
class TestAuthentication:
    """Session token resolution."""

    def test_missing_token(self, client):
        response = client.get("/api/users/me")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error_code"] == "AUTHENTICATION_ERROR"

    def test_invalid_token(self, client):
        response = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_expired_token(self, client, admin_user, session_token):
        token = session_token(admin_user.external_id, expires_in=-60)
        response = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_session_cookie(self, client, admin_user, session_token):
        cookie = f"__session={session_token(admin_user.external_id)}"
        response = client.get("/api/users/me", headers={"Cookie": cookie})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["email"] == "admin@test.com"

    def test_first_request_creates_client(self, client, db_session, session_token):
        token = session_token("user_new", email="new@test.com", first_name="Nia", last_name="New")
        response = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["role"] == "CLIENT"
        user = db_session.query(User).filter(User.external_id == "user_new").one()
        assert user.email == "new@test.com"
        assert user.role == Role.CLIENT

    def test_role_claim_is_ignored(self, client, client_user, session_token):
        token = session_token(client_user.external_id, role="ADMIN", public_metadata={"role": "ADMIN"})
        response = client.get("/api/admin/stats", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_forbidden_body_names_the_capability(self, client, client_auth_headers):
        response = client.get("/api/service-templates", headers=client_auth_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN
        body = response.json()
        assert body["error_code"] == "AUTHORIZATION_ERROR"
        assert body["details"]["required"] == ["can_manage_services"]


ROUTE_PER_CAPABILITY = {
    "can_view_admin_panel": ("GET", "/api/admin/stats", None),
    "can_manage_users": ("PATCH", f"/api/users/{uuid.uuid4()}/role", {"role": "MANAGER"}),
    "can_manage_services": ("GET", "/api/service-templates", None),
    "can_manage_forms": (
        "POST", "/api/forms",
        {"name": "Kickoff", "fields": {"version": 1, "sections": [{"id": "main", "title": "Form Fields", "fields": []}]}},
    ),
    "can_assign_services": (
        "POST", "/api/services", {"template_id": str(uuid.uuid4()), "client_id": str(uuid.uuid4())},
    ),
    "can_submit_requests": ("POST", "/api/service-requests", {"title": "Need a hand"}),
}


@pytest.mark.unit
class TestRouteEnforcement:
    """Each guarded route answers 403 exactly when the table denies the capability."""

    @pytest.mark.parametrize("capability", sorted(ROUTE_PER_CAPABILITY))
    @pytest.mark.parametrize("role", list(Role))
    def test_route_matches_table(self, client, db_session, session_token, role, capability):
        user = User(external_id=f"user_{role.value.lower()}", email=f"{role.value.lower()}@test.com", role=role)
        db_session.add(user)
        db_session.commit()
        method, url, body = ROUTE_PER_CAPABILITY[capability]

        response = client.request(
            method, url, json=body, headers={"Authorization": f"Bearer {session_token(user.external_id)}"}
        )

        if ROLE_PERMISSIONS[role][capability]:
            assert response.status_code != status.HTTP_403_FORBIDDEN, response.text
        else:
            assert response.status_code == status.HTTP_403_FORBIDDEN
            assert capability in response.json()["details"]["required"]
