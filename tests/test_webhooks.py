"""
Tests for identity provider webhooks.
"""
import json
import time

import pytest
from fastapi import status

from clientportal.models import ClientProfile, Role, Service, ServiceRequest, User
from clientportal.services.webhook_verifier import WebhookVerificationError, sign, verify

SECRET = "whsec_dGVzdC13ZWJob29rLXNpZ25pbmctc2VjcmV0"


def _signed_headers(body: bytes, secret: str = SECRET, msg_id: str = "msg_1", timestamp=None) -> dict:
    timestamp = str(timestamp if timestamp is not None else int(time.time()))
    return {
        "svix-id": msg_id,
        "svix-timestamp": timestamp,
        "svix-signature": f"v1,{sign(secret, msg_id, timestamp, body)}",
        "Content-Type": "application/json",
    }


def _user_event(event_type: str, external_id: str, email: str = "hook@test.com", role=None, **extra) -> dict:
    data = {
        "id": external_id,
        "first_name": "Hook",
        "last_name": "User",
        "primary_email_address_id": "idn_2",
        "email_addresses": [
            {"id": "idn_1", "email_address": "secondary@test.com"},
            {"id": "idn_2", "email_address": email},
        ],
        "public_metadata": {"role": role} if role is not None else {},
        **extra,
    }
    return {"type": event_type, "object": "event", "data": data}


def _post(client, event: dict, **header_kwargs):
    body = json.dumps(event).encode()
    return client.post("/api/webhooks/identity-provider", content=body, headers=_signed_headers(body, **header_kwargs))


@pytest.mark.unit
class TestSignatureVerification:

    def test_valid_signature(self):
        body = b'{"type":"user.created"}'
        verify(body, _signed_headers(body), SECRET)

    def test_any_matching_signature_is_accepted(self):
        body = b"{}"
        headers = _signed_headers(body)
        headers["svix-signature"] = f"v1,bm90LWl0 {headers['svix-signature']}"
        verify(body, headers, SECRET)

    def test_tampered_body(self):
        headers = _signed_headers(b'{"a":1}')
        with pytest.raises(WebhookVerificationError):
            verify(b'{"a":2}', headers, SECRET)

    def test_wrong_secret(self):
        body = b"{}"
        with pytest.raises(WebhookVerificationError):
            verify(body, _signed_headers(body, secret="whsec_b3RoZXItc2VjcmV0"), SECRET)

    def test_stale_timestamp(self):
        body = b"{}"
        headers = _signed_headers(body, timestamp=1_000_000)
        with pytest.raises(WebhookVerificationError):
            verify(body, headers, SECRET, tolerance_seconds=300, now=1_000_000 + 301)
        verify(body, headers, SECRET, tolerance_seconds=300, now=1_000_000 + 300)

    def test_plain_secret(self):
        body = b"{}"
        verify(body, _signed_headers(body, secret="plain-secret"), "plain-secret")


@pytest.mark.unit
class TestWebhookEndpoint:

    def test_user_created(self, client, db_session):
        response = _post(client, _user_event("user.created", "user_hook", role="manager"))
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"received": True}

        user = db_session.query(User).filter(User.external_id == "user_hook").one()
        assert user.email == "hook@test.com"
        assert user.name == "Hook User"
        assert user.role == Role.MANAGER

    def test_missing_role_defaults_to_client(self, client, db_session):
        _post(client, _user_event("user.created", "user_plain"))
        assert db_session.query(User).filter(User.external_id == "user_plain").one().role == Role.CLIENT

    def test_unknown_role_defaults_to_client(self, client, db_session):
        _post(client, _user_event("user.created", "user_odd", role="superhero"))
        assert db_session.query(User).filter(User.external_id == "user_odd").one().role == Role.CLIENT

    def test_user_updated_is_an_upsert(self, client, db_session, client_user):
        _post(client, _user_event("user.updated", client_user.external_id, email="renamed@test.com", role="CLIENT"))
        db_session.refresh(client_user)
        assert client_user.email == "renamed@test.com"
        assert db_session.query(User).count() == 1

    def test_profile_holder_stays_client(self, client, client_auth_headers, client_user, db_session):
        client.put("/api/client/profile", json={"business_name": "Acme"}, headers=client_auth_headers)

        response = _post(client, _user_event("user.updated", client_user.external_id, role="ADMIN"))

        assert response.status_code == status.HTTP_200_OK
        db_session.refresh(client_user)
        assert client_user.role == Role.CLIENT
        assert db_session.query(ClientProfile).filter(ClientProfile.user_id == client_user.id).count() == 1

    def test_user_without_profile_can_be_promoted(self, client, db_session, client_user):
        _post(client, _user_event("user.updated", client_user.external_id, role="MANAGER"))
        db_session.refresh(client_user)
        assert client_user.role == Role.MANAGER

    @pytest.mark.parametrize("data", [["user_list"], "user_string", 42])
    def test_data_must_be_an_object(self, client, db_session, data):
        response = _post(client, {"type": "user.created", "data": data})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        assert db_session.query(User).count() == 0

    def test_event_without_email(self, client):
        event = _user_event("user.created", "user_noemail")
        event["data"]["email_addresses"] = []
        response = _post(client, event)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "No email found"

    def test_user_deleted_removes_owned_rows(self, client, client_auth_headers, assigned_service, db_session):
        client.post(
            "/api/service-requests",
            json={"title": "Before leaving", "service_id": assigned_service["id"]},
            headers=client_auth_headers,
        )
        client.put("/api/client/profile", json={"business_name": "Acme"}, headers=client_auth_headers)

        response = _post(client, {"type": "user.deleted", "data": {"id": "user_client", "deleted": True}})
        assert response.status_code == status.HTTP_200_OK
        assert db_session.query(User).filter(User.external_id == "user_client").count() == 0
        assert db_session.query(Service).count() == 0
        assert db_session.query(ServiceRequest).count() == 0
        assert db_session.query(ClientProfile).count() == 0

        # Redelivery is harmless
        again = _post(client, {"type": "user.deleted", "data": {"id": "user_client", "deleted": True}}, msg_id="msg_2")
        assert again.status_code == status.HTTP_200_OK

    def test_other_events_are_ignored(self, client):
        response = _post(client, {"type": "session.created", "data": {"id": "sess_1"}})
        assert response.status_code == status.HTTP_200_OK

    def test_bad_signature(self, client, db_session):
        body = json.dumps(_user_event("user.created", "user_forged")).encode()
        headers = _signed_headers(body)
        headers["svix-signature"] = "v1,Zm9yZ2Vk"
        response = client.post("/api/webhooks/identity-provider", content=body, headers=headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert db_session.query(User).count() == 0

    def test_missing_headers(self, client):
        response = client.post("/api/webhooks/identity-provider", content=b"{}")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_secret_not_configured(self, client, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "IDENTITY_WEBHOOK_SECRET", None)
        response = _post(client, _user_event("user.created", "user_x"))
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error_code"] == "WEBHOOK_NOT_CONFIGURED"


@pytest.mark.integration
class TestInvitationFlow:
    """Invite a client, then let the provider's webhook create them."""

    def test_invite_then_webhook(self, client, auth_headers, identity_provider, db_session):
        response = client.post(
            "/api/admin/clients",
            json={"action": "invite", "email": "invitee@test.com"},
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert identity_provider.invitations == [{
            "email": "invitee@test.com",
            "role": "CLIENT",
            "redirect_url": "https://portal.test/dashboard",
        }]
        assert db_session.query(User).filter(User.email == "invitee@test.com").count() == 0

        _post(client, _user_event("user.created", "user_invitee", email="invitee@test.com", role="CLIENT"))

        clients = client.get("/api/admin/clients", headers=auth_headers).json()
        assert [c["email"] for c in clients] == ["invitee@test.com"]
        assert clients[0]["active_service_count"] == 0
