"""
Tests for service assignment, visibility and deletion.
"""
import uuid
from datetime import datetime

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from clientportal.models import (
    AssignedForm, Service, ServiceMilestone, ServiceRequest, ServiceTask, ServiceTemplate, TaskStatus,
)
from clientportal.services import service_instance_service


@pytest.mark.unit
class TestCreateService:
    """Instantiating a template for a client."""

    def test_snapshot_counts(self, client, auth_headers, service_template, client_user, db_session):
        response = client.post(
            "/api/services",
            json={"template_id": str(service_template.id), "client_id": str(client_user.id)},
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["name"] == "Website Launch"
        assert data["status"] == "ACTIVE"
        assert data["client"]["email"] == "client@test.com"
        assert data["counts"]["tasks"] == 3
        assert data["counts"]["milestones"] == 2
        assert data["counts"]["assigned_forms"] == 1
        assert [t["title"] for t in data["tasks"]] == ["Kickoff call", "Design mockups", "Go live"]
        assert all(t["status"] == "PENDING" and t["completed_at"] is None for t in data["tasks"])
        assert all(m["achieved"] is False for m in data["milestones"])
        assert data["assigned_forms"][0]["required"] is True

        service_id = uuid.UUID(data["id"])
        assert db_session.query(ServiceTask).filter(ServiceTask.service_id == service_id).count() == 3
        assert db_session.query(AssignedForm).filter(AssignedForm.service_id == service_id).count() == 1

    def test_custom_name(self, client, manager_auth_headers, service_template, client_user):
        response = client.post(
            "/api/services",
            json={
                "template_id": str(service_template.id),
                "client_id": str(client_user.id),
                "name": "Acme site",
                "description": "For Acme",
            },
            headers=manager_auth_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["name"] == "Acme site"
        assert response.json()["description"] == "For Acme"

    def test_browser_iso_dates(self, client, auth_headers, service_template, client_user, db_session):
        response = client.post(
            "/api/services",
            json={
                "template_id": str(service_template.id),
                "client_id": str(client_user.id),
                "start_date": "2029-12-31T22:00:00.000Z",
                "end_date": "2030-01-01T00:00:00.000Z",
            },
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_201_CREATED, response.text
        service = db_session.get(Service, uuid.UUID(response.json()["id"]))
        assert service.start_date == datetime(2029, 12, 31, 22, 0)
        assert service.end_date == datetime(2030, 1, 1, 0, 0)

    def test_end_before_start_with_offsets(self, client, auth_headers, service_template, client_user):
        response = client.post(
            "/api/services",
            json={
                "template_id": str(service_template.id),
                "client_id": str(client_user.id),
                "start_date": "2030-01-01T10:00:00+02:00",
                "end_date": "2030-01-01T07:00:00Z",
            },
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_inactive_template(self, client, auth_headers, service_template, client_user, db_session):
        service_template.is_active = False
        db_session.commit()
        response = client.post(
            "/api/services",
            json={"template_id": str(service_template.id), "client_id": str(client_user.id)},
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_assignee_must_be_client(self, client, auth_headers, service_template, manager_user, db_session):
        response = client.post(
            "/api/services",
            json={"template_id": str(service_template.id), "client_id": str(manager_user.id)},
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert db_session.query(Service).count() == 0

    def test_unknown_template(self, client, auth_headers, client_user):
        response = client.post(
            "/api/services",
            json={"template_id": str(uuid.uuid4()), "client_id": str(client_user.id)},
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_client_cannot_assign(self, client, client_auth_headers, service_template, client_user):
        response = client.post(
            "/api/services",
            json={"template_id": str(service_template.id), "client_id": str(client_user.id)},
            headers=client_auth_headers,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_failure_leaves_nothing_behind(
        self, client, auth_headers, service_template, client_user, db_session, monkeypatch
    ):
        def broken_assign(db, service, template):
            raise RuntimeError("form assignment failed")

        monkeypatch.setattr(service_instance_service, "_assign_forms", broken_assign)

        with pytest.raises(RuntimeError):
            client.post(
                "/api/services",
                json={"template_id": str(service_template.id), "client_id": str(client_user.id)},
                headers=auth_headers,
            )

        assert db_session.query(Service).count() == 0
        assert db_session.query(ServiceTask).count() == 0
        assert db_session.query(ServiceMilestone).count() == 0
        assert db_session.query(AssignedForm).count() == 0

    def test_failure_returns_generic_500(
        self, client, auth_headers, service_template, client_user, monkeypatch
    ):
        from clientportal.main import app

        def broken_assign(db, service, template):
            raise RuntimeError("secret internals")

        monkeypatch.setattr(service_instance_service, "_assign_forms", broken_assign)
        quiet_client = TestClient(app, raise_server_exceptions=False)
        response = quiet_client.post(
            "/api/services",
            json={"template_id": str(service_template.id), "client_id": str(client_user.id)},
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["message"] == "Internal Error"
        assert "secret" not in response.text

    def test_later_template_edits_do_not_leak(self, client, auth_headers, service_template, assigned_service):
        client.patch(
            f"/api/service-templates/{service_template.id}",
            json={"name": "Renamed", "milestones": []},
            headers=auth_headers,
        )
        response = client.get(f"/api/services/{assigned_service['id']}", headers=auth_headers)
        data = response.json()
        assert data["name"] == "Website Launch"
        assert data["counts"]["milestones"] == 2


@pytest.mark.unit
class TestServiceVisibility:

    def test_client_lists_own_services(
        self, client, auth_headers, client_auth_headers, other_client_auth_headers, assigned_service
    ):
        own = client.get("/api/services", headers=client_auth_headers).json()
        foreign = client.get("/api/services", headers=other_client_auth_headers).json()
        staff = client.get("/api/services", headers=auth_headers).json()

        assert [s["id"] for s in own] == [assigned_service["id"]]
        assert foreign == []
        assert len(staff) == 1

    def test_client_cannot_open_foreign_service(self, client, other_client_auth_headers, assigned_service):
        response = client.get(f"/api/services/{assigned_service['id']}", headers=other_client_auth_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_detail_marks_submitted_forms(self, client, client_auth_headers, assigned_service, intake_form):
        client.post(
            "/api/forms/submissions",
            json={"form_id": str(intake_form.id), "data": {"company": "Acme", "size": "1-10"}},
            headers=client_auth_headers,
        )
        response = client.get(f"/api/services/{assigned_service['id']}", headers=client_auth_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["assigned_forms"][0]["submitted"] is True

    def test_detail_lists_recent_requests(self, client, client_auth_headers, assigned_service):
        for i in range(12):
            client.post(
                "/api/service-requests",
                json={"title": f"Request {i}", "service_id": assigned_service["id"]},
                headers=client_auth_headers,
            )
        data = client.get(f"/api/services/{assigned_service['id']}", headers=client_auth_headers).json()
        assert len(data["requests"]) == 10
        assert data["counts"]["open_requests"] == 12


@pytest.mark.unit
class TestUpdateAndDeleteService:

    def test_pause_service(self, client, manager_auth_headers, assigned_service):
        response = client.patch(
            f"/api/services/{assigned_service['id']}", json={"status": "PAUSED"}, headers=manager_auth_headers
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "PAUSED"

    def test_end_date_with_utc_suffix(self, client, auth_headers, assigned_service, db_session):
        response = client.patch(
            f"/api/services/{assigned_service['id']}",
            json={"end_date": "2030-01-01T00:00:00Z"},
            headers=auth_headers,
        )
        assert response.status_code == status.HTTP_200_OK, response.text
        assert response.json()["end_date"].startswith("2030-01-01T00:00:00")
        service = db_session.get(Service, uuid.UUID(assigned_service["id"]))
        assert service.end_date == datetime(2030, 1, 1, 0, 0)

    def test_invalid_status(self, client, auth_headers, assigned_service):
        response = client.patch(
            f"/api/services/{assigned_service['id']}", json={"status": "ARCHIVED"}, headers=auth_headers
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_service_removes_children(
        self, client, auth_headers, client_auth_headers, assigned_service, db_session
    ):
        client.post(
            "/api/service-requests",
            json={"title": "Help", "service_id": assigned_service["id"]},
            headers=client_auth_headers,
        )
        response = client.delete(f"/api/services/{assigned_service['id']}", headers=auth_headers)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert db_session.query(Service).count() == 0
        assert db_session.query(ServiceTask).count() == 0
        assert db_session.query(ServiceMilestone).count() == 0
        assert db_session.query(AssignedForm).count() == 0
        assert db_session.query(ServiceRequest).count() == 0
        # The template survives
        assert db_session.query(ServiceTemplate).count() == 1

    def test_delete_missing_service(self, client, auth_headers):
        response = client.delete(f"/api/services/{uuid.uuid4()}", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND
