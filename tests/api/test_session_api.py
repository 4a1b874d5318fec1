"""API tests for identity, profile, notification and health endpoints."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.security import limiter


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["X-Request-ID"] == response.json()["request_id"]

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_security_headers_applied(self, client):
        response = client.get("/health")

        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_untrusted_host_rejected(self, client):
        response = client.get("/health", headers={"Host": "evil.example.com"})

        assert response.status_code == 400


class TestTokens:
    """Tests for bearer-token verification."""

    def test_wrong_signature(self, client, make_token):
        token = make_token("U1", secret="not-the-shared-secret")

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"] == "authentication_error"

    def test_expired_token(self, client, make_token):
        token = make_token("U1", exp=datetime.now(timezone.utc) - timedelta(minutes=5))

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_unknown_role(self, client, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers("U1", role="superuser"))

        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_me_describes_reporter(self, client, reporter_headers):
        response = client.get("/api/auth/me", headers=reporter_headers)

        assert response.status_code == 200
        assert response.json() == {
            "role": "user",
            "id": "U1",
            "email": "u1@cybershield.org",
            "name": "Una Reporter",
        }

    def test_me_describes_administrator(self, client, admin_headers):
        data = client.get("/api/auth/me", headers=admin_headers).json()

        assert data["role"] == "admin"
        assert data["badge_number"] == "B-1001"
        assert data["department"] == "Cyber Crime Unit"


class TestSessionAndProfile:
    def test_profile_missing_before_session(self, client, reporter_headers):
        response = client.get("/api/users/me", headers=reporter_headers)

        assert response.status_code == 404

    def test_open_session_records_user(self, client, admin_headers):
        first = client.post("/api/auth/session", headers=admin_headers)
        second = client.post("/api/auth/session", headers=admin_headers)
        profile = client.get("/api/users/me", headers=admin_headers)

        assert first.status_code == 200
        assert first.json()["role"] == "admin"
        assert first.json()["badge_number"] == "B-1001"
        assert second.json()["id"] == "A1"
        assert profile.json()["full_name"] == "Ada Officer"

    def test_session_is_audited_once(self, client, admin_headers):
        client.post("/api/auth/session", headers=admin_headers)
        client.post("/api/auth/session", headers=admin_headers)

        logs = client.get("/api/audit?action=register", headers=admin_headers).json()

        assert len(logs) == 1
        assert logs[0]["resource_id"] == "A1"

    def test_my_incidents(self, client, reporter_headers, other_reporter_headers, reported_incident):
        mine = client.get("/api/users/me/incidents", headers=reporter_headers)
        theirs = client.get("/api/users/me/incidents", headers=other_reporter_headers)

        assert [i["id"] for i in mine.json()] == [reported_incident["id"]]
        assert theirs.json() == []


class TestNotifications:
    """Tests for the notification inbox."""

    def test_status_change_notifies_reporter(self, client, reporter_headers, admin_headers, reported_incident):
        client.put(
            f"/api/admin/incidents/{reported_incident['id']}/status",
            json={"status": "reviewing"},
            headers=admin_headers,
        )

        response = client.get("/api/notifications", headers=reporter_headers)

        assert response.status_code == 200
        notifications = response.json()
        assert len(notifications) == 1
        assert notifications[0]["incident_id"] == reported_incident["id"]
        assert notifications[0]["is_read"] is False
        assert reported_incident["case_number"] in notifications[0]["message"]

    def test_mark_read(self, client, reporter_headers, admin_headers, reported_incident):
        client.put(
            f"/api/admin/incidents/{reported_incident['id']}/status",
            json={"status": "resolved"},
            headers=admin_headers,
        )
        notification_id = client.get("/api/notifications", headers=reporter_headers).json()[0]["id"]

        response = client.put(f"/api/notifications/{notification_id}/read", headers=reporter_headers)
        unread = client.get("/api/notifications?unread_only=true", headers=reporter_headers)

        assert response.status_code == 200
        assert response.json()["is_read"] is True
        assert unread.json() == []

    def test_cannot_mark_someone_elses_notification(
        self, client, reporter_headers, other_reporter_headers, admin_headers, reported_incident
    ):
        client.put(
            f"/api/admin/incidents/{reported_incident['id']}/status",
            json={"status": "closed"},
            headers=admin_headers,
        )
        notification_id = client.get("/api/notifications", headers=reporter_headers).json()[0]["id"]

        response = client.put(f"/api/notifications/{notification_id}/read", headers=other_reporter_headers)

        assert response.status_code == 404


class TestAppFactory:
    def test_missing_secret_key_refused(self, tmp_path):
        with pytest.raises(ValueError):
            create_app(Settings(secret_key="", log_dir=str(tmp_path / "logs")))

    def test_rate_limit_enforced(self, settings, reporter_headers, incident_payload):
        settings.rate_limit_enabled = True
        with TestClient(create_app(settings)) as client:
            statuses = [
                client.post("/api/incidents", json=incident_payload, headers=reporter_headers).status_code
                for _ in range(21)
            ]

        assert statuses[:20] == [201] * 20
        assert statuses[20] == 429

    def test_new_app_starts_with_fresh_rate_limit_counters(self, settings, reporter_headers, incident_payload):
        settings.rate_limit_enabled = True
        with TestClient(create_app(settings)) as client:
            for _ in range(21):
                client.post("/api/incidents", json=incident_payload, headers=reporter_headers)

        with TestClient(create_app(settings)) as client:
            response = client.post("/api/incidents", json=incident_payload, headers=reporter_headers)

        assert response.status_code == 201

    def test_latest_app_sets_rate_limit_switch(self, settings):
        settings.rate_limit_enabled = True
        create_app(settings)
        assert limiter.enabled is True

        settings.rate_limit_enabled = False
        create_app(settings)
        assert limiter.enabled is False
