"""Tests for operator authentication, the audit trail and download tickets."""

from datetime import datetime, timedelta

import pytest
from fastapi import status

from ovpn_manager.models.config import AuthSettings
from ovpn_manager.services.auth_service import ANONYMOUS_OPERATOR, DEFAULT_PASSWORD, AuthService
from ovpn_manager.services.bundle_service import BundleBuilder
from ovpn_manager.services.yaml_service import YAMLService


@pytest.mark.unit
class TestAuthService:
    """Test passwords, sessions, tickets and audit entries."""

    def test_default_password_written(self, tmp_path):
        """Test a default hash is generated and persisted on first run."""
        config_path = tmp_path / "config.yaml"
        service = AuthService(AuthSettings(enabled=True), config_path=config_path)

        assert service.verify_password(DEFAULT_PASSWORD)
        assert YAMLService.load_yaml(config_path)["auth"]["password_hash"] == service.settings.password_hash

    def test_login_records_operator(self, auth_service):
        session = auth_service.login(DEFAULT_PASSWORD, "carol", ip_address="10.8.0.5")

        assert session.operator == "carol"
        assert auth_service.validate_session(session.token) is session

    def test_login_wrong_password(self, auth_service):
        assert auth_service.login("wrong", "carol") is None

    def test_session_lifecycle(self, auth_service):
        session = auth_service.create_session("ops", user_agent="pytest")

        assert auth_service.validate_session(session.token) is not None
        assert auth_service.invalidate_session(session.token) is True
        assert auth_service.validate_session(session.token) is None

    def test_expired_session(self, auth_service):
        session = auth_service.create_session()
        session.expires_at = datetime.now() - timedelta(seconds=1)

        assert auth_service.validate_session(session.token) is None

    def test_ticket_single_use(self, auth_service):
        """Test a download ticket can be redeemed exactly once."""
        session = auth_service.create_session("ops")
        ticket = auth_service.create_ticket("alice", "0A", session)

        assert ticket.operator == "ops"
        assert auth_service.redeem_ticket(ticket.token).identity == "alice"
        assert auth_service.redeem_ticket(ticket.token) is None

    def test_expired_ticket(self, auth_service):
        ticket = auth_service.create_ticket("alice", "0A")
        ticket.expires_at = datetime.now() - timedelta(seconds=1)

        assert auth_service.redeem_ticket(ticket.token) is None

    def test_change_password_drops_sessions_and_tickets(self, auth_service):
        """Test a password change invalidates every session and outstanding ticket."""
        session = auth_service.create_session("ops")
        ticket = auth_service.create_ticket("alice", "0A", session)

        assert auth_service.change_password(DEFAULT_PASSWORD, "new-password-123", session)
        assert auth_service.verify_password("new-password-123")
        assert auth_service.validate_session(session.token) is None
        assert auth_service.redeem_ticket(ticket.token) is None

    def test_change_password_wrong_current(self, auth_service):
        assert not auth_service.change_password("wrong", "new-password-123")

    def test_audit_trail(self, auth_service):
        """Test entries carry the operator and come back newest first."""
        session = auth_service.create_session("ops", ip_address="10.8.0.5")
        auth_service.audit(session, "issue", "alice", "0A")
        auth_service.audit(None, "revoke", "bob", "0B")

        trail = auth_service.audit_trail()

        assert [(e.action, e.operator) for e in trail] == [("revoke", ANONYMOUS_OPERATOR), ("issue", "ops")]
        assert trail[1].ip_address == "10.8.0.5"
        assert [e.identity for e in auth_service.audit_trail(identity="alice")] == ["alice"]

    def test_audit_trail_bounded(self, tmp_path):
        service = AuthService(AuthSettings(enabled=False, audit_size=2), config_path=tmp_path / "config.yaml")
        for identity in ["alice", "bob", "carol"]:
            service.audit(None, "issue", identity)

        assert [e.identity for e in service.audit_trail()] == ["carol", "bob"]


@pytest.mark.integration
class TestAuthAPI:
    """Test authentication endpoints and protection of client routes."""

    def test_login(self, client_with_auth):
        response = client_with_auth.post("/api/auth/login", json={"password": DEFAULT_PASSWORD, "operator": "carol"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["token"]
        assert response.json()["operator"] == "carol"

    def test_login_wrong_password(self, client_with_auth):
        response = client_with_auth.post("/api/auth/login", json={"password": "wrong"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_login_invalid_operator(self, client_with_auth):
        response = client_with_auth.post("/api/auth/login", json={"password": DEFAULT_PASSWORD, "operator": "a b"})

        assert response.status_code == 422

    def test_protected_without_token(self, client_with_auth):
        assert client_with_auth.get("/api/clients").status_code == status.HTTP_401_UNAUTHORIZED
        assert client_with_auth.get("/download/clients/alice/bundle").status_code == status.HTTP_401_UNAUTHORIZED

    def test_protected_with_token(self, client_with_auth, auth_headers):
        response = client_with_auth.get("/api/clients", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []

    def test_logout(self, client_with_auth, auth_headers):
        """Test the token is unusable after logout."""
        response = client_with_auth.post("/api/auth/logout", headers=auth_headers)
        assert response.status_code == status.HTTP_204_NO_CONTENT

        response = client_with_auth.get("/api/clients", headers=auth_headers)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_session_info(self, client_with_auth, auth_headers):
        response = client_with_auth.get("/api/auth/session", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["is_valid"] is True
        assert response.json()["operator"] == "ops"

    def test_login_when_disabled(self, client):
        response = client.post("/api/auth/login", json={"password": DEFAULT_PASSWORD})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_lifecycle_is_audited(self, client_with_auth, auth_headers):
        """Test issue and revoke are recorded under the session's operator."""
        issued = client_with_auth.post("/api/clients", json={"identity": "alice"}, headers=auth_headers).json()
        client_with_auth.post("/api/clients/alice/revoke", json={}, headers=auth_headers)

        response = client_with_auth.get("/api/auth/audit", params={"identity": "alice"}, headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        entries = response.json()
        assert [e["action"] for e in entries] == ["revoke", "issue"]
        assert {e["operator"] for e in entries} == {"ops"}
        assert {e["serial"] for e in entries} == {issued["serial"]}

    def test_audit_requires_session(self, client_with_auth):
        assert client_with_auth.get("/api/auth/audit").status_code == status.HTTP_401_UNAUTHORIZED

    def test_anonymous_audit_when_disabled(self, client):
        client.post("/api/clients", json={"identity": "alice"})

        entries = client.get("/api/auth/audit").json()

        assert entries[0]["operator"] == ANONYMOUS_OPERATOR
        assert entries[0]["action"] == "issue"


@pytest.mark.integration
class TestDownloadTickets:
    """Test single-use bundle links."""

    def test_ticket_download_without_session(self, client_with_auth, auth_headers):
        """Test a client fetches its bundle through the ticket only, and only once."""
        client_with_auth.post("/api/clients", json={"identity": "alice"}, headers=auth_headers)
        response = client_with_auth.post("/api/clients/alice/ticket", headers=auth_headers)
        assert response.status_code == status.HTTP_201_CREATED
        url = response.json()["url"]

        first = client_with_auth.get(url)
        second = client_with_auth.get(url)

        assert first.status_code == status.HTTP_200_OK
        assert list(BundleBuilder.parse_sections(first.text)) == ["ca", "cert", "key", "tls-auth"]
        assert second.status_code == status.HTTP_404_NOT_FOUND

        actions = [e["action"] for e in client_with_auth.get("/api/auth/audit", headers=auth_headers).json()]
        assert actions[:2] == ["download", "ticket"]

    def test_ticket_requires_session(self, client_with_auth, auth_headers):
        client_with_auth.post("/api/clients", json={"identity": "alice"}, headers=auth_headers)

        response = client_with_auth.post("/api/clients/alice/ticket")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_ticket_for_unknown_identity(self, client_with_auth, auth_headers):
        response = client_with_auth.post("/api/clients/nobody/ticket", headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_ticket_dies_with_credential(self, client_with_auth, auth_headers):
        """Test a ticket for a replaced credential no longer yields a bundle."""
        client_with_auth.post("/api/clients", json={"identity": "alice"}, headers=auth_headers)
        url = client_with_auth.post("/api/clients/alice/ticket", headers=auth_headers).json()["url"]
        client_with_auth.post("/api/clients", json={"identity": "alice", "replace": True}, headers=auth_headers)

        response = client_with_auth.get(url)

        assert response.status_code == status.HTTP_410_GONE

    def test_unknown_ticket(self, client):
        response = client.get("/download/tickets/not-a-ticket")

        assert response.status_code == status.HTTP_404_NOT_FOUND
