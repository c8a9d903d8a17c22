"""Tests for the credential registry."""

import pytest

from ovpn_manager.exceptions import NotIssuedError
from ovpn_manager.models.client import CredentialStatus
from ovpn_manager.models.crl import RevocationReason
from ovpn_manager.services.container import build_services


@pytest.mark.unit
class TestRegistry:
    """Test read-only views over the index."""

    def test_empty_after_init(self, services):
        """Test the server certificate is not listed as a client."""
        assert services.registry.list() == []

    def test_list_sorted(self, services):
        """Test identities are listed alphabetically, each once."""
        for identity in ["carol", "alice", "bob"]:
            services.issuer.issue(identity)
        services.issuer.issue("alice", replace=True)

        assert services.registry.list() == ["alice", "bob", "carol"]

    def test_list_excludes_revoked(self, services):
        services.issuer.issue("alice")
        services.issuer.issue("bob")
        services.revocations.revoke("bob")

        assert services.registry.list() == ["alice"]

    def test_get(self, services, issued_alice):
        """Test details are read from the index and the certificate."""
        credential = services.registry.get("alice")

        assert credential.identity == "alice"
        assert credential.serial == issued_alice.serial
        assert credential.status == CredentialStatus.ISSUED
        assert credential.issued_at is not None
        assert credential.expires_at > credential.issued_at
        assert len(credential.fingerprint_sha256.split(":")) == 32
        assert credential.bundle_path == issued_alice.path

    def test_get_not_issued(self, services):
        with pytest.raises(NotIssuedError):
            services.registry.get("nobody")

    def test_get_server_not_a_client(self, services):
        """Test the server identity is hidden from client lookups."""
        with pytest.raises(NotIssuedError):
            services.registry.get("my-vpn-server")

    def test_renamed_server_not_a_client(self, test_config, issued_alice):
        """Test a server certificate stays hidden after the configured server name changes."""
        test_config.server.name = "edge-gateway"
        services = build_services(test_config)

        assert services.registry.list() == ["alice"]
        assert services.registry.is_server("my-vpn-server") is True
        assert services.registry.is_server("alice") is False
        assert services.authority.status().issued_count == 1
        with pytest.raises(NotIssuedError):
            services.registry.get("my-vpn-server")

    def test_revoked(self, services):
        """Test revocation records carry identity, serial and reason."""
        credential = services.issuer.issue("alice")
        services.revocations.revoke("alice", RevocationReason.CESSATION_OF_OPERATION)

        records = services.registry.revoked()

        assert len(records) == 1
        assert records[0].identity == "alice"
        assert records[0].serial == credential.serial
        assert records[0].reason == RevocationReason.CESSATION_OF_OPERATION

    def test_reads_do_not_lock(self, services):
        """Test registry reads succeed while the store lock is held."""
        services.issuer.issue("alice")

        with services.store.exclusive():
            assert services.registry.list() == ["alice"]
