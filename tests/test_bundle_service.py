"""Tests for client bundle generation."""

from pathlib import Path

import pytest
from cryptography import x509

from ovpn_manager.exceptions import NotIssuedError, StoreUnavailableError
from ovpn_manager.models.bundle import BUNDLE_SECTIONS, Endpoint
from ovpn_manager.services.bundle_service import BundleBuilder


@pytest.fixture
def endpoint():
    return Endpoint(host="vpn.example.com", port=1194, protocol="udp")


@pytest.mark.unit
class TestBundleBuilder:
    """Test .ovpn profile assembly."""

    def test_build_writes_profile(self, services, endpoint, test_config):
        """Test the profile lands in <client_configs>/<identity>/<identity>.ovpn."""
        services.issuer.issue("alice")

        bundle = services.bundles.build("alice", endpoint)

        expected = Path(test_config.paths.client_configs) / "alice" / "alice.ovpn"
        assert Path(bundle.path) == expected
        assert expected.exists()
        assert bundle.endpoint == endpoint

    def test_profile_is_owner_only(self, services, endpoint):
        """Test the profile has mode 0600 in a 0700 directory."""
        services.issuer.issue("alice")

        path = Path(services.bundles.build("alice", endpoint).path)

        assert path.stat().st_mode & 0o777 == 0o600
        assert path.parent.stat().st_mode & 0o777 == 0o700

    def test_exactly_four_sections_in_order(self, services, endpoint):
        """Test the profile embeds ca, cert, key and tls-auth once each."""
        services.issuer.issue("alice")
        content = Path(services.bundles.build("alice", endpoint).path).read_text()

        sections = BundleBuilder.parse_sections(content)

        assert tuple(sections) == BUNDLE_SECTIONS
        assert sections["ca"].startswith("-----BEGIN CERTIFICATE-----")
        assert sections["cert"].startswith("-----BEGIN CERTIFICATE-----")
        assert "PRIVATE KEY-----" in sections["key"].splitlines()[0]
        assert sections["tls-auth"].startswith("-----BEGIN OpenVPN Static key V1-----")
        assert sections["tls-auth"].endswith("-----END OpenVPN Static key V1-----")

    def test_embedded_certificate_is_client(self, services, endpoint):
        """Test the embedded certificate is the client's, not the server's."""
        services.issuer.issue("alice")
        content = Path(services.bundles.build("alice", endpoint).path).read_text()

        cert = x509.load_pem_x509_certificate(BundleBuilder.parse_sections(content)["cert"].encode())

        assert cert.subject.rfc4514_string() == "CN=alice"

    def test_connection_directives(self, services, endpoint, test_config):
        """Test the remote, protocol and client directives are rendered."""
        services.issuer.issue("alice")
        content = Path(services.bundles.build("alice", endpoint).path).read_text()

        assert content.startswith("# OpenVPN client profile for alice")
        assert "\nclient\n" in content
        assert "\nproto udp\n" in content
        assert "\nremote vpn.example.com 1194\n" in content
        assert "\nkey-direction 1\n" in content
        assert f"\ncipher {test_config.client.cipher}\n" in content

    def test_text_dump_stripped(self, services, store, endpoint):
        """Test human-readable dumps before the PEM block are not embedded."""
        services.issuer.issue("alice")
        cert_path = store.cert_path("alice")
        cert_path.write_text("Certificate:\n    Data:\n        Version: 3 (0x2)\n" + cert_path.read_text())

        content = Path(services.bundles.build("alice", endpoint).path).read_text()

        assert "Version: 3" not in content
        assert BundleBuilder.parse_sections(content)["cert"].startswith("-----BEGIN CERTIFICATE-----")

    def test_not_issued(self, services, endpoint):
        """Test building for an identity without an Issued credential."""
        with pytest.raises(NotIssuedError):
            services.bundles.build("nobody", endpoint)

    def test_missing_tls_secret(self, services, endpoint, test_config):
        """Test a missing tunnel secret is a store problem, and nothing is written."""
        services.issuer.issue("alice")
        Path(test_config.paths.tls_auth_key).unlink()

        with pytest.raises(StoreUnavailableError, match="Tunnel secret"):
            services.bundles.build("alice", endpoint)

        assert not services.bundles.bundle_path("alice").exists()

    def test_remove(self, services, endpoint):
        """Test removing a bundle reports whether it existed."""
        services.issuer.issue("alice")
        services.bundles.build("alice", endpoint)

        assert services.bundles.remove("alice") is True
        assert services.bundles.remove("alice") is False

    def test_parse_sections_duplicate(self):
        """Test duplicate sections are rejected."""
        content = "<ca>\nA\n</ca>\n<ca>\nB\n</ca>\n"

        with pytest.raises(ValueError, match="Duplicate <ca>"):
            BundleBuilder.parse_sections(content)
