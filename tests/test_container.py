"""Tests for provisioning a credential together with its bundle."""

from pathlib import Path

import pytest

from ovpn_manager.exceptions import StoreUnavailableError, ToolFailureError
from ovpn_manager.services.bundle_service import BundleBuilder


@pytest.mark.integration
class TestProvision:
    """Test issue-then-bundle as run by the CLI and the API."""

    def test_provision_writes_bundle(self, services):
        bundle = services.provision("alice")

        assert Path(bundle.path).exists()
        assert bundle.endpoint.host == "vpn.example.com"
        assert services.registry.get("alice").bundle_path == bundle.path

    def test_fresh_issue_does_not_reload(self, services, monkeypatch):
        calls = []
        monkeypatch.setattr(services.daemon, "reload", lambda identity=None: calls.append(identity))

        services.provision("alice")

        assert calls == []

    def test_replace_reloads_after_bundle(self, services, issued_alice, monkeypatch):
        """Test the daemon is reloaded once the new profile is on disk."""
        seen = []

        def recording_reload(identity=None):
            seen.append(Path(services.bundles.bundle_path(identity)).exists())
            return "reload"

        monkeypatch.setattr(services.daemon, "reload", recording_reload)

        bundle = services.provision("alice", replace=True)

        assert seen == [True]
        assert bundle.serial != issued_alice.serial

    def test_replace_survives_reload_failure(self, services, issued_alice, monkeypatch):
        """Test a daemon that cannot reload does not strand the new credential without a bundle."""

        def failing_reload(identity=None):
            raise ToolFailureError(identity, "openvpn@server could not be reloaded")

        monkeypatch.setattr(services.daemon, "reload", failing_reload)

        bundle = services.provision("alice", replace=True)

        assert services.registry.list() == ["alice"]
        assert Path(bundle.path).exists()
        assert len(BundleBuilder.parse_sections(Path(bundle.path).read_text())) == 4
        assert services.registry.get("alice").serial == bundle.serial
        assert issued_alice.serial in services.revocations.revoked_serials()

    def test_bundle_failure_points_to_rebuild(self, services, test_config):
        """Test a missing tunnel secret leaves the credential issued and says how to finish."""
        secret = Path(test_config.paths.tls_auth_key)
        saved = secret.read_bytes()
        secret.unlink()

        with pytest.raises(StoreUnavailableError, match="ovpn-clients bundle alice") as exc_info:
            services.provision("alice")

        assert "Tunnel secret not found" in exc_info.value.to_dict()["message"]
        assert services.registry.list() == ["alice"]

        secret.write_bytes(saved)
        bundle = services.rebuild_bundle("alice")
        assert Path(bundle.path).exists()
