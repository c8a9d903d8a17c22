"""Wiring of the lifecycle services around one authority store."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ovpn_manager.exceptions import ConflictError, CredentialError
from ovpn_manager.models.bundle import CertificateBundle
from ovpn_manager.models.config import AppConfig
from ovpn_manager.services.bundle_service import BundleBuilder
from ovpn_manager.services.ca_service import AuthorityService
from ovpn_manager.services.crl_service import RevocationManager
from ovpn_manager.services.daemon_service import DaemonController
from ovpn_manager.services.endpoint_service import EndpointResolver
from ovpn_manager.services.issuer import CredentialIssuer
from ovpn_manager.services.registry import Registry
from ovpn_manager.services.store import AuthorityStore
from ovpn_manager.services.toolkit import PKIToolkit, create_toolkit
from ovpn_manager.utils.validators import validate_identity

logger = logging.getLogger("ovpn_manager")


@dataclass
class ServiceContainer:
    """All services operating on one authority store."""

    config: AppConfig
    store: AuthorityStore
    toolkit: PKIToolkit
    daemon: DaemonController
    endpoints: EndpointResolver
    bundles: BundleBuilder
    revocations: RevocationManager
    registry: Registry
    issuer: CredentialIssuer
    authority: AuthorityService

    def provision(self, identity: str, replace: bool = False) -> CertificateBundle:
        """
        Issue a credential and write its bundle.

        The endpoint is resolved before anything is issued, so a resolution
        failure leaves the store untouched. When a credential is replaced the
        daemon is reloaded only after the new bundle is written, and a failed
        reload is logged rather than raised.

        Raises:
            ValueError: If the identity is malformed or reserved
            ConflictError: If identity is already issued and replace is False
            ResolutionError: If the public endpoint cannot be determined
            StoreUnavailableError, ToolFailureError: From the issuer or the bundle builder
        """
        validate_identity(identity, reserved=[self.config.server.name])
        conflict = self.issuer.has_conflict(identity)
        if conflict and not replace:
            raise ConflictError(identity, "Credential already issued; use replace to re-issue")

        endpoint = self.endpoints.resolve(identity)
        self.issuer.issue(identity, replace=replace, reload_daemon=False)
        try:
            return self.bundles.build(identity, endpoint)
        except CredentialError as e:
            raise e.with_hint(f"the credential is issued, run 'ovpn-clients bundle {identity}' to write its profile")
        finally:
            if conflict:
                self._notify_daemon(identity)

    def _notify_daemon(self, identity: str) -> None:
        # The superseded serial is on the CRL; the daemon picks it up on reload.
        try:
            self.daemon.reload(identity)
        except CredentialError as e:
            logger.error(f"Re-issued '{identity}' but the daemon did not reload, reload it manually: {e}")

    def rebuild_bundle(self, identity: str) -> CertificateBundle:
        """Regenerate the bundle of an Issued credential."""
        validate_identity(identity, reserved=[self.config.server.name])
        # NotIssued before touching the network
        self.registry.get(identity)
        endpoint = self.endpoints.resolve(identity)
        return self.bundles.build(identity, endpoint)


def build_services(
    config: AppConfig,
    require_initialized: bool = True,
    toolkit: Optional[PKIToolkit] = None,
    endpoints: Optional[EndpointResolver] = None,
) -> ServiceContainer:
    """
    Open the authority store and build every service over it.

    Args:
        config: Application configuration
        require_initialized: Fail with StoreUnavailableError if no CA exists yet
        toolkit: Toolkit override (defaults to pki.backend)
        endpoints: Endpoint resolver override

    Returns:
        Service container
    """
    store = AuthorityStore(Path(config.paths.pki), config.store).open(require_initialized=require_initialized)
    toolkit = toolkit or create_toolkit(config, store)
    protected = [config.server.name]
    client_configs = Path(config.paths.client_configs)

    daemon = DaemonController(config.daemon)
    bundles = BundleBuilder(store, client_configs, Path(config.paths.tls_auth_key), config.client)
    revocations = RevocationManager(
        store,
        toolkit,
        bundles,
        daemon,
        publish_path=Path(config.paths.crl_publish) if config.paths.crl_publish else None,
        protected=protected,
    )
    registry = Registry(store, excluded=protected, bundle_dir=client_configs)
    issuer = CredentialIssuer(store, toolkit, revocations, registry, protected=protected)
    authority = AuthorityService(store, toolkit, revocations, config.server, Path(config.paths.tls_auth_key))

    return ServiceContainer(
        config=config,
        store=store,
        toolkit=toolkit,
        daemon=daemon,
        endpoints=endpoints or EndpointResolver(config.network),
        bundles=bundles,
        revocations=revocations,
        registry=registry,
        issuer=issuer,
        authority=authority,
    )
