"""Certificate authority setup and status service."""

import logging
from pathlib import Path

from ovpn_manager.exceptions import ConflictError
from ovpn_manager.models.authority import AuthorityStatus
from ovpn_manager.models.config import ServerSettings
from ovpn_manager.services.crl_service import RevocationManager
from ovpn_manager.services.parser_service import CertificateParser
from ovpn_manager.services.registry import Registry
from ovpn_manager.services.store import AuthorityStore
from ovpn_manager.services.toolkit import PKIToolkit

logger = logging.getLogger("ovpn_manager")


class AuthorityService:
    """Service for creating the VPN certificate authority and reporting on it."""

    def __init__(
        self,
        store: AuthorityStore,
        toolkit: PKIToolkit,
        revocations: RevocationManager,
        server: ServerSettings,
        tls_auth_key: Path,
    ):
        """
        Initialize authority service.

        Args:
            store: Authority store (opened without requiring an existing CA)
            toolkit: PKI toolkit
            revocations: Used to publish the initial CRL and report on it
            server: Server identity settings
            tls_auth_key: Location of the shared tls-auth secret
        """
        self.store = store
        self.toolkit = toolkit
        self.revocations = revocations
        self.server = server
        self.tls_auth_key = Path(tls_auth_key)

    def initialize(self) -> AuthorityStatus:
        """
        Create the PKI, the CA, the server certificate, the tls-auth secret and an empty CRL.

        An existing tls-auth secret is kept, since deployed clients embed it.

        Returns:
            Status of the new authority

        Raises:
            ConflictError: If a CA already exists
            ToolFailureError: If the toolkit fails
        """
        with self.store.exclusive():
            if self.store.is_initialized:
                raise ConflictError(None, f"Certificate authority already exists in {self.store.pki_dir}")

            logger.info(f"Initializing certificate authority in {self.store.pki_dir}")
            self.toolkit.init_pki()
            self.toolkit.build_ca()
            self.toolkit.build_server_cert(self.server.name)

            if self.tls_auth_key.exists():
                logger.info(f"Keeping existing tls-auth secret {self.tls_auth_key}")
            else:
                self.toolkit.gen_tls_secret(self.tls_auth_key)
                logger.info(f"Generated tls-auth secret {self.tls_auth_key}")

            self.toolkit.gen_crl()
            self.revocations.publish_crl()

        logger.info(f"Certificate authority '{self.toolkit.ca_common_name}' ready")
        return self.status()

    def status(self) -> AuthorityStatus:
        """Summarize the authority without taking the store lock."""
        if not self.store.is_initialized:
            return AuthorityStatus(
                initialized=False, pki_dir=str(self.store.pki_dir), server_name=self.server.name
            )

        ca_info = CertificateParser.parse_certificate(self.store.ca_cert_path)
        index = self.store.load_index()
        crl = self.revocations.crl_info() if self.store.crl_path.exists() else None

        return AuthorityStatus(
            initialized=True,
            pki_dir=str(self.store.pki_dir),
            ca_subject=ca_info["subject"],
            ca_expires_at=ca_info["not_after"],
            server_name=self.server.name,
            issued_count=len(Registry(self.store, excluded=[self.server.name]).list()),
            revoked_count=len(index.revoked()),
            crl=crl,
        )
