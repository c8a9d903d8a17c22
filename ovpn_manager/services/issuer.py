"""Client credential issuance service."""

import logging
from typing import Iterable

from ovpn_manager.exceptions import ConflictError, CredentialError, ToolFailureError
from ovpn_manager.models.client import ClientCredential
from ovpn_manager.models.crl import RevocationReason
from ovpn_manager.services.crl_service import RevocationManager
from ovpn_manager.services.registry import Registry
from ovpn_manager.services.store import AuthorityStore
from ovpn_manager.services.toolkit import PKIToolkit
from ovpn_manager.utils.validators import validate_identity

logger = logging.getLogger("ovpn_manager")


class CredentialIssuer:
    """Service for issuing client certificates."""

    def __init__(
        self,
        store: AuthorityStore,
        toolkit: PKIToolkit,
        revocations: RevocationManager,
        registry: Registry,
        protected: Iterable[str] = (),
    ):
        """
        Initialize issuer.

        Args:
            store: Authority store
            toolkit: PKI toolkit that signs the new certificate
            revocations: Used to retire the previous credential on replace
            registry: Used to describe the issued credential
            protected: Identities that cannot be issued as clients
        """
        self.store = store
        self.toolkit = toolkit
        self.revocations = revocations
        self.registry = registry
        self.protected = set(protected)

    def has_conflict(self, identity: str) -> bool:
        """Whether identity already holds an Issued credential."""
        return self.store.load_index().current(identity) is not None

    def issue(self, identity: str, replace: bool = False, reload_daemon: bool = True) -> ClientCredential:
        """
        Create a key pair and signed certificate for identity.

        With replace, an existing Issued credential is first revoked with
        reason "superseded" (its material is archived by serial, the CRL is
        regenerated and its bundle withdrawn) before the new one is signed.
        The daemon is then reloaded unless reload_daemon is False, in which
        case the caller owns that step.

        Args:
            identity: Client identity
            replace: Re-issue over an existing Issued credential
            reload_daemon: Reload the daemon after superseding a credential

        Returns:
            The newly issued credential

        Raises:
            ValueError: If the identity is malformed or reserved
            ConflictError: If an Issued credential exists and replace is False
            StoreUnavailableError: If the store lock cannot be acquired
            ToolFailureError: If the toolkit fails
        """
        validate_identity(identity, reserved=self.protected)
        superseded = False

        try:
            with self.store.exclusive(identity):
                existing = self.store.load_index().current(identity)
                if existing is not None:
                    if not replace:
                        raise ConflictError(
                            identity, f"Credential already issued (serial {existing.serial}); use replace to re-issue"
                        )
                    logger.warning(f"Superseding credential for '{identity}' (Serial: {existing.serial})")
                    self.revocations.revoke_locked(identity, RevocationReason.SUPERSEDED)
                    superseded = True

                self.store.quarantine_orphans(identity)
                try:
                    self.toolkit.build_client_cert(identity)
                except Exception as e:
                    logger.error(f"Failed to issue credential for '{identity}': {e}")
                    self.store.quarantine_orphans(identity)
                    raise

                record = self.store.load_index().current(identity)
                if record is None:
                    self.store.quarantine_orphans(identity)
                    raise ToolFailureError(identity, "Toolkit did not record the new certificate in the index")
        except Exception:
            if superseded:
                self._reload_after_failure(identity)
            raise

        if superseded and reload_daemon:
            self.revocations.daemon.reload(identity)

        logger.info(f"Issued credential for '{identity}' (Serial: {record.serial})")
        return self.registry.describe(record)

    def _reload_after_failure(self, identity: str) -> None:
        # The superseded credential is already on the CRL; the daemon must still see it.
        try:
            self.revocations.daemon.reload(identity)
        except CredentialError as e:
            logger.error(f"Daemon reload after failed re-issue of '{identity}' also failed: {e}")
