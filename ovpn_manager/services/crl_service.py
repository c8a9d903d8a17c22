"""Revocation and CRL management service."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from cryptography import x509

from ovpn_manager.exceptions import NotIssuedError, StoreUnavailableError, ToolFailureError
from ovpn_manager.models.client import CredentialStatus
from ovpn_manager.models.crl import CRLInfo, RevocationReason, RevocationRecord
from ovpn_manager.services.bundle_service import BundleBuilder
from ovpn_manager.services.daemon_service import DaemonController
from ovpn_manager.services.index_service import normalize_serial
from ovpn_manager.services.store import AuthorityStore
from ovpn_manager.services.toolkit import PKIToolkit
from ovpn_manager.utils.file_utils import FileUtils
from ovpn_manager.utils.validators import validate_identity

logger = logging.getLogger("ovpn_manager")


class RevocationManager:
    """Service for revoking client credentials and keeping the CRL current."""

    def __init__(
        self,
        store: AuthorityStore,
        toolkit: PKIToolkit,
        bundles: BundleBuilder,
        daemon: DaemonController,
        publish_path: Optional[Path] = None,
        protected: Iterable[str] = (),
    ):
        """
        Initialize revocation manager.

        Args:
            store: Authority store
            toolkit: PKI toolkit performing revoke / gen-crl
            bundles: Bundle builder, used to withdraw distributed profiles
            daemon: Daemon controller used to reload the CRL
            publish_path: Where the daemon reads the CRL from (None: read in place)
            protected: Identities that cannot be revoked here (the server)
        """
        self.store = store
        self.toolkit = toolkit
        self.bundles = bundles
        self.daemon = daemon
        self.publish_path = Path(publish_path) if publish_path else None
        self.protected = set(protected)

    def revoke(self, identity: str, reason: RevocationReason = RevocationReason.UNSPECIFIED) -> RevocationRecord:
        """
        Revoke the Issued credential of identity.

        Marks the index record Revoked, regenerates and publishes the CRL,
        removes the distributed profile and reloads the daemon.

        Args:
            identity: Client identity
            reason: Revocation reason

        Returns:
            The new revocation record

        Raises:
            NotIssuedError: If identity has no Issued credential (including a second revoke)
            StoreUnavailableError: If the store lock cannot be acquired
            ToolFailureError: If the toolkit or the daemon reload failed
        """
        validate_identity(identity, reserved=self.protected)
        with self.store.exclusive(identity):
            record = self.revoke_locked(identity, reason)
        self.daemon.reload(identity)
        return record

    def revoke_locked(self, identity: str, reason: RevocationReason) -> RevocationRecord:
        """
        Revoke while the caller already holds the store lock.

        Revocation, CRL regeneration and CRL publication form one unit: if any
        of them fails, the index, CRL and key material are restored.
        """
        current = self.store.load_index().current(identity)
        if current is None:
            raise NotIssuedError(identity, "Credential is not currently issued")

        checkpoint = self.store.checkpoint(identity, current.serial)
        try:
            self.toolkit.revoke(identity, reason)
            self.toolkit.gen_crl()
            revoked = self.store.load_index().by_serial(current.serial)
            if revoked is None or revoked.status != CredentialStatus.REVOKED:
                raise ToolFailureError(identity, "Toolkit did not record the revocation in the index")
            self.publish_crl(identity)
        except Exception as e:
            logger.error(f"Failed to revoke '{identity}': {e}")
            self.store.rollback(checkpoint)
            raise

        if self.bundles.remove(identity):
            logger.info(f"Removed client configuration for '{identity}'")

        logger.info(f"Revoked credential for '{identity}' (Serial: {current.serial}, reason: {reason.value})")
        return RevocationRecord(
            identity=identity,
            serial=current.serial,
            revoked_at=revoked.revoked_at or datetime.now(timezone.utc),
            reason=reason,
        )

    def publish_crl(self, identity: Optional[str] = None) -> None:
        """
        Copy crl.pem to the location the daemon reads.

        Raises:
            ToolFailureError: If the CRL is missing or cannot be copied
        """
        if self.publish_path is None:
            return
        if not self.store.crl_path.exists():
            raise ToolFailureError(identity, f"CRL not found: {self.store.crl_path}")
        try:
            FileUtils.copy_file(self.store.crl_path, self.publish_path, mode=0o644)
        except OSError as e:
            raise ToolFailureError(identity, f"Could not publish CRL to {self.publish_path}", str(e))
        logger.info(f"Published CRL to {self.publish_path}")

    def regenerate_crl(self) -> CRLInfo:
        """
        Re-sign the CRL from the current index, publish it and reload the daemon.

        Used to refresh the CRL before its next-update time passes.
        """
        with self.store.exclusive():
            self.toolkit.gen_crl()
            self.publish_crl()
        self.daemon.reload()
        return self.crl_info()

    def crl_info(self) -> CRLInfo:
        """
        Summary of the current CRL.

        Raises:
            StoreUnavailableError: If no CRL has been generated or it cannot be parsed
        """
        path = self.store.crl_path
        if not path.exists():
            raise StoreUnavailableError(None, f"CRL not found: {path}")
        try:
            crl = x509.load_pem_x509_crl(FileUtils.read_binary_file(path))
        except ValueError as e:
            raise StoreUnavailableError(None, f"CRL at {path} is malformed: {e}")

        try:
            crl_number = crl.extensions.get_extension_for_class(x509.CRLNumber).value.crl_number
        except x509.ExtensionNotFound:
            crl_number = 0

        last_update = getattr(crl, "last_update_utc", None) or crl.last_update.replace(tzinfo=timezone.utc)
        next_update = getattr(crl, "next_update_utc", None)
        if next_update is None and crl.next_update is not None:
            next_update = crl.next_update.replace(tzinfo=timezone.utc)

        return CRLInfo(
            crl_number=crl_number,
            revoked_count=len(list(crl)),
            last_update=last_update,
            next_update=next_update,
            path=str(path),
        )

    def revoked_serials(self) -> set:
        """Serial numbers (normalized hex) listed in the current CRL."""
        if not self.store.crl_path.exists():
            return set()
        crl = x509.load_pem_x509_crl(FileUtils.read_binary_file(self.store.crl_path))
        return {normalize_serial(entry.serial_number) for entry in crl}
