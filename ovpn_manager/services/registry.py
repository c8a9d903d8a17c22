"""Read-only registry of issued client credentials."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID

from ovpn_manager.exceptions import NotIssuedError
from ovpn_manager.models.client import ClientCredential, IndexRecord
from ovpn_manager.models.crl import RevocationRecord, reason_from_index
from ovpn_manager.services.parser_service import CertificateParser
from ovpn_manager.services.store import AuthorityStore

logger = logging.getLogger("ovpn_manager")


class Registry:
    """
    View over the issuance index.

    Every call takes a fresh snapshot of index.txt and never acquires the
    store lock, so it observes either the state before or after a mutation.
    """

    def __init__(self, store: AuthorityStore, excluded: Iterable[str] = (), bundle_dir: Optional[Path] = None):
        """
        Initialize registry.

        Args:
            store: Authority store to read
            excluded: Identities that are not clients (the configured server name)
            bundle_dir: Distribution directory, used to report bundle paths
        """
        self.store = store
        self.excluded = set(excluded)
        self.bundle_dir = Path(bundle_dir) if bundle_dir else None

    def list(self) -> List[str]:
        """Identities with an Issued record, excluding server certificates, sorted."""
        index = self.store.load_index()
        identities = {
            record.identity for record in index.issued() if record.identity and not self.is_server(record.identity)
        }
        return sorted(identities)

    def get(self, identity: str) -> ClientCredential:
        """
        Details of the Issued credential for identity.

        Raises:
            NotIssuedError: If identity has no Issued record
        """
        record = self.store.load_index().current(identity)
        if record is None or self.is_server(identity):
            raise NotIssuedError(identity, "No Issued credential")
        return self.describe(record)

    def is_server(self, identity: str) -> bool:
        """
        Whether identity names a server certificate rather than a client.

        Besides the configured server name, any certificate carrying the
        serverAuth extended key usage counts, so a server renamed after init
        is still not listed as a client.
        """
        if identity in self.excluded:
            return True
        try:
            cert = self.store.read_certificate(self.store.cert_path(identity))
            usages = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        except (FileNotFoundError, ValueError, x509.ExtensionNotFound):
            return False
        return ExtendedKeyUsageOID.SERVER_AUTH in usages

    def describe(self, record: IndexRecord) -> ClientCredential:
        identity = record.identity
        cert_path = self.store.cert_path(identity)
        issued_at = None
        fingerprint = None
        try:
            info = CertificateParser.parse_certificate(cert_path)
            issued_at = info["not_before"]
            fingerprint = info["fingerprint_sha256"]
        except (FileNotFoundError, ValueError) as e:
            logger.warning(f"Certificate for '{identity}' could not be read: {e}")

        bundle_path = None
        if self.bundle_dir is not None:
            candidate = self.bundle_dir / identity / f"{identity}.ovpn"
            if candidate.exists():
                bundle_path = str(candidate)

        return ClientCredential(
            identity=identity,
            serial=record.serial,
            status=record.status,
            subject=record.subject,
            issued_at=issued_at,
            expires_at=record.expires_at,
            cert_path=str(cert_path),
            key_path=str(self.store.key_path(identity)),
            fingerprint_sha256=fingerprint,
            bundle_path=bundle_path,
        )

    def revoked(self) -> List[RevocationRecord]:
        """Every revocation in the index, in ledger order."""
        return [
            RevocationRecord(
                identity=record.identity,
                serial=record.serial,
                revoked_at=record.revoked_at,
                reason=reason_from_index(record.revocation_reason),
            )
            for record in self.store.load_index().revoked()
        ]
