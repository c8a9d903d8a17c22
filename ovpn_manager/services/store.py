"""Authority store handle: paths, locking, snapshots and recovery."""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from cryptography import x509
from filelock import FileLock, Timeout

from ovpn_manager.exceptions import StoreUnavailableError
from ovpn_manager.models.config import StoreSettings
from ovpn_manager.services.index_service import IssuanceIndex, normalize_serial
from ovpn_manager.services.parser_service import CertificateParser
from ovpn_manager.utils.file_utils import FileUtils

logger = logging.getLogger("ovpn_manager")


@dataclass
class StoreCheckpoint:
    """Content and permission snapshot of the files a revocation may touch."""

    identity: str
    serial: str
    files: Dict[Path, Optional[Tuple[bytes, int]]] = field(default_factory=dict)


class AuthorityStore:
    """
    Explicit handle over an easy-rsa style PKI directory.

    Lifecycle is open -> operate -> close; the handle is also a context manager.
    Mutating operations run inside exclusive(), which holds a file lock next to
    the PKI directory. Reads go through load_index(), a single-read snapshot.
    """

    def __init__(self, pki_dir: Path, settings: Optional[StoreSettings] = None):
        """
        Initialize store handle.

        Args:
            pki_dir: PKI directory (easy-rsa layout)
            settings: Lock timeout / retry settings
        """
        self.pki_dir = Path(pki_dir)
        self.settings = settings or StoreSettings()
        self._open = False

    # --- lifecycle ---

    @property
    def is_initialized(self) -> bool:
        return self.ca_cert_path.exists() and self.ca_key_path.exists()

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self, require_initialized: bool = True) -> "AuthorityStore":
        """
        Open the store.

        Raises:
            StoreUnavailableError: If the PKI has not been initialized
        """
        if require_initialized and not self.is_initialized:
            raise StoreUnavailableError(None, f"No certificate authority found in {self.pki_dir}")
        self._open = True
        logger.debug(f"Opened authority store at {self.pki_dir}")
        return self

    def close(self) -> None:
        self._open = False

    def __enter__(self) -> "AuthorityStore":
        if not self._open:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> None:
        if not self._open:
            raise StoreUnavailableError(None, "Authority store handle is closed")

    # --- layout ---

    @property
    def lock_path(self) -> Path:
        return self.pki_dir.parent / f".{self.pki_dir.name}.lock"

    @property
    def ca_cert_path(self) -> Path:
        return self.pki_dir / "ca.crt"

    @property
    def ca_key_path(self) -> Path:
        return self.pki_dir / "private" / "ca.key"

    @property
    def index_path(self) -> Path:
        return self.pki_dir / "index.txt"

    @property
    def serial_path(self) -> Path:
        return self.pki_dir / "serial"

    @property
    def crlnumber_path(self) -> Path:
        return self.pki_dir / "crlnumber"

    @property
    def crl_path(self) -> Path:
        return self.pki_dir / "crl.pem"

    @property
    def trash_dir(self) -> Path:
        return self.pki_dir / "_orphaned"

    def cert_path(self, identity: str) -> Path:
        return self.pki_dir / "issued" / f"{identity}.crt"

    def key_path(self, identity: str) -> Path:
        return self.pki_dir / "private" / f"{identity}.key"

    def req_path(self, identity: str) -> Path:
        return self.pki_dir / "reqs" / f"{identity}.req"

    def cert_by_serial_path(self, serial: str) -> Path:
        return self.pki_dir / "certs_by_serial" / f"{normalize_serial(serial)}.pem"

    def revoked_paths(self, serial: str) -> List[Path]:
        """Archive locations of a revoked credential's cert, key and request."""
        serial = normalize_serial(serial)
        revoked = self.pki_dir / "revoked"
        return [
            revoked / "certs_by_serial" / f"{serial}.crt",
            revoked / "private_by_serial" / f"{serial}.key",
            revoked / "reqs_by_serial" / f"{serial}.req",
        ]

    def artifact_paths(self, identity: str) -> List[Path]:
        """Live key material locations for an identity."""
        return [self.cert_path(identity), self.key_path(identity), self.req_path(identity)]

    # --- locking ---

    @contextmanager
    def exclusive(self, identity: Optional[str] = None) -> Iterator["AuthorityStore"]:
        """
        Hold the store lock for a read-modify-write cycle.

        Acquisition is retried with exponential backoff; the lock is released
        on every exit path.

        Raises:
            StoreUnavailableError: If the lock cannot be acquired
        """
        self._require_open()
        FileUtils.ensure_directory(self.lock_path.parent)
        lock = FileLock(str(self.lock_path), timeout=self.settings.lock_timeout)

        retries = self.settings.lock_retries
        for attempt in range(retries):
            try:
                lock.acquire()
                break
            except Timeout:
                delay = self.settings.lock_backoff * (2**attempt)
                logger.warning(f"Authority store busy (attempt {attempt + 1}/{retries})")
                if attempt + 1 < retries:
                    time.sleep(delay)
        else:
            raise StoreUnavailableError(
                identity, f"Authority store is locked by another operation (gave up after {retries} attempts)"
            )

        try:
            yield self
        finally:
            lock.release()

    # --- reads ---

    def load_index(self) -> IssuanceIndex:
        """
        Snapshot-read the issuance index.

        Raises:
            StoreUnavailableError: If the index cannot be read or parsed
        """
        try:
            return IssuanceIndex.load(self.index_path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read issuance index {self.index_path}: {e}")
            raise StoreUnavailableError(None, f"Cannot read issuance index: {e}")

    def read_certificate(self, path: Path) -> x509.Certificate:
        """Load the PEM certificate stored at path (text dumps before the PEM block are ignored)."""
        return CertificateParser.load_certificate(path)

    # --- checkpoint / rollback ---

    def checkpoint(self, identity: str, serial: str) -> StoreCheckpoint:
        """Snapshot the index, CRL counters and the identity's artifacts."""
        watched = [
            self.index_path,
            self.crlnumber_path,
            self.crl_path,
            self.cert_by_serial_path(serial),
            *self.artifact_paths(identity),
            *self.revoked_paths(serial),
        ]
        checkpoint = StoreCheckpoint(identity=identity, serial=normalize_serial(serial))
        for path in watched:
            if path.exists():
                checkpoint.files[path] = (FileUtils.read_binary_file(path), path.stat().st_mode & 0o777)
            else:
                checkpoint.files[path] = None
        return checkpoint

    def rollback(self, checkpoint: StoreCheckpoint) -> None:
        """Restore every file captured by a checkpoint to its captured content and mode."""
        for path, saved in checkpoint.files.items():
            if saved is None:
                if path.exists():
                    path.unlink()
            else:
                content, mode = saved
                FileUtils.write_binary_file(path, content, mode=mode)
        logger.warning(f"Rolled back authority store changes for '{checkpoint.identity}'")

    # --- recovery ---

    def find_orphans(self, index: Optional[IssuanceIndex] = None) -> List[Path]:
        """
        Find key material the index does not reflect as Issued.

        A certificate, key or request is orphaned when its identity has no Issued
        record, or when the certificate's serial differs from the Issued record.
        """
        index = index or self.load_index()
        orphans = []

        for cert_file in FileUtils.list_files(self.pki_dir / "issued", "*.crt"):
            record = index.current(cert_file.stem)
            if record is None:
                orphans.append(cert_file)
                continue
            try:
                serial = normalize_serial(self.read_certificate(cert_file).serial_number)
            except ValueError:
                orphans.append(cert_file)
                continue
            if serial != record.serial:
                orphans.append(cert_file)

        for pattern, folder in (("*.key", "private"), ("*.req", "reqs")):
            for path in FileUtils.list_files(self.pki_dir / folder, pattern):
                if path.stem == "ca":
                    continue
                if index.current(path.stem) is None:
                    orphans.append(path)

        return orphans

    def quarantine(self, paths: List[Path]) -> List[Path]:
        """Move paths into the store trash; returns their new locations."""
        moved = []
        for path in paths:
            if path.exists():
                moved.append(FileUtils.move_to_trash(path, self.trash_dir))
        return moved

    def quarantine_orphans(self, identity: Optional[str] = None) -> List[Path]:
        """Quarantine all orphans, or only those belonging to one identity."""
        orphans = self.find_orphans()
        if identity is not None:
            orphans = [p for p in orphans if p.stem == identity]
        if orphans:
            logger.warning(f"Quarantining {len(orphans)} orphaned artifact(s)")
        return self.quarantine(orphans)
