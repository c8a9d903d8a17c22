"""In-process PKI toolkit writing the easy-rsa directory layout."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ovpn_manager.exceptions import ToolFailureError
from ovpn_manager.models.client import CredentialStatus, IndexRecord
from ovpn_manager.models.crl import REVOCATION_REASON_CODES, RevocationReason, reason_from_index
from ovpn_manager.services.index_service import IssuanceIndex, normalize_serial
from ovpn_manager.services.toolkit import PKIToolkit
from ovpn_manager.utils.file_utils import FileUtils

logger = logging.getLogger("ovpn_manager")

CRL_REASON_FLAGS = {
    RevocationReason.KEY_COMPROMISE: x509.ReasonFlags.key_compromise,
    RevocationReason.CA_COMPROMISE: x509.ReasonFlags.ca_compromise,
    RevocationReason.AFFILIATION_CHANGED: x509.ReasonFlags.affiliation_changed,
    RevocationReason.SUPERSEDED: x509.ReasonFlags.superseded,
    RevocationReason.CESSATION_OF_OPERATION: x509.ReasonFlags.cessation_of_operation,
    RevocationReason.CERTIFICATE_HOLD: x509.ReasonFlags.certificate_hold,
    RevocationReason.PRIVILEGE_WITHDRAWN: x509.ReasonFlags.privilege_withdrawn,
}

STORE_DIRECTORIES = (
    "private",
    "reqs",
    "issued",
    "certs_by_serial",
    "revoked/certs_by_serial",
    "revoked/private_by_serial",
    "revoked/reqs_by_serial",
)


class NativeToolkit(PKIToolkit):
    """
    Toolkit implemented with the cryptography library.

    Produces the same files easy-rsa would (index.txt, serial, crlnumber,
    issued/, private/, reqs/, certs_by_serial/, revoked/, crl.pem) so a store
    created here can later be driven by easyrsa and vice versa.
    """

    # --- helpers ---

    def _write_key(self, path: Path, key: rsa.RSAPrivateKey) -> None:
        pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        FileUtils.write_binary_file(path, pem, mode=0o600)

    def _write_pem(self, path: Path, obj) -> None:
        FileUtils.write_binary_file(path, obj.public_bytes(serialization.Encoding.PEM), mode=0o600)

    def _load_ca(self):
        try:
            ca_cert = self.store.read_certificate(self.store.ca_cert_path)
            ca_key = serialization.load_pem_private_key(
                FileUtils.read_binary_file(self.store.ca_key_path), password=None
            )
        except (OSError, ValueError, TypeError) as e:
            raise ToolFailureError(None, "Cannot load certificate authority", str(e))
        return ca_cert, ca_key

    def _next_serial(self) -> str:
        """Return the next serial and advance the counter."""
        path = self.store.serial_path
        current = 1
        if path.exists():
            text = FileUtils.read_file(path).strip()
            current = int(text, 16) if text else 1
        FileUtils.write_file(path, f"{normalize_serial(current + 1)}\n", mode=0o600)
        return normalize_serial(current)

    def _next_crl_number(self) -> int:
        path = self.store.crlnumber_path
        current = 1
        if path.exists():
            text = FileUtils.read_file(path).strip()
            current = int(text, 16) if text else 1
        FileUtils.write_file(path, f"{normalize_serial(current + 1)}\n", mode=0o600)
        return current

    def _generate_key(self) -> rsa.RSAPrivateKey:
        return rsa.generate_private_key(public_exponent=65537, key_size=self.settings.key_size)

    # --- operations ---

    def init_pki(self) -> None:
        pki = self.store.pki_dir
        FileUtils.ensure_directory(pki, mode=0o700)
        for sub in STORE_DIRECTORIES:
            FileUtils.ensure_directory(pki / sub, mode=0o700)
        if not self.store.index_path.exists():
            FileUtils.write_file(self.store.index_path, "", mode=0o600)
        FileUtils.write_file(pki / "index.txt.attr", "unique_subject = no\n", mode=0o600)
        if not self.store.serial_path.exists():
            FileUtils.write_file(self.store.serial_path, "01\n", mode=0o600)
        if not self.store.crlnumber_path.exists():
            FileUtils.write_file(self.store.crlnumber_path, "01\n", mode=0o600)
        logger.info(f"Initialized PKI directory {pki}")

    def build_ca(self) -> None:
        if self.store.ca_key_path.exists():
            raise ToolFailureError(None, "CA key already exists", str(self.store.ca_key_path))

        key = self._generate_key()
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, self.ca_common_name)])
        now = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=self.settings.ca_days))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=False,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            .sign(private_key=key, algorithm=hashes.SHA256())
        )

        self._write_key(self.store.ca_key_path, key)
        FileUtils.write_binary_file(self.store.ca_cert_path, cert.public_bytes(serialization.Encoding.PEM), mode=0o644)
        logger.info(f"Created certificate authority '{self.ca_common_name}'")

    def _build_cert(self, name: str, server: bool) -> None:
        index = IssuanceIndex.load(self.store.index_path)
        if index.current(name) is not None:
            raise ToolFailureError(name, "An Issued certificate already exists for this name")
        for path in self.store.artifact_paths(name):
            if path.exists():
                raise ToolFailureError(name, f"File already exists: {path}")

        ca_cert, ca_key = self._load_ca()
        key = self._generate_key()
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)])

        # Key and request first: a crash from here on leaves orphans, never index entries
        self._write_key(self.store.key_path(name), key)
        csr = x509.CertificateSigningRequestBuilder().subject_name(subject).sign(key, hashes.SHA256())
        self._write_pem(self.store.req_path(name), csr)

        serial = self._next_serial()
        now = datetime.now(timezone.utc)
        expires = now + timedelta(days=self.settings.cert_days)
        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(ca_cert.subject)
            .public_key(csr.public_key())
            .serial_number(int(serial, 16))
            .not_valid_before(now)
            .not_valid_after(expires)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=False)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(csr.public_key()), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
                critical=False,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=server,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=False,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH if server else ExtendedKeyUsageOID.CLIENT_AUTH]),
                critical=False,
            )
        )
        if server:
            builder = builder.add_extension(x509.SubjectAlternativeName([x509.DNSName(name)]), critical=False)
        cert = builder.sign(private_key=ca_key, algorithm=hashes.SHA256())

        self._write_pem(self.store.cert_path(name), cert)
        self._write_pem(self.store.cert_by_serial_path(serial), cert)

        index.append(
            IndexRecord(
                status=CredentialStatus.ISSUED,
                expires_at=expires,
                serial=serial,
                subject=f"/CN={name}",
            )
        )
        index.save(self.store.index_path)
        logger.info(f"Signed {'server' if server else 'client'} certificate for '{name}' (Serial: {serial})")

    def build_server_cert(self, name: str) -> None:
        self._build_cert(name, server=True)

    def build_client_cert(self, name: str) -> None:
        self._build_cert(name, server=False)

    def revoke(self, name: str, reason: RevocationReason = RevocationReason.UNSPECIFIED) -> None:
        index = IssuanceIndex.load(self.store.index_path)
        record = index.current(name)
        if record is None:
            raise ToolFailureError(name, "Unable to revoke as no certificate was found")

        # Archive the credential's files by serial, as easy-rsa does
        archive = self.store.revoked_paths(record.serial)
        for live, archived in zip(self.store.artifact_paths(name), archive):
            if live.exists():
                FileUtils.ensure_directory(archived.parent, mode=0o700)
                live.replace(archived)
        by_serial = self.store.cert_by_serial_path(record.serial)
        if by_serial.exists():
            by_serial.unlink()

        index.mark_revoked(record.serial, datetime.now(timezone.utc), REVOCATION_REASON_CODES[reason])
        index.save(self.store.index_path)
        logger.info(f"Revoked certificate for '{name}' (Serial: {record.serial}, reason: {reason.value})")

    def gen_crl(self) -> None:
        ca_cert, ca_key = self._load_ca()
        index = IssuanceIndex.load(self.store.index_path)
        now = datetime.now(timezone.utc)

        builder = (
            x509.CertificateRevocationListBuilder()
            .issuer_name(ca_cert.subject)
            .last_update(now)
            .next_update(now + timedelta(days=self.settings.crl_days))
            .add_extension(x509.CRLNumber(self._next_crl_number()), critical=False)
        )
        for record in index.revoked():
            revoked = (
                x509.RevokedCertificateBuilder()
                .serial_number(int(record.serial, 16))
                .revocation_date(record.revoked_at or now)
            )
            flag = CRL_REASON_FLAGS.get(reason_from_index(record.revocation_reason))
            if flag is not None:
                revoked = revoked.add_extension(x509.CRLReason(flag), critical=False)
            builder = builder.add_revoked_certificate(revoked.build())

        crl = builder.sign(private_key=ca_key, algorithm=hashes.SHA256())
        FileUtils.write_binary_file(self.store.crl_path, crl.public_bytes(serialization.Encoding.PEM), mode=0o644)
        logger.info(f"Generated CRL with {len(index.revoked())} revoked certificate(s)")

    def gen_tls_secret(self, path: Path) -> None:
        key_hex = secrets.token_hex(256)
        lines = [key_hex[i : i + 32] for i in range(0, len(key_hex), 32)]
        content = (
            "#\n# 2048 bit OpenVPN static key\n#\n"
            "-----BEGIN OpenVPN Static key V1-----\n" + "\n".join(lines) + "\n-----END OpenVPN Static key V1-----\n"
        )
        FileUtils.write_private_file(path, content)
        logger.info(f"Generated tls-auth key {path}")
