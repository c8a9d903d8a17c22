"""Certificate parsing service."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID

from ovpn_manager.utils.file_utils import FileUtils

logger = logging.getLogger("ovpn_manager")

PEM_BLOCK_PATTERN = r"-----BEGIN {label}-----(?:.|\n)+?-----END {label}-----"


class CertificateParser:
    """Service for parsing X.509 material written by the PKI toolkit."""

    @staticmethod
    def split_pem_blocks(text: str, label: str = "CERTIFICATE") -> List[str]:
        """
        Extract all PEM blocks with the given label.

        easy-rsa writes a human-readable text dump in front of issued
        certificates; only the PEM blocks are returned.

        Args:
            text: File content possibly containing text and PEM blocks
            label: PEM label, e.g. "CERTIFICATE" or "PRIVATE KEY"

        Returns:
            List of PEM blocks without trailing newline
        """
        return re.findall(PEM_BLOCK_PATTERN.format(label=re.escape(label)), text.replace("\r\n", "\n"))

    @staticmethod
    def first_pem_block(text: str, labels: tuple) -> str:
        """
        Return the first PEM block matching any of the labels.

        Raises:
            ValueError: If no block is found
        """
        for label in labels:
            blocks = CertificateParser.split_pem_blocks(text, label)
            if blocks:
                return blocks[0]
        raise ValueError(f"No PEM block found (expected one of: {', '.join(labels)})")

    @staticmethod
    def load_certificate(cert_path: Path) -> x509.Certificate:
        """
        Load a certificate from file.

        Raises:
            FileNotFoundError: If certificate file not found
            ValueError: If no valid certificate is present
        """
        if not cert_path.exists():
            raise FileNotFoundError(f"Certificate not found: {cert_path}")
        block = CertificateParser.first_pem_block(FileUtils.read_file(cert_path), ("CERTIFICATE",))
        return x509.load_pem_x509_certificate(block.encode("utf-8"))

    @staticmethod
    def common_name(cert: x509.Certificate) -> str:
        attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return str(attributes[0].value) if attributes else ""

    @staticmethod
    def parse_certificate(cert_path: Path) -> Dict[str, Any]:
        """
        Parse X.509 certificate and extract the fields the registry reports.

        Args:
            cert_path: Path to certificate file

        Returns:
            Dictionary with subject, common_name, serial_number, not_before,
            not_after and fingerprint_sha256

        Raises:
            FileNotFoundError: If certificate file not found
            ValueError: If certificate cannot be parsed
        """
        try:
            cert = CertificateParser.load_certificate(cert_path)
        except FileNotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error parsing certificate {cert_path}: {e}")
            raise ValueError(f"Failed to parse certificate: {e}")

        fingerprint = cert.fingerprint(hashes.SHA256()).hex().upper()
        return {
            "subject": cert.subject.rfc4514_string(),
            "common_name": CertificateParser.common_name(cert),
            "serial_number": format(cert.serial_number, "X"),
            "not_before": CertificateParser._utc(cert, "not_valid_before"),
            "not_after": CertificateParser._utc(cert, "not_valid_after"),
            "fingerprint_sha256": ":".join(fingerprint[i : i + 2] for i in range(0, len(fingerprint), 2)),
        }

    @staticmethod
    def _utc(cert: x509.Certificate, attribute: str) -> datetime:
        # cryptography >= 42 exposes timezone-aware *_utc properties
        value = getattr(cert, f"{attribute}_utc", None)
        if value is None:
            value = getattr(cert, attribute).replace(tzinfo=timezone.utc)
        return value
