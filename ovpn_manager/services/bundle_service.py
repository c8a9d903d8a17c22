"""Client connection profile (bundle) service."""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict

from jinja2 import Environment, FileSystemLoader

from ovpn_manager.exceptions import NotIssuedError, StoreUnavailableError
from ovpn_manager.models.bundle import CertificateBundle, Endpoint
from ovpn_manager.models.config import ClientProfileSettings
from ovpn_manager.services.index_service import normalize_serial
from ovpn_manager.services.parser_service import CertificateParser
from ovpn_manager.services.store import AuthorityStore
from ovpn_manager.utils.file_utils import FileUtils
from ovpn_manager.utils.validators import validate_identity

logger = logging.getLogger("ovpn_manager")

TEMPLATE_NAME = "client.ovpn.j2"
KEY_LABELS = ("PRIVATE KEY", "RSA PRIVATE KEY", "EC PRIVATE KEY")
STATIC_KEY_LABEL = "OpenVPN Static key V1"
SECTION_PATTERN = re.compile(r"^<(ca|cert|key|tls-auth)>\n(.*?)\n</\1>$", re.DOTALL | re.MULTILINE)


class BundleBuilder:
    """Assembles self-contained .ovpn profiles for Issued credentials."""

    def __init__(
        self,
        store: AuthorityStore,
        output_dir: Path,
        tls_auth_key: Path,
        client_settings: ClientProfileSettings,
    ):
        """
        Initialize bundle builder.

        Args:
            store: Authority store to read credentials from
            output_dir: Distribution directory, one sub-directory per client
            tls_auth_key: Shared tunnel-integrity secret (ta.key)
            client_settings: Directives written into each profile
        """
        self.store = store
        self.output_dir = Path(output_dir)
        self.tls_auth_key = Path(tls_auth_key)
        self.client_settings = client_settings

        template_dir = Path(__file__).parent.parent / "templates"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def bundle_dir(self, identity: str) -> Path:
        return self.output_dir / identity

    def bundle_path(self, identity: str) -> Path:
        return self.bundle_dir(identity) / f"{identity}.ovpn"

    def _read_block(self, identity: str, path: Path, labels: tuple, what: str) -> str:
        if not path.exists():
            raise StoreUnavailableError(identity, f"{what} not found: {path}")
        try:
            return CertificateParser.first_pem_block(FileUtils.read_file(path), labels)
        except ValueError as e:
            raise StoreUnavailableError(identity, f"{what} at {path} is malformed: {e}")

    def build(self, identity: str, endpoint: Endpoint) -> CertificateBundle:
        """
        Write the connection profile for an Issued credential.

        Args:
            identity: Client identity
            endpoint: Resolved public server endpoint

        Returns:
            Bundle metadata including the written path

        Raises:
            ValueError: If the identity is malformed
            NotIssuedError: If no Issued credential exists for identity
            StoreUnavailableError: If key material or the tunnel secret is missing
        """
        validate_identity(identity)
        record = self.store.load_index().current(identity)
        if record is None:
            raise NotIssuedError(identity, "No Issued credential to bundle")

        cert_path = self.store.cert_path(identity)
        cert_pem = self._read_block(identity, cert_path, ("CERTIFICATE",), "Client certificate")
        serial = normalize_serial(self.store.read_certificate(cert_path).serial_number)
        if serial != record.serial:
            raise StoreUnavailableError(
                identity, f"Certificate on disk (serial {serial}) does not match the index (serial {record.serial})"
            )

        sections = [
            ("ca", self._read_block(identity, self.store.ca_cert_path, ("CERTIFICATE",), "CA certificate")),
            ("cert", cert_pem),
            ("key", self._read_block(identity, self.store.key_path(identity), KEY_LABELS, "Client key")),
            ("tls-auth", self._read_block(identity, self.tls_auth_key, (STATIC_KEY_LABEL,), "Tunnel secret")),
        ]

        created_at = datetime.now()
        content = self.jinja_env.get_template(TEMPLATE_NAME).render(
            identity=identity,
            serial=record.serial,
            created_at=created_at.strftime("%Y-%m-%d %H:%M:%S"),
            endpoint=endpoint,
            client=self.client_settings,
            sections=sections,
        )

        path = self.bundle_path(identity)
        FileUtils.ensure_directory(self.bundle_dir(identity), mode=0o700)
        FileUtils.write_private_file(path, content)
        logger.info(f"Client configuration created for '{identity}': {path}")

        return CertificateBundle(
            identity=identity, path=str(path), endpoint=endpoint, serial=record.serial, created_at=created_at
        )

    def remove(self, identity: str) -> bool:
        """Delete the distributed profile of identity; returns whether one existed."""
        bundle_dir = self.bundle_dir(identity)
        if not bundle_dir.exists():
            return False
        FileUtils.delete_directory(bundle_dir)
        return True

    @staticmethod
    def parse_sections(content: str) -> Dict[str, str]:
        """
        Split a profile into its embedded material sections.

        Args:
            content: Profile text

        Returns:
            Mapping of section tag to its content, in file order

        Raises:
            ValueError: If a section appears twice
        """
        sections: Dict[str, str] = {}
        for match in SECTION_PATTERN.finditer(content):
            name, body = match.group(1), match.group(2)
            if name in sections:
                raise ValueError(f"Duplicate <{name}> section")
            sections[name] = body
        return sections

