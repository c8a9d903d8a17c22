"""PKI toolkit adapters."""

import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple

from ovpn_manager.exceptions import ToolFailureError
from ovpn_manager.models.config import AppConfig, PKISettings, ServerSettings
from ovpn_manager.models.crl import REVOCATION_REASON_CODES, RevocationReason
from ovpn_manager.services.store import AuthorityStore

logger = logging.getLogger("ovpn_manager")

# Key generation on slow hosts can take a while
COMMAND_TIMEOUT = 120


class PKIToolkit(ABC):
    """
    Operations the credential lifecycle needs from a PKI toolkit.

    Implementations work directly on the store's easy-rsa directory layout and
    keep index.txt, serial and crlnumber up to date themselves.
    """

    def __init__(self, store: AuthorityStore, settings: PKISettings, server: ServerSettings):
        self.store = store
        self.settings = settings
        self.server = server

    @property
    def ca_common_name(self) -> str:
        return f"{self.server.organization} CA"

    @abstractmethod
    def init_pki(self) -> None:
        """Create an empty PKI directory."""

    @abstractmethod
    def build_ca(self) -> None:
        """Create the CA key and self-signed certificate."""

    @abstractmethod
    def build_server_cert(self, name: str) -> None:
        """Issue the VPN server certificate."""

    @abstractmethod
    def build_client_cert(self, name: str) -> None:
        """Generate a key pair and issue a client certificate for name."""

    @abstractmethod
    def revoke(self, name: str, reason: RevocationReason = RevocationReason.UNSPECIFIED) -> None:
        """Mark the Issued certificate of name as revoked and archive its files."""

    @abstractmethod
    def gen_crl(self) -> None:
        """Regenerate crl.pem from every revoked record."""

    @abstractmethod
    def gen_tls_secret(self, path: Path) -> None:
        """Generate the shared tls-auth static key."""


class EasyRSAToolkit(PKIToolkit):
    """Toolkit driving the easyrsa script and openvpn binary via subprocess."""

    def __init__(
        self,
        store: AuthorityStore,
        settings: PKISettings,
        server: ServerSettings,
        easyrsa_dir: Path,
    ):
        """
        Initialize easy-rsa toolkit.

        Args:
            store: Authority store whose pki_dir easy-rsa operates on
            settings: PKI settings (binary names, validity periods)
            server: Server identity settings
            easyrsa_dir: easy-rsa installation directory (working directory)

        Raises:
            ToolFailureError: If easyrsa cannot be found
        """
        super().__init__(store, settings, server)
        self.easyrsa_dir = Path(easyrsa_dir)
        self.easyrsa_path = self._resolve_binary(settings.easyrsa_bin, self.easyrsa_dir)
        if self.easyrsa_path is None:
            raise ToolFailureError(
                None,
                f"easyrsa not found (looked for '{settings.easyrsa_bin}' in PATH and {self.easyrsa_dir}).\n"
                "Install easy-rsa or set pki.backend to 'native'.",
            )
        self.openvpn_path = settings.openvpn_bin
        logger.info(f"Using easy-rsa command: {self.easyrsa_path}")

    @staticmethod
    def _resolve_binary(name: str, fallback_dir: Path) -> Optional[str]:
        found = shutil.which(name)
        if found:
            return found
        candidate = fallback_dir / name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
        return None

    def _environment(self) -> dict:
        env = os.environ.copy()
        env.update(
            {
                "EASYRSA_PKI": str(self.store.pki_dir.resolve()),
                "EASYRSA_BATCH": "1",
                "EASYRSA_DN": "cn_only",
                "EASYRSA_REQ_ORG": self.server.organization,
                "EASYRSA_REQ_OU": self.server.org_unit,
                "EASYRSA_KEY_SIZE": str(self.settings.key_size),
                "EASYRSA_CA_EXPIRE": str(self.settings.ca_days),
                "EASYRSA_CERT_EXPIRE": str(self.settings.cert_days),
                "EASYRSA_CRL_DAYS": str(self.settings.crl_days),
            }
        )
        return env

    def execute_command(self, args: List[str], cwd: Path) -> Tuple[bool, str, str]:
        """
        Execute a toolkit command.

        Args:
            args: Command and arguments
            cwd: Working directory

        Returns:
            Tuple of (success, stdout, stderr)
        """
        logger.info(f"Executing: {' '.join(args)}")
        try:
            result = subprocess.run(
                args,
                shell=False,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=COMMAND_TIMEOUT,
                env=self._environment(),
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Command timeout after {COMMAND_TIMEOUT} seconds")
            return False, "", f"Command timeout after {COMMAND_TIMEOUT} seconds"
        except OSError as e:
            logger.error(f"Command execution error: {e}")
            return False, "", str(e)

        if result.returncode != 0:
            logger.error(f"Command failed: {result.stderr}")
            return False, result.stdout, result.stderr

        logger.debug("Command executed successfully")
        return True, result.stdout, result.stderr

    def _easyrsa(self, *args: str, identity: Optional[str] = None) -> str:
        success, stdout, stderr = self.execute_command([self.easyrsa_path, "--batch", *args], self.easyrsa_dir)
        if not success:
            raise ToolFailureError(identity, f"easyrsa {args[0] if args else ''} failed", stderr)
        return stdout

    def init_pki(self) -> None:
        self._easyrsa("init-pki")

    def build_ca(self) -> None:
        self._easyrsa(f"--req-cn={self.ca_common_name}", "build-ca", "nopass")

    def build_server_cert(self, name: str) -> None:
        self._easyrsa("build-server-full", name, "nopass", identity=name)

    def build_client_cert(self, name: str) -> None:
        self._easyrsa("build-client-full", name, "nopass", identity=name)

    def revoke(self, name: str, reason: RevocationReason = RevocationReason.UNSPECIFIED) -> None:
        args = ["revoke", name]
        if reason != RevocationReason.UNSPECIFIED:
            args.append(REVOCATION_REASON_CODES[reason])
        self._easyrsa(*args, identity=name)

    def gen_crl(self) -> None:
        self._easyrsa("gen-crl")

    def gen_tls_secret(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        success, _, stderr = self.execute_command([self.openvpn_path, "--genkey", "secret", str(path)], path.parent)
        if not success:
            raise ToolFailureError(None, "openvpn --genkey failed", stderr)
        os.chmod(path, 0o600)


def create_toolkit(config: AppConfig, store: AuthorityStore) -> PKIToolkit:
    """
    Build the toolkit selected by pki.backend.

    Args:
        config: Application configuration
        store: Authority store the toolkit operates on

    Returns:
        Toolkit instance
    """
    if config.pki.backend == "native":
        from ovpn_manager.services.native_toolkit import NativeToolkit

        return NativeToolkit(store, config.pki, config.server)
    return EasyRSAToolkit(store, config.pki, config.server, Path(config.paths.easyrsa))
