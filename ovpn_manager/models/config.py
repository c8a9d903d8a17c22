"""Application configuration models."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class AppSettings(BaseModel):
    """Application settings."""

    title: str = "OpenVPN Client Manager"
    version: str = "1.0.0"
    debug: bool = False


class PathSettings(BaseModel):
    """Path settings."""

    pki: str = "/etc/openvpn/easy-rsa/pki"
    easyrsa: str = "/etc/openvpn/easy-rsa"
    client_configs: str = "/etc/openvpn/client-configs"
    tls_auth_key: str = "/etc/openvpn/ta.key"
    crl_publish: Optional[str] = "/etc/openvpn/crl.pem"
    logs: str = "./logs"


class PKISettings(BaseModel):
    """PKI toolkit settings."""

    backend: Literal["easyrsa", "native"] = "easyrsa"
    easyrsa_bin: str = "easyrsa"
    openvpn_bin: str = "openvpn"
    key_size: int = Field(default=2048, ge=2048)
    ca_days: int = Field(default=3650, gt=0)
    cert_days: int = Field(default=825, gt=0)
    crl_days: int = Field(default=180, gt=0)


class ServerSettings(BaseModel):
    """VPN server identity settings."""

    name: str = "my-vpn-server"
    organization: str = "MyOrg"
    org_unit: str = "IT"


class NetworkSettings(BaseModel):
    """Public endpoint settings embedded in client bundles."""

    public_host: Optional[str] = None
    port: int = Field(default=1194, gt=0, lt=65536)
    protocol: Literal["udp", "tcp"] = "udp"
    discovery_url: str = "https://ifconfig.me/ip"
    discovery_timeout: float = Field(default=5.0, gt=0)


class ClientProfileSettings(BaseModel):
    """Directives written into every client profile."""

    cipher: str = "AES-256-CBC"
    auth: str = "SHA256"
    verb: int = 3


class DaemonSettings(BaseModel):
    """VPN daemon control settings."""

    enabled: bool = True
    service: str = "openvpn@server"
    systemctl: str = "systemctl"


class StoreSettings(BaseModel):
    """Authority store locking settings."""

    lock_timeout: float = Field(default=10.0, ge=0)
    lock_retries: int = Field(default=3, ge=1)
    lock_backoff: float = Field(default=0.5, ge=0)


class LoggingSettings(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str = "./logs/ovpn-manager.log"


class AuthSettings(BaseModel):
    """Authentication settings for the HTTP API."""

    enabled: bool = True
    password_hash: Optional[str] = None  # bcrypt hash, auto-set on first run
    session_expiry_hours: int = Field(default=24, gt=0)
    ticket_expiry_minutes: int = Field(default=15, gt=0)
    audit_size: int = Field(default=500, gt=0)


class AppConfig(BaseModel):
    """Main application configuration."""

    app: AppSettings = AppSettings()
    paths: PathSettings = PathSettings()
    pki: PKISettings = PKISettings()
    server: ServerSettings = ServerSettings()
    network: NetworkSettings = NetworkSettings()
    client: ClientProfileSettings = ClientProfileSettings()
    daemon: DaemonSettings = DaemonSettings()
    store: StoreSettings = StoreSettings()
    logging: LoggingSettings = LoggingSettings()
    auth: AuthSettings = AuthSettings()
