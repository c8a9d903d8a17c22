"""Connection profile (bundle) data models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

# Section tags in the order they appear in every profile
BUNDLE_SECTIONS = ("ca", "cert", "key", "tls-auth")


class Endpoint(BaseModel):
    """Publicly reachable VPN server endpoint."""

    host: str = Field(..., min_length=1)
    port: int = Field(1194, gt=0, lt=65536)
    protocol: Literal["udp", "tcp"] = "udp"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}/{self.protocol}"


class CertificateBundle(BaseModel):
    """A written client connection profile."""

    identity: str
    path: str
    endpoint: Endpoint
    serial: str
    created_at: datetime = Field(default_factory=datetime.now)
