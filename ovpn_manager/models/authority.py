"""Certificate authority data models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .crl import CRLInfo


class AuthorityStatus(BaseModel):
    """Summary of the VPN certificate authority."""

    initialized: bool
    pki_dir: str
    ca_subject: Optional[str] = None
    ca_expires_at: Optional[datetime] = None
    server_name: str
    issued_count: int = 0
    revoked_count: int = 0
    crl: Optional[CRLInfo] = None
