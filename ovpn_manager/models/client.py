"""Client credential data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CredentialStatus(str, Enum):
    """Status letters used by the OpenSSL CA database (index.txt)."""

    ISSUED = "V"
    REVOKED = "R"
    EXPIRED = "E"


class IndexRecord(BaseModel):
    """One line of the issuance index."""

    status: CredentialStatus
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    serial: str = Field(..., description="Uppercase hex serial, even length")
    filename: str = "unknown"
    subject: str = Field(..., description="OpenSSL one-line DN, e.g. /CN=alice")

    @property
    def identity(self) -> Optional[str]:
        """Common name extracted from the subject DN."""
        for part in self.subject.split("/"):
            if part.startswith("CN="):
                return part[3:]
        return None

    @property
    def is_issued(self) -> bool:
        return self.status == CredentialStatus.ISSUED


class ClientCredential(BaseModel):
    """An issued client certificate/key pair."""

    identity: str
    serial: str
    status: CredentialStatus
    subject: str
    issued_at: Optional[datetime] = None
    expires_at: datetime
    cert_path: str
    key_path: str
    fingerprint_sha256: Optional[str] = None
    bundle_path: Optional[str] = None


class IssueRequest(BaseModel):
    """Request model for issuing a client credential."""

    identity: str = Field(..., min_length=1, max_length=64)
    replace: bool = Field(False, description="Retire an existing Issued credential for this identity")

    class Config:
        """Pydantic config."""

        json_schema_extra = {"example": {"identity": "alice", "replace": False}}
