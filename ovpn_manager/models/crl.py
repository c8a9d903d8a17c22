"""CRL data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RevocationReason(str, Enum):
    """RFC 5280 CRL Reason Codes."""

    UNSPECIFIED = "unspecified"  # 0
    KEY_COMPROMISE = "keyCompromise"  # 1
    CA_COMPROMISE = "cACompromise"  # 2
    AFFILIATION_CHANGED = "affiliationChanged"  # 3
    SUPERSEDED = "superseded"  # 4
    CESSATION_OF_OPERATION = "cessationOfOperation"  # 5
    CERTIFICATE_HOLD = "certificateHold"  # 6
    PRIVILEGE_WITHDRAWN = "privilegeWithdrawn"  # 9


# Map reason enum to the spelling OpenSSL writes into index.txt
REVOCATION_REASON_CODES = {
    RevocationReason.UNSPECIFIED: "unspecified",
    RevocationReason.KEY_COMPROMISE: "keyCompromise",
    RevocationReason.CA_COMPROMISE: "CACompromise",
    RevocationReason.AFFILIATION_CHANGED: "affiliationChanged",
    RevocationReason.SUPERSEDED: "superseded",
    RevocationReason.CESSATION_OF_OPERATION: "cessationOfOperation",
    RevocationReason.CERTIFICATE_HOLD: "certificateHold",
    RevocationReason.PRIVILEGE_WITHDRAWN: "privilegeWithdrawn",
}


def reason_from_index(value: Optional[str]) -> RevocationReason:
    """Map an index.txt reason string back to the enum (case-insensitive)."""
    if not value:
        return RevocationReason.UNSPECIFIED
    for reason, code in REVOCATION_REASON_CODES.items():
        if code.lower() == value.lower():
            return reason
    return RevocationReason.UNSPECIFIED


class RevocationRecord(BaseModel):
    """Entry in the cumulative revocation list."""

    identity: Optional[str] = None
    serial: str = Field(..., description="Certificate serial number (hex)")
    revoked_at: datetime = Field(default_factory=datetime.now)
    reason: RevocationReason = RevocationReason.UNSPECIFIED


class CRLInfo(BaseModel):
    """Summary of the current CRL."""

    crl_number: int
    revoked_count: int
    last_update: datetime
    next_update: Optional[datetime] = None
    path: str


class RevokeRequest(BaseModel):
    """Request model for revoking a client credential."""

    reason: RevocationReason = RevocationReason.UNSPECIFIED
