"""Operator authentication, audit and download ticket models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

OPERATOR_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._@-]{0,63}$"


class LoginRequest(BaseModel):
    """Operator login."""

    password: str = Field(..., min_length=1)
    operator: str = Field("admin", pattern=OPERATOR_PATTERN, description="Name recorded in the audit trail")


class LoginResponse(BaseModel):
    token: str
    operator: str
    expires_at: datetime


class Session(BaseModel):
    """An authenticated operator session (kept in memory)."""

    token: str
    operator: str
    created_at: datetime
    expires_at: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class SessionInfo(BaseModel):
    operator: str
    created_at: datetime
    expires_at: datetime
    is_valid: bool


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class AuditEntry(BaseModel):
    """One credential lifecycle action taken through the API."""

    timestamp: datetime
    operator: str
    action: str = Field(..., description="issue, reissue, revoke, bundle, ticket, download, crl or password")
    identity: Optional[str] = None
    serial: Optional[str] = None
    ip_address: Optional[str] = None


class DownloadTicket(BaseModel):
    """
    Single-use link to one client's bundle.

    The ticket is bound to the credential serial it was created for, so it
    stops working once that credential is revoked or replaced.
    """

    token: str
    identity: str
    serial: str
    operator: str
    expires_at: datetime


class TicketResponse(BaseModel):
    url: str
    identity: str
    serial: str
    expires_at: datetime
