"""
Error taxonomy for credential lifecycle operations.

Every error names the identity it concerns and a machine-readable kind, so that
the CLI can map it to an exit status and the API to an HTTP status code.
All errors subclass ValueError to stay compatible with callers that only
distinguish "bad request" from "internal failure".
"""

from typing import Optional


class CredentialError(ValueError):
    """Base class for all credential lifecycle errors."""

    kind = "Error"
    exit_code = 1

    def __init__(self, identity: Optional[str], message: str):
        super().__init__(message)
        self.identity = identity
        self.message = message

    def __str__(self) -> str:
        if self.identity:
            return f"[{self.kind}] {self.identity}: {self.message}"
        return f"[{self.kind}] {self.message}"

    def with_hint(self, hint: str) -> "CredentialError":
        """Append a follow-up instruction to the message and return the error."""
        self.message = f"{self.message}; {hint}"
        return self

    def to_dict(self) -> dict:
        """Convert error to dictionary for JSON responses."""
        return {"kind": self.kind, "identity": self.identity, "message": self.message}


class ConflictError(CredentialError):
    """An Issued credential already exists for the identity."""

    kind = "Conflict"
    exit_code = 3


class NotIssuedError(CredentialError):
    """The operation requires an Issued credential that is absent or revoked."""

    kind = "NotIssued"
    exit_code = 4


class StoreUnavailableError(CredentialError):
    """The authority store is missing, unreadable, or locked beyond the bounded wait."""

    kind = "StoreUnavailable"
    exit_code = 5


class ResolutionError(CredentialError):
    """The public server endpoint could not be resolved."""

    kind = "ResolutionFailure"
    exit_code = 6


class ToolFailureError(CredentialError):
    """An external tool (PKI toolkit, daemon control) returned non-zero."""

    kind = "ToolFailure"
    exit_code = 7

    def __init__(self, identity: Optional[str], message: str, stderr: str = ""):
        super().__init__(identity, message)
        self.stderr = stderr

    def __str__(self) -> str:
        text = super().__str__()
        if self.stderr:
            text = f"{text}\n{self.stderr.strip()}"
        return text
