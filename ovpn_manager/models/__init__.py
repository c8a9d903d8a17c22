"""Data models for the OpenVPN client manager."""

from .authority import AuthorityStatus
from .bundle import BUNDLE_SECTIONS, CertificateBundle, Endpoint
from .client import ClientCredential, CredentialStatus, IndexRecord, IssueRequest
from .config import AppConfig
from .crl import CRLInfo, RevocationReason, RevocationRecord, RevokeRequest

__all__ = [
    "AuthorityStatus",
    "BUNDLE_SECTIONS",
    "CertificateBundle",
    "Endpoint",
    "ClientCredential",
    "CredentialStatus",
    "IndexRecord",
    "IssueRequest",
    "CRLInfo",
    "RevocationReason",
    "RevocationRecord",
    "RevokeRequest",
    "AppConfig",
]
