"""Service layer for business logic."""

from .bundle_service import BundleBuilder
from .ca_service import AuthorityService
from .config_service import ConfigService
from .container import ServiceContainer, build_services
from .crl_service import RevocationManager
from .issuer import CredentialIssuer
from .parser_service import CertificateParser
from .registry import Registry
from .store import AuthorityStore
from .yaml_service import YAMLService

__all__ = [
    "YAMLService",
    "ConfigService",
    "CertificateParser",
    "AuthorityStore",
    "AuthorityService",
    "BundleBuilder",
    "CredentialIssuer",
    "RevocationManager",
    "Registry",
    "ServiceContainer",
    "build_services",
]
