"""FastAPI dependencies."""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ovpn_manager.exceptions import CredentialError
from ovpn_manager.models.auth import Session
from ovpn_manager.models.config import AppConfig
from ovpn_manager.services.auth_service import AuthService
from ovpn_manager.services.config_service import ConfigService
from ovpn_manager.services.container import ServiceContainer, build_services

logger = logging.getLogger("ovpn_manager")

# HTTP status per error kind
STATUS_BY_KIND = {
    "Conflict": status.HTTP_409_CONFLICT,
    "NotIssued": status.HTTP_404_NOT_FOUND,
    "StoreUnavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "ResolutionFailure": status.HTTP_502_BAD_GATEWAY,
    "ToolFailure": status.HTTP_502_BAD_GATEWAY,
}

bearer_scheme = HTTPBearer(auto_error=False)

_auth_service: Optional[AuthService] = None


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Get application configuration.

    Returns:
        Application configuration
    """
    return ConfigService.load()


def get_services(config: AppConfig = Depends(get_config)) -> ServiceContainer:
    """
    Get the lifecycle services over the configured store.

    Raises:
        StoreUnavailableError: If no certificate authority exists yet
    """
    return build_services(config)


def get_auth_service(config: AppConfig = Depends(get_config)) -> AuthService:
    """Get the process-wide auth service (sessions live in memory)."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService(config.auth, ConfigService.resolve_path())
    return _auth_service


def reset_auth_service() -> None:
    """Drop the cached auth service and its sessions."""
    global _auth_service
    _auth_service = None


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> Optional[Session]:
    """
    Require a valid bearer session token.

    Returns:
        The session, or None when authentication is disabled

    Raises:
        HTTPException: 401 if the token is missing, unknown or expired
    """
    if not auth_service.is_enabled:
        return None

    session = auth_service.validate_session(credentials.credentials) if credentials else None
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def http_error(error: ValueError) -> HTTPException:
    """Translate a service error into an HTTPException."""
    if isinstance(error, CredentialError):
        return HTTPException(status_code=STATUS_BY_KIND.get(error.kind, 500), detail=error.to_dict())
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
