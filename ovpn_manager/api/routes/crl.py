"""CRL and authority API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends

from ovpn_manager.api.dependencies import get_auth_service, get_config, get_services, http_error, require_auth
from ovpn_manager.models.auth import Session
from ovpn_manager.models.authority import AuthorityStatus
from ovpn_manager.models.config import AppConfig
from ovpn_manager.models.crl import CRLInfo, RevocationRecord
from ovpn_manager.services.auth_service import AuthService
from ovpn_manager.services.container import ServiceContainer, build_services

router = APIRouter(prefix="/api", tags=["CRL"])


@router.get("/crl", response_model=CRLInfo)
def get_crl_info(
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
):
    """Get information about the current CRL."""
    try:
        return services.revocations.crl_info()
    except ValueError as e:
        raise http_error(e)


@router.get("/crl/revoked", response_model=List[RevocationRecord])
def list_revoked(
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
):
    """List every revoked credential."""
    return services.registry.revoked()


@router.post("/crl/regenerate", response_model=CRLInfo)
def regenerate_crl(
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Re-sign and publish the CRL from the current index."""
    try:
        info = services.revocations.regenerate_crl()
    except ValueError as e:
        raise http_error(e)

    auth_service.audit(session, "crl")
    return info


@router.get("/authority", response_model=AuthorityStatus)
def get_authority_status(
    session: Optional[Session] = Depends(require_auth),
    config: AppConfig = Depends(get_config),
):
    """Get the state of the certificate authority (also before initialization)."""
    return build_services(config, require_initialized=False).authority.status()
