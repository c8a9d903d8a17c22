"""Download API endpoints."""

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from ovpn_manager.api.dependencies import get_auth_service, get_services, http_error, require_auth
from ovpn_manager.models.auth import Session
from ovpn_manager.services.auth_service import AuthService
from ovpn_manager.services.container import ServiceContainer
from ovpn_manager.utils.validators import validate_identity

router = APIRouter(prefix="/download", tags=["Downloads"])


def _bundle_response(identity: str, bundle_path: Path) -> FileResponse:
    if not bundle_path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bundle not built")

    return FileResponse(
        path=bundle_path,
        media_type="application/x-openvpn-profile",
        filename=f"{identity}.ovpn",
        headers={"X-Security-Warning": "This file contains a private key. Handle with care!"},
    )


@router.get("/clients/{identity}/bundle")
def download_bundle(
    identity: str,
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Download the .ovpn bundle of an Issued credential - contains the private key!"""
    try:
        validate_identity(identity)
        credential = services.registry.get(identity)
    except ValueError as e:
        raise http_error(e)

    response = _bundle_response(identity, services.bundles.bundle_path(identity))
    auth_service.audit(session, "download", identity, credential.serial)
    return response


@router.get("/tickets/{token}")
def download_with_ticket(
    token: str,
    services: ServiceContainer = Depends(get_services),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Download a bundle through a single-use ticket (no session needed)."""
    ticket = auth_service.redeem_ticket(token)
    if ticket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown, used or expired download ticket")

    record = services.store.load_index().current(ticket.identity)
    if record is None or record.serial != ticket.serial:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail=f"Credential {ticket.serial} of '{ticket.identity}' was revoked or replaced",
        )

    response = _bundle_response(ticket.identity, services.bundles.bundle_path(ticket.identity))
    auth_service.audit(None, "download", ticket.identity, ticket.serial, operator=f"ticket:{ticket.operator}")
    return response


@router.get("/crl")
def download_crl(services: ServiceContainer = Depends(get_services)):
    """Download the current CRL (.pem)."""
    crl_path = services.store.crl_path
    if not crl_path.exists():
        raise HTTPException(status_code=404, detail="CRL not found")

    return FileResponse(path=crl_path, media_type="application/x-pem-file", filename="crl.pem")
