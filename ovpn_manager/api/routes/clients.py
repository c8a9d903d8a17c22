"""Client credential API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ovpn_manager.api.dependencies import get_auth_service, get_services, http_error, require_auth
from ovpn_manager.models.auth import Session, TicketResponse
from ovpn_manager.models.bundle import CertificateBundle
from ovpn_manager.models.client import ClientCredential, IssueRequest
from ovpn_manager.models.crl import RevocationRecord, RevokeRequest
from ovpn_manager.services.auth_service import AuthService
from ovpn_manager.services.container import ServiceContainer

router = APIRouter(prefix="/api/clients", tags=["Clients"])


@router.get("", response_model=List[str])
def list_clients(
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
):
    """List identities holding an Issued credential, sorted."""
    return services.registry.list()


@router.post("", response_model=CertificateBundle, status_code=status.HTTP_201_CREATED)
def issue_client(
    request: IssueRequest,
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Issue a client credential and build its .ovpn bundle."""
    try:
        bundle = services.provision(request.identity, replace=request.replace)
    except ValueError as e:
        raise http_error(e)

    auth_service.audit(session, "reissue" if request.replace else "issue", bundle.identity, bundle.serial)
    return bundle


@router.get("/{identity}", response_model=ClientCredential)
def get_client(
    identity: str,
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
):
    """Get details of an Issued credential."""
    try:
        return services.registry.get(identity)
    except ValueError as e:
        raise http_error(e)


@router.post("/{identity}/revoke", response_model=RevocationRecord)
def revoke_client(
    identity: str,
    request: RevokeRequest,
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Revoke a credential, publish the CRL and reload the daemon."""
    try:
        record = services.revocations.revoke(identity, request.reason)
    except ValueError as e:
        raise http_error(e)

    auth_service.audit(session, "revoke", identity, record.serial)
    return record


@router.post("/{identity}/bundle", response_model=CertificateBundle)
def rebuild_bundle(
    identity: str,
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Regenerate the .ovpn bundle of an Issued credential."""
    try:
        bundle = services.rebuild_bundle(identity)
    except ValueError as e:
        raise http_error(e)

    auth_service.audit(session, "bundle", identity, bundle.serial)
    return bundle


@router.post("/{identity}/ticket", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_download_ticket(
    identity: str,
    session: Optional[Session] = Depends(require_auth),
    services: ServiceContainer = Depends(get_services),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Create a single-use link to the bundle of identity.

    The link can be handed to the client without sharing an operator session.
    It stops working after one download, after it expires, or once the
    credential is revoked or replaced.
    """
    try:
        credential = services.registry.get(identity)
    except ValueError as e:
        raise http_error(e)

    if credential.bundle_path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bundle not built")

    ticket = auth_service.create_ticket(identity, credential.serial, session)
    return TicketResponse(
        url=f"/download/tickets/{ticket.token}",
        identity=identity,
        serial=ticket.serial,
        expires_at=ticket.expires_at,
    )
