"""Operator authentication and audit API endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ovpn_manager.api.dependencies import get_auth_service, require_auth
from ovpn_manager.models.auth import (
    AuditEntry,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    Session,
    SessionInfo,
)
from ovpn_manager.services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    login_request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Log in as an operator and receive a session token.

    Send the token as Bearer token; actions taken with it are audited under the operator name.
    """
    if not auth_service.is_enabled:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Authentication is disabled")

    session = auth_service.login(
        login_request.password,
        login_request.operator,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.client.host if request.client else None,
    )
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")

    return LoginResponse(token=session.token, operator=session.operator, expires_at=session.expires_at)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    session: Optional[Session] = Depends(require_auth),
    auth_service: AuthService = Depends(get_auth_service),
):
    if session is not None:
        auth_service.invalidate_session(session.token)


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    request: ChangePasswordRequest,
    session: Optional[Session] = Depends(require_auth),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Change the operator password; every session and download ticket is invalidated."""
    if not auth_service.change_password(request.current_password, request.new_password, session):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")


@router.get("/session", response_model=SessionInfo)
def get_session_info(session: Optional[Session] = Depends(require_auth)):
    if session is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Authentication is disabled")
    return SessionInfo(
        operator=session.operator,
        created_at=session.created_at,
        expires_at=session.expires_at,
        is_valid=True,
    )


@router.get("/audit", response_model=List[AuditEntry])
def get_audit_trail(
    identity: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    session: Optional[Session] = Depends(require_auth),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Recent credential lifecycle actions, newest first."""
    return auth_service.audit_trail(identity=identity, limit=limit)
