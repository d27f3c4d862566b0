"""
Authentication API Routes
"""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from finhub.api.deps import get_audit_service
from finhub.core.config import settings
from finhub.core.database import get_db
from finhub.core.exceptions import AccountInactive, AccountLocked, InvalidCredentials
from finhub.core.security import (
    Identity, get_clock, get_current_identity, get_permission_resolver,
    get_revocation_list, get_token_manager
)
from finhub.schemas import (
    ChangePasswordRequest, LoginRequest, LoginResponse, MeResponse,
    MessageResponse, RefreshRequest, RefreshResponse
)
from finhub.services.audit_service import AuditService
from finhub.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_auth_service(
    db: Session = Depends(get_db),
    token_manager=Depends(get_token_manager),
    revocation_list=Depends(get_revocation_list),
    resolver=Depends(get_permission_resolver),
    clock=Depends(get_clock),
    audit: AuditService = Depends(get_audit_service)
) -> AuthService:
    return AuthService(db, token_manager, revocation_list, resolver, clock, audit=audit)


@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Login and get an access/refresh token pair"""
    try:
        result = auth_service.login(login_data.username, login_data.password)
    except (InvalidCredentials, AccountLocked, AccountInactive):
        # Keep failed-attempt counters, lock state and the audit entry
        db.commit()
        raise

    db.commit()

    response.set_cookie(
        key="access_token",
        value=result["access_token"],
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
        secure=settings.is_production
    )
    return result


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Revoke the current access token"""
    auth_service.logout(identity)
    db.commit()

    response.delete_cookie(key="access_token")
    return {"message": "Logged out successfully"}


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    refresh_data: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Exchange a refresh token for a new access token"""
    return auth_service.refresh(refresh_data.refresh_token)


@router.put("/password", response_model=MessageResponse)
async def change_password(
    password_data: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Change the current user's password"""
    auth_service.change_password(
        identity.user_id,
        password_data.current_password,
        password_data.new_password
    )
    db.commit()
    return {"message": "Password changed successfully"}


@router.get("/me", response_model=MeResponse)
async def get_current_user_info(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    resolver=Depends(get_permission_resolver)
):
    """Current identity and its permissions in the token's company"""
    permissions = resolver.resolve(db, identity.user_id, identity.company_id)
    return {
        "user_id": identity.user_id,
        "username": identity.username,
        "company_id": identity.company_id,
        "permissions": sorted(permissions),
    }
