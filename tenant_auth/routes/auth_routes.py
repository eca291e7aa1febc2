from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, get_cache
from tenant_auth.config import settings
from tenant_auth.core.device import DeviceInfo, get_device_info
from tenant_auth.database import get_db
from tenant_auth.dependencies import get_auth_context
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.schemas.auth_schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    PasswordResetRequestResponse,
    RefreshRequest,
    TenantRegisterRequest,
    TenantRegisterResponse,
    TwoFactorLoginRequest,
    VerifyEmailRequest,
)
from tenant_auth.schemas.tenant_schemas import TenantResponse
from tenant_auth.services.auth_service import AuthService

router = APIRouter()


@router.post("/register", response_model=TenantRegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    registration: TenantRegisterRequest,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """
    Register a new organization and its owner account.

    - The tenant starts in **pending_verification**
    - The owner can log in once the email is verified via /verify-email
    """
    service = AuthService(db, cache)
    tenant, token = service.register_tenant(registration)
    return {
        "tenant_id": tenant.id,
        "slug": tenant.slug,
        "status": tenant.status,
        "message": "Registration successful. Verify the email address to activate the organization.",
        "verification_token": token,
    }


@router.post("/verify-email", response_model=TenantResponse)
async def verify_email(
    request: VerifyEmailRequest,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Activate the organization and owner, and provision the system roles."""
    service = AuthService(db, cache)
    return service.verify_tenant_email(request.token)


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    device: DeviceInfo = Depends(get_device_info),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """
    Log in with email and password.

    - Email in several organizations: returns `tenants`; repeat with `tenant_id`
    - 2FA enabled: returns `requires_two_factor` and a `two_factor_token`
    - Otherwise: returns the access/refresh token pair
    """
    service = AuthService(db, cache)
    return service.login(credentials, device)


@router.post("/2fa/verify", response_model=LoginResponse)
async def verify_two_factor(
    request: TwoFactorLoginRequest,
    device: DeviceInfo = Depends(get_device_info),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Complete a login with a TOTP or backup code."""
    service = AuthService(db, cache)
    return service.verify_two_factor_login(request, device)


@router.post("/refresh", response_model=LoginResponse)
async def refresh(
    request: RefreshRequest,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Exchange a refresh token for a new access token."""
    service = AuthService(db, cache)
    return service.refresh(request.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    context: AuthContext = Depends(get_auth_context),
    device: DeviceInfo = Depends(get_device_info),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Revoke the current session."""
    service = AuthService(db, cache)
    service.logout(context, device)
    return {"message": "Logged out successfully"}


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Revoke every session of the caller, including this one."""
    service = AuthService(db, cache)
    count = service.logout_all(context)
    return {"message": f"Logged out from {count} session(s)"}


@router.post("/password-reset/request", response_model=PasswordResetRequestResponse)
async def request_password_reset(
    request: PasswordResetRequest,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """
    Start a password reset.

    Always answers the same way, whether or not the account exists.
    """
    service = AuthService(db, cache)
    token = service.request_password_reset(request.email, request.tenant_slug)
    return {
        "message": "If the account exists, password reset instructions have been issued",
        "reset_token": token if settings.DEBUG else None,
    }


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(
    request: PasswordResetConfirm,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Set a new password with a reset token; all sessions are revoked."""
    service = AuthService(db, cache)
    service.reset_password(request.token, request.new_password)
    return {"message": "Password has been reset"}


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Change the caller's password; other sessions are revoked."""
    service = AuthService(db, cache)
    service.change_password(context, request.current_password, request.new_password)
    return {"message": "Password changed successfully"}


@router.get("/me", response_model=MeResponse)
async def me(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Current user, tenant, roles and effective permissions."""
    service = AuthService(db, cache)
    return service.get_me(context)
