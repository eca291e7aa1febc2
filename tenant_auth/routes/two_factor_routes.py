from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, get_cache
from tenant_auth.core.exceptions import ValidationException
from tenant_auth.database import get_db
from tenant_auth.dependencies import get_auth_context
from tenant_auth.models.audit_log import AuditAction, AuditStatus
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.schemas.auth_schemas import MessageResponse
from tenant_auth.schemas.two_factor_schemas import (
    BackupCodesResponse,
    TwoFactorCodeRequest,
    TwoFactorDisableRequest,
    TwoFactorEnableRequest,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
    TwoFactorVerifyResponse,
)
from tenant_auth.services.audit_service import AuditService
from tenant_auth.services.two_factor_service import TwoFactorService

router = APIRouter()


@router.get("/status", response_model=TwoFactorStatusResponse)
async def two_factor_status(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = TwoFactorService(db, cache)
    return {
        "enabled": context.user.two_factor_enabled,
        "enabled_at": context.user.two_factor_enabled_at,
        "backup_codes_remaining": service.remaining_backup_codes(context.user),
    }


@router.post("/setup", response_model=TwoFactorSetupResponse)
async def setup_two_factor(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """
    Generate a TOTP secret, QR provisioning URI and backup codes.

    Nothing is saved until /2fa/enable confirms a code.
    """
    service = TwoFactorService(db, cache)
    return service.setup(context.user)


@router.post("/enable", response_model=MessageResponse)
async def enable_two_factor(
    request: TwoFactorEnableRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = TwoFactorService(db, cache)
    service.enable(context.user, request.secret, request.code, request.backup_codes)
    AuditService(db).log_event(
        context.tenant.id, AuditAction.TWO_FACTOR_ENABLED, user_id=context.user.id, resource_type="user",
        resource_id=context.user.id,
    )
    return {"message": "Two-factor authentication enabled"}


@router.post("/disable", response_model=MessageResponse)
async def disable_two_factor(
    request: TwoFactorDisableRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Disable 2FA; requires the account password. Trusted devices are forgotten."""
    service = TwoFactorService(db, cache)
    service.disable(context.user, request.password)
    AuditService(db).log_event(
        context.tenant.id, AuditAction.TWO_FACTOR_DISABLED, user_id=context.user.id, resource_type="user",
        resource_id=context.user.id,
    )
    return {"message": "Two-factor authentication disabled"}


@router.post("/verify", response_model=TwoFactorVerifyResponse)
async def verify_code(
    request: TwoFactorCodeRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Check a TOTP or backup code for the caller (backup codes are consumed)."""
    service = TwoFactorService(db, cache)
    method = service.verify_code(context.user, request.code)
    AuditService(db).log_event(
        context.tenant.id,
        AuditAction.TWO_FACTOR_VERIFIED if method else AuditAction.TWO_FACTOR_FAILED,
        AuditStatus.SUCCESS if method else AuditStatus.FAILURE,
        user_id=context.user.id,
    )
    return {"valid": method is not None, "method": method}


@router.post("/backup-codes", response_model=BackupCodesResponse)
async def regenerate_backup_codes(
    request: TwoFactorCodeRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Replace every backup code; requires a current TOTP code."""
    service = TwoFactorService(db, cache)
    try:
        codes = service.regenerate_backup_codes(context.user, request.code)
    except ValidationException:
        # Only a wrong code is a failed attempt; 2FA may simply be off
        if context.user.two_factor_enabled:
            AuditService(db).log_event(
                context.tenant.id, AuditAction.TWO_FACTOR_FAILED, AuditStatus.FAILURE, user_id=context.user.id
            )
        raise
    return {"backup_codes": codes}
