from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tenant_auth.database import get_db
from tenant_auth.dependencies import get_auth_context
from tenant_auth.models.audit_log import AuditAction
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.schemas.auth_schemas import MessageResponse
from tenant_auth.schemas.session_schemas import RevokedSessionsResponse, SessionResponse, SessionStatsResponse
from tenant_auth.services.audit_service import AuditService
from tenant_auth.services.session_service import SessionService

router = APIRouter()


@router.get("", response_model=list[SessionResponse])
async def list_sessions(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Active sessions of the caller; `is_current` marks this one."""
    service = SessionService(db)
    return service.list_user_sessions(context)


@router.get("/stats", response_model=SessionStatsResponse)
async def session_stats(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    service = SessionService(db)
    return service.get_session_stats(context)


@router.delete("/others", response_model=RevokedSessionsResponse)
async def revoke_other_sessions(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Revoke every session of the caller except this one."""
    service = SessionService(db)
    count = service.revoke_other_sessions(context)
    AuditService(db).log_event(
        context.tenant.id,
        AuditAction.SESSION_REVOKED,
        user_id=context.user.id,
        resource_type="user",
        resource_id=context.user.id,
        metadata={"count": count, "scope": "others"},
    )
    return {"message": "Other sessions revoked", "revoked": count}


@router.delete("/{session_id}", response_model=MessageResponse)
async def revoke_session(
    session_id: int,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Revoke one of the caller's sessions."""
    service = SessionService(db)
    service.revoke_session(context, session_id)
    AuditService(db).log_event(
        context.tenant.id,
        AuditAction.SESSION_REVOKED,
        user_id=context.user.id,
        resource_type="session",
        resource_id=session_id,
    )
    return {"message": "Session revoked successfully"}
