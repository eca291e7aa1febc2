from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tenant_auth.database import get_db
from tenant_auth.dependencies import require_permission
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.schemas.audit_schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    AuditStatsResponse,
    SuspiciousActivityResponse,
)
from tenant_auth.services.audit_service import AuditService

router = APIRouter()

view_logs = require_permission("security", "view_logs")


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    user_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None, max_length=100),
    resource_type: Optional[str] = Query(None, max_length=100),
    resource_id: Optional[str] = Query(None, max_length=100),
    status: Optional[str] = Query(None, pattern="^(success|failure)$"),
    ip_address: Optional[str] = Query(None, max_length=64),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    context: AuthContext = Depends(view_logs),
    db: Session = Depends(get_db),
):
    """
    Query the organization's audit trail, newest first.

    All filters are optional and combined with AND.
    """
    service = AuditService(db)
    filters = {
        "user_id": user_id,
        "action": action,
        "resource_type": resource_type,
        "resource_id": resource_id,
        "status": status,
        "ip_address": ip_address,
        "start_date": start_date,
        "end_date": end_date,
    }
    logs, total = service.query(context.tenant.id, filters, limit, offset)
    return {"items": logs, "total": total, "limit": limit, "offset": offset}


@router.get("/search", response_model=AuditLogListResponse)
async def search_audit_logs(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    context: AuthContext = Depends(view_logs),
    db: Session = Depends(get_db),
):
    """Keyword search over action, resource, IP address and user agent."""
    service = AuditService(db)
    logs, total = service.search(context.tenant.id, q, limit, offset)
    return {"items": logs, "total": total, "limit": limit, "offset": offset}


@router.get("/stats", response_model=AuditStatsResponse)
async def audit_stats(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    context: AuthContext = Depends(view_logs),
    db: Session = Depends(get_db),
):
    """Event counts per action (default window: last 30 days)."""
    service = AuditService(db)
    return service.get_action_stats(context.tenant.id, start_date, end_date)


@router.get("/failed-logins", response_model=list[AuditLogResponse])
async def failed_logins(
    since: Optional[datetime] = Query(None),
    user_id: Optional[int] = Query(None),
    context: AuthContext = Depends(view_logs),
    db: Session = Depends(get_db),
):
    service = AuditService(db)
    return service.get_failed_attempts(context.tenant.id, since, user_id)


@router.get("/suspicious", response_model=list[SuspiciousActivityResponse])
async def suspicious_activity(
    since: Optional[datetime] = Query(None),
    context: AuthContext = Depends(view_logs),
    db: Session = Depends(get_db),
):
    """Sources with three or more failed logins, worst first."""
    service = AuditService(db)
    return service.get_suspicious_activity(context.tenant.id, since)


@router.get("/users/{user_id}", response_model=AuditLogListResponse)
async def user_activity(
    user_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    context: AuthContext = Depends(view_logs),
    db: Session = Depends(get_db),
):
    service = AuditService(db)
    logs, total = service.get_user_activity(context.tenant.id, user_id, limit, offset)
    return {"items": logs, "total": total, "limit": limit, "offset": offset}


@router.get("/{log_id}", response_model=AuditLogResponse)
async def get_audit_log(
    log_id: int,
    context: AuthContext = Depends(view_logs),
    db: Session = Depends(get_db),
):
    service = AuditService(db)
    return service.get_log(context.tenant.id, log_id)
