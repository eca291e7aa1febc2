from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tenant_auth.database import get_db
from tenant_auth.dependencies import get_auth_context
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.schemas.security_schemas import (
    LoginHistoryResponse,
    RecommendationsResponse,
    SecurityOverviewResponse,
)
from tenant_auth.services.security_service import SecurityService

router = APIRouter()


@router.get("/overview", response_model=SecurityOverviewResponse)
async def security_overview(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """
    Security summary of the caller's own account.

    Includes active sessions, failed logins of the last 24 hours, recent
    activity and per-action counts for the last 7 days.
    """
    service = SecurityService(db)
    return service.get_overview(context)


@router.get("/recommendations", response_model=RecommendationsResponse)
async def security_recommendations(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    service = SecurityService(db)
    recommendations = service.get_recommendations(context)
    return {"recommendations": recommendations, "count": len(recommendations)}


@router.get("/login-history", response_model=LoginHistoryResponse)
async def login_history(
    limit: int = Query(50, ge=1, le=200),
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Successful and failed logins of the caller, newest first."""
    service = SecurityService(db)
    logins = service.get_login_history(context, limit)
    return {"items": logins, "count": len(logins)}
