from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tenant_auth.database import get_db
from tenant_auth.dependencies import get_auth_context, require_permission
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.schemas.tenant_schemas import TenantOverviewResponse, TenantResponse
from tenant_auth.services.tenant_service import TenantService

router = APIRouter()


@router.get("/me", response_model=TenantResponse)
async def get_current_tenant(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """
    Get current tenant details.

    Returns information about the organization the access token was issued for.
    """
    service = TenantService(db)
    return service.get_current_tenant(context)


@router.get("/me/overview", response_model=TenantOverviewResponse)
async def get_tenant_overview(
    context: AuthContext = Depends(require_permission("settings", "view")),
    db: Session = Depends(get_db),
):
    """Tenant details with user, role and pending invitation counts."""
    service = TenantService(db)
    return service.get_overview(context)
