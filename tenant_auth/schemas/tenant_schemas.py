from datetime import datetime

from pydantic import BaseModel

from tenant_auth.models.tenant import PlanTier, TenantStatus


class TenantResponse(BaseModel):
    """Tenant details response"""

    id: int
    slug: str
    company_name: str
    email: str
    status: TenantStatus
    plan_tier: PlanTier
    email_verified: bool
    activated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TenantOverviewResponse(BaseModel):
    tenant: TenantResponse
    user_count: int
    role_count: int
    pending_invitations: int
