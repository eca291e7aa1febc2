from pydantic import BaseModel

from tenant_auth.schemas.audit_schemas import AuditLogResponse, AuditStatsResponse
from tenant_auth.schemas.session_schemas import SessionStatsResponse


class SecurityOverviewResponse(BaseModel):
    two_factor_enabled: bool
    session_stats: SessionStatsResponse
    failed_attempts: int
    last_24h_failures: list[AuditLogResponse]
    recent_activity: list[AuditLogResponse]
    action_stats: AuditStatsResponse


class Recommendation(BaseModel):
    type: str
    severity: str
    title: str
    description: str
    action: str | None = None
    count: int | None = None


class RecommendationsResponse(BaseModel):
    recommendations: list[Recommendation]
    count: int


class LoginHistoryResponse(BaseModel):
    items: list[AuditLogResponse]
    count: int
