from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    id: int
    tenant_id: int
    user_id: int | None = None
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    status: str
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="details")
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditLogListResponse(BaseModel):
    items: list[AuditLogResponse]
    total: int
    limit: int
    offset: int


class ActionStat(BaseModel):
    action: str
    total: int
    success: int
    failure: int


class AuditStatsResponse(BaseModel):
    start_date: datetime
    end_date: datetime
    total_events: int
    failed_events: int
    actions: list[ActionStat]


class SuspiciousActivityResponse(BaseModel):
    ip_address: str | None = None
    user_id: int | None = None
    failed_attempts: int
    first_seen: datetime
    last_seen: datetime
    severity: str
