from datetime import datetime

from pydantic import BaseModel


class SessionResponse(BaseModel):
    id: int
    device_type: str | None = None
    browser: str | None = None
    os: str | None = None
    ip_address: str | None = None
    remember_me: bool
    last_activity_at: datetime
    expires_at: datetime
    created_at: datetime
    is_current: bool = False


class SessionStatsResponse(BaseModel):
    active_sessions: int
    devices: dict[str, int]
    last_activity_at: datetime | None = None
    current_session_id: int


class RevokedSessionsResponse(BaseModel):
    message: str
    revoked: int
