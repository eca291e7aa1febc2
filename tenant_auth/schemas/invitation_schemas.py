from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from tenant_auth.models.invitation import InvitationStatus


class InvitationCreate(BaseModel):
    email: EmailStr
    role_ids: list[int] = Field(default_factory=list)
    message: str | None = Field(default=None, max_length=1000)


class InvitationResponse(BaseModel):
    id: int
    tenant_id: int
    email: str
    role_ids: list[int]
    status: InvitationStatus
    message: str | None = None
    invited_by: int | None = None
    invited_at: datetime
    accepted_at: datetime | None = None
    expires_at: datetime

    model_config = {"from_attributes": True}


class InvitationCreatedResponse(InvitationResponse):
    token: str


class InvitationListResponse(BaseModel):
    items: list[InvitationResponse]
    total: int
    limit: int
    offset: int


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class InvitationAcceptedResponse(BaseModel):
    user_id: int
    tenant_id: int
    email: str
    message: str
