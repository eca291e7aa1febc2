from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from tenant_auth.models.user import UserStatus


class RoleBrief(BaseModel):
    id: int
    name: str
    display_name: str

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    """User details"""

    id: int
    tenant_id: int
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    timezone: str
    language: str
    status: UserStatus
    email_verified: bool
    two_factor_enabled: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    roles: list[RoleBrief] = []

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int
    limit: int
    offset: int


class UserCreate(BaseModel):
    """Create a user directly (administrators)"""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=50)
    role_ids: list[int] = Field(default_factory=list)


class UserUpdate(BaseModel):
    """Profile update; omitted fields are unchanged"""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=50)
    timezone: str | None = Field(default=None, max_length=64)
    language: str | None = Field(default=None, max_length=16)


class UserStatusUpdate(BaseModel):
    status: UserStatus = Field(..., description="active or suspended")


class RoleAssignment(BaseModel):
    role_id: int


class UserPermissionsResponse(BaseModel):
    user_id: int
    roles: list[str]
    permissions: list[str]
