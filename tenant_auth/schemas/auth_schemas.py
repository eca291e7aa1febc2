from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from tenant_auth.models.tenant import TenantStatus
from tenant_auth.models.user import UserStatus


class TenantRegisterRequest(BaseModel):
    """Sign up a new organization and its owner account"""

    company_name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr = Field(..., description="Owner email, also the tenant contact email")
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    slug: str | None = Field(default=None, max_length=63, description="Preferred URL slug")


class TenantRegisterResponse(BaseModel):
    tenant_id: int
    slug: str
    status: TenantStatus
    message: str
    verification_token: str | None = Field(
        default=None, description="Returned because email delivery is not part of this service"
    )


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    tenant_id: int | None = Field(default=None, description="Tenant chosen after a tenant-selection response")
    remember_me: bool = False
    device_token: str | None = Field(default=None, description="Token from a previously trusted device")


class TwoFactorLoginRequest(BaseModel):
    two_factor_token: str = Field(..., min_length=1)
    code: str = Field(..., min_length=6, max_length=16, description="TOTP or backup code")
    remember_me: bool = False
    remember_device: bool = False


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class PasswordResetRequest(BaseModel):
    email: EmailStr
    tenant_slug: str = Field(..., min_length=1, max_length=63)


class PasswordResetConfirm(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


class TenantSummary(BaseModel):
    """Tenant option shown when an email belongs to several tenants"""

    id: int
    slug: str
    company_name: str

    model_config = {"from_attributes": True}


class AuthUserResponse(BaseModel):
    id: int
    tenant_id: int
    email: str
    first_name: str
    last_name: str
    status: UserStatus
    email_verified: bool
    two_factor_enabled: bool
    last_login_at: datetime | None = None

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    """
    Outcome of a login step.

    Exactly one shape is populated:
    - tenants: pick one and log in again with tenant_id
    - requires_two_factor + two_factor_token: call /2fa/verify
    - access_token + refresh_token: logged in
    """

    user: AuthUserResponse | None = None
    tenant: TenantSummary | None = None
    tenants: list[TenantSummary] | None = None
    requires_two_factor: bool = False
    two_factor_token: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    device_token: str | None = None


class MeResponse(BaseModel):
    user: AuthUserResponse
    tenant: TenantSummary
    roles: list[str]
    permissions: list[str]
    session_id: int


class MessageResponse(BaseModel):
    message: str


class PasswordResetRequestResponse(MessageResponse):
    reset_token: str | None = Field(
        default=None, description="Only populated in DEBUG mode, since email delivery is out of scope"
    )
