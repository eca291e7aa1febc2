from datetime import datetime

from pydantic import BaseModel, Field


class TwoFactorSetupResponse(BaseModel):
    """Secret and backup codes to confirm with /2fa/enable; nothing is stored yet"""

    secret: str
    provisioning_uri: str
    backup_codes: list[str]


class TwoFactorEnableRequest(BaseModel):
    secret: str = Field(..., min_length=16, max_length=64)
    code: str = Field(..., min_length=6, max_length=6)
    backup_codes: list[str]


class TwoFactorDisableRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=16)


class TwoFactorStatusResponse(BaseModel):
    enabled: bool
    enabled_at: datetime | None = None
    backup_codes_remaining: int


class BackupCodesResponse(BaseModel):
    backup_codes: list[str]


class TwoFactorVerifyResponse(BaseModel):
    valid: bool
    method: str | None = None
