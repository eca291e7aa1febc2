from datetime import datetime

from pydantic import BaseModel, Field

from tenant_auth.schemas.permission_schemas import PermissionResponse

ROLE_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"


class RoleResponse(BaseModel):
    """Role with its permissions"""

    id: int
    tenant_id: int
    name: str
    display_name: str
    description: str | None = None
    parent_role_id: int | None = None
    level: int
    is_system: bool
    permissions: list[PermissionResponse] = []
    user_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, pattern=ROLE_NAME_PATTERN)
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    parent_role_id: int | None = None
    permission_ids: list[int] = Field(..., min_length=1)


class RoleUpdate(BaseModel):
    """Omitted fields are unchanged; clear_parent detaches the role from its parent"""

    display_name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    parent_role_id: int | None = None
    clear_parent: bool = False
    permission_ids: list[int] | None = None


class RolePermissionsUpdate(BaseModel):
    permission_ids: list[int] = Field(..., min_length=1)


class RoleBulkAssign(BaseModel):
    user_ids: list[int] = Field(..., min_length=1, max_length=500)


class RoleBulkAssignResponse(BaseModel):
    message: str
    count: int
