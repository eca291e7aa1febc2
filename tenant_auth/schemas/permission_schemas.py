from pydantic import BaseModel


class PermissionResponse(BaseModel):
    id: int
    resource: str
    action: str
    code: str
    display_name: str
    description: str | None = None
    category: str | None = None

    model_config = {"from_attributes": True}


class PermissionCategoryResponse(BaseModel):
    category: str
    permissions: list[PermissionResponse]


class PermissionCheckResponse(BaseModel):
    resource: str
    action: str
    allowed: bool


class PermissionComparisonResponse(BaseModel):
    first_user_id: int
    second_user_id: int
    common: list[str]
    only_first: list[str]
    only_second: list[str]
