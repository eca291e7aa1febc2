from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, get_cache
from tenant_auth.database import get_db
from tenant_auth.dependencies import get_auth_context, require_permission
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.schemas.permission_schemas import (
    PermissionCategoryResponse,
    PermissionCheckResponse,
    PermissionComparisonResponse,
    PermissionResponse,
)
from tenant_auth.services.permission_service import PermissionService
from tenant_auth.services.user_service import UserService

router = APIRouter()


@router.get("", response_model=list[PermissionResponse])
async def list_permissions(
    context: AuthContext = Depends(require_permission("roles", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """The global permission catalog."""
    service = PermissionService(db, cache)
    return service.list_permissions()


@router.get("/categories", response_model=list[PermissionCategoryResponse])
async def list_permissions_by_category(
    context: AuthContext = Depends(require_permission("roles", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = PermissionService(db, cache)
    return [
        {"category": category, "permissions": permissions}
        for category, permissions in service.list_by_category().items()
    ]


@router.get("/me", response_model=list[str])
async def my_permissions(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Effective permissions of the caller as resource.action codes."""
    service = PermissionService(db, cache)
    return service.get_user_permissions(context.tenant.id, context.user.id)


@router.get("/check", response_model=PermissionCheckResponse)
async def check_permission(
    resource: str = Query(..., min_length=1, max_length=100),
    action: str = Query(..., min_length=1, max_length=100),
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Whether the caller holds resource.action (wildcards included)."""
    service = PermissionService(db, cache)
    allowed = service.has_permission(context.tenant.id, context.user.id, resource, action)
    return {"resource": resource, "action": action, "allowed": allowed}


@router.get("/compare", response_model=PermissionComparisonResponse)
async def compare_permissions(
    first_user_id: int,
    second_user_id: int,
    context: AuthContext = Depends(require_permission("users", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Diff the effective permissions of two users of the organization."""
    users = UserService(db, cache)
    first = users.get_user(context, first_user_id)
    second = users.get_user(context, second_user_id)
    diff = PermissionService(db, cache).compare_user_permissions(context.tenant.id, first.id, second.id)
    return {"first_user_id": first.id, "second_user_id": second.id, **diff}
