from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, get_cache
from tenant_auth.database import get_db
from tenant_auth.dependencies import require_permission
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.user import UserStatus
from tenant_auth.schemas.auth_schemas import MessageResponse
from tenant_auth.schemas.session_schemas import RevokedSessionsResponse, SessionResponse
from tenant_auth.schemas.user_schemas import (
    RoleAssignment,
    UserCreate,
    UserListResponse,
    UserPermissionsResponse,
    UserResponse,
    UserStatusUpdate,
    UserUpdate,
)
from tenant_auth.services.session_service import SessionService
from tenant_auth.services.user_service import UserService

router = APIRouter()


@router.get("", response_model=UserListResponse)
async def list_users(
    search: Optional[str] = Query(None, max_length=100, description="Match email, first or last name"),
    status_filter: Optional[UserStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    context: AuthContext = Depends(require_permission("users", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """List users of the current organization."""
    service = UserService(db, cache)
    users, total = service.list_users(context, search, status_filter, limit, offset)
    return {"items": users, "total": total, "limit": limit, "offset": offset}


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    context: AuthContext = Depends(require_permission("users", "create")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Create an active user, optionally with roles."""
    service = UserService(db, cache)
    return service.create_user(context, user_data)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    context: AuthContext = Depends(require_permission("users", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = UserService(db, cache)
    return service.get_user(context, user_id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    context: AuthContext = Depends(require_permission("users", "edit")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = UserService(db, cache)
    return service.update_user(context, user_id, user_data)


@router.put("/{user_id}/status", response_model=UserResponse)
async def change_user_status(
    user_id: int,
    status_update: UserStatusUpdate,
    context: AuthContext = Depends(require_permission("users", "manage_status")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """
    Activate or suspend a user.

    - Suspension revokes every session of the user
    - You cannot change your own status
    """
    service = UserService(db, cache)
    return service.change_status(context, user_id, status_update.status)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    context: AuthContext = Depends(require_permission("users", "delete")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Soft-delete a user. You cannot delete yourself."""
    service = UserService(db, cache)
    service.delete_user(context, user_id)
    return {"message": "User deleted successfully"}


@router.post("/{user_id}/roles", response_model=UserResponse)
async def assign_role(
    user_id: int,
    assignment: RoleAssignment,
    context: AuthContext = Depends(require_permission("roles", "assign")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = UserService(db, cache)
    return service.assign_role(context, user_id, assignment.role_id)


@router.delete("/{user_id}/roles/{role_id}", response_model=UserResponse)
async def unassign_role(
    user_id: int,
    role_id: int,
    context: AuthContext = Depends(require_permission("roles", "assign")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = UserService(db, cache)
    return service.unassign_role(context, user_id, role_id)


@router.get("/{user_id}/permissions", response_model=UserPermissionsResponse)
async def get_user_permissions(
    user_id: int,
    context: AuthContext = Depends(require_permission("users", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Roles and effective permissions of a user."""
    service = UserService(db, cache)
    return service.get_user_permissions(context, user_id)


@router.get("/{user_id}/sessions", response_model=list[SessionResponse])
async def list_user_sessions(
    user_id: int,
    context: AuthContext = Depends(require_permission("security", "view_sessions")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    user = UserService(db, cache).get_user(context, user_id)
    return SessionService(db).list_sessions_for_user(context.tenant.id, user.id)


@router.delete("/{user_id}/sessions", response_model=RevokedSessionsResponse)
async def revoke_user_sessions(
    user_id: int,
    context: AuthContext = Depends(require_permission("security", "manage_sessions")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Revoke every session of a user."""
    user = UserService(db, cache).get_user(context, user_id)
    count = SessionService(db).revoke_all_user_sessions(context.tenant.id, user.id)
    return {"message": "Sessions revoked", "revoked": count}
