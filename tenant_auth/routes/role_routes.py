from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, get_cache
from tenant_auth.database import get_db
from tenant_auth.dependencies import require_permission
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.schemas.auth_schemas import MessageResponse
from tenant_auth.schemas.role_schemas import (
    RoleBulkAssign,
    RoleBulkAssignResponse,
    RoleCreate,
    RolePermissionsUpdate,
    RoleResponse,
    RoleUpdate,
)
from tenant_auth.schemas.user_schemas import UserResponse
from tenant_auth.services.role_service import RoleService

router = APIRouter()


@router.get("", response_model=list[RoleResponse])
async def list_roles(
    context: AuthContext = Depends(require_permission("roles", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """List roles of the current organization with permissions and user counts."""
    service = RoleService(db, cache)
    return service.list_roles(context)


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    context: AuthContext = Depends(require_permission("roles", "create")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """
    Create a custom role.

    - Name must be unique in the organization and not a system role name
    - Parent role must belong to the organization
    - At least one permission is required
    """
    service = RoleService(db, cache)
    role = service.create_role(context, role_data)
    return service.role_to_dict(role)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    context: AuthContext = Depends(require_permission("roles", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = RoleService(db, cache)
    return service.role_to_dict(service.get_role(context, role_id))


@router.patch("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_data: RoleUpdate,
    context: AuthContext = Depends(require_permission("roles", "edit")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Update a custom role. System roles cannot be modified."""
    service = RoleService(db, cache)
    return service.role_to_dict(service.update_role(context, role_id, role_data))


@router.put("/{role_id}/permissions", response_model=RoleResponse)
async def set_role_permissions(
    role_id: int,
    update: RolePermissionsUpdate,
    context: AuthContext = Depends(require_permission("roles", "edit")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Replace the permissions of a custom role."""
    service = RoleService(db, cache)
    return service.role_to_dict(service.set_permissions(context, role_id, update.permission_ids))


@router.delete("/{role_id}", response_model=MessageResponse)
async def delete_role(
    role_id: int,
    context: AuthContext = Depends(require_permission("roles", "delete")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Delete a custom role that no user holds."""
    service = RoleService(db, cache)
    service.delete_role(context, role_id)
    return {"message": "Role deleted successfully"}


@router.get("/{role_id}/users", response_model=list[UserResponse])
async def list_role_users(
    role_id: int,
    context: AuthContext = Depends(require_permission("roles", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = RoleService(db, cache)
    return service.list_role_users(context, role_id)


@router.post("/{role_id}/assign", response_model=RoleBulkAssignResponse)
async def bulk_assign_role(
    role_id: int,
    assignment: RoleBulkAssign,
    context: AuthContext = Depends(require_permission("roles", "assign")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """
    Assign the role to several users of the organization.

    Users who already hold the role are left unchanged and not counted.
    """
    service = RoleService(db, cache)
    count = service.bulk_assign(context, role_id, assignment.user_ids)
    return {"message": "Role assigned successfully", "count": count}
