from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend
from tenant_auth.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from tenant_auth.core.rbac import SYSTEM_ROLE_DISPLAY, system_role_grants
from tenant_auth.logging import get_logger
from tenant_auth.models.audit_log import AuditAction
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.permission import Permission
from tenant_auth.models.role import Role, SystemRole
from tenant_auth.models.tenant import Tenant
from tenant_auth.models.user import User
from tenant_auth.repositories.permission_repository import PermissionRepository
from tenant_auth.repositories.role_repository import RoleRepository
from tenant_auth.repositories.user_repository import UserRepository
from tenant_auth.schemas.role_schemas import RoleCreate, RoleUpdate
from tenant_auth.services.audit_service import AuditService
from tenant_auth.services.permission_service import PermissionService

logger = get_logger(__name__)

_RESERVED_ROLE_NAMES = {role.value for role in SystemRole}


class RoleService:
    """Service layer for tenant role management"""

    def __init__(self, db: Session, cache: CacheBackend):
        self.db = db
        self.role_repo = RoleRepository(db)
        self.user_repo = UserRepository(db)
        self.permission_repo = PermissionRepository(db)
        self.permission_service = PermissionService(db, cache)
        self.audit = AuditService(db)

    def provision_system_roles(self, tenant: Tenant) -> dict[SystemRole, Role]:
        """
        Create the owner/admin/manager/user roles of a tenant from the catalog.

        Roles are flushed, not committed; the caller commits with the rest of
        tenant activation.

        Returns:
            Mapping of SystemRole to the created Role
        """
        catalog = self.permission_repo.get_all()
        roles = {}
        for system_role, (display_name, description) in SYSTEM_ROLE_DISPLAY.items():
            role = Role(
                tenant_id=tenant.id,
                name=system_role.value,
                display_name=display_name,
                description=description,
                level=0,
                is_system=True,
                permissions=[p for p in catalog if system_role_grants(system_role, p.resource, p.action)],
            )
            roles[system_role] = self.role_repo.create_no_commit(role)
        return roles

    def role_to_dict(self, role: Role) -> dict:
        return {
            "id": role.id,
            "tenant_id": role.tenant_id,
            "name": role.name,
            "display_name": role.display_name,
            "description": role.description,
            "parent_role_id": role.parent_role_id,
            "level": role.level,
            "is_system": role.is_system,
            "permissions": self.permission_service.get_role_permissions(role),
            "user_count": self.role_repo.count_users(role.id),
            "created_at": role.created_at,
            "updated_at": role.updated_at,
        }

    def list_roles(self, context: AuthContext) -> list[dict]:
        """
        List roles of the current tenant with permission and user counts.

        Returns:
            List of role dicts, system roles first
        """
        return [self.role_to_dict(role) for role in self.role_repo.get_by_tenant(context.tenant.id)]

    def get_role(self, context: AuthContext, role_id: int) -> Role:
        """
        Get a role of the current tenant.

        Raises:
            NotFoundException: If role not found in this tenant
        """
        role = self.role_repo.get_by_id(context.tenant.id, role_id)
        if not role:
            raise NotFoundException(f"Role {role_id} not found")
        return role

    def _resolve_permissions(self, permission_ids: list[int]) -> list[Permission]:
        if not permission_ids:
            raise ValidationException("A role must grant at least one permission")
        unique_ids = set(permission_ids)
        permissions = self.permission_repo.get_by_ids(list(unique_ids))
        if len(permissions) != len(unique_ids):
            missing = sorted(unique_ids - {p.id for p in permissions})
            raise ValidationException(f"Unknown permission IDs: {missing}")
        return permissions

    def _resolve_parent(self, context: AuthContext, parent_role_id: int | None) -> Role | None:
        if parent_role_id is None:
            return None
        parent = self.role_repo.get_by_id(context.tenant.id, parent_role_id)
        if not parent:
            raise ValidationException(f"Parent role {parent_role_id} not found")
        return parent

    def create_role(self, context: AuthContext, role_data: RoleCreate) -> Role:
        """
        Create a custom role.

        Raises:
            ConflictException: If the name is taken or reserved
            ValidationException: If parent or permissions are invalid
        """
        if role_data.name in _RESERVED_ROLE_NAMES:
            raise ConflictException(f"Role name '{role_data.name}' is reserved")
        if self.role_repo.get_by_name(context.tenant.id, role_data.name):
            raise ConflictException(f"Role '{role_data.name}' already exists")

        parent = self._resolve_parent(context, role_data.parent_role_id)
        role = Role(
            tenant_id=context.tenant.id,
            name=role_data.name,
            display_name=role_data.display_name,
            description=role_data.description,
            parent_role_id=parent.id if parent else None,
            level=parent.level + 1 if parent else 0,
            is_system=False,
            created_by=context.user.id,
            permissions=self._resolve_permissions(role_data.permission_ids),
        )
        role = self.role_repo.create(role)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.ROLE_CREATED,
            user_id=context.user.id,
            resource_type="role",
            resource_id=role.id,
            metadata={"name": role.name},
        )
        return role

    def update_role(self, context: AuthContext, role_id: int, role_data: RoleUpdate) -> Role:
        """
        Update a custom role.

        Raises:
            ForbiddenException: If the role is a system role
            ValidationException: If the new parent creates a cycle
        """
        role = self.get_role(context, role_id)
        if not role.can_edit():
            raise ForbiddenException("System roles cannot be modified")

        if role_data.display_name is not None:
            role.display_name = role_data.display_name
        if role_data.description is not None:
            role.description = role_data.description

        if role_data.clear_parent:
            role.parent_role_id = None
            self._relevel(role, 0)
        elif role_data.parent_role_id is not None:
            parent = self._resolve_parent(context, role_data.parent_role_id)
            self._ensure_no_cycle(role, parent)
            role.parent_role_id = parent.id
            self._relevel(role, parent.level + 1)

        permissions_changed = role_data.permission_ids is not None
        if permissions_changed:
            role.permissions = self._resolve_permissions(role_data.permission_ids)

        role = self.role_repo.update(role)
        if permissions_changed:
            self.permission_service.invalidate_role(context.tenant.id, role.id)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.ROLE_UPDATED,
            user_id=context.user.id,
            resource_type="role",
            resource_id=role.id,
            metadata=role_data.model_dump(exclude_unset=True),
        )
        return role

    def set_permissions(self, context: AuthContext, role_id: int, permission_ids: list[int]) -> Role:
        """Replace the permission set of a custom role"""
        return self.update_role(context, role_id, RoleUpdate(permission_ids=permission_ids))

    def delete_role(self, context: AuthContext, role_id: int) -> None:
        """
        Delete a custom role.

        Raises:
            ForbiddenException: If the role is a system role
            ConflictException: If users still hold the role
        """
        role = self.get_role(context, role_id)
        if not role.can_delete():
            raise ForbiddenException("System roles cannot be deleted")
        user_count = self.role_repo.count_users(role.id)
        if user_count:
            raise ConflictException(f"Role is assigned to {user_count} user(s)")

        for child in self.role_repo.get_children(role.id):
            child.parent_role_id = None
            self._relevel(child, 0)

        name = role.name
        self.role_repo.delete(role)
        self.audit.log_event(
            context.tenant.id,
            AuditAction.ROLE_DELETED,
            user_id=context.user.id,
            resource_type="role",
            resource_id=role_id,
            metadata={"name": name},
        )

    def list_role_users(self, context: AuthContext, role_id: int) -> list[User]:
        """Non-deleted users of the current tenant holding the role"""
        role = self.get_role(context, role_id)
        return self.user_repo.get_by_ids(context.tenant.id, self.role_repo.get_user_ids(role.id))

    def bulk_assign(self, context: AuthContext, role_id: int, user_ids: list[int]) -> int:
        """
        Assign a role to several users at once.

        Users who already hold the role are skipped.

        Returns:
            Number of users that received the role

        Raises:
            NotFoundException: If the role is not in this tenant
            ValidationException: If any user is not in this tenant
        """
        role = self.get_role(context, role_id)
        unique_ids = set(user_ids)
        if not unique_ids:
            raise ValidationException("At least one user ID is required")
        users = self.user_repo.get_by_ids(context.tenant.id, list(unique_ids))
        if len(users) != len(unique_ids):
            missing = sorted(unique_ids - {u.id for u in users})
            raise ValidationException(f"Unknown user IDs: {missing}")

        holders = set(self.role_repo.get_user_ids(role.id))
        assigned = [user for user in users if user.id not in holders]
        for user in assigned:
            self.user_repo.assign_role_no_commit(user.id, role.id, assigned_by=context.user.id)
        self.db.commit()

        for user in assigned:
            self.permission_service.invalidate_user(context.tenant.id, user.id)
            self.audit.log_event(
                context.tenant.id,
                AuditAction.ROLE_ASSIGNED,
                user_id=context.user.id,
                resource_type="user",
                resource_id=user.id,
                metadata={"role_id": role.id, "role": role.name},
            )
        logger.info("role_bulk_assigned", tenant_id=context.tenant.id, role_id=role.id, count=len(assigned))
        return len(assigned)

    def _ensure_no_cycle(self, role: Role, parent: Role) -> None:
        ancestor: Role | None = parent
        while ancestor is not None:
            if ancestor.id == role.id:
                raise ValidationException("Role hierarchy cannot contain cycles")
            ancestor = ancestor.parent

    def _relevel(self, role: Role, level: int) -> None:
        role.level = level
        for child in self.role_repo.get_children(role.id):
            self._relevel(child, level + 1)
