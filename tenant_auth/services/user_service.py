from typing import Optional

from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend
from tenant_auth.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from tenant_auth.core.security import hash_password, validate_password_strength
from tenant_auth.logging import get_logger
from tenant_auth.models.audit_log import AuditAction
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.role import SystemRole
from tenant_auth.models.user import User, UserStatus
from tenant_auth.repositories.role_repository import RoleRepository
from tenant_auth.repositories.user_repository import UserRepository
from tenant_auth.schemas.user_schemas import UserCreate, UserUpdate
from tenant_auth.services.audit_service import AuditService
from tenant_auth.services.permission_service import PermissionService
from tenant_auth.services.session_service import SessionService

logger = get_logger(__name__)


class UserService:
    """Service layer for user management inside a tenant"""

    def __init__(self, db: Session, cache: CacheBackend):
        self.db = db
        self.user_repo = UserRepository(db)
        self.role_repo = RoleRepository(db)
        self.permission_service = PermissionService(db, cache)
        self.session_service = SessionService(db)
        self.audit = AuditService(db)

    def list_users(
        self,
        context: AuthContext,
        search: Optional[str] = None,
        status: Optional[UserStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[User], int]:
        """
        List users of the current tenant.

        Args:
            context: Auth context
            search: Optional search on email and names
            status: Optional status filter
            limit: Page size
            offset: Pagination offset

        Returns:
            Tuple of (users, total)
        """
        return self.user_repo.get_with_filters(context.tenant.id, search, status, limit, offset)

    def get_user(self, context: AuthContext, user_id: int) -> User:
        """
        Get a user of the current tenant.

        Raises:
            NotFoundException: If user not found, deleted, or in another tenant
        """
        user = self.user_repo.get_by_id(context.tenant.id, user_id)
        if not user:
            raise NotFoundException(f"User {user_id} not found")
        return user

    def create_user(self, context: AuthContext, user_data: UserCreate) -> User:
        """
        Create an active, verified user with optional roles.

        Raises:
            ConflictException: If the email already exists in this tenant
            ValidationException: If password is weak or roles are unknown
        """
        email = user_data.email.lower()
        if self.user_repo.email_exists(context.tenant.id, email):
            raise ConflictException(f"User with email {email} already exists")
        validate_password_strength(user_data.password)

        roles = self.role_repo.get_by_ids(context.tenant.id, user_data.role_ids)
        if len(roles) != len(set(user_data.role_ids)):
            raise ValidationException("One or more roles were not found")

        user = User(
            tenant_id=context.tenant.id,
            email=email,
            password_hash=hash_password(user_data.password),
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            phone=user_data.phone,
            status=UserStatus.ACTIVE,
            email_verified=True,
            created_by=context.user.id,
        )
        self.user_repo.create_no_commit(user)
        for role in roles:
            self.user_repo.assign_role_no_commit(user.id, role.id, assigned_by=context.user.id)
        self.db.commit()
        self.db.refresh(user)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.USER_CREATED,
            user_id=context.user.id,
            resource_type="user",
            resource_id=user.id,
            metadata={"email": email, "role_ids": [r.id for r in roles]},
        )
        return user

    def update_user(self, context: AuthContext, user_id: int, user_data: UserUpdate) -> User:
        """Update profile fields that were provided"""
        user = self.get_user(context, user_id)
        changes = user_data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None and field in ("first_name", "last_name", "timezone", "language"):
                continue
            setattr(user, field, value)
        user = self.user_repo.update(user)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.USER_UPDATED,
            user_id=context.user.id,
            resource_type="user",
            resource_id=user.id,
            metadata={"fields": sorted(changes)},
        )
        return user

    def change_status(self, context: AuthContext, user_id: int, status: UserStatus) -> User:
        """
        Activate or suspend a user. Suspension revokes all of their sessions.

        Raises:
            ValidationException: If status is not active/suspended
            ForbiddenException: If changing your own status
        """
        if status not in (UserStatus.ACTIVE, UserStatus.SUSPENDED):
            raise ValidationException("Status must be 'active' or 'suspended'")
        if user_id == context.user.id:
            raise ForbiddenException("You cannot change your own status")

        user = self.get_user(context, user_id)
        user.status = status
        if status == UserStatus.ACTIVE:
            user.email_verified = True
        user = self.user_repo.update(user)

        if status == UserStatus.SUSPENDED:
            self.session_service.revoke_all_user_sessions(context.tenant.id, user.id)
            action = AuditAction.USER_SUSPENDED
        else:
            action = AuditAction.USER_ACTIVATED

        self.audit.log_event(
            context.tenant.id, action, user_id=context.user.id, resource_type="user", resource_id=user.id
        )
        return user

    def delete_user(self, context: AuthContext, user_id: int) -> None:
        """
        Soft-delete a user and revoke their sessions.

        Raises:
            ForbiddenException: If deleting yourself or the last owner
        """
        if user_id == context.user.id:
            raise ForbiddenException("You cannot delete your own account")
        user = self.get_user(context, user_id)
        self._ensure_not_last_owner(context, user)

        self.user_repo.soft_delete(user)
        self.session_service.revoke_all_user_sessions(context.tenant.id, user.id)
        self.permission_service.invalidate_user(context.tenant.id, user.id)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.USER_DELETED,
            user_id=context.user.id,
            resource_type="user",
            resource_id=user.id,
            metadata={"email": user.email},
        )

    def assign_role(self, context: AuthContext, user_id: int, role_id: int) -> User:
        """
        Assign a role to a user.

        Raises:
            NotFoundException: If user or role not found in this tenant
            ConflictException: If the user already holds the role
        """
        user = self.get_user(context, user_id)
        role = self.role_repo.get_by_id(context.tenant.id, role_id)
        if not role:
            raise NotFoundException(f"Role {role_id} not found")
        if self.user_repo.has_role(user.id, role.id):
            raise ConflictException(f"User already has role '{role.name}'")

        self.user_repo.assign_role(user.id, role.id, assigned_by=context.user.id)
        self.permission_service.invalidate_user(context.tenant.id, user.id)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.ROLE_ASSIGNED,
            user_id=context.user.id,
            resource_type="user",
            resource_id=user.id,
            metadata={"role_id": role.id, "role": role.name},
        )
        self.db.refresh(user)
        return user

    def unassign_role(self, context: AuthContext, user_id: int, role_id: int) -> User:
        """
        Remove a role from a user.

        Raises:
            NotFoundException: If the user doesn't hold the role
            ForbiddenException: If this would remove the tenant's last owner
        """
        user = self.get_user(context, user_id)
        role = self.role_repo.get_by_id(context.tenant.id, role_id)
        if not role or not self.user_repo.has_role(user.id, role.id):
            raise NotFoundException(f"User does not have role {role_id}")
        if role.is_system and role.name == SystemRole.OWNER.value and self.role_repo.count_users(role.id) <= 1:
            raise ForbiddenException("Cannot remove the last owner of the tenant")

        self.user_repo.unassign_role(user.id, role.id)
        self.permission_service.invalidate_user(context.tenant.id, user.id)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.ROLE_UNASSIGNED,
            user_id=context.user.id,
            resource_type="user",
            resource_id=user.id,
            metadata={"role_id": role.id, "role": role.name},
        )
        self.db.refresh(user)
        return user

    def get_user_permissions(self, context: AuthContext, user_id: int) -> dict:
        user = self.get_user(context, user_id)
        return {
            "user_id": user.id,
            "roles": self.permission_service.get_user_role_names(context.tenant.id, user.id),
            "permissions": self.permission_service.get_user_permissions(context.tenant.id, user.id),
        }

    def _ensure_not_last_owner(self, context: AuthContext, user: User) -> None:
        owner = self.role_repo.get_by_name(context.tenant.id, SystemRole.OWNER.value)
        if owner and self.user_repo.has_role(user.id, owner.id) and self.role_repo.count_users(owner.id) <= 1:
            raise ForbiddenException("Cannot delete the last owner of the tenant")
