"""Repository for User model operations."""

from typing import Optional

from sqlalchemy import func, insert, delete, or_
from sqlalchemy.orm import Session

from tenant_auth.models.base import utcnow
from tenant_auth.models.role import user_roles
from tenant_auth.models.tenant import Tenant
from tenant_auth.models.user import User, UserStatus


class UserRepository:
    """
    Repository for User model operations.

    Every lookup is scoped to a tenant and skips soft-deleted rows, except
    `find_by_email_all_tenants` which is used by login to discover the
    tenants an email belongs to.
    """

    def __init__(self, db: Session):
        self.db = db

    def _active_query(self, tenant_id: int):
        return self.db.query(User).filter(User.tenant_id == tenant_id, User.deleted_at.is_(None))

    def get_by_id(self, tenant_id: int, user_id: int) -> User | None:
        """Get a non-deleted user by ID within a tenant"""
        return self._active_query(tenant_id).filter(User.id == user_id).first()

    def get_by_ids(self, tenant_id: int, user_ids: list[int]) -> list[User]:
        if not user_ids:
            return []
        return self._active_query(tenant_id).filter(User.id.in_(user_ids)).order_by(User.id).all()

    def get_by_email(self, tenant_id: int, email: str) -> User | None:
        """Get a non-deleted user by email within a tenant"""
        return self._active_query(tenant_id).filter(User.email == email.lower()).first()

    def email_exists(self, tenant_id: int, email: str) -> bool:
        return self.get_by_email(tenant_id, email) is not None

    def find_by_email_all_tenants(self, email: str) -> list[User]:
        """
        Get every non-deleted user with this email, across tenants.

        Args:
            email: Email address (case-insensitive)

        Returns:
            Users ordered by tenant company name
        """
        return (
            self.db.query(User)
            .join(Tenant, Tenant.id == User.tenant_id)
            .filter(User.email == email.lower(), User.deleted_at.is_(None))
            .order_by(Tenant.company_name, User.id)
            .all()
        )

    def get_by_reset_token_hash(self, token_hash: str) -> User | None:
        return (
            self.db.query(User)
            .filter(User.reset_token_hash == token_hash, User.deleted_at.is_(None))
            .first()
        )

    def get_with_filters(
        self,
        tenant_id: int,
        search: Optional[str] = None,
        status: Optional[UserStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[User], int]:
        """
        List users of a tenant with optional search and status filters.

        Args:
            tenant_id: Tenant ID for isolation
            search: Case-insensitive match on email, first or last name
            status: Optional status filter
            limit: Maximum number of results
            offset: Pagination offset

        Returns:
            Tuple of (users, total count before pagination)
        """
        query = self._active_query(tenant_id)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                or_(
                    func.lower(User.email).like(pattern),
                    func.lower(User.first_name).like(pattern),
                    func.lower(User.last_name).like(pattern),
                )
            )
        if status:
            query = query.filter(User.status == status)

        total = query.count()
        users = query.order_by(User.created_at.desc(), User.id.desc()).limit(limit).offset(offset).all()
        return users, total

    def create_no_commit(self, user: User) -> User:
        """Add user and flush to get its ID (caller commits)"""
        self.db.add(user)
        self.db.flush()
        return user

    def update(self, user: User) -> User:
        """Update existing user"""
        self.db.commit()
        self.db.refresh(user)
        return user

    def soft_delete(self, user: User) -> User:
        """Mark user deleted; the row stays for audit purposes"""
        user.deleted_at = utcnow()
        user.status = UserStatus.DEACTIVATED
        return self.update(user)

    def assign_role_no_commit(self, user_id: int, role_id: int, assigned_by: int | None = None) -> None:
        self.db.execute(
            insert(user_roles).values(
                user_id=user_id,
                role_id=role_id,
                assigned_by=assigned_by,
                assigned_at=utcnow(),
            )
        )

    def assign_role(self, user_id: int, role_id: int, assigned_by: int | None = None) -> None:
        """Assign a role to a user"""
        self.assign_role_no_commit(user_id, role_id, assigned_by)
        self.db.commit()

    def unassign_role(self, user_id: int, role_id: int) -> bool:
        """
        Remove a role from a user.

        Returns:
            True if the assignment existed
        """
        result = self.db.execute(
            delete(user_roles).where(user_roles.c.user_id == user_id, user_roles.c.role_id == role_id)
        )
        self.db.commit()
        return result.rowcount > 0

    def has_role(self, user_id: int, role_id: int) -> bool:
        return (
            self.db.query(user_roles)
            .filter(user_roles.c.user_id == user_id, user_roles.c.role_id == role_id)
            .first()
            is not None
        )
