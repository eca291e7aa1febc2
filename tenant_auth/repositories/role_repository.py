"""Repository for Role model operations."""

from sqlalchemy import func
from sqlalchemy.orm import Session

from tenant_auth.models.role import Role, user_roles
from tenant_auth.models.user import User


class RoleRepository:
    """Repository for tenant-scoped Role operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, tenant_id: int, role_id: int) -> Role | None:
        """
        Get role ensuring it belongs to the tenant.

        Returns None if role doesn't exist or belongs to another tenant.
        """
        return self.db.query(Role).filter(Role.id == role_id, Role.tenant_id == tenant_id).first()

    def get_by_name(self, tenant_id: int, name: str) -> Role | None:
        return self.db.query(Role).filter(Role.tenant_id == tenant_id, Role.name == name).first()

    def get_by_ids(self, tenant_id: int, role_ids: list[int]) -> list[Role]:
        if not role_ids:
            return []
        return self.db.query(Role).filter(Role.tenant_id == tenant_id, Role.id.in_(role_ids)).all()

    def get_by_tenant(self, tenant_id: int) -> list[Role]:
        """Get all roles of a tenant, system roles first"""
        return (
            self.db.query(Role)
            .filter(Role.tenant_id == tenant_id)
            .order_by(Role.is_system.desc(), Role.level, Role.name)
            .all()
        )

    def get_user_roles(self, tenant_id: int, user_id: int) -> list[Role]:
        return (
            self.db.query(Role)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .filter(Role.tenant_id == tenant_id, user_roles.c.user_id == user_id)
            .order_by(Role.name)
            .all()
        )

    def get_children(self, role_id: int) -> list[Role]:
        return self.db.query(Role).filter(Role.parent_role_id == role_id).all()

    def count_users(self, role_id: int) -> int:
        """Count non-deleted users holding the role"""
        return (
            self.db.query(func.count(user_roles.c.user_id))
            .join(User, User.id == user_roles.c.user_id)
            .filter(user_roles.c.role_id == role_id, User.deleted_at.is_(None))
            .scalar()
        )

    def get_user_ids(self, role_id: int) -> list[int]:
        rows = self.db.query(user_roles.c.user_id).filter(user_roles.c.role_id == role_id).all()
        return [row[0] for row in rows]

    def create(self, role: Role) -> Role:
        """Create new role"""
        self.db.add(role)
        self.db.commit()
        self.db.refresh(role)
        return role

    def create_no_commit(self, role: Role) -> Role:
        self.db.add(role)
        self.db.flush()
        return role

    def update(self, role: Role) -> Role:
        """Update existing role"""
        self.db.commit()
        self.db.refresh(role)
        return role

    def delete(self, role: Role) -> None:
        """Delete role (its permission grants go with it)"""
        self.db.delete(role)
        self.db.commit()
