"""Repository for the global Permission catalog."""

from sqlalchemy.orm import Session

from tenant_auth.models.permission import Permission
from tenant_auth.models.role import Role, role_permissions, user_roles


class PermissionRepository:
    """Repository for Permission catalog operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self) -> list[Permission]:
        """Get the full catalog ordered by category, resource and action"""
        return (
            self.db.query(Permission)
            .order_by(Permission.category, Permission.resource, Permission.action)
            .all()
        )

    def get_by_ids(self, permission_ids: list[int]) -> list[Permission]:
        if not permission_ids:
            return []
        return self.db.query(Permission).filter(Permission.id.in_(permission_ids)).all()

    def get_by_resource_action(self, resource: str, action: str) -> Permission | None:
        return (
            self.db.query(Permission)
            .filter(Permission.resource == resource, Permission.action == action)
            .first()
        )

    def get_user_permissions(self, tenant_id: int, user_id: int) -> list[Permission]:
        """
        Get the distinct permissions granted by every role assigned to a user.

        Only roles of `tenant_id` are considered.
        """
        return (
            self.db.query(Permission)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .join(Role, Role.id == role_permissions.c.role_id)
            .join(user_roles, user_roles.c.role_id == Role.id)
            .filter(Role.tenant_id == tenant_id, user_roles.c.user_id == user_id)
            .distinct()
            .order_by(Permission.resource, Permission.action)
            .all()
        )

    def seed_catalog(self, entries: list[tuple[str, str, str, str, str]]) -> int:
        """
        Insert missing catalog entries.

        Args:
            entries: (resource, action, display_name, description, category) tuples

        Returns:
            Number of permissions created
        """
        existing = {(p.resource, p.action) for p in self.db.query(Permission).all()}
        created = 0
        for resource, action, display_name, description, category in entries:
            if (resource, action) in existing:
                continue
            self.db.add(
                Permission(
                    resource=resource,
                    action=action,
                    display_name=display_name,
                    description=description,
                    category=category,
                )
            )
            created += 1
        self.db.commit()
        return created
