"""
Permission resolution.

A user's effective permissions are the de-duplicated union of the
permissions granted by every role assigned to them in a tenant. A grant
with action "*" covers every action on its resource. Resolved sets are
cached per (tenant, user) and invalidated whenever role assignments or
role grants change.
"""

import json
from collections import defaultdict

from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, cache_key
from tenant_auth.config import settings
from tenant_auth.logging import get_logger
from tenant_auth.models.permission import Permission, permission_matches
from tenant_auth.models.role import Role
from tenant_auth.repositories.permission_repository import PermissionRepository
from tenant_auth.repositories.role_repository import RoleRepository

logger = get_logger(__name__)

PERMISSION_CACHE_PREFIX = "user_perms"


def split_permission(code: str) -> tuple[str, str]:
    """'users.view' -> ('users', 'view')"""
    resource, _, action = code.partition(".")
    return resource, action


class PermissionService:
    """Service layer for permission checks and the permission catalog"""

    def __init__(self, db: Session, cache: CacheBackend):
        self.db = db
        self.cache = cache
        self.permission_repo = PermissionRepository(db)
        self.role_repo = RoleRepository(db)

    def _cache_key(self, tenant_id: int, user_id: int) -> str:
        return cache_key(PERMISSION_CACHE_PREFIX, tenant_id, user_id)

    def get_user_permissions(self, tenant_id: int, user_id: int) -> list[str]:
        """
        Resolve a user's effective permissions.

        Args:
            tenant_id: Tenant ID
            user_id: User ID

        Returns:
            Sorted list of "resource.action" codes
        """
        key = self._cache_key(tenant_id, user_id)
        cached = self.cache.get(key)
        if cached is not None:
            return json.loads(cached)

        codes = sorted({p.code for p in self.permission_repo.get_user_permissions(tenant_id, user_id)})
        self.cache.set(key, json.dumps(codes), settings.PERMISSION_CACHE_TTL_SECONDS)
        return codes

    def has_permission(self, tenant_id: int, user_id: int, resource: str, action: str) -> bool:
        """True if some granted permission matches resource and action (or is the resource wildcard)"""
        for code in self.get_user_permissions(tenant_id, user_id):
            granted_resource, granted_action = split_permission(code)
            if permission_matches(granted_resource, granted_action, resource, action):
                return True
        return False

    def has_any_permission(self, tenant_id: int, user_id: int, required: list[tuple[str, str]]) -> bool:
        return any(self.has_permission(tenant_id, user_id, resource, action) for resource, action in required)

    def has_all_permissions(self, tenant_id: int, user_id: int, required: list[tuple[str, str]]) -> bool:
        return all(self.has_permission(tenant_id, user_id, resource, action) for resource, action in required)

    def invalidate_user(self, tenant_id: int, user_id: int) -> None:
        self.cache.delete(self._cache_key(tenant_id, user_id))

    def invalidate_role(self, tenant_id: int, role_id: int) -> None:
        """Drop cached permission sets of every holder of a role"""
        keys = [self._cache_key(tenant_id, user_id) for user_id in self.role_repo.get_user_ids(role_id)]
        if keys:
            self.cache.delete(*keys)
        logger.debug("permission_cache_invalidated", tenant_id=tenant_id, role_id=role_id, users=len(keys))

    def invalidate_tenant(self, tenant_id: int) -> int:
        return self.cache.delete_pattern(cache_key(PERMISSION_CACHE_PREFIX, tenant_id, "*"))

    # Catalog queries

    def list_permissions(self) -> list[Permission]:
        return self.permission_repo.get_all()

    def list_by_category(self) -> dict[str, list[Permission]]:
        """Catalog grouped by category, categories in catalog order"""
        grouped: dict[str, list[Permission]] = defaultdict(list)
        for permission in self.permission_repo.get_all():
            grouped[permission.category or "Other"].append(permission)
        return dict(grouped)

    def get_role_permissions(self, role: Role) -> list[Permission]:
        return sorted(role.permissions, key=lambda p: (p.resource, p.action))

    def get_user_role_names(self, tenant_id: int, user_id: int) -> list[str]:
        return [role.name for role in self.role_repo.get_user_roles(tenant_id, user_id)]

    def compare_user_permissions(self, tenant_id: int, user_a_id: int, user_b_id: int) -> dict[str, list[str]]:
        """
        Diff the effective permissions of two users.

        Returns:
            Dict with "common", "only_first" and "only_second" code lists
        """
        first = set(self.get_user_permissions(tenant_id, user_a_id))
        second = set(self.get_user_permissions(tenant_id, user_b_id))
        return {
            "common": sorted(first & second),
            "only_first": sorted(first - second),
            "only_second": sorted(second - first),
        }
