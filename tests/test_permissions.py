import pytest

from tenant_auth.models.permission import Permission, permission_matches
from tenant_auth.models.role import Role, SystemRole
from tenant_auth.repositories.permission_repository import PermissionRepository
from tenant_auth.repositories.user_repository import UserRepository
from tenant_auth.services.permission_service import PermissionService
from tests.conftest import create_user, get_role


def _permission(db, resource, action) -> Permission:
    return PermissionRepository(db).get_by_resource_action(resource, action)


def _custom_role(db, tenant, name, grants) -> Role:
    role = Role(
        tenant_id=tenant.id,
        name=name,
        display_name=name.title(),
        permissions=[_permission(db, r, a) for r, a in grants],
    )
    db.add(role)
    db.commit()
    return role


class TestWildcardMatching:
    def test_exact_match(self):
        assert permission_matches("users", "view", "users", "view")

    def test_wildcard_covers_every_action(self):
        assert permission_matches("users", "*", "users", "delete")
        assert permission_matches("users", "*", "users", "anything_new")

    def test_wildcard_is_scoped_to_resource(self):
        assert not permission_matches("users", "*", "roles", "view")

    def test_specific_action_does_not_cover_others(self):
        assert not permission_matches("users", "view", "users", "edit")
        assert not permission_matches("users", "view", "users", "*")


class TestSystemRoles:
    """Permissions provisioned for system roles"""

    def _codes(self, db, tenant, name):
        return {p.code for p in get_role(db, tenant, name).permissions}

    def test_owner_gets_every_wildcard(self, db_session, tenant):
        assert self._codes(db_session, tenant, "owner") == {"users.*", "roles.*", "settings.*", "security.*"}

    def test_admin_cannot_delete(self, db_session, tenant):
        codes = self._codes(db_session, tenant, "admin")

        assert "users.create" in codes
        assert "roles.assign" in codes
        assert "settings.edit" in codes
        assert not any(code.endswith(".delete") or code.endswith(".*") for code in codes)
        assert not any(code.startswith("security.") for code in codes)

    def test_manager(self, db_session, tenant):
        assert self._codes(db_session, tenant, "manager") == {"users.view", "users.edit", "settings.view"}

    def test_user_is_view_only(self, db_session, tenant):
        assert self._codes(db_session, tenant, "user") == {"users.view", "roles.view", "settings.view"}

    def test_system_roles_flagged(self, db_session, tenant):
        for name in SystemRole:
            role = get_role(db_session, tenant, name.value)
            assert role.is_system
            assert not role.can_edit()
            assert not role.can_delete()


class TestPermissionResolver:
    def test_union_over_roles(self, db_session, cache, tenant):
        user = create_user(db_session, tenant, email="multi@acme.example.com", roles=("manager",))
        auditor = _custom_role(db_session, tenant, "auditor", [("security", "view_logs"), ("users", "view")])
        UserRepository(db_session).assign_role(user.id, auditor.id)

        permissions = PermissionService(db_session, cache).get_user_permissions(tenant.id, user.id)

        assert permissions == sorted({"users.view", "users.edit", "settings.view", "security.view_logs"})

    def test_user_without_roles_has_nothing(self, db_session, cache, tenant):
        user = create_user(db_session, tenant, email="none@acme.example.com", roles=())
        service = PermissionService(db_session, cache)

        assert service.get_user_permissions(tenant.id, user.id) == []
        assert not service.has_permission(tenant.id, user.id, "users", "view")

    def test_owner_wildcards_grant_everything(self, db_session, cache, tenant, owner):
        service = PermissionService(db_session, cache)

        assert service.has_permission(tenant.id, owner.id, "users", "delete")
        assert service.has_permission(tenant.id, owner.id, "security", "manage_sessions")
        assert service.has_permission(tenant.id, owner.id, "roles", "*")
        assert not service.has_permission(tenant.id, owner.id, "billing", "view")

    def test_any_and_all(self, db_session, cache, tenant, member):
        service = PermissionService(db_session, cache)

        assert service.has_any_permission(tenant.id, member.id, [("users", "delete"), ("users", "view")])
        assert not service.has_all_permissions(tenant.id, member.id, [("users", "delete"), ("users", "view")])
        assert service.has_all_permissions(tenant.id, member.id, [("roles", "view"), ("settings", "view")])

    def test_roles_of_other_tenants_ignored(self, db_session, cache, tenant, other_tenant, member):
        # Assigning a foreign tenant's role must not leak its permissions
        foreign_owner = get_role(db_session, other_tenant, "owner")
        UserRepository(db_session).assign_role(member.id, foreign_owner.id)

        service = PermissionService(db_session, cache)
        assert not service.has_permission(tenant.id, member.id, "users", "delete")

    def test_results_are_cached(self, db_session, cache, tenant, member):
        service = PermissionService(db_session, cache)
        service.get_user_permissions(tenant.id, member.id)

        assert cache.get(f"user_perms:{tenant.id}:{member.id}") is not None

        # A role granted behind the cache's back is invisible until invalidation
        UserRepository(db_session).assign_role(member.id, get_role(db_session, tenant, "owner").id)
        assert not service.has_permission(tenant.id, member.id, "users", "delete")

        service.invalidate_user(tenant.id, member.id)
        assert service.has_permission(tenant.id, member.id, "users", "delete")

    def test_invalidate_role_clears_every_holder(self, db_session, cache, tenant, owner, member):
        service = PermissionService(db_session, cache)
        service.get_user_permissions(tenant.id, member.id)
        user_role = get_role(db_session, tenant, "user")

        service.invalidate_role(tenant.id, user_role.id)

        assert cache.get(f"user_perms:{tenant.id}:{member.id}") is None

    def test_invalidate_tenant(self, db_session, cache, tenant, owner, member):
        service = PermissionService(db_session, cache)
        service.get_user_permissions(tenant.id, owner.id)
        service.get_user_permissions(tenant.id, member.id)

        assert service.invalidate_tenant(tenant.id) == 2
        assert cache.get(f"user_perms:{tenant.id}:{owner.id}") is None

    def test_compare_user_permissions(self, db_session, cache, tenant, owner, member):
        diff = PermissionService(db_session, cache).compare_user_permissions(tenant.id, owner.id, member.id)

        assert diff["common"] == []
        assert "users.*" in diff["only_first"]
        assert "users.view" in diff["only_second"]

    def test_list_by_category(self, db_session, cache):
        grouped = PermissionService(db_session, cache).list_by_category()

        assert set(grouped) == {"User Management", "Access Control", "Settings", "Security"}
        assert len(grouped["User Management"]) == 6


class TestPermissionRoutes:
    def test_catalog_requires_roles_view(self, client, member_headers):
        response = client.get("/api/permissions", headers=member_headers)

        assert response.status_code == 200
        codes = {p["code"] for p in response.json()}
        assert "users.*" in codes
        assert len(codes) == 19

    def test_my_permissions(self, client, owner_headers):
        response = client.get("/api/permissions/me", headers=owner_headers)

        assert response.status_code == 200
        assert set(response.json()) == {"users.*", "roles.*", "settings.*", "security.*"}

    @pytest.mark.parametrize(
        "resource, action, allowed",
        [("users", "view", True), ("users", "delete", False), ("security", "view_logs", False)],
    )
    def test_check(self, client, member_headers, resource, action, allowed):
        response = client.get(
            "/api/permissions/check", params={"resource": resource, "action": action}, headers=member_headers
        )

        assert response.status_code == 200
        assert response.json()["allowed"] is allowed

    def test_by_category(self, client, owner_headers):
        response = client.get("/api/permissions/categories", headers=owner_headers)

        assert response.status_code == 200
        categories = [c["category"] for c in response.json()]
        assert sorted(categories) == ["Access Control", "Security", "Settings", "User Management"]
