import pytest

from tenant_auth.models.audit_log import AuditAction, AuditLog, AuditStatus
from tenant_auth.models.permission import Permission
from tenant_auth.models.user import User, UserStatus
from tests.conftest import TEST_PASSWORD, create_user, get_role, login_headers


def _permission_ids(db, *codes) -> list[int]:
    wanted = {tuple(code.split(".", 1)) for code in codes}
    return [p.id for p in db.query(Permission).all() if (p.resource, p.action) in wanted]


def _create_role(client, headers, db, name, codes=("users.view",), **extra):
    return client.post(
        "/api/roles",
        headers=headers,
        json={"name": name, "display_name": name.title(), "permission_ids": _permission_ids(db, *codes), **extra},
    )


class TestUserManagement:
    def test_create_user(self, client, db_session, tenant, owner_headers):
        manager = get_role(db_session, tenant, "manager")

        response = client.post(
            "/api/users",
            headers=owner_headers,
            json={
                "email": "new@acme.example.com",
                "password": TEST_PASSWORD,
                "first_name": "New",
                "last_name": "Hire",
                "role_ids": [manager.id],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "active"
        assert data["email_verified"] is True
        assert [r["name"] for r in data["roles"]] == ["manager"]
        assert db_session.query(AuditLog).filter(AuditLog.action == AuditAction.USER_CREATED).count() == 1

    def test_create_duplicate_email(self, client, owner, owner_headers):
        response = client.post(
            "/api/users",
            headers=owner_headers,
            json={"email": owner.email, "password": TEST_PASSWORD, "first_name": "Dup", "last_name": "User"},
        )

        assert response.status_code == 409

    def test_create_with_foreign_role(self, client, db_session, other_tenant, owner_headers):
        foreign = get_role(db_session, other_tenant, "user")

        response = client.post(
            "/api/users",
            headers=owner_headers,
            json={
                "email": "x@acme.example.com",
                "password": TEST_PASSWORD,
                "first_name": "X",
                "last_name": "Y",
                "role_ids": [foreign.id],
            },
        )

        assert response.status_code == 400

    def test_list_and_search(self, client, owner, member, owner_headers):
        everyone = client.get("/api/users", headers=owner_headers).json()
        assert everyone["total"] == 2

        found = client.get("/api/users", params={"search": "member"}, headers=owner_headers).json()
        assert [u["email"] for u in found["items"]] == [member.email]

    def test_list_filters_by_status(self, client, db_session, tenant, owner_headers):
        create_user(db_session, tenant, email="sus@acme.example.com", status=UserStatus.SUSPENDED)

        response = client.get("/api/users", params={"status": "suspended"}, headers=owner_headers)

        assert [u["email"] for u in response.json()["items"]] == ["sus@acme.example.com"]

    def test_tenant_isolation(self, client, db_session, other_tenant, owner_headers):
        outsider = create_user(db_session, other_tenant, email="outsider@globex.example.com")

        assert client.get(f"/api/users/{outsider.id}", headers=owner_headers).status_code == 404
        listed = client.get("/api/users", headers=owner_headers).json()
        assert outsider.email not in {u["email"] for u in listed["items"]}

    def test_update_profile(self, client, member, owner_headers):
        response = client.patch(
            f"/api/users/{member.id}", headers=owner_headers, json={"first_name": "Renamed", "timezone": "Europe/Paris"}
        )

        assert response.status_code == 200
        assert response.json()["first_name"] == "Renamed"
        assert response.json()["timezone"] == "Europe/Paris"
        assert response.json()["last_name"] == "Ber"

    def test_suspend_revokes_sessions(self, client, member, member_headers, owner_headers):
        response = client.put(f"/api/users/{member.id}/status", headers=owner_headers, json={"status": "suspended"})

        assert response.status_code == 200
        assert response.json()["status"] == "suspended"
        assert client.get("/api/auth/me", headers=member_headers).status_code == 401

    def test_cannot_change_own_status(self, client, owner, owner_headers):
        response = client.put(f"/api/users/{owner.id}/status", headers=owner_headers, json={"status": "suspended"})

        assert response.status_code == 403

    def test_status_must_be_active_or_suspended(self, client, member, owner_headers):
        response = client.put(f"/api/users/{member.id}/status", headers=owner_headers, json={"status": "pending"})

        assert response.status_code == 400

    def test_soft_delete(self, client, db_session, member, member_headers, owner_headers):
        response = client.delete(f"/api/users/{member.id}", headers=owner_headers)

        assert response.status_code == 200
        row = db_session.get(User, member.id)
        assert row is not None
        assert row.deleted_at is not None
        assert row.status == UserStatus.DEACTIVATED
        assert client.get(f"/api/users/{member.id}", headers=owner_headers).status_code == 404
        assert client.get("/api/auth/me", headers=member_headers).status_code == 401

    def test_recreate_after_soft_delete(self, client, db_session, member, owner_headers):
        email = member.email
        client.delete(f"/api/users/{member.id}", headers=owner_headers)

        response = client.post(
            "/api/users",
            headers=owner_headers,
            json={"email": email, "password": TEST_PASSWORD, "first_name": "Back", "last_name": "Again"},
        )

        assert response.status_code == 201
        assert response.json()["id"] != member.id
        rows = db_session.query(User).filter(User.email == email).all()
        assert len(rows) == 2
        assert sum(row.deleted_at is None for row in rows) == 1

    def test_live_duplicate_still_rejected_after_recreate(self, client, member, owner_headers):
        email = member.email
        client.delete(f"/api/users/{member.id}", headers=owner_headers)
        payload = {"email": email, "password": TEST_PASSWORD, "first_name": "Back", "last_name": "Again"}

        assert client.post("/api/users", headers=owner_headers, json=payload).status_code == 201
        assert client.post("/api/users", headers=owner_headers, json=payload).status_code == 409

    def test_cannot_delete_self(self, client, owner, owner_headers):
        assert client.delete(f"/api/users/{owner.id}", headers=owner_headers).status_code == 403

    def test_user_permissions_endpoint(self, client, member, owner_headers):
        response = client.get(f"/api/users/{member.id}/permissions", headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["roles"] == ["user"]
        assert "users.view" in response.json()["permissions"]


class TestAccessControl:
    def test_member_cannot_create_users(self, client, db_session, member, member_headers):
        response = client.post(
            "/api/users",
            headers=member_headers,
            json={"email": "n@acme.example.com", "password": TEST_PASSWORD, "first_name": "N", "last_name": "O"},
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Missing required permission: users.create"
        denial = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.UNAUTHORIZED_ACCESS).one()
        assert denial.user_id == member.id
        assert denial.status == AuditStatus.FAILURE
        assert denial.details["required"] == "users.create"

    def test_member_can_view(self, client, member_headers):
        assert client.get("/api/users", headers=member_headers).status_code == 200

    def test_admin_cannot_delete(self, client, db_session, tenant, member):
        admin = create_user(db_session, tenant, email="admin@acme.example.com", roles=("admin",))
        headers = login_headers(db_session, admin, tenant)

        assert client.delete(f"/api/users/{member.id}", headers=headers).status_code == 403
        assert client.put(
            f"/api/users/{member.id}/status", headers=headers, json={"status": "suspended"}
        ).status_code == 200

    def test_new_role_takes_effect_immediately(self, client, db_session, tenant, member, member_headers, owner_headers):
        assert client.get("/api/audit-logs", headers=member_headers).status_code == 403
        auditor = _create_role(client, owner_headers, db_session, "auditor", codes=("security.view_logs",)).json()

        client.post(f"/api/users/{member.id}/roles", headers=owner_headers, json={"role_id": auditor["id"]})

        assert client.get("/api/audit-logs", headers=member_headers).status_code == 200


class TestRoleAssignment:
    def test_assign_and_unassign(self, client, db_session, tenant, member, owner_headers):
        manager = get_role(db_session, tenant, "manager")

        assigned = client.post(f"/api/users/{member.id}/roles", headers=owner_headers, json={"role_id": manager.id})
        assert assigned.status_code == 200
        assert {r["name"] for r in assigned.json()["roles"]} == {"user", "manager"}

        again = client.post(f"/api/users/{member.id}/roles", headers=owner_headers, json={"role_id": manager.id})
        assert again.status_code == 409

        removed = client.delete(f"/api/users/{member.id}/roles/{manager.id}", headers=owner_headers)
        assert removed.status_code == 200
        assert [r["name"] for r in removed.json()["roles"]] == ["user"]

    def test_cannot_remove_last_owner(self, client, db_session, tenant, owner, owner_headers):
        owner_role = get_role(db_session, tenant, "owner")

        response = client.delete(f"/api/users/{owner.id}/roles/{owner_role.id}", headers=owner_headers)

        assert response.status_code == 403

    def test_unassign_role_not_held(self, client, db_session, tenant, member, owner_headers):
        admin_role = get_role(db_session, tenant, "admin")

        response = client.delete(f"/api/users/{member.id}/roles/{admin_role.id}", headers=owner_headers)

        assert response.status_code == 404


class TestRoleManagement:
    def test_list_roles(self, client, member, owner_headers):
        roles = {r["name"]: r for r in client.get("/api/roles", headers=owner_headers).json()}

        assert set(roles) == {"owner", "admin", "manager", "user"}
        assert roles["owner"]["user_count"] == 1
        assert roles["user"]["user_count"] == 1
        assert all(r["is_system"] for r in roles.values())

    def test_create_role(self, client, db_session, owner_headers):
        response = _create_role(client, owner_headers, db_session, "support", codes=("users.view", "users.edit"))

        assert response.status_code == 201
        data = response.json()
        assert data["is_system"] is False
        assert data["level"] == 0
        assert sorted(p["code"] for p in data["permissions"]) == ["users.edit", "users.view"]

    def test_create_requires_permissions(self, client, owner_headers):
        response = client.post(
            "/api/roles", headers=owner_headers, json={"name": "empty", "display_name": "Empty", "permission_ids": []}
        )

        assert response.status_code == 422

    def test_unknown_permission(self, client, owner_headers):
        response = client.post(
            "/api/roles", headers=owner_headers, json={"name": "odd", "display_name": "Odd", "permission_ids": [9999]}
        )

        assert response.status_code == 400

    @pytest.mark.parametrize("name", ["owner", "admin"])
    def test_reserved_names(self, client, db_session, owner_headers, name):
        assert _create_role(client, owner_headers, db_session, name).status_code == 409

    def test_duplicate_name(self, client, db_session, owner_headers):
        _create_role(client, owner_headers, db_session, "support")

        assert _create_role(client, owner_headers, db_session, "support").status_code == 409

    def test_same_name_in_other_tenant(self, client, db_session, other_tenant, owner_headers):
        other_owner = create_user(db_session, other_tenant, email="boss@globex.example.com")
        other_headers = login_headers(db_session, other_owner, other_tenant)

        assert _create_role(client, owner_headers, db_session, "support").status_code == 201
        assert _create_role(client, other_headers, db_session, "support").status_code == 201

    def test_hierarchy_levels(self, client, db_session, owner_headers):
        parent = _create_role(client, owner_headers, db_session, "lead").json()
        child = _create_role(client, owner_headers, db_session, "junior", parent_role_id=parent["id"]).json()

        assert child["parent_role_id"] == parent["id"]
        assert child["level"] == 1

    def test_cycle_rejected(self, client, db_session, owner_headers):
        parent = _create_role(client, owner_headers, db_session, "lead").json()
        child = _create_role(client, owner_headers, db_session, "junior", parent_role_id=parent["id"]).json()

        response = client.patch(f"/api/roles/{parent['id']}", headers=owner_headers, json={"parent_role_id": child["id"]})

        assert response.status_code == 400
        assert "cycles" in response.json()["detail"]

    def test_self_parent_rejected(self, client, db_session, owner_headers):
        role = _create_role(client, owner_headers, db_session, "lead").json()

        response = client.patch(f"/api/roles/{role['id']}", headers=owner_headers, json={"parent_role_id": role["id"]})

        assert response.status_code == 400

    def test_update_permissions_invalidates_cache(self, client, db_session, member, member_headers, owner_headers):
        role = _create_role(client, owner_headers, db_session, "auditor", codes=("users.view",)).json()
        client.post(f"/api/users/{member.id}/roles", headers=owner_headers, json={"role_id": role["id"]})
        assert client.get("/api/audit-logs", headers=member_headers).status_code == 403

        response = client.put(
            f"/api/roles/{role['id']}/permissions",
            headers=owner_headers,
            json={"permission_ids": _permission_ids(db_session, "security.view_logs")},
        )

        assert response.status_code == 200
        assert client.get("/api/audit-logs", headers=member_headers).status_code == 200

    def test_system_roles_are_immutable(self, client, db_session, tenant, owner_headers):
        user_role = get_role(db_session, tenant, "user")

        patched = client.patch(f"/api/roles/{user_role.id}", headers=owner_headers, json={"display_name": "Renamed"})
        deleted = client.delete(f"/api/roles/{user_role.id}", headers=owner_headers)

        assert patched.status_code == 403
        assert deleted.status_code == 403

    def test_delete_role_in_use(self, client, db_session, member, owner_headers):
        role = _create_role(client, owner_headers, db_session, "support").json()
        client.post(f"/api/users/{member.id}/roles", headers=owner_headers, json={"role_id": role["id"]})

        assert client.delete(f"/api/roles/{role['id']}", headers=owner_headers).status_code == 409

    def test_delete_detaches_children(self, client, db_session, owner_headers):
        parent = _create_role(client, owner_headers, db_session, "lead").json()
        child = _create_role(client, owner_headers, db_session, "junior", parent_role_id=parent["id"]).json()

        assert client.delete(f"/api/roles/{parent['id']}", headers=owner_headers).status_code == 200

        detached = client.get(f"/api/roles/{child['id']}", headers=owner_headers).json()
        assert detached["parent_role_id"] is None
        assert detached["level"] == 0

    def test_foreign_role_not_found(self, client, db_session, other_tenant, owner_headers):
        foreign = get_role(db_session, other_tenant, "user")

        assert client.get(f"/api/roles/{foreign.id}", headers=owner_headers).status_code == 404


class TestRoleMembers:
    def test_list_role_users(self, client, db_session, tenant, owner, member, owner_headers):
        user_role = get_role(db_session, tenant, "user")

        response = client.get(f"/api/roles/{user_role.id}/users", headers=owner_headers)

        assert response.status_code == 200
        assert [u["email"] for u in response.json()] == [member.email]

    def test_list_skips_deleted_users(self, client, db_session, tenant, member, owner_headers):
        user_role = get_role(db_session, tenant, "user")
        client.delete(f"/api/users/{member.id}", headers=owner_headers)

        assert client.get(f"/api/roles/{user_role.id}/users", headers=owner_headers).json() == []

    def test_bulk_assign(self, client, db_session, tenant, owner, member, owner_headers):
        manager = get_role(db_session, tenant, "manager")
        extra = create_user(db_session, tenant, email="extra@acme.example.com", roles=("user",))

        response = client.post(
            f"/api/roles/{manager.id}/assign", headers=owner_headers, json={"user_ids": [member.id, extra.id]}
        )

        assert response.status_code == 200
        assert response.json()["count"] == 2
        holders = client.get(f"/api/roles/{manager.id}/users", headers=owner_headers).json()
        assert {u["id"] for u in holders} == {member.id, extra.id}
        assigned = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.ROLE_ASSIGNED).count()
        assert assigned == 2

    def test_bulk_assign_skips_current_holders(self, client, db_session, tenant, owner, member, owner_headers):
        user_role = get_role(db_session, tenant, "user")

        response = client.post(
            f"/api/roles/{user_role.id}/assign", headers=owner_headers, json={"user_ids": [member.id, owner.id]}
        )

        assert response.status_code == 200
        assert response.json()["count"] == 1

    def test_bulk_assign_takes_effect_immediately(self, client, db_session, tenant, member, member_headers, owner_headers):
        admin_role = get_role(db_session, tenant, "admin")
        payload = {"email": "n@acme.example.com", "password": TEST_PASSWORD, "first_name": "N", "last_name": "O"}
        assert client.post("/api/users", headers=member_headers, json=payload).status_code == 403

        client.post(f"/api/roles/{admin_role.id}/assign", headers=owner_headers, json={"user_ids": [member.id]})

        assert client.post("/api/users", headers=member_headers, json=payload).status_code == 201

    def test_bulk_assign_rejects_foreign_users(self, client, db_session, tenant, other_tenant, member, owner_headers):
        manager = get_role(db_session, tenant, "manager")
        outsider = create_user(db_session, other_tenant, email="someone@globex.example.com")

        response = client.post(
            f"/api/roles/{manager.id}/assign", headers=owner_headers, json={"user_ids": [member.id, outsider.id]}
        )

        assert response.status_code == 400
        assert client.get(f"/api/roles/{manager.id}/users", headers=owner_headers).json() == []

    def test_bulk_assign_requires_user_ids(self, client, db_session, tenant, owner_headers):
        manager = get_role(db_session, tenant, "manager")

        response = client.post(f"/api/roles/{manager.id}/assign", headers=owner_headers, json={"user_ids": []})

        assert response.status_code == 422

    def test_bulk_assign_requires_permission(self, client, db_session, tenant, member, member_headers):
        manager = get_role(db_session, tenant, "manager")

        response = client.post(
            f"/api/roles/{manager.id}/assign", headers=member_headers, json={"user_ids": [member.id]}
        )

        assert response.status_code == 403

    def test_foreign_role_members_not_found(self, client, db_session, other_tenant, owner_headers):
        foreign = get_role(db_session, other_tenant, "user")

        assert client.get(f"/api/roles/{foreign.id}/users", headers=owner_headers).status_code == 404
