"""Default permission catalog and system role definitions."""

from tenant_auth.models.permission import WILDCARD_ACTION
from tenant_auth.models.role import SystemRole

# (resource, action, display_name, description, category)
DEFAULT_PERMISSIONS: list[tuple[str, str, str, str, str]] = [
    ("users", "view", "View Users", "View user list and profiles", "User Management"),
    ("users", "create", "Create Users", "Create and invite users", "User Management"),
    ("users", "edit", "Edit Users", "Edit user profiles", "User Management"),
    ("users", "delete", "Delete Users", "Delete users", "User Management"),
    ("users", "manage_status", "Manage User Status", "Suspend and activate users", "User Management"),
    ("users", WILDCARD_ACTION, "All User Permissions", "Full access to user management", "User Management"),
    ("roles", "view", "View Roles", "View roles and their permissions", "Access Control"),
    ("roles", "create", "Create Roles", "Create custom roles", "Access Control"),
    ("roles", "edit", "Edit Roles", "Edit roles and their permissions", "Access Control"),
    ("roles", "delete", "Delete Roles", "Delete custom roles", "Access Control"),
    ("roles", "assign", "Assign Roles", "Assign roles to users", "Access Control"),
    ("roles", WILDCARD_ACTION, "All Role Permissions", "Full access to role management", "Access Control"),
    ("settings", "view", "View Settings", "View company settings", "Settings"),
    ("settings", "edit", "Edit Settings", "Edit company settings", "Settings"),
    ("settings", WILDCARD_ACTION, "All Settings Permissions", "Full access to settings", "Settings"),
    ("security", "view_logs", "View Audit Logs", "View the audit trail", "Security"),
    ("security", "view_sessions", "View Sessions", "View active sessions", "Security"),
    ("security", "manage_sessions", "Manage Sessions", "Revoke sessions", "Security"),
    ("security", WILDCARD_ACTION, "All Security Permissions", "Full access to security features", "Security"),
]

SYSTEM_ROLE_DISPLAY: dict[SystemRole, tuple[str, str]] = {
    SystemRole.OWNER: ("Owner", "Full access to everything"),
    SystemRole.ADMIN: ("Administrator", "Manage users, roles and settings"),
    SystemRole.MANAGER: ("Manager", "Manage users with limited access"),
    SystemRole.USER: ("User", "Basic read-only access"),
}

_ADMIN_RESOURCES = {"users", "roles", "settings"}


def system_role_grants(role: SystemRole, resource: str, action: str) -> bool:
    """Whether a system role receives a catalog permission on provisioning"""
    if role == SystemRole.OWNER:
        return action == WILDCARD_ACTION
    if role == SystemRole.ADMIN:
        return resource in _ADMIN_RESOURCES and action not in ("delete", WILDCARD_ACTION)
    if role == SystemRole.MANAGER:
        return (resource, action) in {("users", "view"), ("users", "edit"), ("settings", "view")}
    if role == SystemRole.USER:
        return action == "view"
    return False
