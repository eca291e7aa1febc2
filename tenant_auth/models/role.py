"""Tenant roles and their association tables."""

from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenant_auth.models.base import Base, TimestampMixin, utcnow
from tenant_auth.models.permission import Permission

if TYPE_CHECKING:
    from tenant_auth.models.tenant import Tenant
    from tenant_auth.models.user import User


class SystemRole(str, PyEnum):
    """
    Roles provisioned for every tenant on verification.

    Role Hierarchy (highest to lowest):
    1. OWNER - every wildcard permission
    2. ADMIN - manage users, roles and settings, but no deletes
    3. MANAGER - view/edit users, view settings
    4. USER - view-only access

    System roles cannot be edited or deleted.
    """

    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, nullable=False, default=utcnow),
)

user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("assigned_by", Integer, nullable=True),
    Column("assigned_at", DateTime, nullable=False, default=utcnow),
)


class Role(Base, TimestampMixin):
    """
    Named permission bundle inside a tenant.

    Roles may point at a parent role in the same tenant; `level` is the
    depth in that tree (0 = root). The parent link is organizational: a
    user's effective permissions are the union of the roles assigned to
    them, parents are not walked.
    """

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_role_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("roles.id", ondelete="SET NULL"), nullable=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="roles")
    parent: Mapped["Role | None"] = relationship("Role", remote_side=[id])
    permissions: Mapped[list[Permission]] = relationship(
        Permission,
        secondary=role_permissions,
        lazy="selectin",
    )
    users: Mapped[list["User"]] = relationship(
        "User",
        secondary=user_roles,
        back_populates="roles",
    )

    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_tenant_role_name"),)

    def can_edit(self) -> bool:
        return not self.is_system

    def can_delete(self) -> bool:
        return not self.is_system

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, tenant_id={self.tenant_id}, name='{self.name}')>"
