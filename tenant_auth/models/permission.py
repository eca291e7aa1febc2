"""Global permission catalog."""

from sqlalchemy import String, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tenant_auth.models.base import Base, TimestampMixin

WILDCARD_ACTION = "*"


class Permission(Base, TimestampMixin):
    """
    A (resource, action) pair in the global catalog.

    The catalog is shared by every tenant; tenants only choose which
    permissions their roles grant. Action "*" is a wildcard that matches
    every action on its resource.
    """

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    resource: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    __table_args__ = (UniqueConstraint("resource", "action", name="uq_permission_resource_action"),)

    @property
    def code(self) -> str:
        """resource.action form, e.g. users.view"""
        return f"{self.resource}.{self.action}"

    def __repr__(self) -> str:
        return f"<Permission({self.code})>"


def permission_matches(granted_resource: str, granted_action: str, resource: str, action: str) -> bool:
    """A grant matches when resources are equal and the action is equal or wildcard"""
    if granted_resource != resource:
        return False
    return granted_action == action or granted_action == WILDCARD_ACTION
