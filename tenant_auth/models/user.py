from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, Boolean, DateTime, Enum, ForeignKey, JSON, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenant_auth.models.base import Base, TimestampMixin
from tenant_auth.models.role import user_roles

if TYPE_CHECKING:
    from tenant_auth.models.tenant import Tenant
    from tenant_auth.models.role import Role
    from tenant_auth.models.session import UserSession


class UserStatus(str, PyEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"
    PENDING = "pending"


class User(Base, TimestampMixin):
    """
    User account inside one tenant.

    The same email may exist in several tenants (one row per tenant).
    Deleting a user is a soft delete: `deleted_at` is set and the row is
    ignored by lookups and authentication.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,  # Critical for multi-tenant queries
    )

    # Authentication
    email: Mapped[str] = mapped_column(String(254), nullable=False, index=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Profile
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    language: Mapped[str] = mapped_column(String(16), nullable=False, default="en")

    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=UserStatus.PENDING,
    )

    # Password reset
    reset_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reset_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Two-factor authentication (secret and backup codes are encrypted)
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    two_factor_secret: Mapped[str | None] = mapped_column(String(512), nullable=True)
    two_factor_backup_codes: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    two_factor_enabled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Activity tracking
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_login_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="users")
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary=user_roles,
        back_populates="users",
    )
    sessions: Mapped[list["UserSession"]] = relationship(
        "UserSession",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    # Email is unique among live users only, so a soft-deleted address can be reused
    __table_args__ = (
        Index(
            "uq_tenant_user_email",
            "tenant_id",
            "email",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def can_login(self) -> bool:
        """Active, verified and not soft-deleted"""
        return self.status == UserStatus.ACTIVE and self.email_verified and not self.is_deleted

    def __repr__(self) -> str:
        return f"<User(id={self.id}, tenant_id={self.tenant_id}, email='{self.email}')>"
