"""Tenant model for multi-tenant isolation."""

from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, Boolean, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenant_auth.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from tenant_auth.models.user import User
    from tenant_auth.models.role import Role


class TenantStatus(str, PyEnum):
    """Tenant lifecycle status"""

    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELED = "canceled"


class PlanTier(str, PyEnum):
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class Tenant(Base, TimestampMixin):
    """
    Multi-tenant isolation boundary.

    A tenant is an organization (company, customer) that owns users, roles,
    sessions, invitations and audit logs. Nothing crosses tenant boundaries
    except the global permission catalog.

    A tenant starts in PENDING_VERIFICATION after registration and becomes
    ACTIVE once its contact email is verified. Only ACTIVE tenants can log in.
    """

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(63), unique=True, nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(254), unique=True, nullable=False)
    status: Mapped[TenantStatus] = mapped_column(
        Enum(TenantStatus, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=TenantStatus.PENDING_VERIFICATION,
    )

    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    verification_token: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    verification_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    plan_tier: Mapped[PlanTier] = mapped_column(
        Enum(PlanTier, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PlanTier.FREE,
    )
    activated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    users: Mapped[list["User"]] = relationship(
        "User",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )

    def can_access(self) -> bool:
        """Only active tenants can authenticate"""
        return self.status == TenantStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug='{self.slug}', status={self.status.value})>"
