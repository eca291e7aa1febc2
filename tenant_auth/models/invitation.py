"""Pending invitations to join a tenant."""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import String, Integer, DateTime, Enum, ForeignKey, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from tenant_auth.models.base import Base, TimestampMixin, utcnow


class InvitationStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    REVOKED = "revoked"


class Invitation(Base, TimestampMixin):
    """
    Invitation for an email address to join a tenant.

    `role_ids` are assigned to the user created on acceptance.
    """

    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(254), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    role_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[InvitationStatus] = mapped_column(
        Enum(InvitationStatus, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=InvitationStatus.PENDING,
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    invited_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    invited_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING and not self.is_expired()

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, tenant_id={self.tenant_id}, email='{self.email}')>"
