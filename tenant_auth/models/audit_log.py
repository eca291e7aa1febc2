"""Append-only audit trail."""

from datetime import datetime
from typing import Any

from sqlalchemy import String, Integer, DateTime, ForeignKey, JSON, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from tenant_auth.models.base import Base, utcnow


class AuditAction:
    """Audit action names"""

    USER_LOGIN = "user.login"
    USER_LOGIN_FAILED = "user.login.failed"
    USER_LOGOUT = "user.logout"
    USER_REGISTERED = "user.registered"
    USER_VERIFIED = "user.verified"
    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    USER_DELETED = "user.deleted"
    USER_SUSPENDED = "user.suspended"
    USER_ACTIVATED = "user.activated"
    USER_PASSWORD_RESET = "user.password_reset"
    USER_PASSWORD_CHANGED = "user.password_changed"

    ROLE_CREATED = "role.created"
    ROLE_UPDATED = "role.updated"
    ROLE_DELETED = "role.deleted"
    ROLE_ASSIGNED = "role.assigned"
    ROLE_UNASSIGNED = "role.unassigned"

    TWO_FACTOR_ENABLED = "2fa.enabled"
    TWO_FACTOR_DISABLED = "2fa.disabled"
    TWO_FACTOR_VERIFIED = "2fa.verified"
    TWO_FACTOR_FAILED = "2fa.failed"
    TWO_FACTOR_BACKUP_USED = "2fa.backup_code_used"

    SESSION_CREATED = "session.created"
    SESSION_REVOKED = "session.revoked"

    INVITATION_CREATED = "invitation.created"
    INVITATION_ACCEPTED = "invitation.accepted"
    INVITATION_REVOKED = "invitation.revoked"

    UNAUTHORIZED_ACCESS = "security.unauthorized_access"
    RATE_LIMIT_EXCEEDED = "security.rate_limit_exceeded"


class AuditStatus:
    SUCCESS = "success"
    FAILURE = "failure"


class AuditLog(Base):
    """
    Security event record.

    Rows are only ever inserted; there is no update or delete path.
    `user_id` is a plain column so the trail survives user removal.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AuditStatus.SUCCESS)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (Index("ix_audit_logs_tenant_created", "tenant_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, tenant_id={self.tenant_id}, action='{self.action}')>"
