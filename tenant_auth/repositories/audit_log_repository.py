"""Repository for AuditLog operations (insert and query only)."""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from tenant_auth.models.audit_log import AuditLog, AuditAction, AuditStatus


class AuditLogRepository:
    """Repository for the append-only audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, log: AuditLog) -> AuditLog:
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    def get_by_id(self, tenant_id: int, log_id: int) -> AuditLog | None:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.id == log_id, AuditLog.tenant_id == tenant_id)
            .first()
        )

    def get_with_filters(
        self,
        tenant_id: int,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        status: Optional[str] = None,
        ip_address: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        keyword: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditLog], int]:
        """
        Query audit logs with filters, newest first.

        Args:
            tenant_id: Tenant ID for isolation
            user_id: Optional actor filter
            action: Optional exact action filter
            resource_type: Optional resource type filter
            resource_id: Optional resource id filter
            status: Optional success/failure filter
            ip_address: Optional source IP filter
            start_date: Inclusive lower bound on created_at
            end_date: Inclusive upper bound on created_at
            keyword: Case-insensitive match on action, resource type/id, IP and user agent
            limit: Maximum number of results
            offset: Pagination offset

        Returns:
            Tuple of (logs, total count before pagination)
        """
        query = self.db.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)

        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if resource_id:
            query = query.filter(AuditLog.resource_id == resource_id)
        if status:
            query = query.filter(AuditLog.status == status)
        if ip_address:
            query = query.filter(AuditLog.ip_address == ip_address)
        if start_date:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date:
            query = query.filter(AuditLog.created_at <= end_date)
        if keyword:
            pattern = f"%{keyword.lower()}%"
            query = query.filter(
                or_(
                    func.lower(AuditLog.action).like(pattern),
                    func.lower(AuditLog.resource_type).like(pattern),
                    func.lower(AuditLog.resource_id).like(pattern),
                    func.lower(AuditLog.ip_address).like(pattern),
                    func.lower(AuditLog.user_agent).like(pattern),
                )
            )

        total = query.count()
        logs = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).offset(offset).all()
        return logs, total

    def count_by_action(
        self,
        tenant_id: int,
        start_date: datetime,
        end_date: datetime,
        user_id: Optional[int] = None,
    ) -> list[tuple[str, str, int]]:
        """
        Count events per (action, status) in a time window.

        Returns:
            List of (action, status, count) ordered by count descending
        """
        query = self.db.query(AuditLog.action, AuditLog.status, func.count(AuditLog.id)).filter(
            AuditLog.tenant_id == tenant_id,
            AuditLog.created_at >= start_date,
            AuditLog.created_at <= end_date,
        )
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        rows = (
            query.group_by(AuditLog.action, AuditLog.status)
            .order_by(func.count(AuditLog.id).desc(), AuditLog.action)
            .all()
        )
        return [(action, status, count) for action, status, count in rows]

    def get_failed_logins(self, tenant_id: int, since: datetime, user_id: Optional[int] = None) -> list[AuditLog]:
        query = self.db.query(AuditLog).filter(
            AuditLog.tenant_id == tenant_id,
            AuditLog.action == AuditAction.USER_LOGIN_FAILED,
            AuditLog.status == AuditStatus.FAILURE,
            AuditLog.created_at >= since,
        )
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()

    def get_login_history(self, tenant_id: int, user_id: int, limit: int) -> list[AuditLog]:
        """Successful and failed logins of a user, newest first"""
        return (
            self.db.query(AuditLog)
            .filter(
                AuditLog.tenant_id == tenant_id,
                AuditLog.user_id == user_id,
                AuditLog.action.in_([AuditAction.USER_LOGIN, AuditAction.USER_LOGIN_FAILED]),
            )
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )

    def group_failed_logins(self, tenant_id: int, since: datetime, min_count: int) -> list[tuple]:
        """
        Group failed logins by (ip_address, user_id).

        Returns:
            List of (ip_address, user_id, count, first_seen, last_seen) with count >= min_count
        """
        count = func.count(AuditLog.id)
        return (
            self.db.query(
                AuditLog.ip_address,
                AuditLog.user_id,
                count,
                func.min(AuditLog.created_at),
                func.max(AuditLog.created_at),
            )
            .filter(
                AuditLog.tenant_id == tenant_id,
                AuditLog.action == AuditAction.USER_LOGIN_FAILED,
                AuditLog.created_at >= since,
            )
            .group_by(AuditLog.ip_address, AuditLog.user_id)
            .having(count >= min_count)
            .order_by(count.desc())
            .all()
        )
