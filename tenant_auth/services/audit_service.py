from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tenant_auth.core.exceptions import NotFoundException, ValidationException
from tenant_auth.logging import get_logger
from tenant_auth.models.audit_log import AuditLog, AuditAction, AuditStatus
from tenant_auth.models.base import as_naive_utc, utcnow
from tenant_auth.repositories.audit_log_repository import AuditLogRepository

logger = get_logger(__name__)

SUSPICIOUS_MIN_FAILURES = 3


def severity_for(failure_count: int) -> str:
    """Severity bucket for a burst of failed logins"""
    if failure_count >= 10:
        return "critical"
    if failure_count >= 5:
        return "high"
    if failure_count >= 3:
        return "medium"
    return "low"


class AuditService:
    """Service layer for recording and querying the audit trail"""

    def __init__(self, db: Session):
        self.db = db
        self.audit_repo = AuditLogRepository(db)

    def log_event(
        self,
        tenant_id: int,
        action: str,
        status: str = AuditStatus.SUCCESS,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditLog | None:
        """
        Append an audit entry.

        A failure to write is logged and swallowed so that auditing never
        breaks the operation being audited.

        Returns:
            The stored AuditLog, or None if the write failed
        """
        log = AuditLog(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            status=status,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            ip_address=ip_address,
            user_agent=user_agent,
            details=metadata,
        )
        try:
            return self.audit_repo.create(log)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("audit_write_failed", tenant_id=tenant_id, action=action)
            return None

    def query(
        self,
        tenant_id: int,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditLog], int]:
        """
        Query logs of a tenant, newest first.

        Args:
            tenant_id: Tenant ID for isolation
            filters: Keyword filters accepted by AuditLogRepository.get_with_filters
            limit: Maximum number of results
            offset: Pagination offset

        Returns:
            Tuple of (logs, total)
        """
        filters = {key: value for key, value in (filters or {}).items() if value is not None}
        for key in ("start_date", "end_date"):
            if key in filters:
                filters[key] = as_naive_utc(filters[key])
        start, end = filters.get("start_date"), filters.get("end_date")
        if start and end and start > end:
            raise ValidationException("start_date must be before end_date")
        return self.audit_repo.get_with_filters(tenant_id, limit=limit, offset=offset, **filters)

    def get_log(self, tenant_id: int, log_id: int) -> AuditLog:
        log = self.audit_repo.get_by_id(tenant_id, log_id)
        if not log:
            raise NotFoundException(f"Audit log {log_id} not found")
        return log

    def get_user_activity(self, tenant_id: int, user_id: int, limit: int = 50, offset: int = 0) -> tuple[list[AuditLog], int]:
        return self.audit_repo.get_with_filters(tenant_id, user_id=user_id, limit=limit, offset=offset)

    def search(self, tenant_id: int, keyword: str, limit: int = 50, offset: int = 0) -> tuple[list[AuditLog], int]:
        if not keyword or not keyword.strip():
            raise ValidationException("Search keyword is required")
        return self.audit_repo.get_with_filters(tenant_id, keyword=keyword.strip(), limit=limit, offset=offset)

    def get_action_stats(
        self,
        tenant_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        user_id: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Count events per action in a window (default: last 30 days).

        When `user_id` is given only that user's events are counted.

        Returns:
            Dict with window bounds, totals and a per-action breakdown
        """
        end_date = as_naive_utc(end_date) or utcnow()
        start_date = as_naive_utc(start_date) or end_date - timedelta(days=30)
        if start_date > end_date:
            raise ValidationException("start_date must be before end_date")

        per_action: dict[str, dict[str, int]] = {}
        total = failures = 0
        for action, status, count in self.audit_repo.count_by_action(tenant_id, start_date, end_date, user_id):
            entry = per_action.setdefault(action, {"action": action, "total": 0, "success": 0, "failure": 0})
            entry["total"] += count
            entry[status] = entry.get(status, 0) + count
            total += count
            if status == AuditStatus.FAILURE:
                failures += count

        actions = sorted(per_action.values(), key=lambda e: (-e["total"], e["action"]))
        return {
            "start_date": start_date,
            "end_date": end_date,
            "total_events": total,
            "failed_events": failures,
            "actions": actions,
        }

    def get_failed_attempts(
        self,
        tenant_id: int,
        since: Optional[datetime] = None,
        user_id: Optional[int] = None,
    ) -> list[AuditLog]:
        """Failed logins since `since` (default: last 24 hours)"""
        since = as_naive_utc(since) or utcnow() - timedelta(hours=24)
        return self.audit_repo.get_failed_logins(tenant_id, since, user_id)

    def get_login_history(self, tenant_id: int, user_id: int, limit: int = 50) -> list[AuditLog]:
        return self.audit_repo.get_login_history(tenant_id, user_id, limit)

    def get_suspicious_activity(self, tenant_id: int, since: Optional[datetime] = None) -> list[dict[str, Any]]:
        """
        Bursts of failed logins grouped by source IP and user.

        Groups with fewer than three failures are not reported.

        Returns:
            List of dicts (ip_address, user_id, failed_attempts, first_seen,
            last_seen, severity), worst first
        """
        since = as_naive_utc(since) or utcnow() - timedelta(hours=24)
        rows = self.audit_repo.group_failed_logins(tenant_id, since, SUSPICIOUS_MIN_FAILURES)
        return [
            {
                "ip_address": ip_address,
                "user_id": user_id,
                "failed_attempts": count,
                "first_seen": first_seen,
                "last_seen": last_seen,
                "severity": severity_for(count),
            }
            for ip_address, user_id, count, first_seen, last_seen in rows
        ]
