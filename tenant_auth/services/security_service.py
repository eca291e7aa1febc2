from datetime import timedelta

from sqlalchemy.orm import Session

from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.audit_log import AuditLog
from tenant_auth.models.base import utcnow
from tenant_auth.services.audit_service import AuditService
from tenant_auth.services.session_service import SessionService

MANY_SESSIONS = 5
MANY_FAILED_LOGINS = 3
RECENT_ACTIVITY_LIMIT = 20


class SecurityService:
    """Per-user security dashboard built from sessions and the audit trail"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)
        self.session_service = SessionService(db)

    def get_overview(self, context: AuthContext) -> dict:
        """
        Security summary for the caller.

        Returns:
            Dict with session stats, failed logins of the last 24 hours,
            the 20 most recent events and action stats for the last 7 days
        """
        tenant_id, user_id = context.tenant.id, context.user.id
        now = utcnow()
        failures = self.audit.get_failed_attempts(tenant_id, now - timedelta(hours=24), user_id)
        recent, _ = self.audit.get_user_activity(tenant_id, user_id, limit=RECENT_ACTIVITY_LIMIT)
        return {
            "two_factor_enabled": context.user.two_factor_enabled,
            "session_stats": self.session_service.get_session_stats(context),
            "failed_attempts": len(failures),
            "last_24h_failures": failures,
            "recent_activity": recent,
            "action_stats": self.audit.get_action_stats(tenant_id, now - timedelta(days=7), now, user_id=user_id),
        }

    def get_recommendations(self, context: AuthContext) -> list[dict]:
        """
        Suggestions for hardening the caller's account.

        An `all_good` entry is returned when nothing needs attention.
        """
        recommendations = []
        if not context.user.two_factor_enabled:
            recommendations.append(
                {
                    "type": "enable_2fa",
                    "severity": "high",
                    "title": "Enable Two-Factor Authentication",
                    "description": "Protect your account with an extra layer of security by enabling 2FA.",
                    "action": "/api/2fa/setup",
                }
            )

        stats = self.session_service.get_session_stats(context)
        if stats["active_sessions"] > MANY_SESSIONS:
            recommendations.append(
                {
                    "type": "review_sessions",
                    "severity": "medium",
                    "title": "Review Active Sessions",
                    "description": "You have multiple active sessions. Review and revoke any unfamiliar devices.",
                    "action": "/api/sessions",
                    "count": stats["active_sessions"],
                }
            )

        failures = self.audit.get_failed_attempts(context.tenant.id, utcnow() - timedelta(days=7), context.user.id)
        if len(failures) > MANY_FAILED_LOGINS:
            recommendations.append(
                {
                    "type": "failed_logins",
                    "severity": "high",
                    "title": "Multiple Failed Login Attempts Detected",
                    "description": "There have been multiple failed login attempts on your account. "
                    "Consider changing your password.",
                    "action": "/api/auth/change-password",
                    "count": len(failures),
                }
            )

        if not recommendations:
            recommendations.append(
                {
                    "type": "all_good",
                    "severity": "info",
                    "title": "Security Status: Good",
                    "description": "No security issues detected.",
                }
            )
        return recommendations

    def get_login_history(self, context: AuthContext, limit: int = 50) -> list[AuditLog]:
        return self.audit.get_login_history(context.tenant.id, context.user.id, limit)
