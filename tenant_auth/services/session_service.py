from collections import Counter
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import Session

from tenant_auth.core.device import DeviceInfo
from tenant_auth.core.exceptions import NotFoundException, UnauthorizedException
from tenant_auth.core.security import hash_token
from tenant_auth.core.tokens import create_access_token, create_refresh_token, refresh_token_lifetime
from tenant_auth.logging import get_logger
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.base import utcnow
from tenant_auth.models.session import UserSession
from tenant_auth.models.tenant import Tenant
from tenant_auth.models.user import User
from tenant_auth.repositories.session_repository import SessionRepository

logger = get_logger(__name__)

# last_activity_at is written at most this often per session
ACTIVITY_TOUCH_INTERVAL = timedelta(minutes=1)


@dataclass
class IssuedTokens:
    """A freshly created session and the token pair bound to it"""

    session: UserSession
    access_token: str
    refresh_token: str
    expires_in: int


class SessionService:
    """Service layer for the session registry"""

    def __init__(self, db: Session):
        self.db = db
        self.session_repo = SessionRepository(db)

    def create_session(
        self,
        user: User,
        tenant: Tenant,
        device: DeviceInfo,
        remember_me: bool = False,
    ) -> IssuedTokens:
        """
        Register a session and sign its access/refresh tokens.

        The row is flushed first so the tokens can carry its ID; only the
        SHA-256 of the refresh token is persisted.

        Args:
            user: Authenticated user
            tenant: User's tenant
            device: Calling device description
            remember_me: Use the long-lived token lifetime

        Returns:
            IssuedTokens with the stored session
        """
        now = utcnow()
        session = UserSession(
            tenant_id=tenant.id,
            user_id=user.id,
            device_type=device.device_type,
            browser=device.browser,
            os=device.os,
            ip_address=device.ip_address,
            user_agent=device.user_agent,
            remember_me=remember_me,
            last_activity_at=now,
            expires_at=now + refresh_token_lifetime(remember_me),
        )
        self.db.add(session)
        self.db.flush()

        access_token, expires_in = create_access_token(
            user.id, tenant.id, tenant.slug, user.email, session.id, remember_me
        )
        refresh_token = create_refresh_token(user.id, tenant.id, tenant.slug, user.email, session.id, remember_me)
        session.refresh_token_hash = hash_token(refresh_token)
        session = self.session_repo.update(session)

        logger.info("session_created", tenant_id=tenant.id, user_id=user.id, session_id=session.id, device=device.describe())
        return IssuedTokens(session, access_token, refresh_token, expires_in)

    def validate(self, session_id: int | None, user_id: int) -> UserSession:
        """
        Load a live session for a user.

        Raises:
            UnauthorizedException: If the session is missing, revoked,
                owned by another user or expired
        """
        if session_id is None:
            raise UnauthorizedException("Session not found")
        session = self.session_repo.get_for_user(session_id, user_id)
        if not session:
            raise UnauthorizedException("Session has been revoked")
        now = utcnow()
        if session.is_expired(now):
            raise UnauthorizedException("Session has expired")

        if now - session.last_activity_at >= ACTIVITY_TOUCH_INTERVAL:
            session.last_activity_at = now
            session = self.session_repo.update(session)
        return session

    def validate_refresh(self, session_id: int | None, user_id: int, refresh_token: str) -> UserSession:
        """Like validate(), and the refresh token must be the one issued for the session"""
        session = self.validate(session_id, user_id)
        if session.refresh_token_hash != hash_token(refresh_token):
            raise UnauthorizedException("Refresh token does not match session")
        return session

    def list_user_sessions(self, context: AuthContext) -> list[dict]:
        """
        List the caller's active sessions, most recent activity first.

        Returns:
            List of session dicts with `is_current` marking the caller's own
        """
        sessions = self.session_repo.get_active_for_user(context.tenant.id, context.user.id, utcnow())
        return [self._to_dict(s, current_id=context.session.id) for s in sessions]

    def revoke_session(self, context: AuthContext, session_id: int) -> None:
        """
        Revoke one of the caller's sessions.

        Raises:
            NotFoundException: If the session doesn't exist or belongs to someone else
        """
        session = self.session_repo.get_for_user(session_id, context.user.id)
        if not session or session.tenant_id != context.tenant.id:
            raise NotFoundException(f"Session {session_id} not found")
        self.session_repo.delete(session)
        logger.info("session_revoked", tenant_id=context.tenant.id, user_id=context.user.id, session_id=session_id)

    def revoke_other_sessions(self, context: AuthContext) -> int:
        """Revoke every session of the caller except the current one"""
        count = self.session_repo.delete_for_user(
            context.tenant.id, context.user.id, except_session_id=context.session.id
        )
        logger.info("sessions_revoked", tenant_id=context.tenant.id, user_id=context.user.id, count=count)
        return count

    def revoke_all_user_sessions(self, tenant_id: int, user_id: int) -> int:
        """Revoke every session of a user (password reset, suspension, deletion)"""
        count = self.session_repo.delete_for_user(tenant_id, user_id)
        logger.info("sessions_revoked", tenant_id=tenant_id, user_id=user_id, count=count)
        return count

    def revoke_user_session(self, tenant_id: int, user_id: int, session_id: int) -> None:
        """Admin revocation of a specific session of any user in the tenant"""
        session = self.session_repo.get_for_user(session_id, user_id)
        if not session or session.tenant_id != tenant_id:
            raise NotFoundException(f"Session {session_id} not found")
        self.session_repo.delete(session)
        logger.info("session_revoked", tenant_id=tenant_id, user_id=user_id, session_id=session_id)

    def list_sessions_for_user(self, tenant_id: int, user_id: int) -> list[dict]:
        sessions = self.session_repo.get_active_for_user(tenant_id, user_id, utcnow())
        return [self._to_dict(s) for s in sessions]

    def get_session_stats(self, context: AuthContext) -> dict:
        """
        Summarize the caller's active sessions.

        Returns:
            Dict with active_sessions, devices (count per device type),
            last_activity_at and current_session_id
        """
        sessions = self.session_repo.get_active_for_user(context.tenant.id, context.user.id, utcnow())
        return {
            "active_sessions": len(sessions),
            "devices": dict(Counter(s.device_type or "Unknown" for s in sessions)),
            "last_activity_at": max((s.last_activity_at for s in sessions), default=None),
            "current_session_id": context.session.id,
        }

    def cleanup_expired(self) -> int:
        count = self.session_repo.delete_expired(utcnow())
        if count:
            logger.info("expired_sessions_removed", count=count)
        return count

    @staticmethod
    def _to_dict(session: UserSession, current_id: int | None = None) -> dict:
        return {
            "id": session.id,
            "device_type": session.device_type,
            "browser": session.browser,
            "os": session.os,
            "ip_address": session.ip_address,
            "remember_me": session.remember_me,
            "last_activity_at": session.last_activity_at,
            "expires_at": session.expires_at,
            "created_at": session.created_at,
            "is_current": session.id == current_id,
        }
