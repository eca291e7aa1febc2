"""Repository for UserSession operations."""

from datetime import datetime

from sqlalchemy.orm import Session

from tenant_auth.models.session import UserSession


class SessionRepository:
    """Repository for refresh-token sessions"""

    def __init__(self, db: Session):
        self.db = db

    def get_for_user(self, session_id: int, user_id: int) -> UserSession | None:
        """Get session ensuring it belongs to the user"""
        return (
            self.db.query(UserSession)
            .filter(UserSession.id == session_id, UserSession.user_id == user_id)
            .first()
        )

    def get_active_for_user(self, tenant_id: int, user_id: int, now: datetime) -> list[UserSession]:
        """Unexpired sessions, most recent activity first"""
        return (
            self.db.query(UserSession)
            .filter(
                UserSession.tenant_id == tenant_id,
                UserSession.user_id == user_id,
                UserSession.expires_at > now,
            )
            .order_by(UserSession.last_activity_at.desc(), UserSession.id.desc())
            .all()
        )

    def update(self, session: UserSession) -> UserSession:
        self.db.commit()
        self.db.refresh(session)
        return session

    def delete(self, session: UserSession) -> None:
        self.db.delete(session)
        self.db.commit()

    def delete_for_user(self, tenant_id: int, user_id: int, except_session_id: int | None = None) -> int:
        """
        Delete every session of a user, optionally keeping one.

        Returns:
            Number of sessions deleted
        """
        query = self.db.query(UserSession).filter(
            UserSession.tenant_id == tenant_id,
            UserSession.user_id == user_id,
        )
        if except_session_id is not None:
            query = query.filter(UserSession.id != except_session_id)
        count = query.delete(synchronize_session=False)
        self.db.commit()
        return count

    def delete_expired(self, now: datetime) -> int:
        count = self.db.query(UserSession).filter(UserSession.expires_at <= now).delete(synchronize_session=False)
        self.db.commit()
        return count
