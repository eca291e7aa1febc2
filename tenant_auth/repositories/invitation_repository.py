"""Repository for Invitation operations."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from tenant_auth.models.invitation import Invitation, InvitationStatus


class InvitationRepository:
    """Repository for tenant invitations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, tenant_id: int, invitation_id: int) -> Invitation | None:
        return (
            self.db.query(Invitation)
            .filter(Invitation.id == invitation_id, Invitation.tenant_id == tenant_id)
            .first()
        )

    def get_by_token(self, token: str) -> Invitation | None:
        return self.db.query(Invitation).filter(Invitation.token == token).first()

    def get_pending_for_email(self, tenant_id: int, email: str) -> list[Invitation]:
        return (
            self.db.query(Invitation)
            .filter(
                Invitation.tenant_id == tenant_id,
                Invitation.email == email.lower(),
                Invitation.status == InvitationStatus.PENDING,
            )
            .all()
        )

    def get_with_filters(
        self,
        tenant_id: int,
        status: Optional[InvitationStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Invitation], int]:
        """
        List invitations of a tenant, newest first.

        Returns:
            Tuple of (invitations, total count before pagination)
        """
        query = self.db.query(Invitation).filter(Invitation.tenant_id == tenant_id)
        if status:
            query = query.filter(Invitation.status == status)
        total = query.count()
        items = query.order_by(Invitation.invited_at.desc(), Invitation.id.desc()).limit(limit).offset(offset).all()
        return items, total

    def create(self, invitation: Invitation) -> Invitation:
        self.db.add(invitation)
        self.db.commit()
        self.db.refresh(invitation)
        return invitation

    def update(self, invitation: Invitation) -> Invitation:
        self.db.commit()
        self.db.refresh(invitation)
        return invitation

    def expire_stale(self, now: datetime) -> int:
        """Mark pending invitations past their expiry as expired"""
        count = (
            self.db.query(Invitation)
            .filter(Invitation.status == InvitationStatus.PENDING, Invitation.expires_at <= now)
            .update({Invitation.status: InvitationStatus.EXPIRED}, synchronize_session=False)
        )
        self.db.commit()
        return count
