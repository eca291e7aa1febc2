from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend
from tenant_auth.config import settings
from tenant_auth.core.exceptions import ConflictException, NotFoundException, ValidationException
from tenant_auth.core.security import generate_token, hash_password, validate_password_strength
from tenant_auth.logging import get_logger
from tenant_auth.models.audit_log import AuditAction, AuditStatus
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.base import utcnow
from tenant_auth.models.invitation import Invitation, InvitationStatus
from tenant_auth.models.user import User, UserStatus
from tenant_auth.repositories.invitation_repository import InvitationRepository
from tenant_auth.repositories.role_repository import RoleRepository
from tenant_auth.repositories.tenant_repository import TenantRepository
from tenant_auth.repositories.user_repository import UserRepository
from tenant_auth.schemas.invitation_schemas import InvitationAccept, InvitationCreate
from tenant_auth.services.audit_service import AuditService
from tenant_auth.services.permission_service import PermissionService

logger = get_logger(__name__)


class InvitationService:
    """Service layer for the invitation lifecycle"""

    def __init__(self, db: Session, cache: CacheBackend):
        self.db = db
        self.invitation_repo = InvitationRepository(db)
        self.user_repo = UserRepository(db)
        self.role_repo = RoleRepository(db)
        self.tenant_repo = TenantRepository(db)
        self.permission_service = PermissionService(db, cache)
        self.audit = AuditService(db)

    def create(self, context: AuthContext, invite_data: InvitationCreate) -> Invitation:
        """
        Invite an email address to the current tenant.

        Any pending invitation for the same email is revoked first.

        Raises:
            ConflictException: If a user with this email already exists
            ValidationException: If any role does not belong to the tenant
        """
        email = invite_data.email.lower()
        if self.user_repo.email_exists(context.tenant.id, email):
            raise ConflictException(f"User with email {email} already exists")

        role_ids = sorted(set(invite_data.role_ids))
        if len(self.role_repo.get_by_ids(context.tenant.id, role_ids)) != len(role_ids):
            raise ValidationException("One or more roles were not found")

        for previous in self.invitation_repo.get_pending_for_email(context.tenant.id, email):
            previous.status = InvitationStatus.REVOKED

        now = utcnow()
        invitation = Invitation(
            tenant_id=context.tenant.id,
            email=email,
            token=generate_token(),
            role_ids=role_ids,
            status=InvitationStatus.PENDING,
            message=invite_data.message,
            invited_by=context.user.id,
            invited_at=now,
            expires_at=now + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
        )
        invitation = self.invitation_repo.create(invitation)

        logger.info("invitation_created", tenant_id=context.tenant.id, invitation_id=invitation.id)
        self.audit.log_event(
            context.tenant.id,
            AuditAction.INVITATION_CREATED,
            user_id=context.user.id,
            resource_type="invitation",
            resource_id=invitation.id,
            metadata={"email": email, "role_ids": role_ids},
        )
        return invitation

    def accept(self, accept_data: InvitationAccept) -> User:
        """
        Accept an invitation and create the invited user.

        The new user is active and email-verified (the token proves the
        address) and receives the invitation's roles.

        Raises:
            NotFoundException: If the token is unknown
            ValidationException: If the invitation is no longer pending or expired
            ConflictException: If the email registered in the meantime
        """
        invitation = self.invitation_repo.get_by_token(accept_data.token)
        if not invitation:
            raise NotFoundException("Invitation not found")
        if invitation.status != InvitationStatus.PENDING:
            raise ValidationException(f"Invitation is {invitation.status.value}")
        if invitation.is_expired():
            invitation.status = InvitationStatus.EXPIRED
            self.invitation_repo.update(invitation)
            raise ValidationException("Invitation has expired")

        tenant = self.tenant_repo.get_by_id(invitation.tenant_id)
        if not tenant or not tenant.can_access():
            raise ValidationException("Organization is not active")
        if self.user_repo.email_exists(tenant.id, invitation.email):
            raise ConflictException(f"User with email {invitation.email} already exists")
        validate_password_strength(accept_data.password)

        user = User(
            tenant_id=tenant.id,
            email=invitation.email,
            password_hash=hash_password(accept_data.password),
            first_name=accept_data.first_name,
            last_name=accept_data.last_name,
            status=UserStatus.ACTIVE,
            email_verified=True,
            created_by=invitation.invited_by,
        )
        self.user_repo.create_no_commit(user)
        for role in self.role_repo.get_by_ids(tenant.id, invitation.role_ids or []):
            self.user_repo.assign_role_no_commit(user.id, role.id, assigned_by=invitation.invited_by)

        invitation.status = InvitationStatus.ACCEPTED
        invitation.accepted_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        self.permission_service.invalidate_user(tenant.id, user.id)

        self.audit.log_event(
            tenant.id,
            AuditAction.INVITATION_ACCEPTED,
            user_id=user.id,
            resource_type="invitation",
            resource_id=invitation.id,
        )
        return user

    def revoke(self, context: AuthContext, invitation_id: int) -> Invitation:
        """
        Revoke a pending invitation.

        Raises:
            NotFoundException: If not found in this tenant
            ValidationException: If it is not pending
        """
        invitation = self.get(context, invitation_id)
        if invitation.status != InvitationStatus.PENDING:
            raise ValidationException(f"Invitation is {invitation.status.value}")
        invitation.status = InvitationStatus.REVOKED
        invitation = self.invitation_repo.update(invitation)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.INVITATION_REVOKED,
            AuditStatus.SUCCESS,
            user_id=context.user.id,
            resource_type="invitation",
            resource_id=invitation.id,
        )
        return invitation

    def get(self, context: AuthContext, invitation_id: int) -> Invitation:
        invitation = self.invitation_repo.get_by_id(context.tenant.id, invitation_id)
        if not invitation:
            raise NotFoundException(f"Invitation {invitation_id} not found")
        return invitation

    def list_invitations(
        self,
        context: AuthContext,
        status: Optional[InvitationStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Invitation], int]:
        return self.invitation_repo.get_with_filters(context.tenant.id, status, limit, offset)

    def cleanup_expired(self) -> int:
        """Mark stale pending invitations as expired"""
        count = self.invitation_repo.expire_stale(utcnow())
        if count:
            logger.info("invitations_expired", count=count)
        return count
