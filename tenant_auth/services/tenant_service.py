from sqlalchemy.orm import Session

from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.invitation import InvitationStatus
from tenant_auth.models.tenant import Tenant
from tenant_auth.repositories.invitation_repository import InvitationRepository
from tenant_auth.repositories.role_repository import RoleRepository
from tenant_auth.repositories.user_repository import UserRepository


class TenantService:
    """Service layer for the caller's tenant"""

    def __init__(self, db: Session):
        self.db = db
        self.user_repo = UserRepository(db)
        self.role_repo = RoleRepository(db)
        self.invitation_repo = InvitationRepository(db)

    def get_current_tenant(self, context: AuthContext) -> Tenant:
        """
        Get current tenant details.

        Args:
            context: Auth context

        Returns:
            Current tenant object
        """
        return context.tenant

    def get_overview(self, context: AuthContext) -> dict:
        """Tenant details with user, role and pending invitation counts"""
        tenant_id = context.tenant.id
        _, user_count = self.user_repo.get_with_filters(tenant_id, limit=1)
        _, pending = self.invitation_repo.get_with_filters(tenant_id, InvitationStatus.PENDING, limit=1)
        return {
            "tenant": context.tenant,
            "user_count": user_count,
            "role_count": len(self.role_repo.get_by_tenant(tenant_id)),
            "pending_invitations": pending,
        }
