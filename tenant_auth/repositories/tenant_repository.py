"""Repository for Tenant model operations."""

from sqlalchemy.orm import Session

from tenant_auth.models.tenant import Tenant


class TenantRepository:
    """Repository for Tenant model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, tenant_id: int) -> Tenant | None:
        """
        Get tenant by ID.

        Args:
            tenant_id: Tenant ID

        Returns:
            Tenant object or None if not found
        """
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()

    def get_by_slug(self, slug: str) -> Tenant | None:
        """Get tenant by its URL slug"""
        return self.db.query(Tenant).filter(Tenant.slug == slug).first()

    def get_by_email(self, email: str) -> Tenant | None:
        """Get tenant by contact email (case-insensitive)"""
        return self.db.query(Tenant).filter(Tenant.email == email.lower()).first()

    def get_by_verification_token(self, token: str) -> Tenant | None:
        return self.db.query(Tenant).filter(Tenant.verification_token == token).first()

    def slug_exists(self, slug: str) -> bool:
        return self.db.query(Tenant.id).filter(Tenant.slug == slug).first() is not None

    def create(self, tenant: Tenant) -> Tenant:
        """
        Create a new tenant.

        Args:
            tenant: Tenant object to create

        Returns:
            Created Tenant object with ID populated
        """
        self.db.add(tenant)
        self.db.commit()
        self.db.refresh(tenant)
        return tenant

    def create_no_commit(self, tenant: Tenant) -> Tenant:
        """Add tenant and flush to get its ID (caller commits)"""
        self.db.add(tenant)
        self.db.flush()
        return tenant

    def update(self, tenant: Tenant) -> Tenant:
        """
        Update an existing tenant.

        Args:
            tenant: Tenant object with updated fields

        Returns:
            Updated Tenant object
        """
        self.db.commit()
        self.db.refresh(tenant)
        return tenant
