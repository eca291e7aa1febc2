"""Authenticated request context."""

from dataclasses import dataclass

from tenant_auth.core.tokens import TokenClaims
from tenant_auth.models.session import UserSession
from tenant_auth.models.tenant import Tenant
from tenant_auth.models.user import User


@dataclass
class AuthContext:
    """
    Everything a protected endpoint needs about the caller.

    Built from a validated access token and re-checked against the
    database: the session still exists, the user is active and not
    deleted, and the tenant is active.

    Attributes:
        user: The authenticated User
        tenant: The Tenant the token was issued for
        session: The UserSession bound to the token
        claims: Decoded access token claims
    """

    user: User
    tenant: Tenant
    session: UserSession
    claims: TokenClaims

    @property
    def tenant_id(self) -> int:
        return self.tenant.id

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def session_id(self) -> int:
        return self.session.id

    def __repr__(self) -> str:
        return f"<AuthContext(user_id={self.user.id}, tenant_id={self.tenant.id}, session_id={self.session.id})>"
