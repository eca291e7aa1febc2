from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, get_cache
from tenant_auth.core.device import get_client_ip
from tenant_auth.core.exceptions import ForbiddenException, UnauthorizedException
from tenant_auth.database import get_db
from tenant_auth.logging import get_logger
from tenant_auth.models.audit_log import AuditAction, AuditStatus
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.services.audit_service import AuditService
from tenant_auth.services.auth_service import AuthService
from tenant_auth.services.permission_service import PermissionService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> AuthContext:
    """
    FastAPI dependency to authenticate the caller.

    Flow:
    1. Extract token from Authorization: Bearer <token>
    2. Validate signature, issuer, expiry and token type
    3. Load the user (must exist, be active and not deleted)
    4. Load the tenant (must be active)
    5. Check the session bound to the token is still live

    Raises:
        UnauthorizedException: If any step fails
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException("Not authenticated")
    service = AuthService(db, cache)
    return service.authenticate(credentials.credentials)


def require_permission(resource: str, action: str):
    """
    Build a dependency that requires a permission.

    A wildcard grant on the resource (resource.*) satisfies any action.
    Denials are recorded as security.unauthorized_access audit entries.

    Usage:
        @router.get("", dependencies=[Depends(require_permission("users", "view"))])
    """

    async def permission_dependency(
        request: Request,
        context: AuthContext = Depends(get_auth_context),
        db: Session = Depends(get_db),
        cache: CacheBackend = Depends(get_cache),
    ) -> AuthContext:
        permissions = PermissionService(db, cache)
        if permissions.has_permission(context.tenant.id, context.user.id, resource, action):
            return context

        logger.warning(
            "permission_denied",
            tenant_id=context.tenant.id,
            user_id=context.user.id,
            permission=f"{resource}.{action}",
        )
        AuditService(db).log_event(
            context.tenant.id,
            AuditAction.UNAUTHORIZED_ACCESS,
            AuditStatus.FAILURE,
            user_id=context.user.id,
            resource_type=resource,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            metadata={"required": f"{resource}.{action}", "path": request.url.path, "method": request.method},
        )
        raise ForbiddenException(f"Missing required permission: {resource}.{action}")

    return permission_dependency
