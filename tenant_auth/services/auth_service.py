"""
Authentication orchestration.

Ties the credential store, password hasher, token issuer, session registry,
2FA verifier and audit recorder together for registration, login, token
refresh, request authentication, logout and password management.
"""

from datetime import timedelta

from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend
from tenant_auth.config import settings
from tenant_auth.core.device import DeviceInfo
from tenant_auth.core.exceptions import (
    ConflictException,
    ForbiddenException,
    RateLimitException,
    UnauthorizedException,
    ValidationException,
)
from tenant_auth.core.security import (
    burn_password_check,
    generate_token,
    hash_password,
    hash_token,
    validate_password_strength,
    verify_password,
)
from tenant_auth.core.slug import generate_slug
from tenant_auth.core.tokens import (
    create_access_token,
    create_two_factor_token,
    decode_access_token,
    decode_refresh_token,
    decode_two_factor_token,
)
from tenant_auth.logging import get_logger
from tenant_auth.models.audit_log import AuditAction, AuditStatus
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.base import utcnow
from tenant_auth.models.role import SystemRole
from tenant_auth.models.tenant import Tenant, TenantStatus
from tenant_auth.models.user import User, UserStatus
from tenant_auth.repositories.tenant_repository import TenantRepository
from tenant_auth.repositories.user_repository import UserRepository
from tenant_auth.schemas.auth_schemas import LoginRequest, TenantRegisterRequest, TwoFactorLoginRequest
from tenant_auth.services.audit_service import AuditService
from tenant_auth.services.permission_service import PermissionService
from tenant_auth.services.role_service import RoleService
from tenant_auth.services.session_service import SessionService
from tenant_auth.services.two_factor_service import TwoFactorService

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:
    """Service layer for authentication flows"""

    def __init__(self, db: Session, cache: CacheBackend):
        self.db = db
        self.tenant_repo = TenantRepository(db)
        self.user_repo = UserRepository(db)
        self.session_service = SessionService(db)
        self.two_factor_service = TwoFactorService(db, cache)
        self.permission_service = PermissionService(db, cache)
        self.role_service = RoleService(db, cache)
        self.audit = AuditService(db)

    # Registration

    def _unique_slug(self, value: str) -> str:
        base = generate_slug(value)
        slug, suffix = base, 2
        while self.tenant_repo.slug_exists(slug):
            tail = f"-{suffix}"
            slug = f"{base[:63 - len(tail)]}{tail}"
            suffix += 1
        return slug

    def register_tenant(self, registration: TenantRegisterRequest) -> tuple[Tenant, str]:
        """
        Create a tenant in pending_verification with its pending owner user.

        Args:
            registration: Company and owner details

        Returns:
            Tuple of (tenant, verification token)

        Raises:
            ConflictException: If an organization already uses this email
            ValidationException: If the password is too weak
        """
        email = registration.email.lower()
        if self.tenant_repo.get_by_email(email):
            raise ConflictException("An organization with this email already exists")
        validate_password_strength(registration.password)

        token = generate_token()
        now = utcnow()
        tenant = Tenant(
            slug=self._unique_slug(registration.slug or registration.company_name),
            company_name=registration.company_name.strip(),
            email=email,
            status=TenantStatus.PENDING_VERIFICATION,
            email_verified=False,
            verification_token=token,
            verification_token_expires_at=now + timedelta(hours=settings.VERIFICATION_EXPIRE_HOURS),
        )
        self.tenant_repo.create_no_commit(tenant)

        owner = User(
            tenant_id=tenant.id,
            email=email,
            password_hash=hash_password(registration.password),
            first_name=registration.first_name,
            last_name=registration.last_name,
            status=UserStatus.PENDING,
            email_verified=False,
        )
        self.user_repo.create_no_commit(owner)
        self.db.commit()
        self.db.refresh(tenant)

        logger.info("tenant_registered", tenant_id=tenant.id, slug=tenant.slug)
        self.audit.log_event(
            tenant.id,
            AuditAction.USER_REGISTERED,
            user_id=owner.id,
            resource_type="tenant",
            resource_id=tenant.id,
            metadata={"slug": tenant.slug},
        )
        return tenant, token

    def verify_tenant_email(self, token: str) -> Tenant:
        """
        Activate a tenant and its owner, provisioning the system roles.

        Raises:
            ValidationException: If the token is unknown or expired
        """
        tenant = self.tenant_repo.get_by_verification_token(token)
        if not tenant:
            raise ValidationException("Invalid verification token")
        now = utcnow()
        if tenant.verification_token_expires_at and tenant.verification_token_expires_at < now:
            raise ValidationException("Verification token has expired")

        tenant.status = TenantStatus.ACTIVE
        tenant.email_verified = True
        tenant.email_verified_at = now
        tenant.activated_at = now
        tenant.verification_token = None
        tenant.verification_token_expires_at = None

        roles = self.role_service.provision_system_roles(tenant)
        owner = self.user_repo.get_by_email(tenant.id, tenant.email)
        if owner:
            owner.status = UserStatus.ACTIVE
            owner.email_verified = True
            self.user_repo.assign_role_no_commit(owner.id, roles[SystemRole.OWNER].id)
        self.db.commit()
        self.db.refresh(tenant)

        logger.info("tenant_verified", tenant_id=tenant.id)
        self.audit.log_event(
            tenant.id,
            AuditAction.USER_VERIFIED,
            user_id=owner.id if owner else None,
            resource_type="tenant",
            resource_id=tenant.id,
        )
        return tenant

    # Login

    def _login_failed(self, user: User, device: DeviceInfo, reason: str) -> None:
        logger.info("login_failed", tenant_id=user.tenant_id, user_id=user.id, reason=reason)
        self.audit.log_event(
            user.tenant_id,
            AuditAction.USER_LOGIN_FAILED,
            AuditStatus.FAILURE,
            user_id=user.id,
            resource_type="user",
            resource_id=user.id,
            ip_address=device.ip_address,
            user_agent=device.user_agent,
            metadata={"reason": reason},
        )

    def _check_can_login(self, user: User, tenant: Tenant, device: DeviceInfo) -> None:
        if not tenant.can_access():
            self._login_failed(user, device, "tenant_inactive")
            raise ForbiddenException("Organization account is not active")
        if not user.can_login():
            self._login_failed(user, device, "user_inactive")
            raise ForbiddenException("User account is not active")

    def login(self, credentials: LoginRequest, device: DeviceInfo) -> dict:
        """
        Password login across tenants.

        The email is looked up in every tenant. When the password matches in
        several tenants and no tenant_id was given, the tenant list is
        returned for selection. When 2FA is enabled and the device is not
        trusted, a 2FA ticket is returned instead of tokens.

        Returns:
            Dict shaped like LoginResponse

        Raises:
            UnauthorizedException: Unknown email or wrong password
            ForbiddenException: Tenant or user not active
        """
        candidates = self.user_repo.find_by_email_all_tenants(credentials.email)
        if credentials.tenant_id is not None:
            candidates = [u for u in candidates if u.tenant_id == credentials.tenant_id]
        if not candidates:
            burn_password_check(credentials.password)
            raise UnauthorizedException(INVALID_CREDENTIALS)

        matching = [u for u in candidates if verify_password(credentials.password, u.password_hash)]
        if not matching:
            for user in candidates:
                self._login_failed(user, device, "invalid_password")
            raise UnauthorizedException(INVALID_CREDENTIALS)

        if len(matching) > 1:
            return {"tenants": [user.tenant for user in matching]}

        user = matching[0]
        tenant = user.tenant
        self._check_can_login(user, tenant, device)

        if user.two_factor_enabled and not self.two_factor_service.is_device_trusted(
            user, device.fingerprint, credentials.device_token
        ):
            logger.info("two_factor_required", tenant_id=tenant.id, user_id=user.id)
            return {
                "user": user,
                "tenant": tenant,
                "requires_two_factor": True,
                "two_factor_token": create_two_factor_token(user.id, tenant.id, tenant.slug, user.email),
            }

        return self._complete_login(user, tenant, device, credentials.remember_me, "password")

    def verify_two_factor_login(self, request: TwoFactorLoginRequest, device: DeviceInfo) -> dict:
        """
        Finish a login that required a 2FA code (TOTP or backup code).

        Raises:
            UnauthorizedException: Invalid ticket or code
            RateLimitException: Too many failed codes
        """
        claims = decode_two_factor_token(request.two_factor_token)
        user = self.user_repo.get_by_id(claims.tenant_id, claims.user_id)
        if not user:
            raise UnauthorizedException("User not found")
        tenant = user.tenant
        self._check_can_login(user, tenant, device)
        if not user.two_factor_enabled:
            raise ValidationException("Two-factor authentication is not enabled")

        try:
            method = self.two_factor_service.verify_code(user, request.code)
        except RateLimitException:
            self.audit.log_event(
                tenant.id,
                AuditAction.RATE_LIMIT_EXCEEDED,
                AuditStatus.FAILURE,
                user_id=user.id,
                ip_address=device.ip_address,
                user_agent=device.user_agent,
                metadata={"scope": "2fa"},
            )
            raise

        if not method:
            self.audit.log_event(
                tenant.id,
                AuditAction.TWO_FACTOR_FAILED,
                AuditStatus.FAILURE,
                user_id=user.id,
                ip_address=device.ip_address,
                user_agent=device.user_agent,
            )
            raise UnauthorizedException("Invalid verification code")

        self.audit.log_event(
            tenant.id,
            AuditAction.TWO_FACTOR_BACKUP_USED if method == "backup_code" else AuditAction.TWO_FACTOR_VERIFIED,
            user_id=user.id,
            ip_address=device.ip_address,
            user_agent=device.user_agent,
        )

        result = self._complete_login(user, tenant, device, request.remember_me, method)
        if request.remember_device and device.fingerprint:
            result["device_token"] = self.two_factor_service.remember_device(user, device.fingerprint)
        return result

    def _complete_login(self, user: User, tenant: Tenant, device: DeviceInfo, remember_me: bool, method: str) -> dict:
        issued = self.session_service.create_session(user, tenant, device, remember_me)

        user.last_login_at = utcnow()
        user.last_login_ip = device.ip_address
        user = self.user_repo.update(user)

        logger.info("login_succeeded", tenant_id=tenant.id, user_id=user.id, session_id=issued.session.id, method=method)
        self.audit.log_event(
            tenant.id,
            AuditAction.USER_LOGIN,
            user_id=user.id,
            resource_type="session",
            resource_id=issued.session.id,
            ip_address=device.ip_address,
            user_agent=device.user_agent,
            metadata={"method": method, "device": device.describe(), "remember_me": remember_me},
        )
        return {
            "user": user,
            "tenant": tenant,
            "access_token": issued.access_token,
            "refresh_token": issued.refresh_token,
            "expires_in": issued.expires_in,
        }

    # Tokens

    def refresh(self, refresh_token: str) -> dict:
        """
        Issue a new access token for a live session.

        The refresh token itself is returned unchanged.

        Raises:
            UnauthorizedException: Invalid token, revoked session, inactive user or tenant
        """
        claims = decode_refresh_token(refresh_token)
        user = self.user_repo.get_by_id(claims.tenant_id, claims.user_id)
        if not user or not user.can_login():
            raise UnauthorizedException("User account is not active")
        tenant = user.tenant
        if not tenant.can_access():
            raise UnauthorizedException("Organization account is not active")

        session = self.session_service.validate_refresh(claims.session_id, user.id, refresh_token)
        access_token, expires_in = create_access_token(
            user.id, tenant.id, tenant.slug, user.email, session.id, session.remember_me
        )
        return {
            "user": user,
            "tenant": tenant,
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_in": expires_in,
        }

    def authenticate(self, access_token: str) -> AuthContext:
        """
        Resolve an access token into an AuthContext.

        Raises:
            UnauthorizedException: Invalid/expired token, revoked or expired
                session, missing/deleted/inactive user or inactive tenant
        """
        claims = decode_access_token(access_token)
        user = self.user_repo.get_by_id(claims.tenant_id, claims.user_id)
        if not user:
            raise UnauthorizedException("User not found")
        if not user.can_login():
            raise UnauthorizedException("User account is not active")
        tenant = user.tenant
        if not tenant.can_access():
            raise UnauthorizedException("Organization account is not active")

        session = self.session_service.validate(claims.session_id, user.id)
        if session.tenant_id != tenant.id:
            raise UnauthorizedException("Session has been revoked")
        return AuthContext(user=user, tenant=tenant, session=session, claims=claims)

    # Logout

    def logout(self, context: AuthContext, device: DeviceInfo | None = None) -> None:
        """Revoke the current session"""
        self.session_service.revoke_session(context, context.session.id)
        self.audit.log_event(
            context.tenant.id,
            AuditAction.USER_LOGOUT,
            user_id=context.user.id,
            resource_type="session",
            resource_id=context.session.id,
            ip_address=device.ip_address if device else None,
            user_agent=device.user_agent if device else None,
        )

    def logout_all(self, context: AuthContext) -> int:
        """Revoke every session of the caller, the current one included"""
        count = self.session_service.revoke_all_user_sessions(context.tenant.id, context.user.id)
        self.audit.log_event(
            context.tenant.id,
            AuditAction.SESSION_REVOKED,
            user_id=context.user.id,
            resource_type="user",
            resource_id=context.user.id,
            metadata={"count": count, "scope": "all"},
        )
        return count

    # Passwords

    def request_password_reset(self, email: str, tenant_slug: str) -> str | None:
        """
        Start a password reset.

        Never reveals whether the account exists; the caller always answers
        the same way.

        Returns:
            The reset token, or None when no eligible account matched
        """
        tenant = self.tenant_repo.get_by_slug(tenant_slug)
        if not tenant or not tenant.can_access():
            return None
        user = self.user_repo.get_by_email(tenant.id, email)
        if not user or user.status != UserStatus.ACTIVE:
            return None

        token = generate_token()
        user.reset_token_hash = hash_token(token)
        user.reset_token_expires_at = utcnow() + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS)
        self.user_repo.update(user)
        logger.info("password_reset_requested", tenant_id=tenant.id, user_id=user.id)
        return token

    def reset_password(self, token: str, new_password: str) -> User:
        """
        Complete a password reset and revoke every session of the user.

        Raises:
            ValidationException: Invalid or expired token, or weak password
        """
        user = self.user_repo.get_by_reset_token_hash(hash_token(token))
        if not user or not user.reset_token_expires_at or user.reset_token_expires_at < utcnow():
            raise ValidationException("Invalid or expired reset token")
        validate_password_strength(new_password)

        user.password_hash = hash_password(new_password)
        user.reset_token_hash = None
        user.reset_token_expires_at = None
        user = self.user_repo.update(user)
        self.session_service.revoke_all_user_sessions(user.tenant_id, user.id)

        self.audit.log_event(
            user.tenant_id,
            AuditAction.USER_PASSWORD_RESET,
            user_id=user.id,
            resource_type="user",
            resource_id=user.id,
        )
        return user

    def change_password(self, context: AuthContext, current_password: str, new_password: str) -> int:
        """
        Change the caller's password and revoke their other sessions.

        Returns:
            Number of other sessions revoked

        Raises:
            ValidationException: Current password is wrong, or the new one is weak or unchanged
        """
        user = context.user
        if not verify_password(current_password, user.password_hash):
            raise ValidationException("Current password is incorrect")
        if current_password == new_password:
            raise ValidationException("New password must be different from the current password")
        validate_password_strength(new_password)

        user.password_hash = hash_password(new_password)
        self.user_repo.update(user)
        revoked = self.session_service.revoke_other_sessions(context)

        self.audit.log_event(
            context.tenant.id,
            AuditAction.USER_PASSWORD_CHANGED,
            user_id=user.id,
            resource_type="user",
            resource_id=user.id,
            metadata={"sessions_revoked": revoked},
        )
        return revoked

    def get_me(self, context: AuthContext) -> dict:
        """Caller profile with roles and effective permissions"""
        return {
            "user": context.user,
            "tenant": context.tenant,
            "roles": self.permission_service.get_user_role_names(context.tenant.id, context.user.id),
            "permissions": self.permission_service.get_user_permissions(context.tenant.id, context.user.id),
            "session_id": context.session.id,
        }
