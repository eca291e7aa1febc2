"""
TOTP two-factor authentication.

Secrets are RFC 6238 TOTP (SHA1, 6 digits, 30 second step) verified with
one step of clock drift either way. Secrets and backup codes are stored
encrypted; backup codes are single use. Failed code checks are counted in
the cache and locked out after MAX_2FA_ATTEMPTS within the rate limit window.
"""

import hmac
import secrets
import string

import pyotp
from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, cache_key
from tenant_auth.config import settings
from tenant_auth.core.encryption import get_encryption_service
from tenant_auth.core.exceptions import (
    ConflictException,
    RateLimitException,
    ValidationException,
)
from tenant_auth.core.security import generate_token, hash_token, verify_password
from tenant_auth.logging import get_logger
from tenant_auth.models.base import utcnow
from tenant_auth.models.user import User
from tenant_auth.repositories.user_repository import UserRepository

logger = get_logger(__name__)

BACKUP_CODE_COUNT = 10
_BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    """Random XXXX-XXXX codes"""
    codes = []
    for _ in range(count):
        raw = "".join(secrets.choice(_BACKUP_CODE_ALPHABET) for _ in range(8))
        codes.append(f"{raw[:4]}-{raw[4:]}")
    return codes


def normalize_backup_code(code: str) -> str:
    """Uppercase and strip spaces and dashes"""
    return code.replace("-", "").replace(" ", "").strip().upper()


class TwoFactorService:
    """Service layer for TOTP setup, verification and trusted devices"""

    def __init__(self, db: Session, cache: CacheBackend):
        self.db = db
        self.cache = cache
        self.user_repo = UserRepository(db)
        self.encryption = get_encryption_service()

    # Setup

    def setup(self, user: User) -> dict:
        """
        Generate a secret, provisioning URI and backup codes.

        Nothing is stored; the client echoes the secret and codes back to
        enable() together with a first valid code.

        Raises:
            ConflictException: If 2FA is already enabled
        """
        if user.two_factor_enabled:
            raise ConflictException("Two-factor authentication is already enabled")

        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=settings.TOTP_ISSUER)
        return {
            "secret": secret,
            "provisioning_uri": uri,
            "backup_codes": generate_backup_codes(),
        }

    def enable(self, user: User, secret: str, code: str, backup_codes: list[str]) -> User:
        """
        Turn on 2FA after proving possession of the secret.

        Args:
            user: User enabling 2FA
            secret: Base32 secret returned by setup()
            code: Current TOTP code from the authenticator
            backup_codes: Backup codes returned by setup()

        Raises:
            ConflictException: If 2FA is already enabled
            ValidationException: If the code or backup codes are invalid
        """
        if user.two_factor_enabled:
            raise ConflictException("Two-factor authentication is already enabled")
        if len(backup_codes) != BACKUP_CODE_COUNT:
            raise ValidationException(f"Exactly {BACKUP_CODE_COUNT} backup codes are required")
        try:
            valid = pyotp.TOTP(secret).verify(code, valid_window=1)
        except (TypeError, ValueError):
            raise ValidationException("Invalid two-factor secret")
        if not valid:
            raise ValidationException("Invalid verification code")

        user.two_factor_secret = self.encryption.encrypt(secret)
        user.two_factor_backup_codes = self._encrypt_codes(backup_codes)
        user.two_factor_enabled = True
        user.two_factor_enabled_at = utcnow()
        user = self.user_repo.update(user)
        logger.info("two_factor_enabled", tenant_id=user.tenant_id, user_id=user.id)
        return user

    def disable(self, user: User, password: str) -> User:
        """
        Turn off 2FA; requires the account password.

        Raises:
            ValidationException: If 2FA is not enabled
            ValidationException: If the password is wrong
        """
        if not user.two_factor_enabled:
            raise ValidationException("Two-factor authentication is not enabled")
        if not verify_password(password, user.password_hash):
            raise ValidationException("Invalid password")

        user.two_factor_enabled = False
        user.two_factor_secret = None
        user.two_factor_backup_codes = None
        user.two_factor_enabled_at = None
        user = self.user_repo.update(user)
        self.forget_devices(user)
        logger.info("two_factor_disabled", tenant_id=user.tenant_id, user_id=user.id)
        return user

    # Verification

    def _attempts_key(self, user: User) -> str:
        return cache_key("2fa_attempts", user.tenant_id, user.id)

    def _check_rate_limit(self, user: User) -> None:
        attempts = self.cache.get(self._attempts_key(user))
        if attempts is not None and int(attempts) >= settings.MAX_2FA_ATTEMPTS:
            logger.warning("two_factor_rate_limited", tenant_id=user.tenant_id, user_id=user.id)
            raise RateLimitException(
                f"Too many verification attempts. Try again in {settings.TWO_FACTOR_RATE_LIMIT_MINUTES} minutes"
            )

    def _record_failure(self, user: User) -> None:
        self.cache.incr(self._attempts_key(user), settings.TWO_FACTOR_RATE_LIMIT_MINUTES * 60)

    def _reset_attempts(self, user: User) -> None:
        self.cache.delete(self._attempts_key(user))

    def _secret(self, user: User) -> str | None:
        if not user.two_factor_enabled or not user.two_factor_secret:
            return None
        return self.encryption.decrypt(user.two_factor_secret)

    def _match_totp(self, user: User, code: str) -> bool:
        secret = self._secret(user)
        return bool(secret and code and pyotp.TOTP(secret).verify(code.strip(), valid_window=1))

    def _consume_backup_code(self, user: User, code: str) -> bool:
        candidate = normalize_backup_code(code or "")
        if not candidate:
            return False
        stored = self._decrypt_codes(user)
        for index, existing in enumerate(stored):
            if hmac.compare_digest(existing, candidate):
                remaining = stored[:index] + stored[index + 1:]
                user.two_factor_backup_codes = self._encrypt_codes(remaining)
                self.user_repo.update(user)
                logger.info("backup_code_consumed", tenant_id=user.tenant_id, user_id=user.id, remaining=len(remaining))
                return True
        return False

    def verify_totp(self, user: User, code: str) -> bool:
        """
        Check a TOTP code.

        Raises:
            RateLimitException: If the user is locked out
        """
        return self.verify_code(user, code, allow_backup=False) is not None

    def verify_backup_code(self, user: User, code: str) -> bool:
        """
        Check and consume a backup code.

        Raises:
            RateLimitException: If the user is locked out
        """
        self._check_rate_limit(user)
        if self._consume_backup_code(user, code):
            self._reset_attempts(user)
            return True
        self._record_failure(user)
        return False

    def verify_code(self, user: User, code: str, allow_backup: bool = True) -> str | None:
        """
        Accept a TOTP code, or a backup code when allowed.

        One call counts as a single attempt against the rate limit.

        Returns:
            "totp" or "backup_code" for the method that matched, None otherwise

        Raises:
            RateLimitException: If the user is locked out
        """
        self._check_rate_limit(user)
        method = None
        if self._match_totp(user, code):
            method = "totp"
        elif allow_backup and self._consume_backup_code(user, code):
            method = "backup_code"

        if method:
            self._reset_attempts(user)
        else:
            self._record_failure(user)
        return method

    def regenerate_backup_codes(self, user: User, code: str) -> list[str]:
        """
        Replace all backup codes; requires a valid TOTP code.

        Raises:
            ValidationException: If 2FA is not enabled
            ValidationException: If the code is wrong
        """
        if not user.two_factor_enabled:
            raise ValidationException("Two-factor authentication is not enabled")
        if not self.verify_totp(user, code):
            raise ValidationException("Invalid verification code")
        codes = generate_backup_codes()
        user.two_factor_backup_codes = self._encrypt_codes(codes)
        self.user_repo.update(user)
        return codes

    def remaining_backup_codes(self, user: User) -> int:
        return len(user.two_factor_backup_codes or [])

    # Trusted devices

    def _device_key(self, user: User, fingerprint: str) -> str:
        return cache_key("trusted_device", user.tenant_id, user.id, fingerprint)

    def remember_device(self, user: User, fingerprint: str) -> str:
        """
        Trust a device for TRUSTED_DEVICE_DAYS.

        Returns:
            Device token the client presents on later logins
        """
        device_token = generate_token()
        self.cache.set(
            self._device_key(user, fingerprint),
            hash_token(device_token),
            settings.TRUSTED_DEVICE_DAYS * 24 * 3600,
        )
        return device_token

    def is_device_trusted(self, user: User, fingerprint: str, device_token: str | None) -> bool:
        if not device_token or not fingerprint:
            return False
        stored = self.cache.get(self._device_key(user, fingerprint))
        return stored is not None and hmac.compare_digest(stored, hash_token(device_token))

    def forget_devices(self, user: User) -> int:
        return self.cache.delete_pattern(cache_key("trusted_device", user.tenant_id, user.id, "*"))

    # Storage helpers

    def _encrypt_codes(self, codes: list[str]) -> list[str]:
        return [self.encryption.encrypt(normalize_backup_code(c)) for c in codes]

    def _decrypt_codes(self, user: User) -> list[str]:
        decrypted = (self.encryption.decrypt(c) for c in user.two_factor_backup_codes or [])
        return [c for c in decrypted if c]
