"""
Password hashing and opaque token helpers.

Passwords are hashed with bcrypt directly (no passlib wrapper). Random
tokens (email verification, password reset, invitations, trusted devices)
come from `secrets`; refresh tokens are stored as SHA-256 digests so a
leaked sessions table can't be replayed.
"""

import hashlib
import secrets
import unicodedata

import bcrypt

from tenant_auth.config import settings
from tenant_auth.core.exceptions import ValidationException

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

# Used when the email is unknown so failed lookups cost as much as a real verify
_DUMMY_HASH = bcrypt.hashpw(b"tenant-auth-dummy-password", bcrypt.gensalt(rounds=4)).decode("utf-8")


def _password_bytes(plain: str) -> bytes:
    # bcrypt only reads the first 72 bytes and newer releases reject longer input
    return plain.encode("utf-8")[:72]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """
    Return True if the plaintext password matches the bcrypt hash.

    Malformed or missing hashes verify as False.
    """
    if not hashed:
        burn_password_check(plain)
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification on a dummy hash (unknown email path)."""
    bcrypt.checkpw(_password_bytes(plain), _DUMMY_HASH.encode("utf-8"))


def _is_special(char: str) -> bool:
    return unicodedata.category(char)[0] in ("P", "S")


def validate_password_strength(password: str) -> None:
    """
    Enforce password complexity rules.

    Raises:
        ValidationException: With the first rule the password breaks
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationException(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationException(f"Password must not exceed {MAX_PASSWORD_LENGTH} characters")
    if not any(c.isupper() for c in password):
        raise ValidationException("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in password):
        raise ValidationException("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in password):
        raise ValidationException("Password must contain at least one number")
    if not any(_is_special(c) for c in password):
        raise ValidationException("Password must contain at least one special character")


def generate_token(nbytes: int = 32) -> str:
    """URL-safe random token for verification, reset and invitation links"""
    return secrets.token_urlsafe(nbytes)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store bearer secrets at rest"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
