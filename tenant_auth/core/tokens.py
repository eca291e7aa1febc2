"""
JWT issuance and validation.

Three token types share one claim layout:

- access:  short-lived bearer credential, bound to a session (`sid`)
- refresh: long-lived, signed with a separate key, bound to the same session
- 2fa:     five-minute ticket between password check and code check, no session

Decoding checks signature, issuer, expiry and the `type` claim; every failure
surfaces as UnauthorizedException so the route layer answers 401.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC

from jose import ExpiredSignatureError, JWTError, jwt

from tenant_auth.config import settings
from tenant_auth.core.exceptions import UnauthorizedException

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
TOKEN_TYPE_2FA = "2fa"


@dataclass(frozen=True)
class TokenClaims:
    """Decoded and validated token payload"""

    user_id: int
    tenant_id: int
    tenant_slug: str
    email: str
    token_type: str
    session_id: int | None
    expires_at: datetime
    jti: str


def _lifetime(token_type: str, remember_me: bool) -> timedelta:
    if token_type == TOKEN_TYPE_2FA:
        return timedelta(minutes=settings.TWO_FACTOR_TOKEN_EXPIRE_MINUTES)
    if remember_me:
        return timedelta(days=settings.REMEMBER_ME_EXPIRE_DAYS)
    if token_type == TOKEN_TYPE_REFRESH:
        return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def _secret_for(token_type: str) -> str:
    if token_type == TOKEN_TYPE_REFRESH:
        return settings.refresh_secret_key
    return settings.SECRET_KEY


def refresh_token_lifetime(remember_me: bool = False) -> timedelta:
    """How long a refresh token (and therefore its session) lives"""
    return _lifetime(TOKEN_TYPE_REFRESH, remember_me)


def _encode(
    token_type: str,
    user_id: int,
    tenant_id: int,
    tenant_slug: str,
    email: str,
    session_id: int | None,
    remember_me: bool = False,
) -> tuple[str, int]:
    now = datetime.now(UTC)
    lifetime = _lifetime(token_type, remember_me)
    payload = {
        "sub": str(user_id),
        "tid": tenant_id,
        "tenant_slug": tenant_slug,
        "email": email,
        "type": token_type,
        "iss": settings.JWT_ISSUER,
        "iat": now,
        "nbf": now,
        "exp": now + lifetime,
        "jti": uuid.uuid4().hex,
    }
    if session_id is not None:
        payload["sid"] = session_id

    token = jwt.encode(payload, _secret_for(token_type), algorithm=settings.JWT_ALGORITHM)
    return token, int(lifetime.total_seconds())


def create_access_token(
    user_id: int,
    tenant_id: int,
    tenant_slug: str,
    email: str,
    session_id: int,
    remember_me: bool = False,
) -> tuple[str, int]:
    """
    Sign an access token bound to a session.

    Returns:
        (token, expires_in_seconds)
    """
    return _encode(TOKEN_TYPE_ACCESS, user_id, tenant_id, tenant_slug, email, session_id, remember_me)


def create_refresh_token(
    user_id: int,
    tenant_id: int,
    tenant_slug: str,
    email: str,
    session_id: int,
    remember_me: bool = False,
) -> str:
    """Sign a refresh token with the refresh key"""
    token, _ = _encode(TOKEN_TYPE_REFRESH, user_id, tenant_id, tenant_slug, email, session_id, remember_me)
    return token


def create_two_factor_token(user_id: int, tenant_id: int, tenant_slug: str, email: str) -> str:
    """Sign the temporary ticket handed out when a login still needs a 2FA code"""
    token, _ = _encode(TOKEN_TYPE_2FA, user_id, tenant_id, tenant_slug, email, None)
    return token


def decode_token(token: str, expected_type: str) -> TokenClaims:
    """
    Decode and validate a token of the expected type.

    Raises:
        UnauthorizedException: If token invalid, expired, malformed or of another type
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(expected_type),
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
            options={"require_exp": True, "require_sub": True},
        )
    except ExpiredSignatureError:
        raise UnauthorizedException("Token has expired")
    except JWTError as e:
        raise UnauthorizedException(f"Invalid token: {str(e)}")

    if payload.get("type") != expected_type:
        raise UnauthorizedException(
            f"Invalid token type: expected {expected_type}, got {payload.get('type')}"
        )

    try:
        user_id = int(payload["sub"])
        tenant_id = int(payload["tid"])
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedException("Token missing user or tenant identifier")

    session_id = payload.get("sid")
    if expected_type != TOKEN_TYPE_2FA and session_id is None:
        raise UnauthorizedException("Token missing session identifier")

    return TokenClaims(
        user_id=user_id,
        tenant_id=tenant_id,
        tenant_slug=payload.get("tenant_slug", ""),
        email=payload.get("email", ""),
        token_type=expected_type,
        session_id=int(session_id) if session_id is not None else None,
        expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        jti=payload.get("jti", ""),
    )


def decode_access_token(token: str) -> TokenClaims:
    return decode_token(token, TOKEN_TYPE_ACCESS)


def decode_refresh_token(token: str) -> TokenClaims:
    return decode_token(token, TOKEN_TYPE_REFRESH)


def decode_two_factor_token(token: str) -> TokenClaims:
    return decode_token(token, TOKEN_TYPE_2FA)
