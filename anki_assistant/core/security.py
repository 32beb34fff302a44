from __future__ import annotations

import hashlib
import hmac
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from anki_assistant.core.config import settings
from anki_assistant.core.errors import ExpiredToken, InvalidToken

# pbkdf2_sha256 ships with passlib; no native backend needed.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
RESERVED_CLAIMS = ("sub", "iat", "exp", "type")


def require_signing_key() -> None:
    """
    Fail fast when the signing secret is not configured.
    Called once from the application lifespan, never per request.
    """
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET environment variable not configured")


def hash_password(password: str) -> str:
    if not isinstance(password, str) or not password:
        raise ValueError("Password must be a non-empty string")
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Check a login password against the stored hash.
    Unknown or corrupt hashes count as a mismatch.
    """
    if not (password and password_hash):
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def new_token_family() -> str:
    """Opaque id shared by every refresh token of one login lineage."""
    return str(uuid.uuid4())


def _sign(
    user_id: str | int,
    role: str,
    token_type: str,
    lifetime: timedelta,
    **claims: Any,
) -> str:
    clashing = [name for name in RESERVED_CLAIMS if name in claims]
    if clashing:
        raise ValueError(f"Reserved claims cannot be overridden: {', '.join(clashing)}")

    issued_at = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        **claims,
        "sub": str(user_id),
        "role": role,
        "type": token_type,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def create_access_token(
    user_id: str | int,
    role: str,
    *,
    expires_minutes: int | None = None,
) -> str:
    minutes = settings.ACCESS_TOKEN_MINUTES if expires_minutes is None else expires_minutes
    return _sign(user_id, role, ACCESS_TOKEN_TYPE, timedelta(minutes=int(minutes)))


def create_refresh_token(
    user_id: str | int,
    role: str,
    *,
    family: str,
    expires_days: int | None = None,
) -> str:
    """
    Sign a long-lived refresh token bound to ``family``.

    ``jti`` makes every token unique, so two tokens issued for the same user
    within one second still hash to different session rows.
    """
    days = settings.REFRESH_TOKEN_DAYS if expires_days is None else expires_days
    return _sign(
        user_id,
        role,
        REFRESH_TOKEN_TYPE,
        timedelta(days=int(days)),
        family=family,
        jti=uuid.uuid4().hex,
    )


def _verify(token: str, expected_type: str) -> dict[str, Any]:
    if not token:
        raise InvalidToken("Token is required")

    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except ExpiredSignatureError as e:
        raise ExpiredToken() from e
    except JWTError as e:
        raise InvalidToken() from e

    if claims.get("type") != expected_type:
        raise InvalidToken("Invalid token type")
    if not (claims.get("sub") and claims.get("role")):
        raise InvalidToken("Malformed token")
    return claims


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify an access token and return its claims.

    Raises ExpiredToken when only the expiry check failed and InvalidToken
    for everything else.
    """
    return _verify(token, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> dict[str, Any]:
    return _verify(token, REFRESH_TOKEN_TYPE)


def hash_refresh_token(token: str) -> str:
    """Keyed SHA-256 digest used as the session lookup key. Raw tokens are never stored."""
    if not token:
        raise ValueError("Refresh token is required")
    mac = hmac.new(settings.JWT_SECRET.encode("utf-8"), token.encode("utf-8"), hashlib.sha256)
    return mac.hexdigest()
