from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlmodel import Session

from anki_assistant.core.config import settings
from anki_assistant.core.errors import (
    ExpiredToken,
    InvalidToken,
    MissingCredential,
    SessionExpired,
    SessionNotFound,
    SessionRevoked,
    StorageFailure,
    UserNotFound,
)
from anki_assistant.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_refresh_token,
    new_token_family,
)
from anki_assistant.models.base import as_utc, utcnow
from anki_assistant.models.user import User
from anki_assistant.models.user_session import UserSession
from anki_assistant.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class RefreshOutcome:
    access_token: str
    user: User
    # Set only when the refresh token was rotated.
    refresh_token: str | None = None


def _short(token_hash: str) -> str:
    return f"{token_hash[:10]}..."


def _refresh_expires_at():
    return utcnow() + timedelta(days=int(settings.REFRESH_TOKEN_DAYS))


def _role_of(user: User) -> str:
    return user.role.value if hasattr(user.role, "value") else str(user.role)


def start_session(
    store: SessionStore,
    user: User,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> IssuedTokens:
    """
    Issue an access/refresh pair for a fresh login lineage and persist the
    refresh token's hash.
    """
    if user.id is None:
        raise StorageFailure("User record is invalid")

    role = _role_of(user)
    family = new_token_family()
    refresh_token = create_refresh_token(user.id, role, family=family)
    store.create(
        user_id=user.id,
        token_hash=hash_refresh_token(refresh_token),
        family=family,
        expires_at=_refresh_expires_at(),
        user_agent=user_agent,
        ip_address=ip_address,
    )
    logger.info("Started session family %s for user %s", family, user.id)
    return IssuedTokens(
        access_token=create_access_token(user.id, role),
        refresh_token=refresh_token,
    )


class RefreshCoordinator:
    """
    Exchanges a refresh token for a new access token.

    Every failure raises an ``AuthError`` and is terminal for the call; the
    caller is expected to clear the client's refresh cookie on any of them.
    """

    def __init__(self, db: Session, *, rotate: bool | None = None) -> None:
        self.db = db
        self.sessions = SessionStore(db)
        self.rotate = settings.ROTATE_REFRESH_TOKENS if rotate is None else rotate

    def refresh(
        self,
        raw_token: str | None,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> RefreshOutcome:
        if not raw_token:
            logger.info("Refresh rejected: no refresh token cookie")
            raise MissingCredential("Refresh token not found")

        signature_expired = False
        try:
            claims = decode_refresh_token(raw_token)
        except ExpiredToken:
            # Still looked up, so a revoked lineage gets cascaded before expiry is reported.
            claims, signature_expired = None, True
        except InvalidToken:
            logger.info("Refresh rejected: token failed signature verification")
            raise SessionNotFound()

        token_hash = hash_refresh_token(raw_token)
        auth_session = self.sessions.find_by_hash(token_hash)

        if auth_session is None:
            logger.info("Refresh rejected: hash %s not found", _short(token_hash))
            raise SessionNotFound()

        if claims is not None and claims["sub"] != str(auth_session.user_id):
            logger.warning("Refresh rejected: subject does not match session %s", auth_session.id)
            raise SessionNotFound()

        if auth_session.revoked_at is not None:
            self._revoke_lineage(auth_session)
            raise SessionRevoked()

        if signature_expired or as_utc(auth_session.expires_at) < utcnow():
            logger.info("Refresh rejected: session %s expired", auth_session.id)
            raise SessionExpired()

        user = self.db.get(User, auth_session.user_id)
        if user is None or user.id is None:
            logger.error(
                "Refresh rejected: user %s for session %s not found",
                auth_session.user_id,
                auth_session.id,
            )
            raise UserNotFound("User associated with token not found")

        role = _role_of(user)
        access_token = create_access_token(user.id, role)
        if not self.rotate:
            logger.info("Refreshed access token for user %s without rotation", user.id)
            return RefreshOutcome(access_token=access_token, user=user)

        refresh_token = self._rotate(auth_session, user, user_agent=user_agent, ip_address=ip_address)
        return RefreshOutcome(access_token=access_token, user=user, refresh_token=refresh_token)

    def _revoke_lineage(self, auth_session: UserSession) -> None:
        family = auth_session.family
        revoked = self.sessions.revoke_by_family(family)
        logger.warning(
            "Revoked refresh token presented again (session %s); revoked %d session(s) in family %s",
            auth_session.id,
            revoked,
            family,
        )

    def _rotate(
        self,
        auth_session: UserSession,
        user: User,
        *,
        user_agent: str | None,
        ip_address: str | None,
    ) -> str:
        family = auth_session.family
        refresh_token = create_refresh_token(user.id, _role_of(user), family=family)
        successor = self.sessions.rotate(
            auth_session,
            token_hash=hash_refresh_token(refresh_token),
            expires_at=_refresh_expires_at(),
            user_agent=user_agent,
            ip_address=ip_address,
        )
        if successor is None:
            # Another request rotated this token first.
            revoked = self.sessions.revoke_by_family(family)
            logger.warning(
                "Lost rotation race for family %s; revoked %d session(s)",
                family,
                revoked,
            )
            raise SessionRevoked()

        logger.info("Rotated refresh token for user %s in family %s", user.id, family)
        return refresh_token


def revoke_on_logout(store: SessionStore, raw_token: str | None) -> None:
    """
    Revoke the presented session only, leaving the rest of its family alone.
    Storage errors are logged and swallowed.
    """
    if not raw_token:
        return
    try:
        store.revoke_by_hash(hash_refresh_token(raw_token))
    except StorageFailure:
        logger.exception("Error invalidating session token during logout")
