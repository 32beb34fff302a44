from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from anki_assistant.core.errors import StorageFailure
from anki_assistant.models.base import utcnow
from anki_assistant.models.user_session import UserSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Persistence for refresh-token sessions, keyed by token hash."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _storage_guard(self, message: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("%s: %s", message, e)
            raise StorageFailure(message) from e

    def create(
        self,
        *,
        user_id: int,
        token_hash: str,
        family: str,
        expires_at: datetime,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> UserSession:
        auth_session = UserSession(
            user_id=user_id,
            token_hash=token_hash,
            family=family,
            expires_at=expires_at,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        # A unique-index violation on token_hash lands here too and is fatal.
        with self._storage_guard("Session creation failed"):
            self.db.add(auth_session)
            self.db.commit()
            self.db.refresh(auth_session)
        return auth_session

    def find_by_hash(self, token_hash: str) -> UserSession | None:
        with self._storage_guard("Session lookup failed"):
            statement = select(UserSession).where(UserSession.token_hash == token_hash)
            return self.db.exec(statement).first()

    def _revoke_where(self, *criteria) -> int:
        now = utcnow()
        statement = (
            update(UserSession)
            .where(*criteria, col(UserSession.revoked_at).is_(None))
            .values(revoked_at=now, updated_at=now)
        )
        result = self.db.connection().execute(statement)
        return result.rowcount

    def revoke_by_hash(self, token_hash: str) -> None:
        """Revoke one session. Already revoked or unknown hashes are a no-op."""
        with self._storage_guard("Session revocation failed"):
            self._revoke_where(col(UserSession.token_hash) == token_hash)
            self.db.commit()

    def revoke_by_family(self, family: str) -> int:
        with self._storage_guard("Session family revocation failed"):
            revoked = self._revoke_where(col(UserSession.family) == family)
            self.db.commit()
        return revoked

    def rotate(
        self,
        previous: UserSession,
        *,
        token_hash: str,
        expires_at: datetime,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> UserSession | None:
        """
        Replace ``previous`` with a new session in the same family.

        The old row is revoked with a compare-and-swap on its hash, so of two
        concurrent rotations of the same token only one succeeds. Returns
        ``None`` for the loser without writing anything.
        """
        with self._storage_guard("Session rotation failed"):
            swapped = self._revoke_where(col(UserSession.token_hash) == previous.token_hash)
            if swapped != 1:
                self.db.rollback()
                return None

            successor = UserSession(
                user_id=previous.user_id,
                token_hash=token_hash,
                family=previous.family,
                expires_at=expires_at,
                user_agent=user_agent,
                ip_address=ip_address,
            )
            self.db.add(successor)
            self.db.commit()
            self.db.refresh(successor)
        return successor
