from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from anki_assistant.core.errors import (
    AdminRequired,
    InvalidToken,
    MissingCredential,
    UserInactive,
    UserNotFound,
)
from anki_assistant.core.security import decode_access_token
from anki_assistant.db.session import get_session
from anki_assistant.models.user import ALLOWED_ROLES, User, UserRole, UserStatus

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

SessionDep = Annotated[Session, Depends(get_session)]
BearerDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str


def get_current_identity(credentials: BearerDep) -> Identity:
    """
    Verify the bearer access token and return the identity it carries.

    No token -> 401. Bad signature, expiry or malformed claims -> 403.
    The database is not consulted here.
    """
    if credentials is None or not credentials.credentials:
        raise MissingCredential()

    payload = decode_access_token(credentials.credentials)
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise InvalidToken("Malformed token")

    role = payload["role"]
    if role not in ALLOWED_ROLES:
        raise InvalidToken("Unauthorized access")

    return Identity(user_id=user_id, role=role)


IdentityDep = Annotated[Identity, Depends(get_current_identity)]


def require_active_user(identity: IdentityDep, session: SessionDep) -> User:
    # A token stays cryptographically valid after deactivation, so re-read status.
    user = session.get(User, identity.user_id)
    if user is None:
        raise UserNotFound()
    if user.status != UserStatus.active:
        logger.info("Rejected request from inactive user %s", user.id)
        raise UserInactive()
    return user


ActiveUserDep = Annotated[User, Depends(require_active_user)]


def require_admin(current_user: ActiveUserDep) -> User:
    if current_user.role != UserRole.admin:
        logger.info("Rejected admin request from user %s", current_user.id)
        raise AdminRequired()
    return current_user


AdminUserDep = Annotated[User, Depends(require_admin)]
