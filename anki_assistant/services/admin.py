import logging
import secrets
import string

from sqlalchemy import func, or_
from sqlmodel import Session, select

from anki_assistant.core.security import hash_password
from anki_assistant.models.user import User, UserRole, UserStatus

logger = logging.getLogger(__name__)

PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"


def generate_password(length: int = 16) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def create_admin_user(
    session: Session,
    *,
    username: str,
    email: str,
    password: str,
) -> tuple[User, bool]:
    """
    Create an active admin account unless the username or email is taken.

    Returns the account and whether it was created. An existing account is
    returned untouched, whatever its role.
    """
    email = email.strip().lower()
    statement = select(User).where(
        or_(
            func.lower(User.username) == username.lower(),
            func.lower(User.email) == email,
        )
    )
    existing = session.exec(statement).first()
    if existing is not None:
        return existing, False

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=UserRole.admin,
        status=UserStatus.active,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Created admin user %s", user.id)
    return user, True
