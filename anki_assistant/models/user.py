from datetime import datetime
from enum import Enum
from sqlmodel import Field
from anki_assistant.models.base import BaseTable, utc_datetime_field


class UserRole(str, Enum):
    user = "user"
    admin = "admin"


class UserStatus(str, Enum):
    active = "active"
    inactive = "inactive"


ALLOWED_ROLES = frozenset(role.value for role in UserRole)


class User(BaseTable, table=True):
    __tablename__: str = "users" # type: ignore[assignment]

    username: str = Field(index=True, unique=True, nullable=False, max_length=50)
    email: str = Field(index=True, unique=True, nullable=False, max_length=255)
    password_hash: str = Field(nullable=False, max_length=255)

    role: UserRole = Field(default=UserRole.user, nullable=False)
    status: UserStatus = Field(default=UserStatus.active, nullable=False)

    last_login_at: datetime | None = utc_datetime_field(default=None, nullable=True)
