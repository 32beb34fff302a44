from datetime import datetime

from pydantic import Field

from anki_assistant.models.user import UserRole, UserStatus
from anki_assistant.schemas.camel_model import CamelModel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


class UserCreate(CamelModel):
    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: str = Field(min_length=5, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=255)


class UserLogin(CamelModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=255)


class UserRead(CamelModel):
    id: int
    username: str
    email: str
    role: UserRole
    status: UserStatus


class UserProfile(UserRead):
    last_login_at: datetime | None = None
    created_at: datetime


class AuthResponse(CamelModel):
    message: str
    access_token: str
    user: UserRead


class RefreshResponse(CamelModel):
    access_token: str
    user: UserRead


class LogoutResponse(CamelModel):
    message: str = "Logout successful"


class IdentityRead(CamelModel):
    user_id: int
    role: UserRole


class ValidateResponse(CamelModel):
    is_valid: bool = True
    user: IdentityRead
