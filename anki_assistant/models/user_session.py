from datetime import datetime

from sqlmodel import Field

from anki_assistant.models.base import BaseTable, utc_datetime_field


class UserSession(BaseTable, table=True):
    """One row per issued refresh token. Only the token's hash is stored."""

    __tablename__: str = "sessions"  # type: ignore[assignment]

    user_id: int = Field(nullable=False, foreign_key="users.id", index=True, ondelete="CASCADE")
    token_hash: str = Field(nullable=False, unique=True, index=True, max_length=64)
    family: str = Field(nullable=False, index=True, max_length=36)
    expires_at: datetime = utc_datetime_field(nullable=False, index=True)
    revoked_at: datetime | None = utc_datetime_field(default=None, nullable=True)
    user_agent: str | None = Field(default=None)
    ip_address: str | None = Field(default=None, max_length=45)
