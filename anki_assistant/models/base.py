from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without an offset; they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def utc_datetime_field(**kwargs):
    """Field for a timezone-aware UTC timestamp column."""
    return Field(sa_type=DateTime(timezone=True), **kwargs)

class BaseTable(SQLModel):
    id: int | None = Field(default=None, primary_key=True)
    created_at: datetime = utc_datetime_field(default_factory=utcnow, nullable=False)
    updated_at: datetime = utc_datetime_field(default_factory=utcnow, nullable=False)
