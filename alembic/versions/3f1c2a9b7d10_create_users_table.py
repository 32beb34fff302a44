"""create users table

Revision ID: 3f1c2a9b7d10
Revises: 
Create Date: 2026-10-19 10:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9b7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if "users" in inspector.get_table_names():
        return

    if bind.dialect.name == "postgresql":
        role_enum = postgresql.ENUM("user", "admin", name="userrole", create_type=False)
        status_enum = postgresql.ENUM("active", "inactive", name="userstatus", create_type=False)
        role_enum.create(bind, checkfirst=True)
        status_enum.create(bind, checkfirst=True)
    else:
        role_enum = sa.Enum("user", "admin", name="userrole")
        status_enum = sa.Enum("active", "inactive", name="userstatus")

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", role_enum, nullable=False, server_default="user"),
        sa.Column("status", status_enum, nullable=False, server_default="active"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if "users" in inspector.get_table_names():
        index_names = {idx["name"] for idx in inspector.get_indexes("users")}
        if "ix_users_email" in index_names:
            op.drop_index("ix_users_email", table_name="users")
        if "ix_users_username" in index_names:
            op.drop_index("ix_users_username", table_name="users")
        op.drop_table("users")

    if bind.dialect.name == "postgresql":
        postgresql.ENUM(name="userstatus").drop(bind, checkfirst=True)
        postgresql.ENUM(name="userrole").drop(bind, checkfirst=True)
