from __future__ import annotations

import click
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from anki_assistant.db.session import engine
from anki_assistant.services.admin import create_admin_user, generate_password


@click.group()
def cli() -> None:
    """Anki Assistant backend maintenance commands."""


@cli.command("create-admin")
@click.option("--username", default="admin", show_default=True)
@click.option("--email", default="admin@ankiassistant.com", show_default=True)
@click.option("--password", default=None, help="Generated and printed when omitted.")
@click.option("--yes", "assume_yes", is_flag=True, help="Skip the confirmation prompt.")
def create_admin(username: str, email: str, password: str | None, assume_yes: bool) -> None:
    """Create the administrator account if it does not exist yet."""
    if not assume_yes and not click.confirm("Create the admin user?"):
        click.echo("Operation cancelled.")
        return

    generated = password is None
    if generated:
        password = generate_password()

    try:
        with Session(engine) as session:
            user, created = create_admin_user(
                session,
                username=username,
                email=email,
                password=password,
            )
    except SQLAlchemyError as e:
        raise click.ClickException(f"Could not create admin user: {e}") from e

    if not created:
        click.echo(f"User '{user.username}' already exists; nothing changed.")
        return

    click.echo("Admin user created.")
    click.echo(f"Username: {user.username}")
    click.echo(f"Email: {user.email}")
    if generated:
        click.echo(f"Password: {password}")


if __name__ == "__main__":
    cli()
