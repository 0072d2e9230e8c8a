"""Click CLI commands for operating the service.

Usage:
    python -m src.cli migrate
    python -m src.cli grant-role someone@example.com admin
    python -m src.cli cleanup
"""

from __future__ import annotations

import asyncio
import sys
from typing import Awaitable, Callable, TypeVar

import click
from dotenv import load_dotenv

from src.config import get_settings
from src.database import close_database, init_database, run_migrations
from src.models.user import Role
from src.services.logging_service import configure_logging
from src.services.otp_service import OtpService
from src.services.role_service import RoleService
from src.services.user_service import UserService

T = TypeVar("T")


def _run(operation: Callable[[], Awaitable[T]]) -> T:
    """Run one async operation with the database pool open."""

    async def runner() -> T:
        await init_database()
        try:
            return await operation()
        finally:
            await close_database()

    return asyncio.run(runner())


@click.group()
def cli() -> None:
    """Administrative commands for accounts, roles and housekeeping."""
    load_dotenv()
    configure_logging(get_settings().log_level)


@cli.command()
def migrate() -> None:
    """Apply the SQL migrations in order."""
    applied = _run(run_migrations)
    for name in applied:
        click.echo(f"applied {name}")
    click.echo(f"{len(applied)} migration(s) applied")


@cli.command("grant-role")
@click.argument("email")
@click.argument("role", type=click.Choice([r.value for r in Role]))
def grant_role(email: str, role: str) -> None:
    """Grant ROLE to the account registered with EMAIL."""

    async def grant() -> bool | None:
        user = await UserService().get_by_email(email)
        if user is None:
            return None
        return await RoleService().assign_role(user.id, Role(role))

    granted = _run(grant)
    if granted is None:
        click.echo(f"No account found for {email}", err=True)
        sys.exit(1)
    if granted:
        click.echo(f"Granted {role} to {email}")
    else:
        click.echo(f"{email} already has {role}")


@cli.command()
def cleanup() -> None:
    """Delete expired one-time codes and stale rate limit rows."""
    expired, stale = _run(OtpService().cleanup)
    click.echo(f"Removed {expired} expired code(s) and {stale} stale rate limit row(s)")


if __name__ == "__main__":
    cli()
