"""
Database and admin account management commands.

    bigwin-admin-db init
    bigwin-admin-db create-admin alice --email alice@bigwin.gold
    bigwin-admin-db upgrade
"""

import asyncio
import secrets
import sys
from typing import Optional

import typer
from alembic import command
from alembic.config import Config
from rich.console import Console
from rich.table import Table
from sqlalchemy import select

from bigwin_admin.admin.admin_auth import hash_api_key
from bigwin_admin.core.database import (
    init_database, close_database, get_async_session, DatabaseManager
)
from bigwin_admin.core.logging import setup_logging, get_logger
from bigwin_admin.models.user import Admin, AdminRole

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="BigWin admin database management commands")

DATABASE_URL_OPTION = typer.Option(None, "--database-url", help="Override DATABASE_URL")


def _run(coro_factory, database_url: Optional[str]):
    """Run one command body against a freshly initialized database."""
    async def _main():
        setup_logging()
        await init_database(database_url)
        try:
            return await coro_factory()
        finally:
            await close_database()

    return asyncio.run(_main())


def _alembic_config() -> Config:
    return Config("alembic.ini")


@app.command()
def init(database_url: Optional[str] = DATABASE_URL_OPTION):
    """Create all tables and install the change triggers."""
    async def _init():
        await DatabaseManager.create_tables()
        await DatabaseManager.install_change_triggers()

    _run(_init, database_url)
    console.print("[green]Database initialized[/green]")


@app.command("install-triggers")
def install_triggers(
    channel: Optional[str] = typer.Option(None, help="Notification channel name"),
    database_url: Optional[str] = DATABASE_URL_OPTION
):
    """Install the change-notification triggers (PostgreSQL only)."""
    _run(lambda: DatabaseManager.install_change_triggers(channel), database_url)
    console.print("[green]Change triggers installed[/green]")


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt"),
    database_url: Optional[str] = DATABASE_URL_OPTION
):
    """Drop all tables."""
    if not yes and not typer.confirm("Are you sure you want to drop all tables?"):
        console.print("Operation cancelled")
        raise typer.Exit(1)

    _run(DatabaseManager.drop_tables, database_url)
    console.print("[yellow]All tables dropped[/yellow]")


@app.command()
def upgrade(revision: str = "head"):
    """Apply migrations."""
    command.upgrade(_alembic_config(), revision)
    console.print(f"Database upgraded to: {revision}")


@app.command()
def downgrade(revision: str):
    """Downgrade database to a specific revision."""
    command.downgrade(_alembic_config(), revision)
    console.print(f"Database downgraded to: {revision}")


@app.command()
def current():
    """Show current database revision."""
    command.current(_alembic_config())


@app.command()
def health(database_url: Optional[str] = DATABASE_URL_OPTION):
    """Check database connectivity."""
    if _run(DatabaseManager.health_check, database_url):
        console.print("[green]Database is healthy[/green]")
    else:
        console.print("[red]Database health check failed[/red]")
        sys.exit(1)


@app.command("create-admin")
def create_admin(
    username: str,
    email: Optional[str] = typer.Option(None, help="Contact email"),
    role: str = typer.Option(AdminRole.ADMIN.value, help="admin or superadmin"),
    database_url: Optional[str] = DATABASE_URL_OPTION
):
    """Create an admin account and print its API key once."""
    allowed = [r.value for r in AdminRole]
    if role not in allowed:
        console.print(f"[red]Role must be one of: {allowed}[/red]")
        raise typer.Exit(2)

    api_key = secrets.token_urlsafe(32)

    async def _create():
        async with get_async_session() as db:
            existing = await db.execute(select(Admin.id).where(Admin.username == username))
            if existing.scalar_one_or_none():
                return False
            db.add(Admin(
                username=username,
                email=email,
                role=role,
                api_key_hash=hash_api_key(api_key),
                is_active=True
            ))
        return True

    if not _run(_create, database_url):
        console.print(f"[red]Admin {username} already exists[/red]")
        raise typer.Exit(1)

    logger.info("Admin created", admin=username, role=role)
    console.print(f"Admin [cyan]{username}[/cyan] created with role {role}")
    console.print(f"API key (shown only once): [bold]{api_key}[/bold]")


@app.command("list-admins")
def list_admins(database_url: Optional[str] = DATABASE_URL_OPTION):
    """Show all admin accounts."""
    async def _list():
        async with get_async_session() as db:
            result = await db.execute(select(Admin).order_by(Admin.username))
            return [admin.to_dict() for admin in result.scalars()]

    table = Table(title="Admins")
    table.add_column("Username", style="cyan")
    table.add_column("Role")
    table.add_column("Email")
    table.add_column("Active", style="green")

    for admin in _run(_list, database_url):
        table.add_row(
            admin["username"],
            admin["role"],
            admin.get("email") or "",
            "yes" if admin["isActive"] else "no"
        )

    console.print(table)


if __name__ == "__main__":
    app()
