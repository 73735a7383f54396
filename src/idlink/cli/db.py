"""CLI commands for database management.

Usage:
    idlink db init
    idlink db check
"""

import asyncio
import sys

import click


@click.group(name="db")
def cli():
    """Database management commands."""
    pass


@cli.command(name="init")
def init_command():
    """Create the contacts table if it does not exist.

    Production deployments should run the Alembic migrations instead.
    """
    from ..db import close_all_connections, create_schema

    async def _init():
        try:
            await create_schema()
        finally:
            await close_all_connections()

    try:
        asyncio.run(_init())
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.secho("Database schema created", fg="green")


@cli.command(name="check")
def check_command():
    """Verify the database is reachable."""
    from ..db import check_connection, close_all_connections

    async def _check():
        try:
            await check_connection()
        finally:
            await close_all_connections()

    try:
        asyncio.run(_check())
    except Exception as e:
        click.secho(f"Database unreachable: {e}", fg="red", err=True)
        sys.exit(1)

    click.secho("Database reachable", fg="green")
