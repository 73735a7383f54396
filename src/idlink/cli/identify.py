"""CLI commands for resolving identities.

Usage:
    idlink identify [--email EMAIL] [--phone PHONE] [--json]
    idlink lookup CONTACT_ID [--json]
"""

import asyncio
import json
import sys

import click

from ..models import IdentifyResult


def _print_identity(result: IdentifyResult, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.model_dump(), indent=2))
        return

    click.echo("\nPrimary contact: ", nl=False)
    click.secho(str(result.primary_contact_id), fg="green", bold=True)
    click.echo(f"  Emails: {', '.join(result.emails) or '-'}")
    click.echo(f"  Phone numbers: {', '.join(result.phone_numbers) or '-'}")
    secondary = ", ".join(str(i) for i in result.secondary_contact_ids)
    click.echo(f"  Secondary contacts: {secondary or '-'}")


@click.command(name="identify")
@click.option("--email", default=None, help="Email address")
@click.option("--phone", "phone_number", default=None, help="Phone number")
@click.option("--json", "as_json", is_flag=True, help="Print the identity as JSON")
def identify_command(email: str | None, phone_number: str | None, as_json: bool):
    """Resolve an email and/or phone number to an identity.

    Records a new contact when the values are unknown, exactly as the
    HTTP endpoint does.

    Examples:

        idlink identify --email lorraine@hillvalley.edu

        idlink identify --email mcfly@hillvalley.edu --phone 123456 --json
    """
    if not email and not phone_number:
        raise click.UsageError("Either --email or --phone is required")

    from ..db import close_all_connections
    from ..errors import IdentityError
    from ..resolution import IdentityEngine

    async def _identify() -> IdentifyResult:
        try:
            return await IdentityEngine().identify(email=email, phone_number=phone_number)
        finally:
            await close_all_connections()

    try:
        result = asyncio.run(_identify())
    except IdentityError as e:
        click.echo(f"Error ({e.error_code}): {e.message}", err=True)
        sys.exit(1)

    _print_identity(result, as_json)


@click.command(name="lookup")
@click.argument("contact_id", type=click.IntRange(min=1))
@click.option("--json", "as_json", is_flag=True, help="Print the identity as JSON")
def lookup_command(contact_id: int, as_json: bool):
    """Show the identity a contact belongs to, without recording anything."""
    from ..db import close_all_connections
    from ..errors import IdentityError
    from ..resolution import IdentityEngine

    async def _lookup() -> IdentifyResult:
        try:
            return await IdentityEngine().lookup(contact_id)
        finally:
            await close_all_connections()

    try:
        result = asyncio.run(_lookup())
    except IdentityError as e:
        click.echo(f"Error ({e.error_code}): {e.message}", err=True)
        sys.exit(1)

    _print_identity(result, as_json)
