"""CLI entry points for idlink.

Provides command-line tools for:
- Resolving identities
- Database management
- Running the API server
"""

import click

from .. import __version__
from .db import cli as db_cli
from .identify import identify_command, lookup_command


@click.group()
@click.version_option(version=__version__, prog_name="idlink")
def main():
    """idlink - Contact identity resolution.

    Command-line tools for resolving identities and
    managing the contact database.
    """
    pass


@main.command(name="serve")
@click.option("--host", default=None, help="Bind address (default: API_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: API_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve_command(host: str | None, port: int | None, reload: bool):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from ..config import get_settings

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


main.add_command(identify_command, name="identify")
main.add_command(lookup_command, name="lookup")
main.add_command(db_cli, name="db")


if __name__ == "__main__":
    main()
