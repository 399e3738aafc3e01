"""Command-line interface for mirror-quickstart."""

import logging
import sys
from pathlib import Path

import click

from mirror_quickstart.__version__ import __version__


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity",
)
def main(log_level: str) -> None:
    """Mirror API Python Quick Start.

    Serve the demo web application and inspect the stored user credentials.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind")
@click.option("--port", default=4567, show_default=True, type=int, help="Port to listen on")
@click.option(
    "--client-secrets",
    envvar="MIRROR_CLIENT_SECRETS",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to client_secrets.json",
)
@click.option(
    "--credentials-db",
    envvar="MIRROR_CREDENTIALS_DB",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the SQLite credentials database",
)
def serve(
    host: str, port: int, client_secrets: Path | None, credentials_db: Path | None
) -> None:
    """Start the web application.

    The redirect URI in client_secrets.json must point at this server's
    /oauth2callback. Subscriptions additionally require the server to be
    reachable over HTTPS.
    """
    import uvicorn

    from mirror_quickstart.config import ConfigurationError, Settings
    from mirror_quickstart.web import create_app

    settings = Settings.from_env()
    if client_secrets:
        settings.client_secrets_path = client_secrets
    if credentials_db:
        settings.credentials_db = credentials_db

    try:
        app = create_app(settings)
    except ConfigurationError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    click.echo(f"Starting Mirror Quick Start on http://{host}:{port}", err=True)
    uvicorn.run(app, host=host, port=port, proxy_headers=True)


@main.command("init-db")
@click.option(
    "--credentials-db",
    envvar="MIRROR_CREDENTIALS_DB",
    default="credentials.sqlite3",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the SQLite credentials database",
)
def init_db(credentials_db: Path) -> None:
    """Create the credentials database if it does not exist."""
    from mirror_quickstart.auth import CredentialsStore

    CredentialsStore(credentials_db).init().close()
    click.echo(f"✓ Credentials database ready at {credentials_db}")


@main.command("list-users")
@click.option(
    "--credentials-db",
    envvar="MIRROR_CREDENTIALS_DB",
    default="credentials.sqlite3",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the SQLite credentials database",
)
def list_users(credentials_db: Path) -> None:
    """List the users who have authorized the application."""
    from mirror_quickstart.auth import CredentialsStore

    store = CredentialsStore(credentials_db)
    user_ids = store.list_user_ids()
    if not user_ids:
        click.echo("No users have authorized the application yet.")
        return

    for user_id in sorted(user_ids):
        record = store.get(user_id)
        refresh = "yes" if record and record.has_refresh_token else "no"
        click.echo(f"{user_id}  refresh token: {refresh}")


if __name__ == "__main__":
    main()
