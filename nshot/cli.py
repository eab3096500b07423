"""CLI for nshot.

Usage:
    nshot new --number=10                      # 10 identifiers, budget 1, nshot_config.json
    nshot new -n 10 --budget=3 --file=ids.json
    nshot run --config=ids.json                # Serve with the default database
    nshot run -c ids.json -d /var/lib/nshot.db
"""

import logging
import os
from typing import Optional

import typer
import uvicorn

from .api import create_app
from .config.settings import load_settings
from .errors import ConfigurationError, EntropyError, StorageError
from .nshot_service import NShotService
from .services.provisioning import generate, write_snapshot

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="nshot",
    help="Serve opaque payloads that can be fetched a bounded number of times.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every subcommand."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def new(
    number: int = typer.Option(..., "--number", "-n", help="The number of access identifiers for the config file."),
    budget: int = typer.Option(1, "--budget", "-b", help="Fetches allowed per identifier."),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Saves config to FILE (default nshot_config.json)."),
) -> None:
    """Create a new config file of freshly generated identifiers."""
    try:
        snapshot = generate(number, budget)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)
    except EntropyError as e:
        logger.error(f"Failed to generate identifiers: {e}")
        raise typer.Exit(code=1)

    try:
        path = write_snapshot(snapshot, file)
    except OSError as e:
        logger.error(f"Failed to write config file: {e}")
        raise typer.Exit(code=1)

    logger.info(f"Successfully generated new config with {number} access identifiers")
    typer.echo(str(path))


@app.command()
def run(
    config: str = typer.Option(..., "--config", "-c", help="Uses FILE as the config file of the server."),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Uses FILE as the database file of the server."),
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind (default from NSHOT_HOST)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on (default from NSHOT_PORT)."),
) -> None:
    """Run the server."""
    try:
        settings = load_settings()
        if host:
            settings.host = host
        if port:
            settings.port = port
        service = NShotService.open(config, db_path=database, settings=settings)
    except ConfigurationError as e:
        logger.error(f"Failed to open config file: {e}")
        raise typer.Exit(code=1)
    except StorageError as e:
        logger.error(f"Failed to open database: {e}")
        raise typer.Exit(code=1)

    ssl_options = {}
    if os.path.isfile(settings.cert_path) and os.path.isfile(settings.key_path):
        ssl_options = {"ssl_certfile": settings.cert_path, "ssl_keyfile": settings.key_path}
    else:
        logger.warning(f"TLS certificate or key not found ({settings.cert_path}, {settings.key_path}); serving plain HTTP")

    logger.info(f"Started web server on {settings.host}:{settings.port}")
    uvicorn.run(
        create_app(service),
        host=settings.host,
        port=settings.port,
        log_level="info",
        **ssl_options,
    )


if __name__ == "__main__":
    app()
