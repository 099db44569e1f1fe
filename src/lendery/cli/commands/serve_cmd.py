# ABOUTME: The `lendery serve` command for running the HTTP API.
# ABOUTME: Builds the FastAPI app from resolved settings and hands it to uvicorn.

from pathlib import Path

import click
import uvicorn

from lendery.api.app import create_app
from lendery.cli.options import config_option, db_option, resolve_settings


@click.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to listen on.")
@db_option
@config_option
def serve(host: str, port: int, db_path: Path | None, config_path: Path | None) -> None:
    """Serve the lendery HTTP API."""
    app = create_app(resolve_settings(config_path, db_path))
    uvicorn.run(app, host=host, port=port)
