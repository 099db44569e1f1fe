# ABOUTME: Shared Click options and helpers for lendery CLI commands.
# ABOUTME: Resolves settings from --config/--db and names the operator identity.

from pathlib import Path

import click

from lendery.config import DEFAULT_DB_PATH, Settings, load_settings
from lendery.core.viewer import Viewer

# Audit actor recorded for writes issued from the command line.
CLI_ACTOR = "cli"

PROVIDER_CHOICES = ("auto", "openlibrary", "googlebooks")

db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Path to library database (default: {DEFAULT_DB_PATH})",
)

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to a YAML settings file (default: $LENDERY_CONFIG).",
)

provider_option = click.option(
    "--provider",
    type=click.Choice(PROVIDER_CHOICES),
    default="auto",
    show_default=True,
    help="Metadata provider to query.",
)


def resolve_settings(config_path: Path | None, db_path: Path | None) -> Settings:
    """Load settings, letting an explicit --db win over config and environment."""
    settings = load_settings(config_path)
    if db_path is not None:
        settings.database.path = db_path
    return settings


def operator() -> Viewer:
    """The CLI acts with administrator rights."""
    return Viewer.admin(CLI_ACTOR)
