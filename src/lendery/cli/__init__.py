# ABOUTME: CLI package for lendery, built on Click.
# ABOUTME: Defines the root command group, installs Rich logging, and registers subcommands.

import logging

import click
from rich.logging import RichHandler

from lendery.cli.commands import enrich_cmd, estimate_cmd, import_cmd, ls_cmd, serve_cmd


@click.group()
@click.version_option(package_name="lendery")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Lendery - a library lending service with catalog metadata enrichment."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


cli.add_command(serve_cmd.serve)
cli.add_command(import_cmd.import_external)
cli.add_command(enrich_cmd.enrich)
cli.add_command(estimate_cmd.estimate)
cli.add_command(ls_cmd.ls)
