# ABOUTME: The `lendery import-external` command for importing books by search query.
# ABOUTME: Queries the providers in priority order and catalogs each result, reusing matches.

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from lendery.cli.options import (
    config_option,
    db_option,
    operator,
    provider_option,
    resolve_settings,
)
from lendery.config import Settings
from lendery.core.library import MAX_IMPORT_LIMIT, LibraryService
from lendery.core.runtime import Runtime
from lendery.errors import LenderyError

console = Console()


def _create_runtime(settings: Settings) -> Runtime:
    """Create the runtime with the default provider chain."""
    return Runtime(settings)


@click.command("import-external")
@click.argument("query")
@click.option(
    "-n",
    "--limit",
    default=10,
    show_default=True,
    type=click.IntRange(1, MAX_IMPORT_LIMIT),
    help="Maximum number of results to import.",
)
@provider_option
@db_option
@config_option
def import_external(
    query: str,
    limit: int,
    provider: str,
    db_path: Path | None,
    config_path: Path | None,
) -> None:
    """Import books matching QUERY from external metadata providers."""
    runtime = _create_runtime(resolve_settings(config_path, db_path))
    conn = runtime.connect()
    try:
        result = LibraryService(conn, runtime).import_external(operator(), query, limit, provider)
    except LenderyError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise SystemExit(1) from exc
    finally:
        conn.close()
        runtime.close()

    for name in result.failed_providers:
        console.print(f"[yellow]{name} was unavailable.[/yellow]")

    if not result.records:
        console.print("[yellow]No results found.[/yellow]")
        return

    table = Table()
    table.add_column("ID", style="dim", width=4)
    table.add_column("Title", style="bold")
    table.add_column("Author")
    table.add_column("ISBN")
    table.add_column("Year", width=5)

    for record in result.records:
        table.add_row(
            str(record.id),
            record.title,
            record.author,
            record.isbn or "[dim]-[/dim]",
            str(record.published_year) if record.published_year else "?",
        )

    console.print(table)
    source = result.source_used or "none"
    if result.fallback_used:
        source += " (fallback)"
    console.print(
        f"\n[dim]{result.created} imported, {result.reused} already cataloged "
        f"via {source}[/dim]"
    )
