# ABOUTME: The `lendery ls` command for listing cataloged books.
# ABOUTME: Displays a Rich table of one catalog page with each record's lending state.

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from lendery.cli.options import config_option, db_option, resolve_settings
from lendery.db.catalog import BookCatalog, BookQuery
from lendery.db.connection import open_library
from lendery.db.mapping import BookState
from lendery.errors import LenderyError

console = Console()

_STATE_STYLES = {
    BookState.AVAILABLE: "[green]available[/green]",
    BookState.REQUEST_PENDING: "[yellow]requested[/yellow]",
    BookState.ON_LOAN: "[red]on loan[/red]",
}


@click.command("ls")
@click.option("-q", "--query", default=None, help="Match title, author, genre, or ISBN.")
@click.option("--genre", default=None, help="Filter by genre.")
@click.option(
    "--state",
    type=click.Choice(["available", "unavailable"]),
    default=None,
    help="Filter by availability.",
)
@click.option("-n", "--limit", default=50, show_default=True, type=click.IntRange(1, 50))
@click.option("--cursor", default=None, type=int, help="Continue after this book ID.")
@db_option
@config_option
def ls(
    query: str | None,
    genre: str | None,
    state: str | None,
    limit: int,
    cursor: int | None,
    db_path: Path | None,
    config_path: Path | None,
) -> None:
    """List books in the library catalog."""
    available = None if state is None else state == "available"
    settings = resolve_settings(config_path, db_path)
    conn = open_library(settings.database.path)
    try:
        page = BookCatalog(conn).list_books(
            BookQuery(q=query, genre=genre, available=available, cursor=cursor, limit=limit)
        )
    except LenderyError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise SystemExit(1) from exc
    finally:
        conn.close()

    if not page.records:
        console.print("[yellow]No books in the library.[/yellow]")
        return

    table = Table()
    table.add_column("ID", style="dim", width=4)
    table.add_column("Title", style="bold")
    table.add_column("Author")
    table.add_column("Genre")
    table.add_column("State")

    for record in page.records:
        table.add_row(
            str(record.id),
            record.title,
            record.author,
            record.genre or "[dim]-[/dim]",
            _STATE_STYLES[record.state],
        )

    console.print(table)
    console.print(f"\n[dim]{len(page.records)} book(s)[/dim]")
    if page.has_next_page:
        console.print(f"[dim]More results: --cursor {page.next_cursor}[/dim]")
