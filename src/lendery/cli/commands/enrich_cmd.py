# ABOUTME: The `lendery enrich` command for running a metadata enrichment sweep.
# ABOUTME: Fills missing catalog fields from providers, synthesizing what they cannot supply.

from pathlib import Path

import click
from rich.console import Console

from lendery.cli.options import (
    config_option,
    db_option,
    operator,
    provider_option,
    resolve_settings,
)
from lendery.config import Settings
from lendery.core.library import MAX_SWEEP_LIMIT, LibraryService
from lendery.core.runtime import Runtime
from lendery.errors import LenderyError

console = Console()


def _create_runtime(settings: Settings) -> Runtime:
    """Create the runtime with the default provider chain."""
    return Runtime(settings)


@click.command("enrich")
@click.option(
    "-n",
    "--limit",
    default=50,
    show_default=True,
    type=click.IntRange(1, MAX_SWEEP_LIMIT),
    help="Maximum number of records to scan.",
)
@provider_option
@click.option(
    "--all",
    "scan_all",
    is_flag=True,
    default=False,
    help="Scan every record, not only those with missing fields.",
)
@db_option
@config_option
def enrich(
    limit: int,
    provider: str,
    scan_all: bool,
    db_path: Path | None,
    config_path: Path | None,
) -> None:
    """Fill missing metadata on cataloged books."""
    runtime = _create_runtime(resolve_settings(config_path, db_path))
    conn = runtime.connect()
    try:
        result = LibraryService(conn, runtime).enrich_metadata(
            operator(), limit, provider, only_missing=not scan_all
        )
    except LenderyError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise SystemExit(1) from exc
    finally:
        conn.close()
        runtime.close()

    if result.scanned == 0:
        console.print("[green]Nothing to enrich.[/green]")
        return

    console.print(f"Scanned:     {result.scanned}")
    console.print(f"Matched:     [green]{result.matched}[/green]")
    console.print(f"Synthesized: [cyan]{result.synthesized}[/cyan]")
    console.print(f"Unchanged:   {result.unchanged}")
    if result.failed:
        console.print(f"Failed:      [red]{result.failed}[/red]")
