# ABOUTME: The `lendery estimate` command for previewing a loan due date.
# ABOUTME: Runs the due-date estimator for a title and author without touching the catalog.

from pathlib import Path

import click
from rich.console import Console

from lendery.cli.options import config_option, resolve_settings
from lendery.config import Settings
from lendery.core.due_dates import FALLBACK_SOURCE
from lendery.core.runtime import Runtime

console = Console()


def _create_runtime(settings: Settings) -> Runtime:
    """Create the runtime with the default provider chain."""
    return Runtime(settings)


@click.command("estimate")
@click.argument("title")
@click.argument("author")
@click.option("--isbn", default=None, help="ISBN to try before the title and author.")
@config_option
def estimate(title: str, author: str, isbn: str | None, config_path: Path | None) -> None:
    """Estimate a reading-time due date for TITLE by AUTHOR."""
    runtime = _create_runtime(resolve_settings(config_path, None))
    try:
        result = runtime.estimator.estimate(title, author, isbn)
    finally:
        runtime.close()

    console.print(f"[bold]{title}[/bold] by {author}")
    if result.source == FALLBACK_SOURCE:
        console.print("[yellow]No page count found; using the default loan length.[/yellow]")
    else:
        console.print(f"Pages:  {result.page_count} (from {result.source})")
    console.print(f"Days:   {result.days}")
    console.print(f"Due:    {result.due_at.date().isoformat()}")
