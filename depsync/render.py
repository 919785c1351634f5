"""
Rendering functions for depsync output.

Core functions return data, this module makes it human-readable.
"""

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from .domain import FIELDS, PublishedVersionSet, RepositoryDescriptor
from .services.batch import BatchResult


def render_descriptors(
    descriptors: List[RepositoryDescriptor],
    published: Optional[PublishedVersionSet] = None,
    console: Optional[Console] = None
) -> None:
    """
    Render the repository table.

    Args:
        descriptors: Rows to show
        published: When given, adds a column with the published versions
        console: Console to print to (stdout by default)
    """
    console = console or Console()

    if not descriptors:
        console.print("[yellow]No repositories found.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold magenta")
    for column in FIELDS:
        table.add_column(column)
    if published is not None:
        table.add_column("published")

    for d in descriptors:
        row = [d.name, d.forge, d.host, d.owner, d.repo, d.path, d.lang, d.method,
               "true" if d.live else "false"]
        if published is not None:
            row.append(", ".join(sorted(published.versions_for(d.name))) or "-")
        table.add_row(*row)

    console.print(table)


def render_summary(result: BatchResult, console: Optional[Console] = None) -> None:
    """Print the outcome of a sync run as a table."""
    console = console or Console()

    table = Table(title="Sync Summary")
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", style="green")
    table.add_column("Repositories")

    for label, names in (
        ("Packaged", result.packaged),
        ("Published", result.published),
        ("Already published", result.skipped),
        ("Pending (dry run)", result.pending),
        ("Failed", result.failed),
    ):
        table.add_row(label, str(len(names)), ", ".join(names))

    console.print(table)
