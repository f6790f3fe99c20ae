"""kbcore remove / purge — delete one source, or every chunk in the corpus."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from kbcore.cli.context import console, open_kb
from kbcore.cli.errors import err_source_not_found

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the corpus database (default from kbcore.yaml)."),
]


def remove_cmd(
    source_id: Annotated[str, typer.Argument(help="ID of the source to remove.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: _DbOption = None,
) -> None:
    """Remove a source, its chunks and its stored document."""
    with open_kb(db) as kb:
        source = kb.get_source_status(source_id)
        if source is None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(0)

        chunk_count = kb.repo.count_chunks_by_source(source_id)
        console.print(f"\nRemove source: [bold]{source.name}[/] ({source_id})")
        console.print(f"  Chunks: {chunk_count}  |  Status: {source.status.value}")
        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        kb.delete_source(source_id)
    console.print(f"\n[green]✓[/] Removed: {source_id} ({chunk_count} chunks)")


def purge_cmd(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: _DbOption = None,
) -> None:
    """Delete every chunk in the corpus. Source records are kept."""
    with open_kb(db) as kb:
        total = kb.repo.count_chunks()
        if total == 0:
            console.print("[dim]Corpus is already empty.[/]")
            return
        if not yes and not typer.confirm(f"Delete all {total:,} chunks?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)
        result = kb.purge_all_chunks()

    if not result.success:
        console.print(f"[red]✗ Purge stopped[/] after {result.deleted_count:,} chunks: {result.error}")
        console.print("  Run:  kbcore purge --yes  again to finish.")
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Deleted {result.deleted_count:,} chunks")
