"""kbcore status — source lifecycle overview, or the full record of one source."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from kbcore.cli.context import console, open_kb
from kbcore.cli.errors import err_source_not_found
from kbcore.db.models import IndexingStatus, Source

_STATUS_STYLE = {
    IndexingStatus.PENDING: "dim",
    IndexingStatus.PROCESSING: "yellow",
    IndexingStatus.SUCCESS: "green",
    IndexingStatus.FAILED: "red",
}


def status_cmd(
    source_id: Annotated[
        str | None, typer.Argument(help="Show one source in detail.")
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the corpus database (default from kbcore.yaml)."),
    ] = None,
) -> None:
    """Show indexing status of all sources (or one)."""
    with open_kb(db) as kb:
        if source_id is not None:
            source = kb.get_source_status(source_id)
            if source is None:
                console.print(err_source_not_found(source_id))
                raise typer.Exit(1)
            _show_source(source, kb.repo.count_chunks_by_source(source_id))
            return

        sources = kb.list_sources()
        total_chunks = kb.repo.count_chunks()
        threshold = kb.get_distance_threshold()

    console.print(
        Panel(
            f"Sources: [bold]{len(sources)}[/]  |  Chunks: [bold]{total_chunks:,}[/]  |  "
            f"Distance threshold: [bold]{threshold}[/]",
            title="[bold]Knowledge Base[/]",
            expand=False,
        )
    )
    if not sources:
        console.print("[dim]No sources ingested yet.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Level")
    table.add_column("Topic")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Note / error")
    for s in sources:
        style = _STATUS_STYLE[s.status]
        table.add_row(
            s.id,
            s.name,
            s.level,
            s.topic,
            f"[{style}]{s.status.value}[/]",
            str(s.chunks_written) if s.chunks_written is not None else "-",
            s.indexing_error or "",
        )
    console.print(table)


def _show_source(source: Source, stored_chunks: int) -> None:
    style = _STATUS_STYLE[source.status]
    lines = [
        f"Name:     [bold]{source.name}[/]",
        f"Level:    {source.level}    Topic: {source.topic}",
        f"MIME:     {source.mime_type}",
        f"Status:   [{style}]{source.status.value}[/]",
    ]
    if source.indexing_error:
        lines.append(f"Detail:   {source.indexing_error}")
    if source.status is IndexingStatus.SUCCESS:
        lines.append(f"Chunks:   {source.chunks_written}  (indexed {source.indexed_at})")
    else:
        lines.append(f"Chunks:   {stored_chunks} stored")
    if source.download_url:
        lines.append(f"URL:      {source.download_url}")
    console.print(Panel("\n".join(lines), title=f"[bold]{source.id}[/]", expand=False))
