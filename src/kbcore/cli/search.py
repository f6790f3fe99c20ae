"""kbcore search / threshold — query the corpus and tune the distance threshold."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from kbcore.cli.context import console, open_kb
from kbcore.cli.errors import err_search_unavailable
from kbcore.rag.retriever import SearchDiagnostics, SearchResult

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the corpus database (default from kbcore.yaml)."),
]


def search_cmd(
    query: Annotated[str, typer.Argument(help="Natural-language query.")],
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", help="Override the distance threshold for this query."),
    ] = None,
    level: Annotated[str | None, typer.Option("--level", "-l", help="Only this level.")] = None,
    topic: Annotated[str | None, typer.Option("--topic", "-t", help="Only this topic.")] = None,
    priority: Annotated[
        bool,
        typer.Option("--priority", help="Search High → Medium → Low → Chat History; first hit wins."),
    ] = False,
    diagnose: Annotated[
        bool, typer.Option("--diagnose", help="Show raw pre-filter candidates.")
    ] = False,
    db: _DbOption = None,
) -> None:
    """Semantic search over all indexed chunks."""
    with open_kb(db) as kb:
        if diagnose:
            _show_diagnostics(kb.diagnose(query, threshold, level=level, topic=topic))
            return
        if priority:
            outcome = kb.search_by_priority(query, threshold, topic=topic)
        else:
            outcome = kb.search(query, threshold, level=level, topic=topic)

    if not outcome.success:
        console.print(err_search_unavailable(outcome.detail))
        raise typer.Exit(1)
    if not outcome.results:
        console.print("[yellow]No relevant matches.[/] Try a looser --threshold.")
        return
    _show_results(outcome.results)


def threshold_cmd(
    value: Annotated[
        float | None, typer.Argument(help="New threshold in [0, 1.5]. Omit to show.")
    ] = None,
    db: _DbOption = None,
) -> None:
    """Show or set the process-wide distance threshold."""
    with open_kb(db) as kb:
        if value is None:
            console.print(f"Distance threshold: [bold]{kb.get_distance_threshold()}[/]")
            return
        stored = kb.set_distance_threshold(value)
    if stored != value:
        console.print(f"[yellow]⚠[/] {value} is outside [0, 1.5]; clamped.")
    console.print(f"[green]✓[/] Distance threshold set to [bold]{stored}[/]")


def _show_results(results: list[SearchResult]) -> None:
    for i, r in enumerate(results, start=1):
        where = f"{r.source_name} #{r.chunk_number}" if r.chunk_number else r.source_name
        console.print(
            f"\n[bold]{i}.[/] {where}  [dim]{r.level} / {r.topic}  distance {r.distance:.4f}[/]"
        )
        console.print(r.text.strip())
        if r.download_url:
            console.print(f"[dim]{r.download_url}[/]")


def _show_diagnostics(diag: SearchDiagnostics) -> None:
    console.print(f"Query:       {diag.query!r}")
    console.print(f"Normalized:  {diag.normalized_query!r}")
    console.print(f"Threshold:   {diag.threshold}")
    if diag.error:
        console.print(f"[red]Error:[/] {diag.error}")
        raise typer.Exit(1)
    head = ", ".join(f"{x:.4f}" for x in diag.embedding[:5])
    console.print(f"Embedding:   {len(diag.embedding)} dims [{head}{', …' if len(diag.embedding) > 5 else ''}]")
    console.print(f"Candidates:  {diag.candidate_count}  |  Kept: {len(diag.results)}")
    if not diag.candidates:
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Distance", justify="right")
    table.add_column("Kept")
    table.add_column("Source")
    table.add_column("Chunk", justify="right")
    table.add_column("Text")
    for c in diag.candidates:
        kept = c.distance <= diag.threshold
        table.add_row(
            f"{c.distance:.4f}",
            "[green]✓[/]" if kept else "[dim]✗[/]",
            c.source_name,
            str(c.chunk_number or ""),
            c.text[:60].replace("\n", " "),
        )
    console.print(table)
