"""kbcore ingest / retry / transcript — push documents through the pipeline.

MIME type is guessed from the file extension unless --mime-type is given.
Images and the "Archive" level use deep extraction unless --deep forces it.
"""

from __future__ import annotations

import mimetypes
import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from kbcore.cli.context import console, open_kb
from kbcore.cli.errors import err_file_not_found, err_ingest_failed, err_source_not_found
from kbcore.ingest.extractor import DEEP
from kbcore.pipeline.orchestrator import IngestResult

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the corpus database (default from kbcore.yaml)."),
]


def ingest_cmd(
    file: Annotated[Path, typer.Argument(help="Document to ingest.")],
    level: Annotated[str, typer.Option("--level", "-l", help="Priority level, e.g. High.")],
    topic: Annotated[str, typer.Option("--topic", "-t", help="Topic category.")],
    source_id: Annotated[
        str | None,
        typer.Option("--source-id", help="Stable source ID (re-ingesting replaces its chunks)."),
    ] = None,
    mime_type: Annotated[
        str | None, typer.Option("--mime-type", help="Override the guessed MIME type.")
    ] = None,
    deep: Annotated[
        bool, typer.Option("--deep", help="Force deep extraction (OCR of embedded images).")
    ] = False,
    db: _DbOption = None,
) -> None:
    """Upload FILE to object storage and index it."""
    if not file.is_file():
        console.print(err_file_not_found(str(file)))
        raise typer.Exit(1)

    mime = mime_type or mimetypes.guess_type(file.name)[0] or "application/octet-stream"
    sid = source_id or uuid.uuid4().hex

    with open_kb(db) as kb:
        source = kb.register_source(
            sid, file.name, level, topic, mime_type=mime, data=file.read_bytes()
        )
        console.print(f"\n[bold]→ {file.name}[/] [dim]({mime}, id {sid})[/]")
        with _spinner("Extracting, chunking and indexing…"):
            result = kb.process_document(
                sid,
                file.name,
                level,
                topic,
                source.download_url,
                mime,
                mode=DEEP if deep else None,
            )
    _report(result)


def retry_cmd(
    source_id: Annotated[str, typer.Argument(help="ID of a registered source.")],
    db: _DbOption = None,
) -> None:
    """Re-run ingestion for a source from its stored document."""
    with open_kb(db) as kb:
        if kb.get_source_status(source_id) is None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(1)
        with _spinner(f"Retrying {source_id}…"):
            result = kb.retry(source_id)
    _report(result)


def transcript_cmd(
    file: Annotated[Path, typer.Argument(help="Plain-text transcript file.")],
    name: Annotated[str, typer.Option("--name", "-n", help="Descriptive source name.")],
    level: Annotated[str, typer.Option("--level", "-l", help="Priority level.")],
    topic: Annotated[str, typer.Option("--topic", "-t", help="Topic category.")],
    db: _DbOption = None,
) -> None:
    """Redact personal data from a transcript and index it."""
    if not file.is_file():
        console.print(err_file_not_found(str(file)))
        raise typer.Exit(1)
    with open_kb(db) as kb:
        with _spinner("Redacting and indexing transcript…"):
            result = kb.ingest_transcript(file.read_text(encoding="utf-8"), name, level, topic)
    _report(result)


def _spinner(description: str) -> Progress:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    )
    progress.add_task(description, total=None)
    return progress


def _report(result: IngestResult) -> None:
    if result.success:
        console.print(f"  [green]✓[/] {result.chunks_written} chunks indexed ({result.source_id})")
        return
    console.print(err_ingest_failed(result.source_id, result.error or "unknown error"))
    raise typer.Exit(1)
