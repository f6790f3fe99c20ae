"""kbcore CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from kbcore.cli.context import setup_logging
from kbcore.cli.ingest import ingest_cmd, retry_cmd, transcript_cmd
from kbcore.cli.init import init_cmd
from kbcore.cli.remove import purge_cmd, remove_cmd
from kbcore.cli.search import search_cmd, threshold_cmd
from kbcore.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("kbcore")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kbcore {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="kbcore",
    help=(
        "kbcore — document ingestion and semantic retrieval.\n\n"
        "  kbcore ingest  Extract, chunk and index a document.\n"
        "  kbcore search  Query the corpus with a distance threshold."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log pipeline stages at DEBUG level.")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """kbcore — document ingestion and semantic retrieval."""
    setup_logging(verbose)


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("retry")(retry_cmd)
app.command("transcript")(transcript_cmd)
app.command("status")(status_cmd)
app.command("search")(search_cmd)
app.command("threshold")(threshold_cmd)
app.command("remove")(remove_cmd)
app.command("purge")(purge_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed kbcore version."""
    typer.echo(f"kbcore {_installed_version()}")


if __name__ == "__main__":
    app()
