"""Shared CLI plumbing: config loading and opening the knowledge base."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from kbcore.cli.errors import err_config, err_no_db
from kbcore.config import ConfigError, KbConfig, load_config
from kbcore.service import KnowledgeBase

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route kbcore log records through rich; DEBUG with --verbose, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    if not verbose:
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def load_cli_config(db: Path | None = None, project_dir: Path | None = None) -> KbConfig:
    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.storage.db_path = str(db)
    return cfg


def open_kb(db: Path | None = None, *, must_exist: bool = True) -> KnowledgeBase:
    """Open the knowledge base named by --db / config. Exits 1 if it is missing."""
    cfg = load_cli_config(db)
    db_path = Path(cfg.storage.db_path)
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    return KnowledgeBase(cfg)
