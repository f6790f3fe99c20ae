"""kbcore init — create the corpus database, object root and kbcore.yaml."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from kbcore.cli.context import console, load_cli_config
from kbcore.config import write_project_config
from kbcore.db.connection import Database
from kbcore.db.schema import initialize

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
) -> None:
    """Initialize a knowledge base in PROJECT_DIR. Existing data is preserved."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    cfg_path = project_dir / "kbcore.yaml"
    existed = cfg_path.exists()
    write_project_config(project_dir)
    console.print(f"  [green]✓[/] kbcore.yaml{' (kept)' if existed else ''}")

    cfg = load_cli_config(project_dir=project_dir)
    db_path = Path(cfg.storage.db_path)
    if not db_path.is_absolute():
        db_path = project_dir / db_path
    with Database(db_path) as conn:
        initialize(conn)
    console.print(f"  [green]✓[/] {db_path.name}")

    object_root = Path(cfg.storage.object_root)
    if not object_root.is_absolute():
        object_root = project_dir / object_root
    object_root.mkdir(parents=True, exist_ok=True)
    console.print(f"  [green]✓[/] {object_root.name}/")

    console.print("\n[bold]Knowledge base ready.[/] Next:  kbcore ingest <file> --level High --topic <topic>")
