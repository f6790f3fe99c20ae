"""kbcore database layer."""

from kbcore.db.connection import Database
from kbcore.db.migrations import MIGRATIONS, run_migrations
from kbcore.db.models import Chunk, IndexingStatus, Source
from kbcore.db.repository import Repository
from kbcore.db.schema import initialize
from kbcore.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Chunk",
    "Database",
    "IndexingStatus",
    "MIGRATIONS",
    "Repository",
    "Source",
    "ensure_vec_table",
    "initialize",
    "model_to_slug",
    "run_migrations",
    "vec_table_name",
]
