"""kbcore — document ingestion and semantic retrieval over a SQLite vector corpus."""

__version__ = "0.1.0"
