"""Retrieval: query preprocessing, dense search, threshold settings."""

from kbcore.rag.retriever import (
    PRIORITY_LEVELS,
    RetrievalEngine,
    SearchDiagnostics,
    SearchOutcome,
    SearchResult,
    preprocess_query,
)
from kbcore.rag.settings import RetrievalConfig, RetrievalConfigStore

__all__ = [
    "PRIORITY_LEVELS",
    "RetrievalConfig",
    "RetrievalConfigStore",
    "RetrievalEngine",
    "SearchDiagnostics",
    "SearchOutcome",
    "SearchResult",
    "preprocess_query",
]
