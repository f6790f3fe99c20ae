"""Ingestion pipeline: status tracking, per-source locking, orchestration."""

from kbcore.pipeline.locks import SourceLocks
from kbcore.pipeline.orchestrator import IngestionOrchestrator, IngestResult
from kbcore.pipeline.status import StatusTracker
from kbcore.pipeline.transcript import TranscriptIngestor

__all__ = [
    "IngestResult",
    "IngestionOrchestrator",
    "SourceLocks",
    "StatusTracker",
    "TranscriptIngestor",
]
