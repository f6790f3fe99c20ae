"""Document ingestion: text extraction, chunking, embedding and indexing."""

from kbcore.ingest.chunker import TextChunker, chunk_text
from kbcore.ingest.embedder import EmbeddingService, LiteLLMEmbedder
from kbcore.ingest.extractor import (
    DEEP,
    STANDARD,
    LiteLLMExtractionService,
    TextExtractor,
    choose_mode,
)
from kbcore.ingest.indexer import Indexer

__all__ = [
    "DEEP",
    "STANDARD",
    "EmbeddingService",
    "Indexer",
    "LiteLLMEmbedder",
    "LiteLLMExtractionService",
    "TextChunker",
    "TextExtractor",
    "choose_mode",
    "chunk_text",
]
