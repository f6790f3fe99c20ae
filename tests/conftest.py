"""Shared pytest fixtures."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from kbcore.cli.main import app
from kbcore.config import KbConfig
from kbcore.db.connection import Database
from kbcore.db.repository import Repository
from kbcore.db.schema import initialize
from kbcore.errors import EmbeddingUnavailable
from kbcore.service import KnowledgeBase
from kbcore.storage.local import LocalObjectStore


class FakeEmbedder:
    """Deterministic embedder: texts map to fixed vectors, unknown texts to the x axis."""

    def __init__(self, dimensions: int = 3, model: str = "test/fake-embedding") -> None:
        self.model = model
        self.dimensions = dimensions
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[list[str]] = []
        self.fail = False

    def vector_for(self, text: str) -> list[float]:
        return self.vectors.get(text, [1.0] + [0.0] * (self.dimensions - 1))

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingUnavailable("embedding service unreachable")
        return [self.vector_for(t) for t in texts]


class FakeExtractionService:
    """Generative extraction stand-in returning canned text or raising ``error``."""

    def __init__(self, text: str | None = "Extracted document text.") -> None:
        self.text = text
        self.error: Exception | None = None
        self.calls: list[tuple[str, bytes, str]] = []

    def generate(self, prompt: str, data: bytes, mime_type: str) -> str | None:
        self.calls.append((prompt, data, mime_type))
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".kbcore.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def extraction_service():
    return FakeExtractionService()


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def kb(tmp_path, embedder, extraction_service, store):
    """KnowledgeBase over a temp database with fake model services."""
    cfg = KbConfig()
    cfg.storage.db_path = str(tmp_path / ".kbcore.db")
    cfg.storage.object_root = str(tmp_path / "objects")
    cfg.retrieval.config_cache_ttl = 0.0
    knowledge_base = KnowledgeBase(
        cfg, embedder=embedder, extraction_service=extraction_service, store=store
    )
    yield knowledge_base
    knowledge_base.close()


# ---------------------------------------------------------------------------
# CLI fixtures
# ---------------------------------------------------------------------------

CLI_EMBEDDING_DIMS = 768


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path, monkeypatch, runner):
    """Initialized kbcore project as CWD, isolated from ~/.kbcore and KBCORE_* vars."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("kbcore.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in (
        "KBCORE_EMBEDDING_MODEL",
        "KBCORE_EXTRACTION_MODEL",
        "KBCORE_DB",
        "KBCORE_DISTANCE_THRESHOLD",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output
    return tmp_path


def _embedding_response(**kwargs):
    response = MagicMock()
    response.data = [
        {"embedding": [1.0] + [0.0] * (CLI_EMBEDDING_DIMS - 1)} for _ in kwargs["input"]
    ]
    return response


@pytest.fixture
def mock_embedding():
    """Patch litellm.embedding to return the x-axis unit vector for every input."""
    with patch("kbcore.llm_client.litellm.embedding", side_effect=_embedding_response) as mocked:
        yield mocked
