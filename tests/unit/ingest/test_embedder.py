"""Tests for the LiteLLM embedding adapter."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from kbcore.config import EmbeddingCfg
from kbcore.errors import EmbeddingUnavailable
from kbcore.ingest.embedder import LiteLLMEmbedder


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")


def _response(*vectors):
    resp = MagicMock()
    resp.data = [{"embedding": v} for v in vectors]
    return resp


def _embedder(**overrides) -> LiteLLMEmbedder:
    return LiteLLMEmbedder(EmbeddingCfg(dimensions=3, **overrides))


def test_embed_returns_vector():
    with patch("kbcore.llm_client.litellm.embedding", return_value=_response([0.1, 0.2, 0.3])) as mock_emb:
        vec = _embedder().embed("hello")
    assert vec == [0.1, 0.2, 0.3]
    kwargs = mock_emb.call_args.kwargs
    assert kwargs["model"] == "gemini/text-embedding-004"
    assert kwargs["input"] == ["hello"]
    assert kwargs["timeout"] == 120.0
    assert kwargs["num_retries"] == 3


def test_embed_many_batches_requests():
    responses = [_response([1, 0, 0], [0, 1, 0]), _response([0, 0, 1])]
    with patch("kbcore.llm_client.litellm.embedding", side_effect=responses) as mock_emb:
        vecs = _embedder(batch_size=2).embed_many(["a", "b", "c"])
    assert vecs == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]
    assert mock_emb.call_count == 2


def test_embed_many_empty_makes_no_call():
    with patch("kbcore.llm_client.litellm.embedding") as mock_emb:
        assert _embedder().embed_many([]) == []
    mock_emb.assert_not_called()


def test_attribute_style_items_accepted():
    item = MagicMock()
    item.embedding = [0.5, 0.5, 0.5]
    resp = MagicMock()
    resp.data = [item]
    with patch("kbcore.llm_client.litellm.embedding", return_value=resp):
        assert _embedder().embed("x") == [0.5, 0.5, 0.5]


@pytest.mark.parametrize("vector,match", [
    ([], "empty or malformed"),
    (None, "empty or malformed"),
    ([0.1, "x", 0.3], "non-numeric"),
    ([0.1, 0.2], "dimensions"),
])
def test_malformed_vectors_rejected(vector, match):
    with patch("kbcore.llm_client.litellm.embedding", return_value=_response(vector)):
        with pytest.raises(EmbeddingUnavailable, match=match):
            _embedder().embed("x")


def test_count_mismatch_rejected():
    with patch("kbcore.llm_client.litellm.embedding", return_value=_response([1, 0, 0])):
        with pytest.raises(EmbeddingUnavailable, match="1 vectors for 2 inputs"):
            _embedder().embed_many(["a", "b"])


def test_provider_error_wrapped():
    with patch("kbcore.llm_client.litellm.embedding", side_effect=RuntimeError("503")):
        with pytest.raises(EmbeddingUnavailable, match="503") as excinfo:
            _embedder().embed("x")
    assert str(excinfo.value).startswith("embedding failed:")


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY")
    with patch("kbcore.llm_client.litellm.embedding") as mock_emb:
        with pytest.raises(EmbeddingUnavailable, match="GEMINI_API_KEY"):
            _embedder().embed("x")
    mock_emb.assert_not_called()
