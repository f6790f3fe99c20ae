"""Embedding-model adapter: LiteLLM embeddings with shape validation."""

from __future__ import annotations

import logging
from typing import Protocol

from kbcore import llm_client
from kbcore.config import EmbeddingCfg
from kbcore.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class EmbeddingService(Protocol):
    """What the Indexer and the Retrieval Engine need from an embedder."""

    model: str
    dimensions: int

    def embed(self, text: str) -> list[float]: ...

    def embed_many(self, texts: list[str]) -> list[list[float]]: ...


class LiteLLMEmbedder:
    """Embed text through ``litellm.embedding``.

    Requests are split into groups of ``batch_size`` inputs. Every returned
    vector must be a non-empty list of numbers with exactly ``dimensions``
    entries; anything else raises ``EmbeddingUnavailable``.
    """

    def __init__(self, config: EmbeddingCfg | None = None) -> None:
        self._config = config or EmbeddingCfg()
        self.model = self._config.model
        self.dimensions = self._config.dimensions

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            llm_client.validate_api_key(self.model)
        except EnvironmentError as exc:
            raise EmbeddingUnavailable(str(exc)) from exc

        vectors: list[list[float]] = []
        size = max(1, self._config.batch_size)
        for start in range(0, len(texts), size):
            group = texts[start : start + size]
            try:
                items = llm_client.embed_many(
                    self.model,
                    group,
                    num_retries=self._config.num_retries,
                    timeout=self._config.timeout,
                )
            except Exception as exc:
                logger.warning("Embedding call to %s failed: %s", self.model, exc)
                raise EmbeddingUnavailable(f"{self.model}: {exc}") from exc
            if len(items) != len(group):
                raise EmbeddingUnavailable(
                    f"{self.model} returned {len(items)} vectors for {len(group)} inputs"
                )
            vectors.extend(self._validate(_vector_of(item)) for item in items)
        return vectors

    def _validate(self, vector: object) -> list[float]:
        if not isinstance(vector, (list, tuple)) or not vector:
            raise EmbeddingUnavailable(f"{self.model} returned an empty or malformed vector")
        if not all(isinstance(v, (int, float)) for v in vector):
            raise EmbeddingUnavailable(f"{self.model} returned non-numeric vector entries")
        if len(vector) != self.dimensions:
            raise EmbeddingUnavailable(
                f"{self.model} returned {len(vector)} dimensions, expected {self.dimensions}"
            )
        return [float(v) for v in vector]


def _vector_of(item: object) -> object:
    """Pull the vector out of a LiteLLM data item (dict or attribute style)."""
    if isinstance(item, dict):
        return item.get("embedding")
    return getattr(item, "embedding", None)
