"""Tests for the dense retrieval engine."""

from __future__ import annotations

import math
import sqlite3
from unittest.mock import patch

import pytest

from kbcore.config import RetrievalCfg
from kbcore.ingest.indexer import Indexer
from kbcore.rag.retriever import (
    PRIORITY_LEVELS,
    SEARCH_UNAVAILABLE,
    RetrievalEngine,
    preprocess_query,
)
from kbcore.rag.settings import RetrievalConfig, RetrievalConfigStore


def _at_distance(d: float) -> list[float]:
    """Unit vector whose cosine distance to [1, 0, 0] is *d*."""
    cos = 1.0 - d
    return [cos, math.sqrt(1.0 - cos * cos), 0.0]


@pytest.fixture
def settings(repo):
    return RetrievalConfigStore(repo, RetrievalCfg(), ttl=0.0)


@pytest.fixture
def engine(repo, embedder, settings):
    return RetrievalEngine(repo, embedder, settings)


def _add(repo, embedder, source_id, texts_and_distances, level="High", topic="general"):
    for text, d in texts_and_distances:
        embedder.vectors[text] = _at_distance(d)
    Indexer(repo, embedder).index(
        source_id, f"{source_id}.txt", level, topic, [t for t, _ in texts_and_distances]
    )


# ------------------------------------------------------------------
# Preprocessing
# ------------------------------------------------------------------


def test_preprocess_lowercases_and_collapses_whitespace():
    assert preprocess_query("  What IS\tthe\n\nRefund   policy?  ") == "what is the refund policy?"


def test_query_embedded_after_preprocessing(engine, repo, embedder):
    _add(repo, embedder, "s1", [("refund policy text", 0.1)])
    engine.search("  Refund   POLICY ")
    assert embedder.calls[-1] == ["refund policy"]


# ------------------------------------------------------------------
# Threshold filtering
# ------------------------------------------------------------------


def test_threshold_boundary(engine, repo, embedder):
    _add(repo, embedder, "s1", [("refund rules", 0.65)])
    assert engine.search("refunds", distance_threshold=0.6).results == []
    outcome = engine.search("refunds", distance_threshold=0.7)
    assert outcome.success
    assert [r.text for r in outcome.results] == ["refund rules"]
    assert outcome.results[0].distance == pytest.approx(0.65, abs=1e-4)


def test_results_ascending_across_sources(engine, repo, embedder):
    _add(repo, embedder, "s1", [("c", 0.3), ("a", 0.05)])
    _add(repo, embedder, "s2", [("b", 0.1)])
    results = engine.search("q", distance_threshold=1.0).results
    assert [r.text for r in results] == ["a", "b", "c"]
    assert {r.source_id for r in results} == {"s1", "s2"}
    assert results[0].chunk_number == 2


@pytest.mark.parametrize("d1,d2", [(0.1, 0.3), (0.3, 0.6), (0.0, 1.5), (0.45, 0.46)])
def test_threshold_monotonicity(engine, repo, embedder, d1, d2):
    _add(repo, embedder, "s1", [(f"t{i}", 0.1 * i) for i in range(8)])
    tight = {r.text for r in engine.search("q", distance_threshold=d1).results}
    loose = {r.text for r in engine.search("q", distance_threshold=d2).results}
    assert tight <= loose


def test_top_k_caps_results(repo, embedder, settings):
    _add(repo, embedder, "s1", [(f"t{i}", 0.01 * i) for i in range(10)])
    engine = RetrievalEngine(repo, embedder, settings)
    config = RetrievalConfig(distance_threshold=1.0, candidate_k=10, top_k=3)
    results = engine.search("q", config=config).results
    assert [r.text for r in results] == ["t0", "t1", "t2"]


def test_default_threshold_from_store(engine, repo, embedder, settings):
    _add(repo, embedder, "s1", [("close", 0.5), ("far", 0.8)])
    assert [r.text for r in engine.search("q").results] == ["close"]
    settings.set_distance_threshold(0.9)
    assert [r.text for r in engine.search("q").results] == ["close", "far"]


def test_per_call_threshold_clamped(engine, repo, embedder):
    _add(repo, embedder, "s1", [("x", 0.2)])
    assert engine.search("q", distance_threshold=-1).results == []


def test_level_and_topic_filters(engine, repo, embedder):
    _add(repo, embedder, "hi", [("high doc", 0.2)], level="High", topic="billing")
    _add(repo, embedder, "lo", [("low doc", 0.1)], level="Low", topic="shipping")
    assert [r.text for r in engine.search("q", 1.0, level="High").results] == ["high doc"]
    assert [r.text for r in engine.search("q", 1.0, topic="shipping").results] == ["low doc"]


def _crowd_medium(repo, embedder, n=25):
    """*n* Medium chunks closer to the query than anything else in the corpus."""
    _add(repo, embedder, "med", [(f"medium {i}", 0.0) for i in range(n)], level="Medium")


def test_level_filter_applies_before_nearest_neighbours(engine, repo, embedder):
    _crowd_medium(repo, embedder)
    _add(repo, embedder, "hi", [("high doc", 0.2)], level="High")
    outcome = engine.search("q", 0.7, level="High")
    assert outcome.success
    assert [r.text for r in outcome.results] == ["high doc"]
    assert outcome.results[0].distance == pytest.approx(0.2, abs=1e-4)


def test_topic_filter_applies_before_nearest_neighbours(engine, repo, embedder):
    _crowd_medium(repo, embedder)
    _add(repo, embedder, "ship", [("shipping doc", 0.3)], level="Medium", topic="shipping")
    results = engine.search("q", 0.7, topic="shipping").results
    assert [r.text for r in results] == ["shipping doc"]


# ------------------------------------------------------------------
# Empty vs failure
# ------------------------------------------------------------------


def test_no_match_is_success(engine, repo, embedder):
    _add(repo, embedder, "s1", [("x", 0.9)])
    outcome = engine.search("q", distance_threshold=0.5)
    assert outcome.success is True
    assert outcome.results == []
    assert outcome.error is None


def test_empty_corpus_is_success(engine, embedder):
    outcome = engine.search("anything")
    assert outcome.success is True
    assert outcome.results == []
    assert embedder.calls == []


def test_blank_query_no_embedding_call(engine, embedder):
    outcome = engine.search("   ")
    assert outcome.success and outcome.results == []
    assert embedder.calls == []


def test_embedding_failure_is_unavailable(engine, repo, embedder):
    _add(repo, embedder, "s1", [("x", 0.1)])
    embedder.fail = True
    outcome = engine.search("q")
    assert outcome.success is False
    assert outcome.error == SEARCH_UNAVAILABLE
    assert outcome.detail.startswith("embedding failed:")
    assert outcome.error_kind == "EmbeddingUnavailable"


def test_query_failure_is_unavailable(engine, repo, embedder):
    _add(repo, embedder, "s1", [("x", 0.1)])
    with patch.object(repo, "search_vec", side_effect=sqlite3.OperationalError("malformed")):
        outcome = engine.search("q")
    assert outcome.success is False
    assert outcome.error_kind == "RetrievalQueryFailed"
    assert outcome.detail == "search failed: malformed"


# ------------------------------------------------------------------
# Diagnostics
# ------------------------------------------------------------------


def test_diagnose_reports_candidates_and_embedding(engine, repo, embedder):
    _add(repo, embedder, "s1", [("near", 0.2), ("far", 0.9)])
    diag = engine.diagnose("  Q ", distance_threshold=0.5)
    assert diag.normalized_query == "q"
    assert diag.embedding == [1.0, 0.0, 0.0]
    assert diag.candidate_count == 2
    assert [r.text for r in diag.results] == ["near"]
    assert diag.error is None


def test_diagnose_matches_search(engine, repo, embedder):
    _add(repo, embedder, "s1", [(f"t{i}", 0.15 * i) for i in range(6)])
    diag = engine.diagnose("q", 0.5)
    assert [r.text for r in diag.results] == [r.text for r in engine.search("q", 0.5).results]


def test_diagnose_captures_error(engine, repo, embedder):
    _add(repo, embedder, "s1", [("x", 0.1)])
    embedder.fail = True
    diag = engine.diagnose("q")
    assert diag.error.startswith("embedding failed:")
    assert diag.candidate_count == 0


# ------------------------------------------------------------------
# Priority search
# ------------------------------------------------------------------


def test_priority_levels_order():
    assert PRIORITY_LEVELS == ("High", "Medium", "Low", "Chat History")


def test_priority_returns_first_level_with_hits(engine, repo, embedder):
    _add(repo, embedder, "low", [("low but close", 0.05)], level="Low")
    _add(repo, embedder, "med", [("medium", 0.3)], level="Medium")
    _add(repo, embedder, "high", [("high but far", 0.95)], level="High")
    outcome = engine.search_by_priority("q", distance_threshold=0.5)
    assert [r.text for r in outcome.results] == ["medium"]
    assert len(embedder.calls) == 4  # three index calls + one query embedding


def test_priority_nothing_found(engine, repo, embedder):
    _add(repo, embedder, "s", [("far", 0.9)], level="High")
    outcome = engine.search_by_priority("q", distance_threshold=0.5)
    assert outcome.success and outcome.results == []


def test_priority_topic_filter(engine, repo, embedder):
    _add(repo, embedder, "a", [("billing high", 0.2)], level="High", topic="billing")
    _add(repo, embedder, "b", [("shipping medium", 0.2)], level="Medium", topic="shipping")
    outcome = engine.search_by_priority("q", 0.5, topic="shipping")
    assert [r.text for r in outcome.results] == ["shipping medium"]


def test_priority_finds_high_level_outside_global_top_k(engine, repo, embedder):
    _crowd_medium(repo, embedder)
    _add(repo, embedder, "hi", [("high doc", 0.2)], level="High")
    outcome = engine.search_by_priority("q", 0.7)
    assert {r.level for r in outcome.results} == {"High"}
    assert [r.text for r in outcome.results] == ["high doc"]


def test_result_record_shape(engine, repo, embedder):
    _add(repo, embedder, "s1", [("hello", 0.1)])
    record = engine.search("q").results[0].to_record()
    assert set(record) == {
        "sourceId", "sourceName", "level", "topic", "text", "distance", "chunkNumber", "downloadURL",
    }
