"""Tests for the retrieval settings store and its read-through cache."""

from __future__ import annotations

import sqlite3
from unittest.mock import patch

import pytest

from kbcore.config import RetrievalCfg
from kbcore.rag.settings import DISTANCE_THRESHOLD_KEY, RetrievalConfig, RetrievalConfigStore


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def settings(repo, clock):
    return RetrievalConfigStore(repo, RetrievalCfg(), ttl=30.0, clock=clock)


def test_defaults_when_nothing_stored(settings):
    assert settings.get() == RetrievalConfig(distance_threshold=0.7, candidate_k=20, top_k=5)


def test_set_persists_and_invalidates(settings, repo):
    settings.get()
    assert settings.set_distance_threshold(0.45) == 0.45
    assert repo.get_setting(DISTANCE_THRESHOLD_KEY) == "0.45"
    assert settings.get().distance_threshold == 0.45


@pytest.mark.parametrize("value,expected", [(-0.3, 0.0), (2.0, 1.5), (1.5, 1.5), (0.0, 0.0)])
def test_set_clamps(settings, value, expected):
    assert settings.set_distance_threshold(value) == expected
    assert settings.get().distance_threshold == expected


def test_cache_serves_until_ttl(settings, repo, clock):
    assert settings.get().distance_threshold == 0.7
    # Written by another process: not seen until the cache expires
    repo.set_setting(DISTANCE_THRESHOLD_KEY, "0.3")
    clock.now = 29.0
    assert settings.get().distance_threshold == 0.7
    clock.now = 31.0
    assert settings.get().distance_threshold == 0.3


def test_invalidate_forces_reload(settings, repo):
    settings.get()
    repo.set_setting(DISTANCE_THRESHOLD_KEY, "0.2")
    settings.invalidate()
    assert settings.get().distance_threshold == 0.2


def test_stored_value_clamped_on_read(settings, repo):
    repo.set_setting(DISTANCE_THRESHOLD_KEY, "9")
    assert settings.get().distance_threshold == 1.5


def test_garbage_stored_value_falls_back(settings, repo):
    repo.set_setting(DISTANCE_THRESHOLD_KEY, "not-a-number")
    assert settings.get().distance_threshold == 0.7


def test_read_error_falls_back(settings, repo):
    with patch.object(repo, "get_setting", side_effect=sqlite3.OperationalError("locked")):
        assert settings.get().distance_threshold == 0.7


def test_configured_default_is_seed(repo):
    store = RetrievalConfigStore(repo, RetrievalCfg(distance_threshold=0.55, top_k=3))
    assert store.get() == RetrievalConfig(distance_threshold=0.55, candidate_k=20, top_k=3)


def test_with_threshold_is_copy():
    base = RetrievalConfig()
    tighter = base.with_threshold(0.2)
    assert base.distance_threshold == 0.7
    assert tighter.distance_threshold == 0.2
