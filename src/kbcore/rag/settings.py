"""Process-wide retrieval settings with a narrow read-through cache.

The live distance threshold is stored in the corpus ``settings`` table so every
process sharing the database sees admin updates. Readers get an immutable
``RetrievalConfig`` snapshot; a write invalidates the cached snapshot.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

from kbcore.config import RetrievalCfg, clamp_threshold
from kbcore.db.repository import Repository

logger = logging.getLogger(__name__)

DISTANCE_THRESHOLD_KEY = "retrieval.distance_threshold"


@dataclass(frozen=True)
class RetrievalConfig:
    """Snapshot of the tunables a single search runs with."""

    distance_threshold: float = 0.7
    candidate_k: int = 20
    top_k: int = 5

    def with_threshold(self, value: float) -> RetrievalConfig:
        return replace(self, distance_threshold=clamp_threshold(value))


class RetrievalConfigStore:
    """Read-through cache over the stored threshold, seeded from ``RetrievalCfg``.

    Args:
        repo:     Repository holding the ``settings`` table.
        defaults: Configured values; ``distance_threshold`` applies until an
                  admin stores one.
        ttl:      Seconds a cached snapshot stays valid. 0 disables caching.
        clock:    Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        repo: Repository,
        defaults: RetrievalCfg | None = None,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        defaults = defaults or RetrievalCfg()
        self._repo = repo
        self._defaults = RetrievalConfig(
            distance_threshold=clamp_threshold(defaults.distance_threshold),
            candidate_k=defaults.candidate_k,
            top_k=defaults.top_k,
        )
        self._ttl = defaults.config_cache_ttl if ttl is None else ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: RetrievalConfig | None = None
        self._loaded_at = 0.0

    def get(self) -> RetrievalConfig:
        with self._lock:
            if self._cached is not None and self._clock() - self._loaded_at < self._ttl:
                return self._cached
        config = self._load()
        with self._lock:
            self._cached = config
            self._loaded_at = self._clock()
        return config

    def set_distance_threshold(self, value: float) -> float:
        """Store a new threshold (clamped to [0, 1.5]) and drop the cache. Returns the stored value."""
        clamped = clamp_threshold(value)
        if clamped != value:
            logger.warning("Distance threshold %s clamped to %s", value, clamped)
        self._repo.set_setting(DISTANCE_THRESHOLD_KEY, repr(clamped))
        self.invalidate()
        logger.info("Distance threshold set to %s", clamped)
        return clamped

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def _load(self) -> RetrievalConfig:
        try:
            raw = self._repo.get_setting(DISTANCE_THRESHOLD_KEY)
        except sqlite3.Error as exc:
            logger.error("Could not read retrieval settings, using defaults: %s", exc)
            return self._defaults
        if raw is None:
            return self._defaults
        try:
            return self._defaults.with_threshold(float(raw))
        except ValueError:
            logger.error("Stored distance threshold %r is not a number, using default", raw)
            return self._defaults
