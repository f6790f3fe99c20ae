"""Per-source mutual exclusion for ingestion runs.

At most one run per source ID executes at a time inside this process; runs
for different sources proceed in parallel. Entries are dropped once no thread
holds or waits on them.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class SourceLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, source_id: str) -> Iterator[None]:
        """Block until *source_id* is free, then hold it for the ``with`` body."""
        with self._guard:
            lock = self._locks.setdefault(source_id, threading.Lock())
            self._users[source_id] = self._users.get(source_id, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[source_id] -= 1
                if self._users[source_id] == 0:
                    del self._users[source_id]
                    del self._locks[source_id]

    def is_held(self, source_id: str) -> bool:
        with self._guard:
            lock = self._locks.get(source_id)
        return lock is not None and lock.locked()
