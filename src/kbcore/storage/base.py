"""Object storage contracts."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ObjectStore(Protocol):
    """Read side of object storage: fetch bytes and resolve citation URLs."""

    def fetch(self, ref: str) -> bytes:
        """Return the bytes behind *ref* (a storage path or a download URL).

        Raises:
            ObjectFetchFailed: If the object cannot be read.
        """
        ...

    def resolve_download_url(self, path: str) -> str: ...


@runtime_checkable
class WritableObjectStore(ObjectStore, Protocol):
    def put(self, path: str, data: bytes) -> str:
        """Store *data* under *path* and return its download URL."""
        ...

    def delete(self, path: str) -> bool:
        """Delete *path*. Returns False if nothing was stored there."""
        ...
