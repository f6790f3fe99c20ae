"""Filesystem-backed object store.

Objects live under one root directory; download URLs are ``file://`` URIs.
Paths that would escape the root are rejected.
"""

from __future__ import annotations

import logging
import urllib.parse
import urllib.request
from pathlib import Path

from kbcore.errors import ObjectFetchFailed

logger = logging.getLogger(__name__)


class LocalObjectStore:
    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    def put(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target.as_uri()

    def fetch(self, ref: str) -> bytes:
        target = self._resolve_ref(ref)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise ObjectFetchFailed(f"could not read object '{ref}': {exc}") from exc

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            logger.warning("Object %s not found in %s; nothing to delete", path, self.root)
            return False
        target.unlink()
        return True

    def resolve_download_url(self, path: str) -> str:
        return self._resolve(path).as_uri()

    # ------------------------------------------------------------------

    def _resolve_ref(self, ref: str) -> Path:
        if ref.startswith("file://"):
            local = Path(urllib.request.url2pathname(urllib.parse.urlparse(ref).path))
            return self._inside_root(local.resolve(), ref)
        return self._resolve(ref)

    def _resolve(self, path: str) -> Path:
        return self._inside_root((self.root / path).resolve(), path)

    def _inside_root(self, target: Path, ref: str) -> Path:
        if target != self.root and self.root not in target.parents:
            raise ObjectFetchFailed(f"object '{ref}' is outside the storage root {self.root}")
        return target
