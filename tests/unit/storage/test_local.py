"""Tests for the filesystem object store."""

from __future__ import annotations

import pytest

from kbcore.errors import ObjectFetchFailed
from kbcore.storage.base import ObjectStore, WritableObjectStore
from kbcore.storage.local import LocalObjectStore


def test_satisfies_protocols(store):
    assert isinstance(store, ObjectStore)
    assert isinstance(store, WritableObjectStore)


def test_put_fetch_by_path_and_url(store):
    url = store.put("sources/s1/a.txt", b"data")
    assert url.startswith("file://")
    assert store.fetch("sources/s1/a.txt") == b"data"
    assert store.fetch(url) == b"data"
    assert store.resolve_download_url("sources/s1/a.txt") == url


def test_fetch_missing(store):
    with pytest.raises(ObjectFetchFailed, match="could not read"):
        store.fetch("nope.txt")


def test_path_escape_rejected(store):
    with pytest.raises(ObjectFetchFailed, match="outside the storage root"):
        store.put("../evil.txt", b"x")


def test_file_url_outside_root_rejected(store, tmp_path):
    outside = tmp_path / "secret.txt"
    outside.write_text("s")
    with pytest.raises(ObjectFetchFailed, match="outside"):
        store.fetch(outside.as_uri())


def test_delete(store):
    store.put("a.txt", b"x")
    assert store.delete("a.txt") is True
    assert store.delete("a.txt") is False


def test_root_accepts_str(tmp_path):
    s = LocalObjectStore(str(tmp_path))
    assert s.root == tmp_path.resolve()
