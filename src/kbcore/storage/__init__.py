"""Object storage adapters."""

from kbcore.storage.base import ObjectStore, WritableObjectStore
from kbcore.storage.http import HttpObjectStore
from kbcore.storage.local import LocalObjectStore

__all__ = ["HttpObjectStore", "LocalObjectStore", "ObjectStore", "WritableObjectStore"]
