"""Persistence for branch-ticket associations."""

from branchlink.storage.association_store import AssociationStore
from branchlink.storage.kv import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)

__all__ = [
    "AssociationStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
]
