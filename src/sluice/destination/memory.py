"""In-memory destination store.

Dict-backed implementation of ``DestinationStore`` for tests, dry runs and
jobs that only export files. Not shared between processes.
"""

from __future__ import annotations

import copy
from typing import Any

from sluice.destination.protocol import CollectionKind


class InMemoryDestination:
    """Destination store held in process memory."""

    def __init__(self) -> None:
        self._kinds: dict[str, CollectionKind] = {}
        self._records: dict[str, dict[str, dict[str, Any]]] = {}

    def collection_kind(self, name: str) -> CollectionKind | None:
        return self._kinds.get(name)

    def create_collection(self, name: str, kind: CollectionKind) -> None:
        self._kinds[name] = CollectionKind(kind)
        self._records.setdefault(name, {})

    def drop_collection(self, name: str) -> None:
        self._kinds.pop(name, None)
        self._records.pop(name, None)

    def truncate_collection(self, name: str) -> int:
        records = self._collection(name)
        removed = len(records)
        records.clear()
        return removed

    def count(self, name: str) -> int:
        return len(self._collection(name))

    def upsert(self, collection: str, key: str, document: dict[str, Any]) -> None:
        records = self._collection(collection)
        merged = dict(records.get(key, {}))
        merged.update(copy.deepcopy(document))
        records[key] = merged

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        document = self._collection(collection).get(key)
        return copy.deepcopy(document) if document is not None else None

    def remove(self, collection: str, key: str) -> bool:
        return self._collection(collection).pop(key, None) is not None

    def keys(self, collection: str) -> list[str]:
        return list(self._collection(collection))

    def close(self) -> None:
        pass

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        if name not in self._records:
            raise KeyError(f"Collection '{name}' does not exist")
        return self._records[name]

    def __repr__(self) -> str:
        return f"InMemoryDestination(collections={sorted(self._kinds)})"
