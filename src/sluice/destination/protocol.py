"""
Destination store contract.

The destination database (its query language and transport) is an external
collaborator. The core needs only a handful of synchronous operations from
it: collection introspection and DDL for ``SchemaManager``, and keyed
upserts for publishing.

Manifesto:
    - **Keyed writes only:** records are addressed by ``(collection, key)``
    - **Upsert semantics:** writing an existing key updates it, never duplicates
    - **No batch transactions:** each upsert stands alone so a partial run
      is always resumable by re-running
    - **Sync-only:** adapters wrap async drivers themselves

Tags:
    destination, protocol, upsert, schema, sluice
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable


class CollectionKind(str, Enum):
    """Kind of a destination collection."""

    DOCUMENT = "document"   # plain records
    EDGE = "edge"           # relationships; records carry ``_from`` and ``_to``


@runtime_checkable
class DestinationStore(Protocol):
    """
    Synchronous destination adapter.

    Collection operations:
        collection_kind(name)        -> CollectionKind | None (None = absent)
        create_collection(name, kind)
        drop_collection(name)
        truncate_collection(name)    -> number of records removed
        count(name)                  -> number of records

    Record operations:
        upsert(collection, key, document)  insert or merge-update by key
        get(collection, key)               -> document | None
        remove(collection, key)            -> True if a record was removed
        keys(collection)                   -> list of keys
    """

    def collection_kind(self, name: str) -> CollectionKind | None: ...

    def create_collection(self, name: str, kind: CollectionKind) -> None: ...

    def drop_collection(self, name: str) -> None: ...

    def truncate_collection(self, name: str) -> int: ...

    def count(self, name: str) -> int: ...

    def upsert(self, collection: str, key: str, document: dict[str, Any]) -> None: ...

    def get(self, collection: str, key: str) -> dict[str, Any] | None: ...

    def remove(self, collection: str, key: str) -> bool: ...

    def keys(self, collection: str) -> list[str]: ...

    def close(self) -> None: ...


__all__ = ["CollectionKind", "DestinationStore"]
