"""Destination records and keyed push/delete helpers.

A record is addressed by ``(collection, key)``; its id is the
``"collection/key"`` string. ``push`` derives the address from, in order:
an explicit id, the item's ``_id``, then its ``_collection`` / ``_key``
fields.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sluice.core.errors import ConfigError, PublishError, SluiceError
from sluice.core.logging import get_logger
from sluice.destination.protocol import CollectionKind, DestinationStore

log = get_logger(__name__)

_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]{0,127}$")
_RESERVED_FIELDS = ("_id", "_key", "_collection")


def validate_collection_name(name: str) -> str:
    """Return ``name`` if it is usable as a collection name."""
    if not isinstance(name, str) or not _NAME_PATTERN.match(name):
        raise ConfigError(f"Invalid collection name {name!r}").with_context(collection=str(name))
    return name


@dataclass
class DestinationRecord:
    """The final persisted unit."""

    collection: str
    key: str
    document: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return f"{self.collection}/{self.key}"

    @classmethod
    def from_item(cls, item: dict[str, Any], id: str | None = None) -> DestinationRecord:
        """Build a record from a loose item, deriving its address."""
        collection = key = None
        address = id or item.get("_id")
        if address:
            collection, _, key = str(address).partition("/")
            key = key or None
        collection = collection or item.get("_collection")
        key = key or item.get("_key")

        if not collection:
            raise PublishError("Item has no _collection property, and no collection was specified.")
        if key is None or key == "":
            raise PublishError("Item has no unique key, and none was given.").with_context(collection=collection)

        document = {k: v for k, v in item.items() if k not in _RESERVED_FIELDS}
        return cls(collection=str(collection), key=str(key), document=document)


def push(store: DestinationStore, item: dict[str, Any], id: str | None = None) -> DestinationRecord:
    """
    Upsert a loose item into the destination.

    Raises:
        PublishError: the item has no address, its collection is missing, or
            the adapter fails to write it.
    """
    record = item if isinstance(item, DestinationRecord) else DestinationRecord.from_item(item, id)
    write_record(store, record)
    return record


def write_record(store: DestinationStore, record: DestinationRecord) -> None:
    """Upsert one record, normalizing every failure into ``PublishError``."""
    try:
        validate_collection_name(record.collection)
        kind = store.collection_kind(record.collection)
        if kind is None:
            raise PublishError(f"Collection '{record.collection}' does not exist")
        if kind is CollectionKind.EDGE and not (record.document.get("_from") and record.document.get("_to")):
            raise PublishError("Relationship records need _from and _to")
        store.upsert(record.collection, record.key, record.document)
    except PublishError as e:
        raise e.with_context(collection=record.collection, key=record.key)
    except SluiceError as e:
        raise PublishError(e.message, cause=e).with_context(collection=record.collection, key=record.key) from e
    except Exception as e:
        raise PublishError(f"Write failed: {e}", cause=e).with_context(
            collection=record.collection, key=record.key
        ) from e
    log.debug("destination.upsert", collection=record.collection, key=record.key)


def delete(store: DestinationStore, id: str, collection: str | None = None) -> bool:
    """Delete the record with the given id (``"collection/key"``, or ``key`` plus ``collection``)."""
    address = "/".join(part for part in (collection, id) if part)
    name, _, key = address.partition("/")
    if not key:
        raise PublishError(f"Cannot delete {id!r}: no collection given")
    if store.collection_kind(name) is None:
        return False
    return store.remove(name, key)


__all__ = ["DestinationRecord", "delete", "push", "validate_collection_name", "write_record"]
