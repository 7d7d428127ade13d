"""Destination store contract and adapters.

Usage:
    from sluice.destination import open_destination, push

    destination = open_destination()          # SLUICE_DEST_* environment
    push(destination, {"_collection": "post", "_key": "a1", "title": "Hello"})
"""

from sluice.destination.factory import open_destination
from sluice.destination.memory import InMemoryDestination
from sluice.destination.protocol import CollectionKind, DestinationStore
from sluice.destination.records import DestinationRecord, delete, push, validate_collection_name, write_record
from sluice.destination.sql import SqlDestination, create_sluice_engine

__all__ = [
    "CollectionKind",
    "DestinationStore",
    "DestinationRecord",
    "InMemoryDestination",
    "SqlDestination",
    "create_sluice_engine",
    "open_destination",
    "push",
    "delete",
    "validate_collection_name",
    "write_record",
]
