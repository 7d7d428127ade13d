"""
Destination schema reconciliation.

``SchemaManager`` brings named collections to the state a job expects
without caring what state they were in before::

    Absent ──ensure──► Present ──destroy──► Absent
                          │
                       truncate  (stays Present, emptied)

``ensure`` and ``destroy`` are both safe to repeat: ensuring a present
collection and destroying an absent one are no-ops, not errors.
``destroy`` drops every record it holds and exists for test and bootstrap
flows; it is never called automatically.

Examples:
    >>> schema = SchemaManager(InMemoryDestination())
    >>> schema.ensure("medium_post")
    True
    >>> schema.ensure("medium_post")
    False
    >>> schema.destroy("medium_post"), schema.destroy("medium_post")
    (True, False)

Tags:
    schema, destination, idempotency, sluice
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from sluice.core.errors import SchemaConflictError
from sluice.core.logging import get_logger
from sluice.destination.protocol import CollectionKind, DestinationStore
from sluice.destination.records import validate_collection_name

log = get_logger(__name__)


class CollectionState(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"


@dataclass
class SchemaDeclaration:
    """Collections and relationships a job owns."""

    collections: list[str] = field(default_factory=list)
    relationships: list[str] = field(default_factory=list)

    def items(self) -> list[tuple[str, CollectionKind]]:
        """All owned names with their kind, collections first."""
        return [(name, CollectionKind.DOCUMENT) for name in self.collections] + [
            (name, CollectionKind.EDGE) for name in self.relationships
        ]

    def __bool__(self) -> bool:
        return bool(self.collections or self.relationships)


class SchemaManager:
    """Reconciles existence of named destination collections."""

    def __init__(self, destination: DestinationStore) -> None:
        self.destination = destination

    def state(self, name: str) -> CollectionState:
        validate_collection_name(name)
        if self.destination.collection_kind(name) is None:
            return CollectionState.ABSENT
        return CollectionState.PRESENT

    def ensure(self, name: str, kind: CollectionKind | str = CollectionKind.DOCUMENT) -> bool:
        """
        Create ``name`` if it is absent.

        Returns:
            True if the collection was created, False if it already existed.

        Raises:
            SchemaConflictError: it exists with the other kind.
        """
        validate_collection_name(name)
        kind = CollectionKind(kind)
        existing = self.destination.collection_kind(name)
        if existing is None:
            self.destination.create_collection(name, kind)
            log.info("schema.ensure", collection=name, kind=kind.value, created=True)
            return True
        if existing is not kind:
            raise SchemaConflictError(name, existing.value, kind.value)
        log.debug("schema.ensure", collection=name, kind=kind.value, created=False)
        return False

    def destroy(self, name: str) -> bool:
        """
        Drop ``name`` and all of its records.

        Returns:
            True if it was dropped, False if it did not exist.
        """
        validate_collection_name(name)
        if self.destination.collection_kind(name) is None:
            log.info("schema.destroy", collection=name, existed=False)
            return False
        self.destination.drop_collection(name)
        log.warning("schema.destroy", collection=name, existed=True)
        return True

    def is_empty(self, name: str) -> bool:
        """True when the collection is absent or holds no records."""
        validate_collection_name(name)
        if self.destination.collection_kind(name) is None:
            return True
        return self.destination.count(name) == 0

    def truncate(self, name: str) -> int:
        """Remove every record but keep the collection. Returns the number removed (0 if absent)."""
        validate_collection_name(name)
        if self.destination.collection_kind(name) is None:
            return 0
        removed = self.destination.truncate_collection(name)
        log.info("schema.truncate", collection=name, removed=removed)
        return removed

    def ensure_all(self, declaration: SchemaDeclaration) -> dict[str, bool]:
        """Ensure every declared name; maps name to whether it was created."""
        return {name: self.ensure(name, kind) for name, kind in declaration.items()}

    def destroy_all(self, declaration: SchemaDeclaration) -> dict[str, bool]:
        """Destroy every declared name; maps name to whether it existed."""
        return {name: self.destroy(name) for name, _ in declaration.items()}


__all__ = ["CollectionState", "SchemaDeclaration", "SchemaManager"]
