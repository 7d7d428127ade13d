"""SQLAlchemy-backed destination store.

Every collection is one table::

    _key        primary key (fingerprint or natural source key)
    _from/_to   relationship endpoints (edge collections only)
    document    JSON body of the record
    updated_at  last write time (UTC)

A registry table (``sluice_collections``) remembers the kind of every
collection so ``SchemaManager`` can detect document/edge conflicts.

Upserts merge the new document over the stored one inside a single short
transaction per record; there is never a transaction spanning a batch.

Tags:
    destination, sqlalchemy, sqlite, postgresql, upsert, sluice
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    event,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import URL, Connection, Engine, make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from sluice.core.errors import ConfigError
from sluice.core.logging import get_logger
from sluice.destination.protocol import CollectionKind

log = get_logger(__name__)

REGISTRY_TABLE = "sluice_collections"


def create_sluice_engine(url: str | URL = "sqlite:///sluice.db", *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite engines allow cross-thread use and switch to WAL journaling; an
    in-memory SQLite database is pinned to a single connection so every
    session sees the same data.
    """
    url = make_url(url)
    if url.get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if url.database in (None, "", ":memory:"):
            kwargs.setdefault("poolclass", StaticPool)

        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return engine

    return create_engine(url, echo=echo, **kwargs)


class SqlDestination:
    """``DestinationStore`` over any SQLAlchemy-supported database."""

    def __init__(self, engine: Engine | URL | str, *, echo: bool = False) -> None:
        self._engine = engine if isinstance(engine, Engine) else create_sluice_engine(engine, echo=echo)
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}
        self._registry = Table(
            REGISTRY_TABLE,
            self._metadata,
            Column("name", String(128), primary_key=True),
            Column("kind", String(16), nullable=False),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self._registry.create(self._engine, checkfirst=True)

    @property
    def engine(self) -> Engine:
        return self._engine

    # -- collections -------------------------------------------------------

    def collection_kind(self, name: str) -> CollectionKind | None:
        with self._engine.connect() as conn:
            kind = conn.execute(select(self._registry.c.kind).where(self._registry.c.name == name)).scalar_one_or_none()
        return CollectionKind(kind) if kind is not None else None

    def create_collection(self, name: str, kind: CollectionKind) -> None:
        if name == REGISTRY_TABLE:
            raise ConfigError(f"'{REGISTRY_TABLE}' is reserved").with_context(collection=name)
        table = self._table(name)
        with self._engine.begin() as conn:
            table.create(conn, checkfirst=True)
            conn.execute(
                insert(self._registry).values(name=name, kind=CollectionKind(kind).value, created_at=_now())
            )
        log.debug("destination.sql.create", collection=name, kind=CollectionKind(kind).value)

    def drop_collection(self, name: str) -> None:
        table = self._table(name)
        with self._engine.begin() as conn:
            table.drop(conn, checkfirst=True)
            conn.execute(delete(self._registry).where(self._registry.c.name == name))
        self._metadata.remove(table)
        self._tables.pop(name, None)
        log.debug("destination.sql.drop", collection=name)

    def truncate_collection(self, name: str) -> int:
        table = self._table(name)
        with self._engine.begin() as conn:
            removed = conn.execute(select(func.count()).select_from(table)).scalar_one()
            conn.execute(delete(table))
        return int(removed)

    def count(self, name: str) -> int:
        table = self._table(name)
        with self._engine.connect() as conn:
            return int(conn.execute(select(func.count()).select_from(table)).scalar_one())

    # -- records -----------------------------------------------------------

    def upsert(self, collection: str, key: str, document: dict[str, Any]) -> None:
        table = self._table(collection)
        try:
            with self._engine.begin() as conn:
                existing = self._fetch(conn, table, key)
                if existing is None:
                    conn.execute(insert(table).values(**self._row(key, document)))
                else:
                    self._merge(conn, table, key, existing, document)
        except IntegrityError:
            # Another writer inserted the key between our read and insert.
            with self._engine.begin() as conn:
                self._merge(conn, table, key, self._fetch(conn, table, key) or {}, document)

    def _merge(
        self, conn: Connection, table: Table, key: str, existing: dict[str, Any], document: dict[str, Any]
    ) -> None:
        merged = {**existing, **document}
        conn.execute(update(table).where(table.c._key == key).values(**self._row(key, merged)))

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        table = self._table(collection)
        with self._engine.connect() as conn:
            return self._fetch(conn, table, key)

    def remove(self, collection: str, key: str) -> bool:
        table = self._table(collection)
        with self._engine.begin() as conn:
            result = conn.execute(delete(table).where(table.c._key == key))
        return result.rowcount > 0

    def keys(self, collection: str) -> list[str]:
        table = self._table(collection)
        with self._engine.connect() as conn:
            return list(conn.execute(select(table.c._key).order_by(table.c._key)).scalars())

    def close(self) -> None:
        self._engine.dispose()

    # -- helpers -----------------------------------------------------------

    def _table(self, name: str) -> Table:
        table = self._tables.get(name)
        if table is None:
            table = Table(
                name,
                self._metadata,
                Column("_key", String(255), primary_key=True),
                Column("_from", String(512), nullable=True),
                Column("_to", String(512), nullable=True),
                Column("document", JSON, nullable=False),
                Column("updated_at", DateTime(timezone=True), nullable=False),
            )
            self._tables[name] = table
        return table

    @staticmethod
    def _fetch(conn: Connection, table: Table, key: str) -> dict[str, Any] | None:
        document = conn.execute(select(table.c.document).where(table.c._key == key)).scalar_one_or_none()
        return dict(document) if document is not None else None

    @staticmethod
    def _row(key: str, document: dict[str, Any]) -> dict[str, Any]:
        return {
            "_key": key,
            "_from": document.get("_from"),
            "_to": document.get("_to"),
            "document": document,
            "updated_at": _now(),
        }

    def __repr__(self) -> str:
        return f"SqlDestination({self._engine.url.render_as_string(hide_password=True)})"


def _now() -> datetime:
    return datetime.now(UTC)


__all__ = ["REGISTRY_TABLE", "SqlDestination", "create_sluice_engine"]
