"""Destination construction from settings.

The destination is built once, at process start, and injected into every
lifecycle. Nothing in sluice keeps a module-level connection.

URL forms:

- ``memory://`` (or ``memory``)          — ``InMemoryDestination``
- ``sqlite:///path/to.db``               — ``SqlDestination`` on SQLite
- ``sqlite:///:memory:``                 — ephemeral SQLite
- ``postgresql://host:5432/``            — ``SqlDestination``; missing user,
  password and database are filled from ``DestinationSettings``
"""

from __future__ import annotations

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError

from sluice.core.errors import ConfigError
from sluice.core.logging import get_logger
from sluice.core.settings import DestinationSettings
from sluice.destination.memory import InMemoryDestination
from sluice.destination.protocol import DestinationStore
from sluice.destination.sql import SqlDestination, create_sluice_engine

log = get_logger(__name__)


def open_destination(settings: DestinationSettings | None = None) -> DestinationStore:
    """Open the destination described by ``settings`` (environment when omitted)."""
    settings = settings or DestinationSettings()

    if settings.url in ("memory", "memory://"):
        log.info("destination.open", backend="memory")
        return InMemoryDestination()

    try:
        url = make_url(settings.url)
    except ArgumentError as e:
        raise ConfigError(f"Invalid destination URL {settings.url!r}", cause=e) from e

    if url.get_backend_name() != "sqlite":
        if url.username is None:
            url = url.set(username=settings.username)
        if url.password is None and settings.password is not None:
            url = url.set(password=settings.password.get_secret_value())
        if not url.database and settings.database:
            url = url.set(database=settings.database)

    try:
        engine = create_sluice_engine(url, echo=settings.echo)
    except (ArgumentError, NoSuchModuleError, ImportError) as e:
        raise ConfigError(f"Unsupported destination URL {url.render_as_string(hide_password=True)!r}", cause=e) from e

    log.info("destination.open", backend=url.get_backend_name(), url=url.render_as_string(hide_password=True))
    try:
        return SqlDestination(engine)
    except SQLAlchemyError as e:
        raise ConfigError(f"Cannot reach destination: {e}", cause=e) from e


__all__ = ["open_destination"]
