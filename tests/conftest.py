"""
Shared pytest fixtures and configuration for sluice tests.

This module provides:
- Logging reset between tests (structlog configuration and contextvars)
- Job registry snapshot/restore
- Storage fixtures rooted in ``tmp_path``
- Destination fixtures for the in-memory store and SQLite

Usage:
    @pytest.fixture
    def my_fixture(store, destination):
        ...
"""

from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from sluice.core import logging as sluice_logging
from sluice.core.content_store import ContentStore
from sluice.core.paths import PathResolver
from sluice.destination.memory import InMemoryDestination
from sluice.destination.sql import SqlDestination
from sluice.framework import registry


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark SQLite-backed tests as integration, everything else as unit."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if "integration" not in markers:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logging(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Each test starts with structlog defaults and an empty log context."""
    monkeypatch.setattr(sluice_logging, "_configured", False)
    sluice_logging.clear_context()
    yield
    structlog.reset_defaults()
    sluice_logging.clear_context()


@pytest.fixture
def job_registry() -> Generator[dict, None, None]:
    """Snapshot the job registry and restore it after the test."""
    registry.list_jobs()
    saved = dict(registry._registry)
    yield registry._registry
    registry._registry.clear()
    registry._registry.update(saved)


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def resolver(tmp_path: Path) -> PathResolver:
    return PathResolver(base=tmp_path, bucket="medium")


@pytest.fixture
def store(resolver: PathResolver) -> ContentStore:
    return ContentStore(resolver)


# =============================================================================
# Destination Fixtures
# =============================================================================


@pytest.fixture
def memory_destination() -> InMemoryDestination:
    return InMemoryDestination()


@pytest.fixture
def sqlite_destination() -> Generator[SqlDestination, None, None]:
    destination = SqlDestination("sqlite:///:memory:")
    yield destination
    destination.close()


@pytest.fixture(params=["memory", "sqlite"])
def destination(request: pytest.FixtureRequest):
    """Every destination adapter, for contract tests."""
    if request.param == "memory":
        yield InMemoryDestination()
    else:
        request.applymarker(pytest.mark.integration)
        sql = SqlDestination("sqlite:///:memory:")
        yield sql
        sql.close()
