"""Sluice Core -- storage, identity and ambient primitives.

Manifesto:
    Every import job needs the same foundations: one rule for where files
    live, a cache that never leaves torn artifacts, stable content
    identifiers, typed errors and structured logs. ``sluice.core`` holds
    them, with synchronous APIs and no knowledge of the destination or
    the lifecycle.

Architecture::

    Layer 1 -- Errors, logging, settings
        errors.py          Structured error hierarchy (SluiceError, ...)
        logging.py         structlog configuration and scoped context
        settings.py        pydantic-settings models (SLUICE_*, SLUICE_DEST_*)

    Layer 2 -- Storage and identity
        paths.py           StorageRole, buckets, PathResolver
        formats.py         Extension-selected codecs
        content_store.py   Role-aware read/write/find/delete
        fingerprint.py     Canonical hashing and UUIDv5 fingerprints
"""

from sluice.core.content_store import ContentStore
from sluice.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    LifecycleError,
    NotFoundError,
    PublishError,
    SchemaConflictError,
    SluiceError,
    SourceFetchError,
    StorageError,
    ValidationError,
)
from sluice.core.fingerprint import content_hash, fingerprint_of
from sluice.core.paths import PathResolver, StorageRole, validate_bucket

__all__ = [
    # Storage
    "ContentStore",
    "PathResolver",
    "StorageRole",
    "validate_bucket",
    # Identity
    "content_hash",
    "fingerprint_of",
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "SluiceError",
    "StorageError",
    "NotFoundError",
    "ValidationError",
    "ConfigError",
    "SchemaConflictError",
    "LifecycleError",
    "SourceFetchError",
    "PublishError",
]
