"""
Structured error types for sluice.

Every failure raised by the pipeline core is a ``SluiceError`` carrying
enough metadata to decide what happens next: whether the job aborts, whether
the failing item is logged and skipped, and whether a re-run is likely to
succeed.

Manifesto:
    - **Typed taxonomy:** One error class per failure domain
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** Errors carry job, stage, path and key metadata
    - **Error chaining:** The underlying exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          SluiceError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │  StorageError        ValidationError      ConfigError           │
        │  (STORAGE)           (VALIDATION)         (CONFIG)              │
        │       │                                                         │
        │  NotFoundError       SchemaConflictError  LifecycleError        │
        │                      (SCHEMA)             (INTERNAL)            │
        │                                                                 │
        │  SourceFetchError    PublishError                               │
        │  (SOURCE, retryable) (PUBLISH)                                  │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    Structural errors (``ConfigError``, ``SchemaConflictError``,
    ``LifecycleError``) fail the whole job. Per-item errors
    (``SourceFetchError``, ``PublishError``) are expected to be isolated by
    the job's hooks, typically through ``JobContext.item()``.

Examples:
    >>> error = StorageError("disk full").with_context(path="cache/posts/x.json")
    >>> error.context.path
    'cache/posts/x.json'
    >>> error.to_dict()["category"]
    'STORAGE'

Tags:
    error-handling, exception-hierarchy, error-context, sluice
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    STORAGE = "STORAGE"           # Filesystem read/write, missing artifacts
    SOURCE = "SOURCE"             # External fetch collaborators
    VALIDATION = "VALIDATION"     # Undecodable or ill-shaped artifacts
    SCHEMA = "SCHEMA"             # Destination collection reconciliation
    PUBLISH = "PUBLISH"           # Destination record writes
    CONFIG = "CONFIG"             # Bad names, URLs, settings
    INTERNAL = "INTERNAL"         # Bugs, illegal state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set end up in ``to_dict()``; anything that has no
    dedicated field goes into ``metadata``.

    Attributes:
        job: Name of the import job
        stage: Lifecycle stage (fill, load, schema, publish, ...)
        bucket: Storage bucket of the job
        path: Storage path involved
        collection: Destination collection name
        key: Destination record key
        source_name: External source identifier
        url: URL being fetched
        metadata: Additional key-value pairs
    """

    job: str | None = None
    stage: str | None = None
    bucket: str | None = None
    path: str | None = None
    collection: str | None = None
    key: str | None = None
    source_name: str | None = None
    url: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job", "stage", "bucket", "path", "collection", "key", "source_name", "url"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SluiceError(Exception):
    """
    Base exception for all sluice errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.

    Examples:
        >>> error = SluiceError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        >>> try:
        ...     raise OSError("No space left on device")
        ... except OSError as e:
        ...     error = StorageError("write failed", cause=e)
        >>> error.cause
        OSError('No space left on device')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SluiceError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PublishError("write failed").with_context(
                collection="medium_post", key="a1"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(SluiceError):
    """I/O failure reading or writing a resolved path. Never retried by the store."""

    default_category = ErrorCategory.STORAGE


class NotFoundError(StorageError):
    """
    A requested input/cache/output artifact is absent.

    Only raised by strict reads; lenient reads return ``None`` instead.
    Recoverable: the usual reaction is a fallback fetch.
    """

    def __init__(self, message: str, *, path: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        if path is not None:
            self.context.path = path


# =============================================================================
# DATA / CONFIG ERRORS
# =============================================================================


class ValidationError(SluiceError):
    """Artifact could not be decoded, encoded, or validated against its model."""

    default_category = ErrorCategory.VALIDATION


class ConfigError(SluiceError):
    """Invalid configuration: bucket names, collection names, URLs, job names."""

    default_category = ErrorCategory.CONFIG


class SchemaConflictError(SluiceError):
    """A collection exists with a kind incompatible with the requested one."""

    default_category = ErrorCategory.SCHEMA

    def __init__(self, name: str, existing: str, requested: str, **kwargs: Any):
        super().__init__(
            f"Collection '{name}' exists as {existing}, cannot ensure it as {requested}",
            **kwargs,
        )
        self.context.collection = name
        self.existing = existing
        self.requested = requested


class LifecycleError(SluiceError):
    """A lifecycle stage was entered from a state that does not allow it."""

    default_category = ErrorCategory.INTERNAL


# =============================================================================
# PER-ITEM ERRORS
# =============================================================================


class SourceFetchError(SluiceError):
    """
    Failure inside an external fetch collaborator (network, parse).

    The core does not interpret these; it only propagates them, or lets a
    job hook catch and log them per item. Retryable by default since the
    recovery path for a fetch is re-running the job.
    """

    default_category = ErrorCategory.SOURCE
    default_retryable = True


class PublishError(SluiceError):
    """Failure writing a single DestinationRecord."""

    default_category = ErrorCategory.PUBLISH


__all__ = [
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
