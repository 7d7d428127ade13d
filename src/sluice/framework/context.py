"""
Job context handed to every lifecycle hook.

``JobContext`` bundles what a hook needs to do its work: the job's
``ContentStore``, the destination, the schema manager, options, a logger
and the running summary. Hooks never construct any of these themselves.

Per-item isolation:
    ::

        for post in posts:
            with ctx.item("post", post.id):
                ctx.push({"_collection": "medium_post", "_key": post.id, ...})

    ``SourceFetchError``, ``PublishError`` and ``ValidationError`` raised
    inside ``item()`` are logged (one line per item), counted as failures
    and suppressed so the batch continues. Any other exception propagates
    and aborts the job.

Tags:
    lifecycle, hooks, context, logging, sluice
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sluice.core.content_store import ContentStore
from sluice.core.errors import PublishError, SluiceError, SourceFetchError, ValidationError
from sluice.core.fingerprint import fingerprint_of
from sluice.core.logging import get_logger
from sluice.core.paths import StorageRole
from sluice.destination.protocol import DestinationStore
from sluice.destination.records import DestinationRecord, push, write_record
from sluice.framework.artifacts import CacheArtifact, artifact_path
from sluice.framework.options import JobOptions
from sluice.framework.schema import SchemaManager
from sluice.framework.summary import RunSummary

LogSink = Callable[..., Any]

ITEM_ERRORS = (SourceFetchError, PublishError, ValidationError)


class JobLogger:
    """
    Logger facade for one job.

    Wraps either the structlog logger (default) or a caller-supplied sink
    called as ``sink(event, level=..., job=..., **fields)``.
    """

    def __init__(self, job: str, sink: LogSink | None = None, **bound: Any) -> None:
        self._sink = sink
        self._bound = {"job": job, **{k: v for k, v in bound.items() if v is not None}}
        self._logger = None if sink else get_logger("sluice.job").bind(**self._bound)

    def _emit(self, level: str, event: str, **fields: Any) -> None:
        if self._sink is not None:
            self._sink(event, level=level, **{**self._bound, **fields})
        else:
            getattr(self._logger, level)(event, **fields)

    def debug(self, event: str, **fields: Any) -> None:
        self._emit("debug", event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit("info", event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit("warning", event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit("error", event, **fields)


class JobContext:
    """Everything a hook may touch during one run."""

    def __init__(
        self,
        options: JobOptions,
        store: ContentStore,
        destination: DestinationStore | None = None,
        *,
        log: JobLogger | None = None,
        summary: RunSummary | None = None,
    ) -> None:
        self.options = options
        self.store = store
        self.destination = destination
        self.schema = SchemaManager(destination) if destination is not None else None
        self.log = log or JobLogger(options.name, bucket=options.effective_bucket)
        self.summary = summary or RunSummary(job=options.name)
        self.items_seen = 0

    @property
    def name(self) -> str:
        return self.options.name

    # -- cache ---------------------------------------------------------------

    def write_artifact(
        self, category: str, value: Any, *, fingerprint: str | None = None, ext: str = "json"
    ) -> CacheArtifact:
        """
        Write ``value`` to the cache as a ``category`` artifact.

        The name is derived from ``fingerprint`` if given, otherwise from
        the value itself, so writing the same value twice overwrites.
        """
        fp = fingerprint or fingerprint_of(value)
        path = artifact_path(category, fp, ext)
        self.store.write(path, value, StorageRole.CACHE)
        return CacheArtifact(category, fp, path, value)

    def has_artifact(self, category: str, fingerprint: str, ext: str = "json") -> bool:
        """Whether an artifact is already cached; lets fetch hooks skip known items."""
        return self.store.exists(artifact_path(category, fingerprint, ext), StorageRole.CACHE)

    # -- destination ---------------------------------------------------------

    def _require_destination(self) -> DestinationStore:
        if self.destination is None:
            raise PublishError("No destination configured for this job").with_context(job=self.name)
        return self.destination

    def push(self, item: dict[str, Any], id: str | None = None) -> DestinationRecord:
        """Upsert a loose item; see ``sluice.destination.records.push``."""
        return push(self._require_destination(), item, id)

    def upsert(self, collection: str, key: str, document: dict[str, Any]) -> DestinationRecord:
        record = DestinationRecord(collection=collection, key=key, document=document)
        write_record(self._require_destination(), record)
        return record

    # -- per-item isolation --------------------------------------------------

    @contextmanager
    def item(self, kind: str, key: Any) -> Iterator[None]:
        """Isolate one item: log and count per-item failures instead of aborting."""
        self.items_seen += 1
        try:
            yield
        except ITEM_ERRORS as e:
            self.summary.record_failure(kind, str(key), e)
            e.with_context(job=self.name)
            self.log.warning("lifecycle.item.failed", kind=kind, key=str(key), **_error_fields(e))
        else:
            self.summary.record_success()

    def skip(self, kind: str, key: Any, reason: str) -> None:
        """Record an item deliberately not processed."""
        self.items_seen += 1
        self.summary.record_skip(kind, str(key), reason)
        self.log.info("lifecycle.item.skipped", kind=kind, key=str(key), reason=reason)


def _error_fields(error: SluiceError) -> dict[str, Any]:
    fields = error.to_dict()
    fields.pop("message", None)
    fields["error"] = error.message
    fields.pop("context", None)
    return fields


__all__ = ["ITEM_ERRORS", "JobContext", "JobLogger", "LogSink"]
