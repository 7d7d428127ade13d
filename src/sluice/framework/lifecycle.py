"""
Import lifecycle.

``ImportLifecycle`` runs one migration job through its stages, strictly in
sequence::

    IDLE ──fill_cache──► FILLING ──► (IDLE)
      │
      └──load_cache──► [FILLING if the cache is empty] ──► LOADED
                                                            │
                                        ensure_schema ──► SCHEMA_READY
                                                            │
                                              publish ──► PUBLISHING ──► DONE

    any stage ──error──► FAILED

Job behaviour is supplied as a *hooks* object, composed in rather than
subclassed. Every hook is optional and may be a plain or ``async``
function:

    ``fetch(ctx)``
        Talk to the source and write artifacts with ``ctx.write_artifact``.
        The only stage allowed to hit rate-limited sources.
    ``load(ctx)``
        Return a ``CacheSnapshot`` (or iterable of ``CacheArtifact``).
        Defaults to reading every artifact under the cache role.
    ``publish(ctx, artifact)``
        Write destination records for one artifact. Use ``ctx.item()`` to
        isolate per-record failures.
    ``declare_schema()``
        Return a ``SchemaDeclaration`` (or ``collections`` /
        ``relationships`` attributes on the hooks object).
    ``build_output(ctx, snapshot)``, ``clear_cache(ctx)``
        Optional extra stages.
    ``artifact_models``
        Mapping of category to pydantic model, validated at load time.

A missing hook logs and does nothing, so a job that only fetches (for
manual inspection) or only publishes works without stubs.

Failure semantics:
    - ``load_cache`` falls back to ``fill_cache`` once when the cache holds
      no files; a failing fill propagates and is never retried. The guard
      resets when the cache is cleared or a new run starts after DONE or
      FAILED.
    - Fill and publish each keep their own ``RunSummary``; ``do_import``
      returns the publish one.
    - Non-sluice exceptions from ``fetch`` become ``SourceFetchError``.
    - The publish loop does not suppress errors itself; hooks isolate
      records with ``ctx.item()``. No lock or transaction spans the batch,
      so a partial run is resumed by running again.
    - ``destroy_schema`` only ever runs when called explicitly.

Examples:
    >>> class Posts:
    ...     collections = ["post"]
    ...     async def fetch(self, ctx):
    ...         for post in await client.posts():
    ...             ctx.write_artifact("posts", post, fingerprint=fingerprint_of(post["url"]))
    ...     async def publish(self, ctx, artifact):
    ...         with ctx.item("post", artifact.key):
    ...             ctx.upsert("post", artifact.key, artifact.data)
    >>> summary = await ImportLifecycle("posts", Posts(), destination=dest).do_import()

Tags:
    lifecycle, import, pipeline, state-machine, asyncio, sluice
"""

from __future__ import annotations

import inspect
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from enum import Enum
from typing import Any

from sluice.core.content_store import ContentStore
from sluice.core.errors import ConfigError, LifecycleError, SluiceError, SourceFetchError
from sluice.core.logging import LogContext
from sluice.core.paths import StorageRole
from sluice.destination.protocol import DestinationStore
from sluice.framework.artifacts import CacheArtifact, CacheSnapshot, read_snapshot
from sluice.framework.context import JobContext, JobLogger, LogSink
from sluice.framework.options import JobOptions
from sluice.framework.schema import SchemaDeclaration, SchemaManager
from sluice.framework.summary import RunSummary


class LifecycleState(str, Enum):
    """Import lifecycle states."""

    IDLE = "idle"
    FILLING = "filling"
    LOADED = "loaded"
    SCHEMA_READY = "schema_ready"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


_S = LifecycleState

# Allowed transitions; FAILED is reachable from every state.
TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    _S.IDLE: frozenset({_S.FILLING, _S.LOADED, _S.SCHEMA_READY}),
    _S.FILLING: frozenset({_S.IDLE, _S.LOADED}),
    _S.LOADED: frozenset({_S.FILLING, _S.LOADED, _S.SCHEMA_READY}),
    _S.SCHEMA_READY: frozenset({_S.FILLING, _S.LOADED, _S.SCHEMA_READY, _S.PUBLISHING}),
    _S.PUBLISHING: frozenset({_S.DONE}),
    _S.DONE: frozenset({_S.FILLING, _S.LOADED, _S.SCHEMA_READY}),
    _S.FAILED: frozenset({_S.FILLING, _S.LOADED, _S.SCHEMA_READY}),
}


async def _invoke(fn: Any, *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ImportLifecycle:
    """
    Orchestrates one migration job.

    Args:
        options: Job options, or just the job name.
        hooks: Object providing any subset of the hooks described above.
        destination: Destination store; required only if the job declares
            collections or publishes.
        store: Content store; built from ``options`` when omitted.
        sink: Optional logging sink replacing structlog for this job.
    """

    def __init__(
        self,
        options: JobOptions | str,
        hooks: Any = None,
        *,
        destination: DestinationStore | None = None,
        store: ContentStore | None = None,
        sink: LogSink | None = None,
    ) -> None:
        self.options = options if isinstance(options, JobOptions) else JobOptions(name=options)
        self.hooks = hooks
        self.destination = destination
        self.store = store or ContentStore(self.options.resolver(), strict=self.options.strict_reads)
        self.log = JobLogger(self.options.name, sink, bucket=self.options.effective_bucket)
        self.context = JobContext(self.options, self.store, destination, log=self.log)
        self._state = LifecycleState.IDLE
        self._snapshot: CacheSnapshot | None = None
        self._filled = False
        self._last_error: BaseException | None = None

    @property
    def name(self) -> str:
        return self.options.name

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def snapshot(self) -> CacheSnapshot | None:
        """The snapshot returned by the last ``load_cache``."""
        return self._snapshot

    def _transition(self, target: LifecycleState) -> None:
        if target is not LifecycleState.FAILED and target not in TRANSITIONS[self._state]:
            raise LifecycleError(f"Cannot move from {self._state.value} to {target.value}").with_context(
                job=self.name
            )
        self._state = target

    @contextmanager
    def _stage(self, stage: str) -> Iterator[None]:
        with LogContext(job=self.name, bucket=self.options.effective_bucket, stage=stage):
            try:
                yield
            except SluiceError as e:
                if e is self._last_error:
                    raise
                self._last_error = e
                self._state = LifecycleState.FAILED
                if e.context.job is None:
                    e.with_context(job=self.name)
                if e.context.stage is None:
                    e.with_context(stage=stage)
                self.log.error(f"lifecycle.{stage}.failed", error=e.message, error_type=type(e).__name__)
                raise
            except Exception as e:
                if e is self._last_error:
                    raise
                self._last_error = e
                self._state = LifecycleState.FAILED
                self.log.error(f"lifecycle.{stage}.failed", error=str(e), error_type=type(e).__name__)
                raise

    def _hook(self, name: str) -> Any:
        return getattr(self.hooks, name, None)

    # ------------------------------------------------------------------ #
    # Schema declaration
    # ------------------------------------------------------------------ #

    def declaration(self) -> SchemaDeclaration:
        """Collections and relationships owned by the job."""
        declare = self._hook("declare_schema")
        if declare is None:
            return SchemaDeclaration(
                collections=list(getattr(self.hooks, "collections", None) or ()),
                relationships=list(getattr(self.hooks, "relationships", None) or ()),
            )
        declared = declare()
        if isinstance(declared, SchemaDeclaration):
            return declared
        if isinstance(declared, Mapping):
            return SchemaDeclaration(
                collections=list(declared.get("collections", ())),
                relationships=list(declared.get("relationships", ())),
            )
        raise ConfigError(f"declare_schema() returned {type(declared).__name__}").with_context(job=self.name)

    def _schema(self) -> SchemaManager:
        if self.context.schema is None:
            raise ConfigError("Job declares collections but no destination was given").with_context(job=self.name)
        return self.context.schema

    # ------------------------------------------------------------------ #
    # Stages
    # ------------------------------------------------------------------ #

    async def fill_cache(self) -> None:
        """Run the fetch hook, writing artifacts into the cache."""
        await self._fill()
        self._transition(LifecycleState.IDLE)

    async def _fill(self) -> None:
        self._transition(LifecycleState.FILLING)
        self._filled = True
        summary = self.context.summary = RunSummary(job=self.name)
        with self._stage("fill"):
            fetch = self._hook("fetch")
            if fetch is None:
                self.log.info("lifecycle.fill.noop", detail="No caching implementation.")
                return
            self.log.info("lifecycle.fill.start")
            try:
                await _invoke(fetch, self.context)
            except SluiceError:
                raise
            except Exception as e:
                raise SourceFetchError(f"Fetch failed: {e}", cause=e).with_context(
                    job=self.name, stage="fill"
                ) from e
            summary.complete()
            self.log.info("lifecycle.fill.done", **summary.counts())

    async def _read_cache(self) -> CacheSnapshot:
        load = self._hook("load")
        if load is None:
            return read_snapshot(self.store, getattr(self.hooks, "artifact_models", None))
        loaded = await _invoke(load, self.context)
        if loaded is None:
            return CacheSnapshot()
        if isinstance(loaded, CacheSnapshot):
            return loaded
        artifacts = list(loaded)
        for artifact in artifacts:
            if not isinstance(artifact, CacheArtifact):
                raise ConfigError(f"load() yielded {type(artifact).__name__}, expected CacheArtifact")
        return CacheSnapshot(artifacts=artifacts)

    async def load_cache(self) -> CacheSnapshot:
        """
        Read everything cached for the job.

        If the cache holds no files at all and the job has not filled it
        since the run started (or since the cache was last cleared), the
        fetch hook runs once and the cache is read again. Files that are
        present but skipped as invalid still count as a populated cache.
        """
        with self._stage("load"):
            snapshot = await self._read_cache()
            if not snapshot and not snapshot.skipped and not self._filled:
                self.log.info("lifecycle.load.fallback", detail="Cache is empty; filling the cache.")
                await self._fill()
                snapshot = await self._read_cache()
            self._transition(LifecycleState.LOADED)
            self._snapshot = snapshot
            self.log.info("lifecycle.load.done", artifacts=len(snapshot), skipped=len(snapshot.skipped))
            return snapshot

    async def ensure_schema(self) -> dict[str, bool]:
        """Ensure every declared collection; maps name to whether it was created."""
        with self._stage("schema"):
            declaration = self.declaration()
            results: dict[str, bool] = {}
            if declaration:
                results = self._schema().ensure_all(declaration)
                for name, created in results.items():
                    self.log.info("lifecycle.schema.ensure", collection=name, created=created)
            else:
                self.log.debug("lifecycle.schema.noop")
            self._transition(LifecycleState.SCHEMA_READY)
            return results

    async def destroy_schema(self) -> dict[str, bool]:
        """
        Drop every declared collection and all of its records.

        Destructive; never called by any other stage.
        """
        with self._stage("schema"):
            declaration = self.declaration()
            if not declaration:
                self.log.debug("lifecycle.schema.noop")
                return {}
            results = self._schema().destroy_all(declaration)
            for name, existed in results.items():
                self.log.warning("lifecycle.schema.destroy", collection=name, existed=existed)
            return results

    async def do_import(self) -> RunSummary:
        """
        Load the cache, ensure the schema, and publish every artifact.

        The returned summary counts publishing only; a fallback fill keeps
        its own counts. A run started after a finished or failed one may
        fall back to fetching again.
        """
        if self._state in (LifecycleState.DONE, LifecycleState.FAILED):
            self._filled = False

        snapshot = await self.load_cache()
        await self.ensure_schema()

        summary = self.context.summary = RunSummary(job=self.name)

        self._transition(LifecycleState.PUBLISHING)
        with self._stage("publish"):
            for path in snapshot.skipped:
                summary.record_skip("artifact", path, "unreadable or invalid")

            publish = self._hook("publish")
            if publish is None:
                self.log.info("lifecycle.import.noop", detail="No data migration; cache loaded.")
            else:
                for artifact in snapshot:
                    seen = self.context.items_seen
                    await _invoke(publish, self.context, artifact)
                    if self.context.items_seen == seen:
                        summary.record_success()

            summary.complete()
            self.log.info("lifecycle.import.summary", **summary.counts(), duration_seconds=summary.duration_seconds)
            self._transition(LifecycleState.DONE)
        return summary

    async def run(self) -> RunSummary:
        """Run the whole job; same as ``do_import``."""
        return await self.do_import()

    async def clear_cache(self) -> list[str]:
        """
        Run the job's ``clear_cache`` hook; returns removed cache paths.

        Destructive. Without a hook nothing is removed.
        """
        with self._stage("clear"):
            clear = self._hook("clear_cache")
            if clear is None:
                self.log.info("lifecycle.clear.noop", detail="No cache-clearing implementation.")
                return []
            removed = list(await _invoke(clear, self.context) or [])
            self._snapshot = None
            self._filled = False
            self.log.warning("lifecycle.clear.done", removed=len(removed))
            return removed

    async def build_output(self) -> None:
        """Run the job's ``build_output`` hook against the current (or freshly read) cache."""
        with self._stage("output"):
            build = self._hook("build_output")
            if build is None:
                self.log.info("lifecycle.output.noop", detail="No final output implementation.")
                return
            snapshot = self._snapshot if self._snapshot is not None else await self._read_cache()
            await _invoke(build, self.context, snapshot)
            self.log.info("lifecycle.output.done")

    def __repr__(self) -> str:
        return f"ImportLifecycle(name={self.name!r}, state={self._state.value})"


def clear_cached_artifacts(ctx: JobContext) -> list[str]:
    """Ready-made ``clear_cache`` hook: remove everything under the job's cache root."""
    return ctx.store.clear(StorageRole.CACHE)


__all__ = [
    "ImportLifecycle",
    "LifecycleState",
    "TRANSITIONS",
    "clear_cached_artifacts",
]
