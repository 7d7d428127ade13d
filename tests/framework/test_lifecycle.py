"""
Tests for sluice.framework.lifecycle.ImportLifecycle.

Tests cover:
- Cache fallback (fill exactly once when the cache is empty)
- Fill failures propagate and are never retried
- End-to-end publishing and resumption after interruption
- Per-item isolation and the run summary
- Schema reconciliation, including that destroy is never automatic
- Default "log and do nothing" hooks
- State transitions
"""

import pytest

from sluice.core.errors import ConfigError, LifecycleError, PublishError, SourceFetchError
from sluice.core.paths import StorageRole
from sluice.destination import CollectionKind, InMemoryDestination
from sluice.framework.artifacts import CacheArtifact
from sluice.framework.lifecycle import ImportLifecycle, LifecycleState, clear_cached_artifacts
from sluice.framework.options import FileOptions, JobOptions
from sluice.framework.schema import SchemaDeclaration

ITEMS = [
    {"id": "a1", "title": "First"},
    {"id": "b2", "title": "Second"},
    {"id": "c3", "title": "Third"},
]


class PostsJob:
    """Fetches ITEMS into the cache and publishes them to ``post``."""

    collections = ["post"]

    def __init__(self, items=ITEMS, fail_after=None):
        self.items = items
        self.fail_after = fail_after
        self.fetch_calls = 0

    async def fetch(self, ctx):
        self.fetch_calls += 1
        for index, item in enumerate(self.items):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionError("connection reset by peer")
            ctx.write_artifact("posts", item, fingerprint=item["id"])

    async def publish(self, ctx, artifact):
        with ctx.item("post", artifact.key):
            ctx.upsert("post", artifact.key, artifact.data)


class Events:
    """Logging sink collecting (event, fields)."""

    def __init__(self):
        self.records = []

    def __call__(self, event, **fields):
        self.records.append((event, fields))

    def named(self, event):
        return [fields for name, fields in self.records if name == event]


@pytest.fixture
def options(tmp_path):
    return JobOptions(name="medium", files=FileOptions(base=tmp_path))


@pytest.fixture
def dest():
    return InMemoryDestination()


@pytest.fixture
def events():
    return Events()


def cache_files(lifecycle):
    return lifecycle.store.find("**/*", StorageRole.CACHE)


class TestLoadCache:
    """Tests for load_cache and its fill fallback."""

    @pytest.mark.asyncio
    async def test_empty_cache_fills_exactly_once(self, options):
        """An empty cache triggers the fetch hook once before returning."""
        job = PostsJob()
        lifecycle = ImportLifecycle(options, job)

        snapshot = await lifecycle.load_cache()

        assert job.fetch_calls == 1
        assert [a.fingerprint for a in snapshot] == ["a1", "b2", "c3"]
        assert lifecycle.state is LifecycleState.LOADED

    @pytest.mark.asyncio
    async def test_populated_cache_does_not_fetch(self, options):
        await ImportLifecycle(options, PostsJob()).fill_cache()
        job = PostsJob()

        snapshot = await ImportLifecycle(options, job).load_cache()

        assert job.fetch_calls == 0
        assert len(snapshot) == 3

    @pytest.mark.asyncio
    async def test_fetch_that_caches_nothing_is_not_repeated(self, options):
        job = PostsJob(items=[])
        lifecycle = ImportLifecycle(options, job)

        assert len(await lifecycle.load_cache()) == 0
        assert len(await lifecycle.load_cache()) == 0
        assert job.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_fill_failure_propagates_once(self, options):
        """A failing fill aborts the load; it is not retried."""
        job = PostsJob(fail_after=0)
        lifecycle = ImportLifecycle(options, job)

        with pytest.raises(SourceFetchError) as exc_info:
            await lifecycle.load_cache()

        assert job.fetch_calls == 1
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert exc_info.value.context.job == "medium"
        assert exc_info.value.context.stage == "fill"
        assert lifecycle.state is LifecycleState.FAILED

    @pytest.mark.asyncio
    async def test_sluice_errors_from_fetch_not_rewrapped(self, options):
        class Failing:
            def fetch(self, ctx):
                raise SourceFetchError("rate limited")

        with pytest.raises(SourceFetchError, match="rate limited"):
            await ImportLifecycle(options, Failing()).fill_cache()

    @pytest.mark.asyncio
    async def test_custom_load_hook(self, options):
        class Custom:
            def load(self, ctx):
                return [CacheArtifact("posts", "a1", "posts/posts-a1.json", {"id": "a1"})]

        snapshot = await ImportLifecycle(options, Custom()).load_cache()

        assert [a.key for a in snapshot] == ["a1"]

    @pytest.mark.asyncio
    async def test_custom_load_hook_bad_items(self, options):
        class Custom:
            def load(self, ctx):
                return [{"id": "a1"}]

        with pytest.raises(ConfigError):
            await ImportLifecycle(options, Custom()).load_cache()

    @pytest.mark.asyncio
    async def test_loads_every_file_written_to_the_cache(self, options, dest):
        """Files named with a singular prefix or at the top level are loaded, not re-fetched."""

        class Handwritten(PostsJob):
            async def fetch(self, ctx):
                self.fetch_calls += 1
                for item in self.items:
                    ctx.store.write(f"posts/post-{item['id']}.json", item, StorageRole.CACHE)
                ctx.store.write("aliases.json", {"old": "a1"}, StorageRole.CACHE)

            async def publish(self, ctx, artifact):
                if artifact.category == "posts":
                    await super().publish(ctx, artifact)

        await ImportLifecycle(options, Handwritten()).fill_cache()
        job = Handwritten()
        lifecycle = ImportLifecycle(options, job, destination=dest)

        summary = await lifecycle.do_import()

        assert job.fetch_calls == 0
        assert len(lifecycle.snapshot) == 4
        assert lifecycle.snapshot.get("", "aliases").data == {"old": "a1"}
        assert sorted(dest.keys("post")) == ["a1", "b2", "c3"]
        assert summary.skipped == 0

    @pytest.mark.asyncio
    async def test_cache_of_invalid_files_is_not_refetched(self, options):
        """A populated cache is never treated as empty, even if nothing in it validates."""
        from pydantic import BaseModel

        class Post(BaseModel):
            id: str
            title: str

        class Typed(PostsJob):
            artifact_models = {"posts": Post}

        await ImportLifecycle(options, PostsJob(items=[{"id": "a1"}])).fill_cache()
        job = Typed()

        snapshot = await ImportLifecycle(options, job).load_cache()

        assert job.fetch_calls == 0
        assert len(snapshot) == 0
        assert snapshot.skipped == ["posts/posts-a1.json"]

    @pytest.mark.asyncio
    async def test_cleared_cache_is_refilled(self, options, dest):
        """After clear_cache the next load fetches again, once."""

        class Clearable(PostsJob):
            clear_cache = staticmethod(clear_cached_artifacts)

        job = Clearable(items=ITEMS[:2])
        lifecycle = ImportLifecycle(options, job, destination=dest)
        await lifecycle.do_import()

        assert len(await lifecycle.clear_cache()) == 2
        snapshot = await lifecycle.load_cache()
        await lifecycle.load_cache()

        assert len(snapshot) == 2
        assert job.fetch_calls == 2

    @pytest.mark.asyncio
    async def test_new_run_after_done_may_refill(self, options, dest):
        job = PostsJob()
        lifecycle = ImportLifecycle(options, job, destination=dest)
        await lifecycle.do_import()
        lifecycle.store.clear(StorageRole.CACHE)

        summary = await lifecycle.do_import()

        assert job.fetch_calls == 2
        assert summary.succeeded == 3


class TestEndToEnd:
    """Full runs, including interrupted and repeated ones."""

    @pytest.mark.asyncio
    async def test_uninterrupted_run(self, options, dest):
        lifecycle = ImportLifecycle(options, PostsJob(), destination=dest)

        summary = await lifecycle.do_import()

        assert len(cache_files(lifecycle)) == 3
        assert sorted(dest.keys("post")) == ["a1", "b2", "c3"]
        assert (summary.succeeded, summary.failed, summary.skipped) == (3, 0, 0)
        assert lifecycle.state is LifecycleState.DONE

    @pytest.mark.asyncio
    async def test_killed_after_fill_then_resumed(self, options, dest):
        """Fill in one process, import in another: same final state."""
        await ImportLifecycle(options, PostsJob()).fill_cache()

        resumed = ImportLifecycle(options, PostsJob(), destination=dest)
        await resumed.load_cache()
        await resumed.do_import()

        assert cache_files(resumed) == [
            "posts/posts-a1.json",
            "posts/posts-b2.json",
            "posts/posts-c3.json",
        ]
        assert dest.count("post") == 3

    @pytest.mark.asyncio
    async def test_killed_mid_fill_then_refilled(self, options, dest):
        """Re-running an interrupted fill overwrites by name, never duplicates."""
        with pytest.raises(SourceFetchError):
            await ImportLifecycle(options, PostsJob(fail_after=2)).fill_cache()

        lifecycle = ImportLifecycle(options, PostsJob(), destination=dest)
        assert len(cache_files(lifecycle)) == 2

        await lifecycle.fill_cache()
        await lifecycle.do_import()

        assert len(cache_files(lifecycle)) == 3
        assert sorted(dest.keys("post")) == ["a1", "b2", "c3"]

    @pytest.mark.asyncio
    async def test_killed_mid_publish_then_resumed(self, options, dest):
        """A publish aborted part-way is completed by running again."""

        class Crashing(PostsJob):
            async def publish(self, ctx, artifact):
                if artifact.key == "b2":
                    raise RuntimeError("killed")
                await super().publish(ctx, artifact)

        with pytest.raises(RuntimeError, match="killed"):
            await ImportLifecycle(options, Crashing(), destination=dest).do_import()
        assert dest.keys("post") == ["a1"]

        summary = await ImportLifecycle(options, PostsJob(), destination=dest).do_import()

        assert sorted(dest.keys("post")) == ["a1", "b2", "c3"]
        assert summary.succeeded == 3

    @pytest.mark.asyncio
    async def test_repeated_runs_are_idempotent(self, options, dest):
        for _ in range(3):
            lifecycle = ImportLifecycle(options, PostsJob(), destination=dest)
            await lifecycle.run()

        assert len(cache_files(lifecycle)) == 3
        assert dest.count("post") == 3


class TestPublishing:
    """Per-item isolation, summaries and logging."""

    @pytest.mark.asyncio
    async def test_failed_record_does_not_abort_batch(self, options, dest, events):
        class PartlyBroken(PostsJob):
            async def publish(self, ctx, artifact):
                collection = "missing" if artifact.key == "b2" else "post"
                with ctx.item("post", artifact.key):
                    ctx.upsert(collection, artifact.key, artifact.data)

        lifecycle = ImportLifecycle(options, PartlyBroken(), destination=dest, sink=events)
        summary = await lifecycle.do_import()

        assert (summary.succeeded, summary.failed) == (2, 1)
        assert summary.failures[0].key == "b2"
        assert summary.failures[0].error_type == "PublishError"
        assert lifecycle.state is LifecycleState.DONE

        failed = events.named("lifecycle.item.failed")
        assert len(failed) == 1
        assert failed[0]["key"] == "b2"
        assert failed[0]["job"] == "medium"

    @pytest.mark.asyncio
    async def test_summary_line(self, options, dest, events):
        await ImportLifecycle(options, PostsJob(), destination=dest, sink=events).do_import()

        (summary,) = events.named("lifecycle.import.summary")
        assert summary["succeeded"] == 3
        assert summary["failed"] == 0
        assert summary["skipped"] == 0

    @pytest.mark.asyncio
    async def test_fallback_fill_counted_separately(self, options, dest, events):
        """Items isolated during a fallback fill do not inflate the publish summary."""

        class Isolating(PostsJob):
            async def fetch(self, ctx):
                self.fetch_calls += 1
                for item in self.items:
                    with ctx.item("page", item["id"]):
                        ctx.write_artifact("posts", item, fingerprint=item["id"])

        lifecycle = ImportLifecycle(options, Isolating(), destination=dest, sink=events)

        summary = await lifecycle.do_import()

        assert (summary.succeeded, summary.failed, summary.skipped) == (3, 0, 0)
        assert events.named("lifecycle.fill.done")[0]["succeeded"] == 3
        assert events.named("lifecycle.import.summary")[0]["succeeded"] == 3

    @pytest.mark.asyncio
    async def test_unisolated_error_aborts(self, options, dest):
        """Without ctx.item() a publish error fails the job."""

        class Unisolated(PostsJob):
            async def publish(self, ctx, artifact):
                ctx.upsert("missing", artifact.key, artifact.data)

        lifecycle = ImportLifecycle(options, Unisolated(), destination=dest)

        with pytest.raises(PublishError) as exc_info:
            await lifecycle.do_import()

        assert exc_info.value.context.stage == "publish"
        assert lifecycle.state is LifecycleState.FAILED

    @pytest.mark.asyncio
    async def test_hooks_without_item_scopes_counted(self, options, dest):
        class Plain(PostsJob):
            def publish(self, ctx, artifact):
                ctx.push({**artifact.data, "_collection": "post", "_key": artifact.key})

        summary = await ImportLifecycle(options, Plain(), destination=dest).do_import()

        assert summary.succeeded == 3

    @pytest.mark.asyncio
    async def test_skips_counted(self, options, dest, events):
        class Skipping(PostsJob):
            async def publish(self, ctx, artifact):
                if artifact.data["title"] == "Second":
                    ctx.skip("post", artifact.key, "draft")
                    return
                await super().publish(ctx, artifact)

        summary = await ImportLifecycle(options, Skipping(), destination=dest, sink=events).do_import()

        assert (summary.succeeded, summary.skipped) == (2, 1)
        assert events.named("lifecycle.item.skipped")[0]["reason"] == "draft"

    @pytest.mark.asyncio
    async def test_invalid_artifacts_counted_as_skipped(self, options, dest):
        from pydantic import BaseModel

        class Post(BaseModel):
            id: str
            title: str

        class Typed(PostsJob):
            artifact_models = {"posts": Post}

            async def publish(self, ctx, artifact):
                assert isinstance(artifact.data, Post)
                with ctx.item("post", artifact.key):
                    ctx.upsert("post", artifact.key, artifact.data.model_dump())

        job = Typed(items=[*ITEMS, {"id": "d4"}])
        summary = await ImportLifecycle(options, job, destination=dest).do_import()

        assert (summary.succeeded, summary.skipped) == (3, 1)
        assert dest.count("post") == 3


class TestSchema:
    """Schema reconciliation through the lifecycle."""

    @pytest.mark.asyncio
    async def test_ensure_declared(self, options, dest):
        lifecycle = ImportLifecycle(options, PostsJob(), destination=dest)

        assert await lifecycle.ensure_schema() == {"post": True}
        assert await lifecycle.ensure_schema() == {"post": False}
        assert lifecycle.state is LifecycleState.SCHEMA_READY

    @pytest.mark.asyncio
    async def test_declare_schema_hook(self, options, dest):
        class Declared:
            def declare_schema(self):
                return SchemaDeclaration(collections=["user"], relationships=["follows"])

        await ImportLifecycle(options, Declared(), destination=dest).ensure_schema()

        assert dest.collection_kind("follows") is CollectionKind.EDGE

    @pytest.mark.asyncio
    async def test_declare_schema_mapping(self, options, dest):
        class Declared:
            def declare_schema(self):
                return {"collections": ["user"]}

        assert await ImportLifecycle(options, Declared(), destination=dest).ensure_schema() == {"user": True}

    @pytest.mark.asyncio
    async def test_declared_without_destination(self, options):
        with pytest.raises(ConfigError):
            await ImportLifecycle(options, PostsJob()).ensure_schema()

    @pytest.mark.asyncio
    async def test_import_never_destroys(self, options, dest):
        """Re-running an import keeps records published by other runs."""
        dest.create_collection("post", CollectionKind.DOCUMENT)
        dest.upsert("post", "zz", {"title": "kept"})

        await ImportLifecycle(options, PostsJob(), destination=dest).do_import()

        assert dest.get("post", "zz") == {"title": "kept"}
        assert dest.count("post") == 4

    @pytest.mark.asyncio
    async def test_destroy_explicit(self, options, dest):
        lifecycle = ImportLifecycle(options, PostsJob(), destination=dest)
        await lifecycle.do_import()

        assert await lifecycle.destroy_schema() == {"post": True}
        assert await lifecycle.destroy_schema() == {"post": False}
        assert dest.collection_kind("post") is None


class TestDefaults:
    """Missing hooks log and do nothing."""

    @pytest.mark.asyncio
    async def test_no_hooks(self, options, events):
        lifecycle = ImportLifecycle(options, sink=events)

        await lifecycle.fill_cache()
        summary = await lifecycle.do_import()

        assert summary.total == 0
        assert await lifecycle.clear_cache() == []
        await lifecycle.build_output()
        assert events.named("lifecycle.fill.noop")
        assert events.named("lifecycle.import.noop")
        assert events.named("lifecycle.clear.noop")
        assert events.named("lifecycle.output.noop")

    @pytest.mark.asyncio
    async def test_fetch_only_job(self, options):
        """A job that only fetches can still be imported without a destination."""

        class FetchOnly:
            def fetch(self, ctx):
                ctx.write_artifact("posts", {"id": "a1"})

        lifecycle = ImportLifecycle(options, FetchOnly())
        summary = await lifecycle.do_import()

        assert summary.total == 0
        assert len(cache_files(lifecycle)) == 1

    @pytest.mark.asyncio
    async def test_name_only_options(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        lifecycle = ImportLifecycle("twitter")

        assert lifecycle.store.root(StorageRole.CACHE).as_posix() == "cache/twitter"


class TestClearAndOutput:
    """clear_cache and build_output stages."""

    @pytest.mark.asyncio
    async def test_clear_cached_artifacts(self, options):
        class Clearable(PostsJob):
            clear_cache = staticmethod(clear_cached_artifacts)

        lifecycle = ImportLifecycle(options, Clearable())
        await lifecycle.fill_cache()

        removed = await lifecycle.clear_cache()

        assert removed == ["posts/posts-a1.json", "posts/posts-b2.json", "posts/posts-c3.json"]
        assert cache_files(lifecycle) == []

    @pytest.mark.asyncio
    async def test_build_output_gets_snapshot(self, options):
        class Exporting(PostsJob):
            async def build_output(self, ctx, snapshot):
                titles = [a.data["title"] for a in snapshot]
                ctx.store.write("titles.txt", "\n".join(titles), StorageRole.OUTPUT)

        lifecycle = ImportLifecycle(options, Exporting())
        await lifecycle.fill_cache()
        await lifecycle.build_output()

        assert lifecycle.store.read_output("titles.txt") == "First\nSecond\nThird"


class TestStates:
    """State machine checks."""

    @pytest.mark.asyncio
    async def test_fill_returns_to_idle(self, options):
        lifecycle = ImportLifecycle(options, PostsJob())
        await lifecycle.fill_cache()

        assert lifecycle.state is LifecycleState.IDLE

    @pytest.mark.asyncio
    async def test_reentrant_fill_rejected(self, options):
        class Reentrant:
            async def fetch(self, ctx):
                await lifecycle.fill_cache()

        lifecycle = ImportLifecycle(options, Reentrant())

        with pytest.raises(LifecycleError):
            await lifecycle.fill_cache()
        assert lifecycle.state is LifecycleState.FAILED

    @pytest.mark.asyncio
    async def test_failed_job_can_be_rerun(self, options, dest):
        job = PostsJob(fail_after=1)
        lifecycle = ImportLifecycle(options, job, destination=dest)

        with pytest.raises(SourceFetchError):
            await lifecycle.fill_cache()

        job.fail_after = None
        await lifecycle.fill_cache()
        summary = await lifecycle.do_import()

        assert summary.succeeded == 3
        assert lifecycle.state is LifecycleState.DONE
