"""
Generic records job.

Imports record exports dropped into the job's input directory::

    input/<bucket>/**/*.json      one record, or a list of records
    input/<bucket>/**/*.ndjson    one record per line (also .jsonl)
    input/<bucket>/**/*.yaml      same as JSON (also .yml)

Each record is cached as ``records/records-<fingerprint>.json`` and
published into one collection. The fingerprint and destination key come
from ``key_field`` when the record has it, otherwise from the whole record.

Job options (extra keys on ``JobOptions``):
    collection   destination collection (default ``records``)
    key_field    natural key field, e.g. ``id`` (default: none)
    pattern      input glob (default ``**/*``)

Tags:
    jobs, records, import, sluice
"""

from __future__ import annotations

from typing import Any

from pydantic import RootModel

from sluice.core import formats
from sluice.core.fingerprint import fingerprint_of
from sluice.core.paths import StorageRole
from sluice.destination.records import validate_collection_name
from sluice.framework.artifacts import CacheArtifact, CacheSnapshot
from sluice.framework.context import JobContext
from sluice.framework.lifecycle import clear_cached_artifacts
from sluice.framework.options import JobOptions
from sluice.framework.registry import register_job
from sluice.framework.schema import SchemaDeclaration

CATEGORY = "records"
OUTPUT_FILE = "records.ndjson"


class RecordArtifact(RootModel[dict[str, Any]]):
    """A cached record: any JSON object."""


@register_job("records")
class RecordsJob:
    """Import JSON, NDJSON and YAML record exports into one collection."""

    artifact_models = {CATEGORY: RecordArtifact}

    def __init__(self, options: JobOptions | None = None) -> None:
        extras = options.extras if options is not None else {}
        self.collection = validate_collection_name(extras.get("collection", "records"))
        self.key_field: str | None = extras.get("key_field")
        self.pattern: str = extras.get("pattern", "**/*")

    def declare_schema(self) -> SchemaDeclaration:
        return SchemaDeclaration(collections=[self.collection])

    def fingerprint(self, record: dict[str, Any]) -> str:
        """Natural keys are fingerprinted in their string form, the same form used as the destination key."""
        if self.key_field and record.get(self.key_field) is not None:
            return fingerprint_of(str(record[self.key_field]))
        return fingerprint_of(record)

    def key(self, artifact: CacheArtifact, record: dict[str, Any]) -> str:
        if self.key_field and record.get(self.key_field) is not None:
            return str(record[self.key_field])
        return artifact.fingerprint

    async def fetch(self, ctx: JobContext) -> None:
        exports = [
            path for path in ctx.store.find(self.pattern, StorageRole.INPUT) if formats.codec_for(path).structured
        ]
        if not exports:
            ctx.log.info("records.fetch.empty", pattern=self.pattern)
            return

        cached = 0
        for path in exports:
            with ctx.item("export", path):
                data = ctx.store.read(path, StorageRole.INPUT, strict=True)
                records = data if isinstance(data, list) else [data]
                for index, record in enumerate(records):
                    if not isinstance(record, dict):
                        ctx.skip("record", f"{path}#{index}", f"not an object: {type(record).__name__}")
                        continue
                    ctx.write_artifact(CATEGORY, record, fingerprint=self.fingerprint(record))
                    cached += 1
        ctx.log.info("records.fetch.done", exports=len(exports), cached=cached)

    async def publish(self, ctx: JobContext, artifact: CacheArtifact) -> None:
        if artifact.category != CATEGORY:
            ctx.skip(artifact.category, artifact.fingerprint, "unknown category")
            return
        record = artifact.data.root if isinstance(artifact.data, RecordArtifact) else artifact.data
        key = self.key(artifact, record)
        with ctx.item("record", key):
            ctx.upsert(self.collection, key, record)

    async def build_output(self, ctx: JobContext, snapshot: CacheSnapshot) -> None:
        records = []
        for artifact in snapshot.by_category(CATEGORY):
            record = artifact.data.root if isinstance(artifact.data, RecordArtifact) else artifact.data
            records.append(record)
        if not records:
            ctx.log.info("records.output.empty")
            return
        path = ctx.store.write(OUTPUT_FILE, records, StorageRole.OUTPUT)
        ctx.log.info("records.output.done", path=str(path), records=len(records))

    clear_cache = staticmethod(clear_cached_artifacts)
