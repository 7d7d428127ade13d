"""
Sluice framework - the import lifecycle and its collaborators.

This module provides:
- ImportLifecycle and its state machine
- JobContext handed to job hooks, with per-item isolation
- SchemaManager for destination collections
- Cache artifacts and snapshots
- Job options and the job registry
"""

from sluice.framework.artifacts import CacheArtifact, CacheSnapshot, artifact_path, read_snapshot
from sluice.framework.context import JobContext, JobLogger
from sluice.framework.lifecycle import ImportLifecycle, LifecycleState, clear_cached_artifacts
from sluice.framework.options import FileOptions, JobOptions, ScraperOptions, SqlSourceOptions
from sluice.framework.registry import clear_registry, get_job, list_jobs, register_job
from sluice.framework.schema import CollectionState, SchemaDeclaration, SchemaManager
from sluice.framework.summary import RunSummary

__all__ = [
    # Lifecycle
    "ImportLifecycle",
    "LifecycleState",
    "clear_cached_artifacts",
    "JobContext",
    "JobLogger",
    "RunSummary",
    # Artifacts
    "CacheArtifact",
    "CacheSnapshot",
    "artifact_path",
    "read_snapshot",
    # Schema
    "CollectionState",
    "SchemaDeclaration",
    "SchemaManager",
    # Options
    "FileOptions",
    "JobOptions",
    "ScraperOptions",
    "SqlSourceOptions",
    # Registry
    "register_job",
    "get_job",
    "list_jobs",
    "clear_registry",
]
