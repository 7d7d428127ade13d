"""
Cache artifacts and the cache snapshot.

A cache artifact is one file under the cache role, named from a semantic
category plus a fingerprint::

    <cache-root>/<category>/<category>-<fingerprint>.<ext>

Reading is more lenient than writing. Every file under the cache role is
an artifact: its category is the directory it sits in (empty at the top
level) and its fingerprint comes from the file stem (see
``parse_artifact_path``). So ``posts/post-a1.json``,
``user/bookmarks/bookmarks-b2.json`` and ``aliases.json`` are all loaded.
Hidden files (partial atomic writes) are not.

Artifacts are never edited in place. Re-fetching the same item writes the
same name again, which is why an interrupted fill can simply be re-run.

Jobs may declare a pydantic model per category. Cached data is validated
against it when the snapshot is read, so hooks downstream only ever see
well-formed, typed artifacts; files that fail to decode or validate are
logged and skipped.

Examples:
    >>> artifact_path("posts", "a1")
    'posts/posts-a1.json'
    >>> parse_artifact_path("posts/post-a1.json")
    ('posts', 'a1', 'json')
    >>> parse_artifact_path("aliases.json")
    ('', 'aliases', 'json')

Tags:
    cache, artifacts, validation, pydantic, sluice
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any

import pydantic
from pydantic import BaseModel

from sluice.core.content_store import ContentStore
from sluice.core.errors import StorageError, ValidationError
from sluice.core.logging import get_logger
from sluice.core.paths import StorageRole

log = get_logger(__name__)

ARTIFACT_GLOB = "**/*"

_CATEGORY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.]*$")
_UUID_TAIL = re.compile(
    r"(?:^|-)(?P<uuid>[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})$"
)


def artifact_path(category: str, fingerprint: str, ext: str = "json") -> str:
    """Relative cache path for an artifact."""
    if not _CATEGORY_PATTERN.match(category):
        raise ValidationError(f"Invalid artifact category {category!r}")
    return f"{category}/{category}-{fingerprint}.{ext.lstrip('.')}"


def parse_artifact_path(path: str) -> tuple[str, str, str] | None:
    """
    Split a relative cache path into ``(category, fingerprint, ext)``.

    The fingerprint is, in order of preference: a trailing UUID, the stem
    after a ``<category>-`` prefix, the stem after its last ``-``, or the
    whole stem. Returns ``None`` only for hidden files.
    """
    pure = PurePosixPath(path)
    if any(part.startswith(".") for part in pure.parts):
        return None
    parent = pure.parent.as_posix()
    category = "" if parent == "." else parent
    stem = pure.stem
    uuid_tail = _UUID_TAIL.search(stem)
    if uuid_tail is not None:
        fingerprint = uuid_tail["uuid"]
    elif pure.parent.name and stem.startswith(f"{pure.parent.name}-"):
        fingerprint = stem[len(pure.parent.name) + 1 :]
    else:
        fingerprint = stem.rpartition("-")[2] or stem
    return category, fingerprint, pure.suffix.lstrip(".")


@dataclass(frozen=True)
class CacheArtifact:
    """One cached, decoded (and possibly validated) artifact."""

    category: str
    fingerprint: str
    path: str
    data: Any = None

    @property
    def key(self) -> str:
        """Default destination key: the fingerprint."""
        return self.fingerprint


@dataclass
class CacheSnapshot:
    """Everything cached for one job, in cache listing order."""

    artifacts: list[CacheArtifact] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def __iter__(self) -> Iterator[CacheArtifact]:
        return iter(self.artifacts)

    def __len__(self) -> int:
        return len(self.artifacts)

    def __bool__(self) -> bool:
        return bool(self.artifacts)

    def categories(self) -> list[str]:
        return sorted({a.category for a in self.artifacts})

    def by_category(self, category: str) -> list[CacheArtifact]:
        return [a for a in self.artifacts if a.category == category]

    def get(self, category: str, fingerprint: str) -> CacheArtifact | None:
        for artifact in self.artifacts:
            if artifact.category == category and artifact.fingerprint == fingerprint:
                return artifact
        return None


def validate_artifact(
    artifact: CacheArtifact, models: Mapping[str, type[BaseModel]] | None = None
) -> CacheArtifact:
    """
    Validate an artifact's data against its category model.

    Categories without a model pass through unchanged.

    Raises:
        ValidationError: the data does not fit the model.
    """
    model = (models or {}).get(artifact.category)
    if model is None:
        return artifact
    try:
        data = model.model_validate(artifact.data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"{artifact.category} artifact failed validation: {e.error_count()} error(s)", cause=e
        ).with_context(path=artifact.path) from e
    return CacheArtifact(artifact.category, artifact.fingerprint, artifact.path, data)


def read_snapshot(
    store: ContentStore,
    models: Mapping[str, type[BaseModel]] | None = None,
    *,
    pattern: str = ARTIFACT_GLOB,
) -> CacheSnapshot:
    """
    Read every artifact under the cache role.

    Files that cannot be decoded or that fail their category model are
    skipped with one log line each and listed in ``skipped``; hidden files
    are ignored. I/O failures are not skipped; they propagate as
    ``StorageError``.
    """
    snapshot = CacheSnapshot()
    for path in store.find(pattern, StorageRole.CACHE):
        parsed = parse_artifact_path(path)
        if parsed is None:
            log.debug("artifacts.hidden", path=path)
            continue

        category, fingerprint, _ = parsed
        try:
            data = store.read(path, StorageRole.CACHE, strict=True)
            artifact = validate_artifact(CacheArtifact(category, fingerprint, path, data), models)
        except StorageError:
            raise
        except ValidationError as e:
            log.warning("artifacts.invalid", path=path, category=category, error=e.message)
            snapshot.skipped.append(path)
            continue

        snapshot.artifacts.append(artifact)

    log.debug("artifacts.snapshot", loaded=len(snapshot.artifacts), skipped=len(snapshot.skipped))
    return snapshot


__all__ = [
    "ARTIFACT_GLOB",
    "CacheArtifact",
    "CacheSnapshot",
    "artifact_path",
    "parse_artifact_path",
    "read_snapshot",
    "validate_artifact",
]
