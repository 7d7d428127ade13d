"""
Bucketed path resolution.

Every migration job sees three logical storage roles: ``input`` (raw
exports dropped off by a human or another tool), ``cache`` (normalized
artifacts written by the fetch stage) and ``output`` (final files built by
the job). ``PathResolver`` turns ``(relative path, role)`` into a concrete
location using one rule, so the rest of the system never decides where
files live.

Resolution rule::

    root(role)  = [base /] role-name [/ bucket]      (or the role override)
    resolve(p)  = p                                  if p is absolute
                = p                                  if p already starts with root(role)
                = root(role) / p                     otherwise

Resolution is pure path algebra; the filesystem is never touched.

Examples:
    >>> r = PathResolver(base="base", bucket="medium")
    >>> str(r.resolve("posts/post-a1.json", StorageRole.CACHE))
    'base/cache/medium/posts/post-a1.json'
    >>> r.resolve(r.resolve("x.json", "cache"), "cache") == r.resolve("x.json", "cache")
    True

Tags:
    paths, storage, buckets, sluice
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath

from sluice.core.errors import ConfigError

PathLike = str | PurePath

_BUCKET_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class StorageRole(str, Enum):
    """The three storage roles of a job."""

    INPUT = "input"
    CACHE = "cache"
    OUTPUT = "output"


def validate_bucket(bucket: str) -> str:
    """Return ``bucket`` if it is a single filesystem-safe path segment."""
    if not _BUCKET_PATTERN.match(bucket) or bucket in (".", ".."):
        raise ConfigError(f"Invalid bucket name {bucket!r}: use letters, digits, '.', '_' or '-'").with_context(
            bucket=bucket
        )
    return bucket


def _as_role(role: StorageRole | str | None) -> StorageRole | None:
    if role is None or isinstance(role, StorageRole):
        return role
    try:
        return StorageRole(role)
    except ValueError:
        raise ConfigError(f"Unknown storage role {role!r}") from None


@dataclass(frozen=True)
class PathResolver:
    """
    Resolves logical paths for one job.

    Args:
        base: Directory every role root is nested under. ``None`` keeps role
            roots relative to the working directory.
        bucket: Job namespace appended to each default role root.
        overrides: Per-role root replacing ``role-name/bucket`` entirely. A
            relative override is nested under ``base``; an absolute one is
            used as-is.
    """

    base: Path | None = None
    bucket: str | None = None
    overrides: dict[StorageRole, Path] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.base is not None and not isinstance(self.base, Path):
            object.__setattr__(self, "base", Path(self.base))
        if self.bucket is not None:
            validate_bucket(self.bucket)
        normalized = {_as_role(role): Path(path) for role, path in self.overrides.items() if path is not None}
        object.__setattr__(self, "overrides", normalized)

    def root(self, role: StorageRole | str | None = None) -> Path:
        """Root directory for ``role``; the bare base directory when ``role`` is ``None``."""
        role = _as_role(role)
        base = self.base if self.base is not None else Path()

        if role is None:
            return base

        override = self.overrides.get(role)
        if override is not None:
            return override if override.is_absolute() else base / override

        root = base / role.value
        if self.bucket:
            root = root / self.bucket
        return root

    def resolve(self, path: PathLike, role: StorageRole | str | None = None) -> Path:
        """Resolve ``path`` against the root of ``role``.

        Absolute paths are returned unchanged, as are paths that already
        start with the role root.
        """
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate

        root = self.root(role)
        if root.parts and candidate.parts[: len(root.parts)] == root.parts:
            return candidate
        return root / candidate

    def relative_to_root(self, path: PathLike, role: StorageRole | str | None = None) -> str:
        """Express a resolved path relative to the role root, in POSIX form."""
        resolved = self.resolve(path, role)
        return resolved.relative_to(self.root(role)).as_posix()

    def with_bucket(self, bucket: str | None) -> PathResolver:
        """Copy of this resolver for another bucket."""
        return PathResolver(base=self.base, bucket=bucket, overrides=dict(self.overrides))


__all__ = ["PathLike", "PathResolver", "StorageRole", "validate_bucket"]
