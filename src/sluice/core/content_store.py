"""
Role-aware, format-aware file storage.

``ContentStore`` is the only component that touches the filesystem on
behalf of a job. Every operation takes a logical path and an optional
storage role; ``PathResolver`` decides the physical location and
``sluice.core.formats`` decides the encoding from the extension.

Manifesto:
    - **Callers never manage directories:** writes create parents on demand
    - **Absence is a value:** lenient reads return ``None``, strict reads raise ``NotFoundError``
    - **Idempotent writes:** same content, same path → same observable state
    - **No retries here:** I/O failures surface as ``StorageError``; retry
      policy belongs to the fetch collaborator

Architecture:
    ::

        write_cache("posts/post-a1.json", {...})
              │
              ▼
        PathResolver.resolve(path, CACHE) ─► base/cache/<bucket>/posts/post-a1.json
              │
              ▼
        formats.encode(".json") ─► temp file ─► os.replace (atomic)

Examples:
    >>> store = ContentStore(PathResolver(base=tmp, bucket="medium"))
    >>> store.write_cache("posts/post-a1.json", {"id": "a1"})
    >>> store.find_cache("posts/*.json")
    ['posts/post-a1.json']
    >>> store.read_cache("posts/post-a1.json")
    {'id': 'a1'}
    >>> store.read_cache("posts/missing.json") is None
    True

Tags:
    storage, cache, filesystem, serialization, sluice
"""

from __future__ import annotations

import os
import shutil
import tempfile
from functools import partialmethod
from pathlib import Path
from typing import Any

from sluice.core import formats
from sluice.core.errors import NotFoundError, StorageError
from sluice.core.logging import get_logger
from sluice.core.paths import PathLike, PathResolver, StorageRole

log = get_logger(__name__)

RoleArg = StorageRole | str | None


class ContentStore:
    """
    Filesystem-backed store for input, cache and output artifacts.

    Args:
        resolver: Path resolver for the owning job.
        strict: Default read mode. In strict mode a missing artifact raises
            ``NotFoundError`` instead of returning ``None``.
    """

    def __init__(self, resolver: PathResolver | None = None, *, strict: bool = False) -> None:
        self._resolver = resolver or PathResolver()
        self.strict = strict

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    def path(self, path: PathLike, role: RoleArg = None) -> Path:
        """Resolved location of ``path`` under ``role``."""
        return self._resolver.resolve(path, role)

    def root(self, role: RoleArg = None) -> Path:
        return self._resolver.root(role)

    # ------------------------------------------------------------------ #
    # Core operations
    # ------------------------------------------------------------------ #

    def exists(self, path: PathLike, role: RoleArg = None) -> bool:
        """Whether a file or directory exists at ``path``."""
        return self.path(path, role).exists()

    def find(self, pattern: str, role: RoleArg = None) -> list[str]:
        """
        Files under the role root matching a glob pattern.

        Returns POSIX paths relative to the role root, sorted. ``**``
        matches across directories. A missing root yields an empty list.
        """
        root = self.root(role)
        if not root.is_dir():
            return []
        try:
            matches = [p for p in root.glob(pattern) if p.is_file()]
        except OSError as e:
            raise StorageError(f"Cannot list {root}", cause=e).with_context(path=str(root)) from e
        return sorted(p.relative_to(root).as_posix() for p in matches)

    def read(self, path: PathLike, role: RoleArg = None, *, strict: bool | None = None) -> Any:
        """
        Read and decode an artifact.

        Structured extensions decode to native values, text extensions to
        ``str``, everything else to ``bytes``.

        Raises:
            NotFoundError: the artifact is missing and the read is strict
            StorageError: the artifact exists but cannot be read
            ValidationError: the artifact cannot be decoded
        """
        target = self.path(path, role)
        strict = self.strict if strict is None else strict
        try:
            data = target.read_bytes()
        except FileNotFoundError as e:
            if strict:
                raise NotFoundError(f"No artifact at {target}", path=str(target), cause=e) from e
            log.debug("store.read.missing", path=str(target))
            return None
        except OSError as e:
            raise StorageError(f"Cannot read {target}", cause=e).with_context(path=str(target)) from e
        return formats.decode(target, data)

    def write(self, path: PathLike, value: Any, role: RoleArg = None) -> Path:
        """
        Encode ``value`` and write it at ``path``, creating parent directories.

        The write goes to a temporary sibling first and is moved into
        place, so an interrupted process never leaves a torn artifact.

        Returns:
            The resolved path written.
        """
        target = self.path(path, role)
        data = formats.encode(target, value)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Cannot write {target}", cause=e).with_context(path=str(target)) from e
        log.debug("store.write", path=str(target), bytes=len(data))
        return target

    def delete(self, path: PathLike, role: RoleArg = None) -> bool:
        """Delete a file or directory tree. Returns ``False`` if nothing was there."""
        target = self.path(path, role)
        try:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Cannot delete {target}", cause=e).with_context(path=str(target)) from e
        log.debug("store.delete", path=str(target))
        return True

    def clear(self, role: StorageRole | str) -> list[str]:
        """Delete every file under the role root; returns the removed relative paths."""
        removed = self.find("**/*", role)
        root = self.root(role)
        if root.is_dir():
            try:
                shutil.rmtree(root)
            except OSError as e:
                raise StorageError(f"Cannot clear {root}", cause=e).with_context(path=str(root)) from e
        log.info("store.clear", root=str(root), removed=len(removed))
        return removed

    # ------------------------------------------------------------------ #
    # Role-prefixed forms
    # ------------------------------------------------------------------ #

    exists_input = partialmethod(exists, role=StorageRole.INPUT)
    find_input = partialmethod(find, role=StorageRole.INPUT)
    read_input = partialmethod(read, role=StorageRole.INPUT)
    write_input = partialmethod(write, role=StorageRole.INPUT)
    delete_input = partialmethod(delete, role=StorageRole.INPUT)

    exists_cache = partialmethod(exists, role=StorageRole.CACHE)
    find_cache = partialmethod(find, role=StorageRole.CACHE)
    read_cache = partialmethod(read, role=StorageRole.CACHE)
    write_cache = partialmethod(write, role=StorageRole.CACHE)
    delete_cache = partialmethod(delete, role=StorageRole.CACHE)

    exists_output = partialmethod(exists, role=StorageRole.OUTPUT)
    find_output = partialmethod(find, role=StorageRole.OUTPUT)
    read_output = partialmethod(read, role=StorageRole.OUTPUT)
    write_output = partialmethod(write, role=StorageRole.OUTPUT)
    delete_output = partialmethod(delete, role=StorageRole.OUTPUT)

    def __repr__(self) -> str:
        return f"ContentStore(base={self._resolver.base!s}, bucket={self._resolver.bucket!r})"


__all__ = ["ContentStore"]
