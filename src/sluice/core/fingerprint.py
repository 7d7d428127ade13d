"""
Deterministic content fingerprints.

A fingerprint names a cache artifact and, usually, the destination record
built from it. Because the same logical input always yields the same
fingerprint, re-running a fetch lands on the same cache file and the same
destination key, which is what makes a job idempotent without keeping an
"already done" ledger.

Manifesto:
    - **Canonical:** Key order, tuple-vs-list and set ordering never change the result
    - **Deterministic:** Same input, same namespace → same identifier, across processes
    - **Collision-resistant:** SHA-256 over the canonical encoding
    - **Namespaced:** The identifier is a UUIDv5 of the digest inside a namespace

Architecture:
    ::

        value ──canonicalize──► bytes ──sha256──► digest ──uuid5(namespace)──► fingerprint
        (none) ───────────────────────────────────────────────uuid4──────────► random id

Examples:
    >>> fingerprint_of({"b": 1, "a": 2}) == fingerprint_of({"a": 2, "b": 1})
    True
    >>> fingerprint_of("https://example.com/post/1") == fingerprint_of("https://example.com/post/1")
    True
    >>> fingerprint_of() == fingerprint_of()
    False

Tags:
    hashing, fingerprint, idempotency, deduplication, sluice
"""

from __future__ import annotations

import base64
import dataclasses
import datetime as dt
import hashlib
import json
import uuid
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any

from pydantic import BaseModel

DEFAULT_NAMESPACE = uuid.UUID("9fc3e7e5-59d7-4d55-afa0-98a978f49bab")


def _normalize(value: Any) -> Any:
    """Reduce ``value`` to JSON-native types with a representation-independent shape."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    if isinstance(value, Enum):
        return _normalize(value.value)
    if isinstance(value, BaseModel):
        return _normalize(value.model_dump(mode="json"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _normalize(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {_key(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [_normalize(v) for v in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True, ensure_ascii=False))
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return {"$bytes": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, (Decimal, uuid.UUID, PurePath)):
        return str(value)
    raise TypeError(f"Cannot fingerprint value of type {type(value).__name__}")


def _key(key: Any) -> str:
    if isinstance(key, Enum):
        key = key.value
    if not isinstance(key, str):
        raise TypeError(f"Cannot fingerprint mapping key of type {type(key).__name__}; keys must be strings")
    return key


def canonicalize(value: Any) -> bytes:
    """
    Canonical byte encoding of ``value``.

    Mappings are key-sorted and must have string keys. Tuples encode like
    lists, sets are sorted, integral floats encode like ints. Scalars are
    wrapped as ``{"data": value}`` so a bare string and a one-key mapping
    never share an encoding by accident of shape.
    """
    normalized = _normalize(value)
    if not isinstance(normalized, (dict, list)):
        normalized = {"data": normalized}
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def content_hash(value: Any, length: int = 64) -> str:
    """Hex SHA-256 of the canonical encoding, truncated to ``length`` characters."""
    return hashlib.sha256(canonicalize(value)).hexdigest()[:length]


def _namespace(namespace: uuid.UUID | str | None) -> uuid.UUID:
    if namespace is None:
        return DEFAULT_NAMESPACE
    if isinstance(namespace, uuid.UUID):
        return namespace
    return uuid.uuid5(DEFAULT_NAMESPACE, namespace)


def fingerprint_of(value: Any = None, *, namespace: uuid.UUID | str | None = None) -> str:
    """
    Fingerprint ``value``, or return a random identifier when there is no value.

    Args:
        value: Any JSON-like structure, pydantic model, dataclass or scalar.
            ``None`` (or no argument) means "no value".
        namespace: UUID or name scoping the identifier; defaults to the
            sluice namespace. A string is mapped to a UUID deterministically.

    Returns:
        UUID string. Deterministic for a given ``(value, namespace)``;
        random (uuid4) when ``value`` is ``None``.
    """
    if value is None:
        return str(uuid.uuid4())
    return str(uuid.uuid5(_namespace(namespace), content_hash(value)))


__all__ = ["DEFAULT_NAMESPACE", "canonicalize", "content_hash", "fingerprint_of"]
