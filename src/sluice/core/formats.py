"""Extension-driven codecs for stored artifacts.

The file extension alone decides how a stored artifact is (de)serialized:

=================  ===========  =======================================
Extension          Kind         Python value
=================  ===========  =======================================
.json              document     any JSON value (2-space indented)
.yaml .yml         document     any YAML value (safe dump/load)
.ndjson .jsonl     tagged list  list, one JSON value per line
.txt .md .html     text         ``str`` (UTF-8)
.htm .xml .csv
.tsv
anything else      raw          ``bytes``
=================  ===========  =======================================
"""

from __future__ import annotations

import datetime as dt
import json
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import PurePath
from typing import Any, Callable

import yaml
from pydantic import BaseModel

from sluice.core.errors import ValidationError


@dataclass(frozen=True)
class Codec:
    """Encoder/decoder pair for one family of extensions."""

    name: str
    structured: bool
    encode: Callable[[Any], bytes]
    decode: Callable[[bytes], Any]


def _json_default(value: Any) -> Any:
    # Only types with one obvious JSON spelling; anything else fails the write.
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID, PurePath)):
        return str(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _encode_json(value: Any) -> bytes:
    return (json.dumps(value, indent=2, ensure_ascii=False, default=_json_default) + "\n").encode("utf-8")


def _decode_json(data: bytes) -> Any:
    return json.loads(data.decode("utf-8"))


def _encode_yaml(value: Any) -> bytes:
    return yaml.safe_dump(value, sort_keys=False, allow_unicode=True).encode("utf-8")


def _decode_yaml(data: bytes) -> Any:
    return yaml.safe_load(data.decode("utf-8"))


def _encode_ndjson(value: Any) -> bytes:
    if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__") or isinstance(value, dict):
        raise TypeError("tagged lists must be written from a list of values")
    lines = [json.dumps(item, ensure_ascii=False, separators=(",", ":"), default=_json_default) for item in value]
    return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""


def _decode_ndjson(data: bytes) -> list[Any]:
    return [json.loads(line) for line in data.decode("utf-8").splitlines() if line.strip()]


def _encode_text(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"text artifacts take str or bytes, not {type(value).__name__}")


def _decode_text(data: bytes) -> str:
    return data.decode("utf-8")


def _encode_raw(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"raw artifacts take str or bytes, not {type(value).__name__}")


JSON = Codec("json", True, _encode_json, _decode_json)
YAML = Codec("yaml", True, _encode_yaml, _decode_yaml)
NDJSON = Codec("ndjson", True, _encode_ndjson, _decode_ndjson)
TEXT = Codec("text", False, _encode_text, _decode_text)
RAW = Codec("raw", False, _encode_raw, bytes)

_CODECS: dict[str, Codec] = {
    ".json": JSON,
    ".yaml": YAML,
    ".yml": YAML,
    ".ndjson": NDJSON,
    ".jsonl": NDJSON,
    ".txt": TEXT,
    ".md": TEXT,
    ".html": TEXT,
    ".htm": TEXT,
    ".xml": TEXT,
    ".csv": TEXT,
    ".tsv": TEXT,
}


def codec_for(path: str | PurePath) -> Codec:
    """Codec selected by the (case-insensitive) extension of ``path``."""
    return _CODECS.get(PurePath(path).suffix.lower(), RAW)


def register_codec(extension: str, codec: Codec) -> None:
    """Register (or replace) the codec used for ``extension``."""
    if not extension.startswith("."):
        extension = f".{extension}"
    _CODECS[extension.lower()] = codec


def encode(path: str | PurePath, value: Any) -> bytes:
    """Encode ``value`` for storage at ``path``."""
    codec = codec_for(path)
    try:
        return codec.encode(value)
    except (TypeError, ValueError, yaml.YAMLError) as e:
        raise ValidationError(f"Cannot encode {type(value).__name__} as {codec.name}", cause=e).with_context(
            path=str(path)
        ) from e


def decode(path: str | PurePath, data: bytes) -> Any:
    """Decode bytes read from ``path``."""
    codec = codec_for(path)
    try:
        return codec.decode(data)
    except (ValueError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise ValidationError(f"Cannot decode {codec.name} artifact", cause=e).with_context(path=str(path)) from e
