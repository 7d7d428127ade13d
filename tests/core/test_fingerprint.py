"""
Tests for sluice.core.fingerprint module.

Tests cover:
- Determinism for structurally equal values
- Canonicalization (key order, tuples, sets, integral floats)
- Scalar wrapping
- Random identifiers when there is no value
- Namespaces
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
from pydantic import BaseModel

from sluice.core.fingerprint import DEFAULT_NAMESPACE, canonicalize, content_hash, fingerprint_of


class Post(BaseModel):
    url: str
    title: str


@dataclass
class Tweet:
    id: str
    text: str


class TestFingerprintOf:
    """Tests for fingerprint_of."""

    def test_deterministic(self):
        """Same value, same fingerprint."""
        value = {"url": "https://example.com/a", "tags": ["x", "y"]}

        assert fingerprint_of(value) == fingerprint_of(value)

    def test_key_order_irrelevant(self):
        """Mapping key order does not change the fingerprint."""
        assert fingerprint_of({"a": 1, "b": 2}) == fingerprint_of({"b": 2, "a": 1})

    def test_nested_key_order_irrelevant(self):
        assert fingerprint_of({"x": {"a": 1, "b": [1, {"c": 2, "d": 3}]}}) == fingerprint_of(
            {"x": {"b": [1, {"d": 3, "c": 2}], "a": 1}}
        )

    def test_different_values_differ(self):
        """Distinct values produce distinct fingerprints."""
        assert fingerprint_of({"id": "a1"}) != fingerprint_of({"id": "b2"})

    def test_list_order_matters(self):
        assert fingerprint_of([1, 2, 3]) != fingerprint_of([3, 2, 1])

    def test_tuple_equals_list(self):
        """Tuples and lists are the same structure."""
        assert fingerprint_of((1, 2)) == fingerprint_of([1, 2])

    def test_set_order_irrelevant(self):
        assert fingerprint_of({"tags": {"b", "a", "c"}}) == fingerprint_of({"tags": {"c", "a", "b"}})

    def test_integral_float_equals_int(self):
        assert fingerprint_of({"n": 1.0}) == fingerprint_of({"n": 1})

    def test_is_uuid(self):
        """Fingerprints are UUID strings."""
        result = uuid.UUID(fingerprint_of("value"))

        assert result.version == 5

    def test_no_value_is_random(self):
        """Without a value each call yields a new random identifier."""
        first, second = fingerprint_of(), fingerprint_of(None)

        assert first != second
        assert uuid.UUID(first).version == 4

    def test_pydantic_and_dict_agree(self):
        """A model fingerprints like its dumped dict."""
        post = Post(url="https://example.com/a", title="A")

        assert fingerprint_of(post) == fingerprint_of({"title": "A", "url": "https://example.com/a"})

    def test_dataclass_and_dict_agree(self):
        assert fingerprint_of(Tweet(id="1", text="hi")) == fingerprint_of({"id": "1", "text": "hi"})

    def test_datetime_supported(self):
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        assert fingerprint_of({"at": when}) == fingerprint_of({"at": when.isoformat()})

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            fingerprint_of(object())

    def test_non_string_keys_rejected(self):
        """An int key would otherwise collide with its string spelling."""
        assert fingerprint_of({"1": "a"})
        with pytest.raises(TypeError, match="mapping key"):
            fingerprint_of({1: "a"})

    def test_namespace_changes_result(self):
        """The same value in two namespaces yields two identifiers."""
        assert fingerprint_of("a1", namespace="twitter") != fingerprint_of("a1", namespace="medium")

    def test_namespace_name_is_deterministic(self):
        assert fingerprint_of("a1", namespace="twitter") == fingerprint_of(
            "a1", namespace=uuid.uuid5(DEFAULT_NAMESPACE, "twitter")
        )

    def test_default_namespace(self):
        assert fingerprint_of("a1") == fingerprint_of("a1", namespace=DEFAULT_NAMESPACE)

    def test_known_value(self):
        """The identifier is uuid5 of the content hash in the default namespace."""
        expected = str(uuid.uuid5(DEFAULT_NAMESPACE, content_hash("a1")))

        assert fingerprint_of("a1") == expected


class TestCanonicalize:
    """Tests for canonicalize and content_hash."""

    def test_scalar_wrapped(self):
        """Scalars are wrapped as {"data": value}."""
        assert canonicalize("x") == b'{"data":"x"}'
        assert canonicalize(5) == b'{"data":5}'

    def test_wrapped_scalar_equals_explicit_mapping(self):
        assert canonicalize("x") == canonicalize({"data": "x"})

    def test_compact_sorted(self):
        assert canonicalize({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_content_hash_length(self):
        assert len(content_hash("value")) == 64
        assert len(content_hash("value", length=12)) == 12

    def test_content_hash_prefix_stable(self):
        assert content_hash("value").startswith(content_hash("value", length=16))
