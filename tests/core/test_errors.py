"""
Tests for sluice.core.errors module.

Tests cover:
- Categories and retry defaults per error type
- Fluent context and metadata
- Cause chaining
- Serialization for structured logs
"""

import pytest

from sluice.core.errors import (
    ConfigError,
    ErrorCategory,
    LifecycleError,
    NotFoundError,
    PublishError,
    SchemaConflictError,
    SluiceError,
    SourceFetchError,
    StorageError,
    ValidationError,
)


class TestTaxonomy:
    """Tests for error categories and retryability."""

    @pytest.mark.parametrize(
        ("cls", "category", "retryable"),
        [
            (SluiceError, ErrorCategory.INTERNAL, False),
            (StorageError, ErrorCategory.STORAGE, False),
            (NotFoundError, ErrorCategory.STORAGE, False),
            (ValidationError, ErrorCategory.VALIDATION, False),
            (ConfigError, ErrorCategory.CONFIG, False),
            (LifecycleError, ErrorCategory.INTERNAL, False),
            (SourceFetchError, ErrorCategory.SOURCE, True),
            (PublishError, ErrorCategory.PUBLISH, False),
        ],
    )
    def test_defaults(self, cls, category, retryable):
        error = cls("boom")

        assert error.category is category
        assert error.retryable is retryable
        assert isinstance(error, SluiceError)

    def test_not_found_is_storage(self):
        assert issubclass(NotFoundError, StorageError)

    def test_retryable_override(self):
        assert SourceFetchError("404", retryable=False).retryable is False

    def test_schema_conflict(self):
        error = SchemaConflictError("likes", "document", "edge")

        assert error.category is ErrorCategory.SCHEMA
        assert error.context.collection == "likes"
        assert "document" in error.message and "edge" in error.message


class TestContext:
    """Tests for with_context and to_dict."""

    def test_known_fields(self):
        error = PublishError("write failed").with_context(collection="post", key="a1", job="medium")

        assert error.context.collection == "post"
        assert error.context.key == "a1"
        assert error.context.job == "medium"

    def test_unknown_fields_go_to_metadata(self):
        error = StorageError("x").with_context(attempt=3)

        assert error.context.metadata == {"attempt": 3}

    def test_not_found_path(self):
        assert NotFoundError("missing", path="cache/x.json").context.path == "cache/x.json"

    def test_cause_chained(self):
        cause = OSError("disk full")
        error = StorageError("write failed", cause=cause)

        assert error.cause is cause
        assert error.__cause__ is cause

    def test_to_dict(self):
        error = StorageError("write failed", cause=OSError("disk full")).with_context(path="x.json")

        assert error.to_dict() == {
            "error_type": "StorageError",
            "message": "write failed",
            "category": "STORAGE",
            "retryable": False,
            "context": {"path": "x.json"},
            "cause": "disk full",
        }

    def test_to_dict_omits_empty_context(self):
        assert "context" not in ConfigError("bad").to_dict()

    def test_repr(self):
        assert repr(ConfigError("bad")) == "ConfigError('bad', category=CONFIG)"
