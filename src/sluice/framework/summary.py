"""Run summary: per-item success, failure and skip counts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class ItemOutcome:
    """A failed or skipped item."""

    kind: str
    key: str
    reason: str
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {"kind": self.kind, "key": self.key, "reason": self.reason}
        if self.error_type:
            result["error_type"] = self.error_type
        return result


@dataclass
class RunSummary:
    """Result of one publishing run."""

    job: str
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[ItemOutcome] = field(default_factory=list)
    skips: list[ItemOutcome] = field(default_factory=list)

    def record_success(self) -> None:
        self.succeeded += 1

    def record_failure(self, kind: str, key: str, error: Exception) -> None:
        self.failed += 1
        reason = getattr(error, "message", None) or str(error)
        self.failures.append(ItemOutcome(kind, key, reason, type(error).__name__))

    def record_skip(self, kind: str, key: str, reason: str) -> None:
        self.skipped += 1
        self.skips.append(ItemOutcome(kind, key, reason))

    def complete(self) -> RunSummary:
        self.completed_at = datetime.now(UTC)
        return self

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    @property
    def duration_seconds(self) -> float | None:
        """Duration in seconds if completed."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def counts(self) -> dict[str, int]:
        return {"succeeded": self.succeeded, "failed": self.failed, "skipped": self.skipped}

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            **self.counts(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "failures": [f.to_dict() for f in self.failures],
            "skips": [s.to_dict() for s in self.skips],
        }


__all__ = ["ItemOutcome", "RunSummary"]
