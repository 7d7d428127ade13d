"""Job options.

Options are plain pydantic models supplied by the host that runs a job.
``JobOptions`` is interpreted by the lifecycle; ``ScraperOptions`` and
``SqlSourceOptions`` are carried for fetch collaborators and never read
by the core.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from sluice.core.paths import PathResolver, StorageRole, validate_bucket
from sluice.core.settings import SluiceSettings


class FileOptions(BaseModel):
    """Storage root overrides. Relative overrides nest under ``base``."""

    base: Path | None = None
    input: Path | None = None
    cache: Path | None = None
    output: Path | None = None

    @classmethod
    def from_settings(cls, settings: SluiceSettings) -> FileOptions:
        return cls(
            base=settings.base_dir,
            input=settings.input_dir,
            cache=settings.cache_dir,
            output=settings.output_dir,
        )

    def overrides(self) -> dict[StorageRole, Path]:
        return {
            role: path
            for role, path in (
                (StorageRole.INPUT, self.input),
                (StorageRole.CACHE, self.cache),
                (StorageRole.OUTPUT, self.output),
            )
            if path is not None
        }


class ScraperOptions(BaseModel):
    """Politeness policy for crawling collaborators."""

    max_requests_per_minute: int = Field(default=60, ge=1)
    max_concurrency: int = Field(default=1, ge=1)
    same_domain_delay_sec: float = Field(default=0.0, ge=0)


class SqlSourceOptions(BaseModel):
    """Connection details for SQL-dump collaborators."""

    host: str = "localhost"
    user: str = "root"
    password: SecretStr | None = Field(default=None, repr=False)
    database: str | None = None


class JobOptions(BaseModel):
    """
    Options for one import job.

    Unknown keys are kept and available through ``extras`` so jobs can
    carry their own settings without subclassing.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    bucket: str | None = None
    files: FileOptions = Field(default_factory=FileOptions)
    strict_reads: bool = False

    @field_validator("bucket")
    @classmethod
    def _check_bucket(cls, value: str | None) -> str | None:
        return validate_bucket(value) if value is not None else None

    @property
    def effective_bucket(self) -> str:
        """The bucket, defaulting to the job name."""
        return self.bucket or self.name

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def resolver(self) -> PathResolver:
        return PathResolver(base=self.files.base, bucket=self.effective_bucket, overrides=self.files.overrides())


__all__ = ["FileOptions", "JobOptions", "ScraperOptions", "SqlSourceOptions"]
