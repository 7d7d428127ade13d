"""Environment-driven settings for sluice.

Two settings models cover the ambient configuration of a migration
process:

* ``SluiceSettings`` (``SLUICE_*``) — storage roots and logging.
* ``DestinationSettings`` (``SLUICE_DEST_*``) — how to reach the
  destination store. Read once, when the destination is constructed by
  ``sluice.destination.factory.open_destination``; never consulted again.

Both read ``.env`` files and ignore unknown variables.

Examples:
    >>> settings = DestinationSettings(url="sqlite:///:memory:")
    >>> settings.username
    'root'

Tags:
    settings, configuration, pydantic, environment, sluice
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DESTINATION_URL = "sqlite:///sluice.db"
DEFAULT_DESTINATION_USER = "root"


class SluiceSettings(BaseSettings):
    """Process-wide storage and logging settings.

    Fields
    ──────
    base_dir     : Optional directory every role root is nested under
    input_dir    : Override for the input role root
    cache_dir    : Override for the cache role root
    output_dir   : Override for the output role root
    log_level    : Structlog log level
    log_format   : ``console`` or ``json``; empty means auto-detect
    """

    model_config = SettingsConfigDict(
        env_prefix="SLUICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    base_dir: Path | None = None
    input_dir: Path | None = None
    cache_dir: Path | None = None
    output_dir: Path | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = ""

    @property
    def json_logs(self) -> bool | None:
        if not self.log_format:
            return None
        return self.log_format.lower() == "json"


class DestinationSettings(BaseSettings):
    """Connection settings for the destination store.

    ``url`` selects the adapter (``sqlite:///…``, ``postgresql://…`` or
    ``memory://``). ``database``, ``username`` and ``password`` are merged
    into server URLs that do not already carry them.
    """

    model_config = SettingsConfigDict(
        env_prefix="SLUICE_DEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: str = DEFAULT_DESTINATION_URL
    database: str | None = None
    username: str = DEFAULT_DESTINATION_USER
    password: SecretStr | None = Field(default=None, repr=False)
    echo: bool = False
