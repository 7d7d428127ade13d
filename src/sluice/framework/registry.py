"""Job registry for registering and discovering import jobs.

A job is registered under a name as a factory returning its hooks object
(usually the hooks class itself). The CLI looks jobs up here by name.

Tags:
    sluice, framework, registry, job-discovery
"""

from __future__ import annotations

import importlib
from collections.abc import Callable
from typing import Any

from sluice.core.errors import ConfigError
from sluice.core.logging import get_logger

logger = get_logger(__name__)

JobFactory = Callable[..., Any]

# Global job registry
_registry: dict[str, JobFactory] = {}
_loaded: bool = False

# Modules imported on first lookup so built-in jobs register themselves.
BUILTIN_JOB_MODULES = ("sluice.jobs.records",)


def register_job(name: str) -> Callable[[JobFactory], JobFactory]:
    """Decorator to register a job hooks factory under ``name``."""

    def decorator(factory: JobFactory) -> JobFactory:
        if name in _registry:
            raise ValueError(f"Job '{name}' is already registered")
        _registry[name] = factory
        description = getattr(factory, "description", None) or (factory.__doc__ or "").strip().split("\n")[0]
        logger.debug(
            "job_registered",
            name=name,
            factory=getattr(factory, "__name__", repr(factory)),
            description=description,
        )
        return factory

    return decorator


def _ensure_loaded() -> None:
    """Import built-in job modules once (lazy, so logging is configured first)."""
    global _loaded
    if not _loaded:
        _loaded = True
        for module in BUILTIN_JOB_MODULES:
            importlib.import_module(module)
        logger.debug("job_registry_loaded", registered=len(_registry))


def get_job(name: str) -> JobFactory:
    """Get a job hooks factory by name."""
    _ensure_loaded()
    if name not in _registry:
        available = ", ".join(sorted(_registry)) or "none"
        raise ConfigError(f"Job '{name}' not found. Available: {available}")
    return _registry[name]


def list_jobs() -> list[str]:
    """List all registered job names."""
    _ensure_loaded()
    return sorted(_registry)


def describe_job(name: str) -> str:
    factory = get_job(name)
    return getattr(factory, "description", None) or (factory.__doc__ or "").strip().split("\n")[0]


def clear_registry() -> None:
    """Clear registry (for testing). Built-in jobs are not reloaded afterwards."""
    global _loaded
    _registry.clear()
    _loaded = True


__all__ = ["BUILTIN_JOB_MODULES", "clear_registry", "describe_job", "get_job", "list_jobs", "register_job"]
