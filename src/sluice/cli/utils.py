"""
CLI utility helpers — output formatting and job construction.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from dataclasses import asdict
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from sluice.core.errors import SluiceError
from sluice.core.settings import DestinationSettings, SluiceSettings
from sluice.destination.factory import open_destination
from sluice.destination.protocol import DestinationStore
from sluice.framework.lifecycle import ImportLifecycle
from sluice.framework.options import FileOptions, JobOptions
from sluice.framework.registry import get_job

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)


# ── Job construction ─────────────────────────────────────────────────────


def parse_options(pairs: list[str] | None) -> dict[str, Any]:
    """Parse ``key=value`` pairs; values are decoded as JSON when possible."""
    result: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            err_console.print(f"[bold red]Invalid option[/bold red] {pair!r}: expected key=value")
            raise typer.Exit(code=2)
        try:
            result[key] = json.loads(raw)
        except json.JSONDecodeError:
            result[key] = raw
    return result


def job_options(
    job: str,
    *,
    base: Path | None = None,
    bucket: str | None = None,
    extras: dict[str, Any] | None = None,
) -> JobOptions:
    """Build ``JobOptions`` from settings, with command-line values taking precedence."""
    files = FileOptions.from_settings(SluiceSettings())
    if base is not None:
        files = files.model_copy(update={"base": base})
    return JobOptions(name=job, bucket=bucket, files=files, **(extras or {}))


def make_lifecycle(
    job: str,
    *,
    base: Path | None = None,
    bucket: str | None = None,
    destination: str | None = None,
    extras: dict[str, Any] | None = None,
    with_destination: bool = True,
) -> tuple[ImportLifecycle, DestinationStore | None]:
    """Create an ``ImportLifecycle`` + destination pair for CLI commands."""
    factory = get_job(job)
    options = job_options(job, base=base, bucket=bucket, extras=extras)
    store = None
    if with_destination:
        settings = DestinationSettings(url=destination) if destination else DestinationSettings()
        store = open_destination(settings)
    return ImportLifecycle(options, factory(options), destination=store), store


def run_stage(coro: Coroutine[Any, Any, T], destination: DestinationStore | None = None) -> T:
    """Run one lifecycle coroutine, turning sluice errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except SluiceError as e:
        fail(e)
    finally:
        if destination is not None:
            destination.close()


def fail(error: SluiceError) -> None:
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a result to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        output_json(payload)
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
