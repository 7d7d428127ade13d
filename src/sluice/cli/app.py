"""
Root Typer application for the sluice CLI.

Every stage command builds one ``ImportLifecycle`` for the named job,
runs a single stage and exits. The destination is opened only by the
commands that need it, from ``--destination`` or ``SLUICE_DEST_*``.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from typer import Typer

from sluice import __version__
from sluice.cli.utils import (
    console,
    err_console,
    fail,
    job_options,
    make_lifecycle,
    output,
    output_json,
    parse_options,
    run_stage,
)
from sluice.core.errors import SluiceError
from sluice.core.fingerprint import content_hash, fingerprint_of
from sluice.core.logging import configure_logging
from sluice.core.paths import StorageRole
from sluice.core.settings import SluiceSettings
from sluice.framework.registry import describe_job, list_jobs

app = Typer(
    name="sluice",
    help="sluice — fetch, cache and publish import jobs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"sluice {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR."),
) -> None:
    """sluice CLI — run import job stages and inspect job storage."""
    settings = SluiceSettings()
    configure_logging(level=log_level or settings.log_level, json_format=settings.json_logs, force=True)


# ------------------------------------------------------------------ #
# Inspection
# ------------------------------------------------------------------ #


@app.command("jobs")
def jobs(json_out: bool = typer.Option(False, "--json")) -> None:
    """List registered jobs."""
    rows = [{"name": name, "description": describe_job(name)} for name in list_jobs()]
    output(rows, as_json=json_out, title="Jobs")


@app.command("paths")
def paths(
    job: str = typer.Argument(..., help="Job name"),
    base: Path | None = typer.Option(None, "--base", "-b", help="Base directory for all roles"),
    bucket: str | None = typer.Option(None, "--bucket", help="Bucket (defaults to the job name)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the input, cache and output roots of a job."""
    try:
        resolver = job_options(job, base=base, bucket=bucket).resolver()
    except SluiceError as e:
        fail(e)
    roots = {role.value: str(resolver.root(role)) for role in StorageRole}
    output(roots, as_json=json_out, title=f"Paths for {job}")


@app.command("fingerprint")
def fingerprint(
    value: str = typer.Argument(..., help="Value to fingerprint"),
    parse: bool = typer.Option(False, "--parse", "-p", help="Decode VALUE as JSON first"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Namespace UUID or name"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Print the fingerprint of a value."""
    data: object = value
    if parse:
        try:
            data = json.loads(value)
        except json.JSONDecodeError as e:
            err_console.print(f"[bold red]Invalid JSON value:[/bold red] {e}")
            raise typer.Exit(code=1)
    fp = fingerprint_of(data, namespace=namespace)
    if json_out:
        output_json({"value": data, "fingerprint": fp, "hash": content_hash(data)})
    else:
        typer.echo(fp)


# ------------------------------------------------------------------ #
# Lifecycle stages
# ------------------------------------------------------------------ #

_BASE = typer.Option(None, "--base", "-b", help="Base directory for all roles")
_BUCKET = typer.Option(None, "--bucket", help="Bucket (defaults to the job name)")
_DESTINATION = typer.Option(None, "--destination", "-d", help="Destination URL (default: SLUICE_DEST_URL)")
_OPTIONS = typer.Option(None, "--option", "-o", help="Job option as key=value (repeatable)")
_JSON = typer.Option(False, "--json")
_FORCE = typer.Option(False, "--force", "-f", help="Skip confirmation")


def _lifecycle(job, base, bucket, destination, options, *, with_destination=True):
    try:
        return make_lifecycle(
            job,
            base=base,
            bucket=bucket,
            destination=destination,
            extras=parse_options(options),
            with_destination=with_destination,
        )
    except SluiceError as e:
        fail(e)


@app.command("fill")
def fill(
    job: str = typer.Argument(..., help="Job name"),
    base: Path | None = _BASE,
    bucket: str | None = _BUCKET,
    options: list[str] | None = _OPTIONS,
    json_out: bool = _JSON,
) -> None:
    """Fetch from the source into the cache."""
    lifecycle, _ = _lifecycle(job, base, bucket, None, options, with_destination=False)
    run_stage(lifecycle.fill_cache())
    cached = lifecycle.store.find("**/*", StorageRole.CACHE)
    if json_out:
        output_json({"job": job, "cached": len(cached)})
    else:
        console.print(f"[green]✓[/green] {job}: {len(cached)} cached file(s)")


@app.command("load")
def load(
    job: str = typer.Argument(..., help="Job name"),
    base: Path | None = _BASE,
    bucket: str | None = _BUCKET,
    options: list[str] | None = _OPTIONS,
    json_out: bool = _JSON,
) -> None:
    """Load the cache (filling it first if empty) and summarize it."""
    lifecycle, _ = _lifecycle(job, base, bucket, None, options, with_destination=False)
    snapshot = run_stage(lifecycle.load_cache())
    rows = [
        {"category": category, "artifacts": len(snapshot.by_category(category))}
        for category in snapshot.categories()
    ]
    if json_out:
        output_json({"job": job, "artifacts": len(snapshot), "skipped": snapshot.skipped, "categories": rows})
    else:
        output(rows, title=f"Cache for {job}")
        if snapshot.skipped:
            console.print(f"[yellow]{len(snapshot.skipped)} file(s) skipped[/yellow]")


@app.command("import")
def import_(
    job: str = typer.Argument(..., help="Job name"),
    base: Path | None = _BASE,
    bucket: str | None = _BUCKET,
    destination: str | None = _DESTINATION,
    options: list[str] | None = _OPTIONS,
    json_out: bool = _JSON,
) -> None:
    """Load the cache, ensure the schema and publish every artifact."""
    lifecycle, store = _lifecycle(job, base, bucket, destination, options)
    summary = run_stage(lifecycle.do_import(), store)
    if json_out:
        output_json(summary.to_dict())
    else:
        mark = "[green]✓[/green]" if summary.ok else "[red]✗[/red]"
        console.print(
            f"{mark} {job}: {summary.succeeded} succeeded, {summary.failed} failed, {summary.skipped} skipped"
        )
    if not summary.ok:
        raise typer.Exit(code=1)


@app.command("ensure-schema")
def ensure_schema(
    job: str = typer.Argument(..., help="Job name"),
    destination: str | None = _DESTINATION,
    options: list[str] | None = _OPTIONS,
    json_out: bool = _JSON,
) -> None:
    """Create the job's collections if they are missing."""
    lifecycle, store = _lifecycle(job, None, None, destination, options)
    results = run_stage(lifecycle.ensure_schema(), store)
    rows = [{"collection": name, "created": created} for name, created in results.items()]
    output(rows, as_json=json_out, title=f"Schema for {job}")


@app.command("destroy-schema")
def destroy_schema(
    job: str = typer.Argument(..., help="Job name"),
    destination: str | None = _DESTINATION,
    options: list[str] | None = _OPTIONS,
    force: bool = _FORCE,
    json_out: bool = _JSON,
) -> None:
    """Drop the job's collections and every record in them."""
    if not force:
        if not typer.confirm(f"Drop all collections of {job}?"):
            console.print("[dim]Aborted.[/dim]")
            raise typer.Exit(code=0)

    lifecycle, store = _lifecycle(job, None, None, destination, options)
    results = run_stage(lifecycle.destroy_schema(), store)
    rows = [{"collection": name, "existed": existed} for name, existed in results.items()]
    output(rows, as_json=json_out, title=f"Schema for {job}")


@app.command("clear-cache")
def clear_cache(
    job: str = typer.Argument(..., help="Job name"),
    base: Path | None = _BASE,
    bucket: str | None = _BUCKET,
    options: list[str] | None = _OPTIONS,
    force: bool = _FORCE,
    json_out: bool = _JSON,
) -> None:
    """Delete the job's cached artifacts."""
    if not force:
        if not typer.confirm(f"Delete the cache of {job}?"):
            console.print("[dim]Aborted.[/dim]")
            raise typer.Exit(code=0)

    lifecycle, _ = _lifecycle(job, base, bucket, None, options, with_destination=False)
    removed = run_stage(lifecycle.clear_cache())
    if json_out:
        output_json({"job": job, "removed": removed})
    else:
        console.print(f"[green]✓[/green] {job}: removed {len(removed)} file(s)")


@app.command("build-output")
def build_output(
    job: str = typer.Argument(..., help="Job name"),
    base: Path | None = _BASE,
    bucket: str | None = _BUCKET,
    options: list[str] | None = _OPTIONS,
    json_out: bool = _JSON,
) -> None:
    """Build the job's final output files from the cache."""
    lifecycle, _ = _lifecycle(job, base, bucket, None, options, with_destination=False)
    run_stage(lifecycle.build_output())
    written = lifecycle.store.find("**/*", StorageRole.OUTPUT)
    if json_out:
        output_json({"job": job, "output": written})
    else:
        console.print(f"[green]✓[/green] {job}: {len(written)} output file(s)")


if __name__ == "__main__":
    app()
