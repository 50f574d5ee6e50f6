"""
Root Typer application for the ``fanout`` CLI.

Commands map one-to-one onto operator operations in
:mod:`fanout.ops.controls`.
"""

from __future__ import annotations

import time
from pathlib import Path

import typer
from typer import Typer

from fanout import __version__
from fanout.cli.utils import console, make_context, output_result
from fanout.core.logging import configure_logging
from fanout.core.settings import get_settings

app = Typer(
    name="fanout",
    help="fanout: guarded fan-out of content items into language variants.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

DatabaseOption = typer.Option(None, "--database", "-d", help="SQLite database path")
DataDirOption = typer.Option(None, "--data-dir", help="Directory for the database and mission log")
JsonOption = typer.Option(False, "--json", help="Print JSON")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"fanout {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """fanout CLI: run missions by hand, inspect and control the guardrails."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs, cache_loggers=False)


def _parse_langs(langs: str | None) -> list[str] | None:
    if langs is None:
        return None
    parsed = [lang.strip() for lang in langs.split(",") if lang.strip()]
    if not parsed:
        raise typer.BadParameter("expected a comma-separated list of language codes", param_hint="--langs")
    return parsed


@app.command("duplicate")
def duplicate(
    item_id: int = typer.Argument(..., help="Source content item id"),
    langs: str | None = typer.Option(None, "--langs", "-l", help="Comma-separated target languages"),
    force: bool = typer.Option(False, "--force", help="Run even if the item already finished"),
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
    json_out: bool = JsonOption,
) -> None:
    """Duplicate an item now, bypassing the daily quota.

    Example::

        fanout duplicate 42 --langs en-us,en-au
    """
    from fanout.ops.controls import duplicate_item

    languages = _parse_langs(langs)
    ctx, control = make_context(database, data_dir)
    try:
        result = duplicate_item(ctx, item_id, languages, force=force)
    finally:
        control.close()
    output_result(result, as_json=json_out, title=f"Item {item_id}")


@app.command("abort")
def abort(
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
) -> None:
    """Set the abort flag: running and future missions stop at the next language."""
    from fanout.ops.controls import abort_missions

    ctx, control = make_context(database, data_dir)
    try:
        result = abort_missions(ctx)
    finally:
        control.close()
    output_result(result, title="Abort")


@app.command("reset")
def reset(
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
) -> None:
    """Clear the abort flag, the execution breaker and the failure counter."""
    from fanout.ops.controls import reset_missions

    ctx, control = make_context(database, data_dir)
    try:
        result = reset_missions(ctx)
    finally:
        control.close()
    output_result(result, title="Reset")


@app.command("status")
def status(
    item_id: int | None = typer.Argument(None, help="Show one item's mission record"),
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
    json_out: bool = JsonOption,
) -> None:
    """Show the aggregate health signal, or one item's mission record."""
    from fanout.ops.controls import get_status

    ctx, control = make_context(database, data_dir)
    try:
        result = get_status(ctx, item_id)
    finally:
        control.close()
    output_result(result, as_json=json_out, title="Mission status")


@app.command("sweep")
def sweep(
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
    json_out: bool = JsonOption,
) -> None:
    """Run the health sweep once."""
    from fanout.ops.controls import run_sweep

    ctx, control = make_context(database, data_dir)
    try:
        result = run_sweep(ctx)
    finally:
        control.close()
    output_result(result, as_json=json_out, title="Health sweep")


@app.command("run-due")
def run_due(
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
    json_out: bool = JsonOption,
) -> None:
    """Dispatch every scheduled job whose time has come."""
    from fanout.ops.controls import run_due_jobs

    ctx, control = make_context(database, data_dir)
    try:
        result = run_due_jobs(ctx)
    finally:
        control.close()
    output_result(result, as_json=json_out, title="Dispatched jobs")


@app.command("log")
def log(
    lines: int = typer.Option(50, "--lines", "-n", min=1, help="Lines to show"),
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
) -> None:
    """Show the tail of the mission log."""
    from fanout.ops.controls import read_log

    ctx, control = make_context(database, data_dir)
    try:
        result = read_log(ctx, lines)
    finally:
        control.close()
    output_result(result, title="Mission log")


@app.command("diagnostics")
def diagnostics(
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
    json_out: bool = JsonOption,
) -> None:
    """Print a configuration and runtime snapshot (also written to the log)."""
    from fanout.ops.controls import get_diagnostics

    ctx, control = make_context(database, data_dir)
    try:
        result = get_diagnostics(ctx)
    finally:
        control.close()
    output_result(result, as_json=json_out, title="Diagnostics")


@app.command("worker")
def worker(
    interval: float = typer.Option(10.0, "--interval", "-i", help="Seconds between scheduler ticks"),
    database: str | None = DatabaseOption,
    data_dir: Path | None = DataDirOption,
) -> None:
    """Activate the mission and tick the job scheduler until interrupted.

    Example::

        fanout worker --interval 5
    """
    from fanout.scheduling.thread_backend import ThreadSchedulerBackend

    _, control = make_context(database, data_dir)
    control.activate()
    backend = ThreadSchedulerBackend()
    console.print(f"[bold green]Starting fanout worker[/bold green] (tick={interval}s)")
    backend.start(control.run_due, interval_seconds=interval)
    try:
        while backend.is_running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("\n[yellow]Worker stopped by user[/yellow]")
    finally:
        backend.stop()
        control.close()


if __name__ == "__main__":
    app()
