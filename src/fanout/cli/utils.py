"""
CLI utility helpers: output formatting and mission wiring.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from fanout.control import MissionControl
from fanout.core.settings import get_settings
from fanout.ops.context import OperationContext
from fanout.ops.result import OperationResult

console = Console()
err_console = Console(stderr=True)


# ── Wiring helper ────────────────────────────────────────────────────────


def make_context(
    database: str | None = None,
    data_dir: Path | None = None,
) -> tuple[OperationContext, MissionControl]:
    """Build a ``MissionControl`` from settings plus CLI overrides."""
    settings = get_settings()
    overrides: dict[str, Any] = {}
    if database:
        overrides["database"] = database
    if data_dir:
        overrides["data_dir"] = data_dir
    if overrides:
        settings = settings.model_copy(update=overrides)
    control = MissionControl.from_settings(settings)
    return OperationContext(control=control, caller="cli"), control


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_result(
    result: OperationResult,
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render an ``OperationResult`` to the terminal; exit 1 on failure."""
    for warning in result.warnings:
        err_console.print(f"[yellow]Warning:[/yellow] {warning}")

    if not result.success:
        err = result.error
        msg = err.message if err else "Unknown error"
        code = err.code if err else "ERROR"
        err_console.print(f"[bold red]Error[/bold red] ({code}): {msg}")
        raise typer.Exit(code=1)

    data = result.data

    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        if all(isinstance(item, str) for item in data):
            for line in data:
                console.print(line, markup=False, highlight=False)
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
        if isinstance(v, dict):
            v = json.dumps(v, default=str)
        console.print(f"  [cyan]{k}[/cyan]: {v}", highlight=False)
