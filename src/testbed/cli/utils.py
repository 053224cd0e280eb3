"""
CLI utility helpers: output formatting and settings loading.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from testbed.config import DialectConfig, TestbedSettings, get_settings, load_dialect_configs
from testbed.dialects import DialectName, resolve_dialect
from testbed.errors import TestbedError
from testbed.logging import configure_logging

console = Console()
err_console = Console(stderr=True)


# ── Settings helper ──────────────────────────────────────────────────────


def load_settings(dialect: str | None = None) -> TestbedSettings:
    """Current settings, with ``--dialect`` taking precedence over ``DIALECT``."""
    settings = get_settings()
    if dialect is not None:
        settings = settings.model_copy(update={"dialect": dialect})
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")
    return settings


def load_configs(settings: TestbedSettings) -> dict[DialectName, DialectConfig]:
    return load_dialect_configs(settings.config_file, project_root=settings.project_root)


def effective_config(settings: TestbedSettings) -> tuple[DialectName, DialectConfig]:
    """Resolved dialect and its config with the ``SEQ_PORT`` override applied."""
    dialect = resolve_dialect(settings.dialect)
    config = load_configs(settings)[dialect]
    if settings.port_override is not None and not dialect.is_file_based:
        config = config.merged({"port": settings.port_override})
    return dialect, config


@contextmanager
def cli_errors() -> Iterator[None]:
    """Turn library errors into a red message and exit code 1."""
    try:
        yield
    except TestbedError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {escape(exc.message)}", soft_wrap=True)
        raise typer.Exit(code=1) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(rows: list[Mapping[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(escape(str(v)) for v in row.values()))
    console.print(table)


def print_dict(data: Mapping[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{escape(title)}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {escape(str(v))}")
