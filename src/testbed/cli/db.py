"""
CLI: ``testbed db`` - test database commands.
"""

from __future__ import annotations

import typer

from testbed.cli.utils import cli_errors, console, effective_config, load_configs, load_settings, output_json, print_table
from testbed.config import ResetPolicy
from testbed.connection import ConnectionOptions, create_connection
from testbed.reset import ResetReport, ensure_extensions, reset_database
from testbed.urls import build_connection_url

app = typer.Typer(no_args_is_help=True)


def _render_report(report: ResetReport, *, json_out: bool, title: str) -> None:
    if json_out:
        output_json(report.to_dict())
        return
    rows = [
        {
            "step": step.label,
            "status": "ok" if step.ok else "failed",
            "detail": step.outcome.unwrap() if step.ok else step.outcome.error,  # type: ignore[union-attr]
        }
        for step in report.steps
    ]
    rows += [{"step": label, "status": "skipped", "detail": ""} for label in report.skipped]
    print_table(rows, title=title)
    if report.ok:
        console.print(f"[green]✓[/green] {report.dialect}: {len(report.steps)} step(s) completed")
    else:
        console.print(f"[red]✗[/red] {report.dialect}: {len(report.errors)} step(s) failed")


@app.command()
def url(
    dialect: str | None = typer.Option(None, "--dialect", help="Dialect name (default: $DIALECT)"),
) -> None:
    """Print the canonical connection URL for the target dialect."""
    with cli_errors():
        settings = load_settings(dialect)
        name, config = effective_config(settings)
        typer.echo(build_connection_url(name, config))


@app.command()
def reset(
    dialect: str | None = typer.Option(None, "--dialect", help="Dialect name (default: $DIALECT)"),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Stop at the first failed step"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Drop all schemas, tables and enum types in the test database."""
    with cli_errors():
        settings = load_settings(dialect)
        stop = fail_fast or settings.reset_policy is ResetPolicy.FAIL_FAST
        with create_connection(settings=settings, configs=load_configs(settings)) as handle:
            report = reset_database(handle, stop_on_error=stop)

    _render_report(report, json_out=json_out, title="Reset")
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def extensions(
    dialect: str | None = typer.Option(None, "--dialect", help="Dialect name (default: $DIALECT)"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create the configured extensions (PostgreSQL)."""
    with cli_errors():
        settings = load_settings(dialect)
        name, config = effective_config(settings)
        with create_connection(ConnectionOptions(dialect=name), settings=settings, configs=load_configs(settings)) as handle:
            report = ensure_extensions(handle, config.extensions)

    _render_report(report, json_out=json_out, title="Extensions")
    if not report.ok:
        raise typer.Exit(code=1)
