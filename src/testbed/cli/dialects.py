"""
CLI: ``testbed dialects`` - dialect discovery and resolution.
"""

from __future__ import annotations

import typer

from testbed.cli.utils import cli_errors, load_settings, output_json, print_dict, print_table
from testbed.dialects import DialectName, get_supported_dialects, get_test_dialect_teaser, is_native_variant, raw_dialect

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_dialects(
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List known dialects and whether their SQLAlchemy backend is installed."""
    supported = set(get_supported_dialects())
    rows = [
        {"name": dialect.value, "backend": dialect.backend, "installed": dialect in supported}
        for dialect in DialectName
    ]
    if json_out:
        output_json(rows)
        return
    print_table(rows, title="Dialects")


@app.command("resolve")
def resolve(
    dialect: str | None = typer.Option(None, "--dialect", help="Dialect name (default: $DIALECT)"),
    module: str = typer.Option("", "--module", "-m", help="Module name for the teaser line"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show how the target dialect resolves for this run."""
    with cli_errors():
        settings = load_settings(dialect)
        resolved = settings.resolved_dialect
        data = {
            "raw": raw_dialect(settings.dialect),
            "dialect": resolved.value,
            "native": is_native_variant(settings.dialect),
            "teaser": get_test_dialect_teaser(module, settings.dialect, subject=settings.teaser_subject).rstrip(),
        }
    if json_out:
        output_json(data)
        return
    print_dict(data, title="Dialect")
