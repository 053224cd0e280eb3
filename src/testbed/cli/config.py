"""
CLI: ``testbed config`` - configuration inspection.
"""

from __future__ import annotations

import typer

from testbed.cli.utils import cli_errors, console, effective_config, load_settings, output_json, print_dict

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    dialect: str | None = typer.Option(None, "--dialect", help="Dialect name (default: $DIALECT)"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show effective settings and the target dialect's connection config."""
    with cli_errors():
        settings = load_settings(dialect)
        name, config = effective_config(settings)

    settings_data = settings.model_dump(mode="json")
    if json_out:
        output_json({"settings": settings_data, "dialect": name.value, "config": config.redacted()})
        return

    print_dict(settings_data, title="Settings")
    console.print()
    print_dict(config.redacted(), title=f"Dialect: {name.value}")
