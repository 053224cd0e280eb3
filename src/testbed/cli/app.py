"""
Root Typer application for the testbed CLI.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from testbed.cli.config import app as config_app
from testbed.cli.db import app as db_app
from testbed.cli.dialects import app as dialects_app

app = Typer(
    name="testbed",
    help="testbed - run SQLAlchemy test suites against any supported dialect.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("sqla-testbed")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"sqla-testbed {v}")
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
    """testbed CLI - inspect dialects, connection URLs and reset the test database."""


# ── Sub-command registration ─────────────────────────────────────────────

app.add_typer(dialects_app, name="dialects", help="Dialect discovery and resolution.")
app.add_typer(db_app, name="db", help="Test database operations.")
app.add_typer(config_app, name="config", help="Configuration inspection.")
