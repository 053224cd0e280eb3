"""
CLI layer for sqla-testbed.

Provides a Typer application that wraps the library operations
(dialect resolution, URL building, reset).  This package handles only
terminal transport: argument parsing, coloured output and tables.

Entry point::

    testbed --help
    python -m testbed --help
"""

from testbed.cli.app import app

__all__ = ["app"]
