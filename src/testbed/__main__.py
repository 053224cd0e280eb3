"""Allow ``python -m testbed``."""

from testbed.cli.app import app

if __name__ == "__main__":
    app()
