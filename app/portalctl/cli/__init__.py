"""CLI package for portalctl.

This package contains the Typer application and all subcommands.
"""

from portalctl.cli.main import app

__all__ = ["app"]
