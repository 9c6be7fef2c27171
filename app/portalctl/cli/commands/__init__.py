"""CLI commands for portalctl.

This package contains all subcommand implementations.
"""

from portalctl.cli.commands import cert, config, import_, library, open_url, sign, source

__all__ = ["cert", "config", "import_", "library", "open_url", "sign", "source"]
