"""Rich console formatting utilities.

Provides consistent formatting for CLI output using Rich.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

if TYPE_CHECKING:
    from portalctl.models.app import AppRecord
    from portalctl.models.certificate import CertificateAsset
    from portalctl.models.source import SourceRecord

PORTAL_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "bold red",
        "muted": "grey58",
        "header": "bold",
        "border": "grey42",
    }
)


def _detect_color_system() -> str | None:
    """Return "truecolor" for interactive terminals, None to let Rich auto-detect."""
    if sys.stdout.isatty():
        return "truecolor"
    return None


# Shared console instances
console = Console(theme=PORTAL_THEME, color_system=_detect_color_system())
err_console = Console(theme=PORTAL_THEME, stderr=True, color_system=_detect_color_system())


def format_size(size: int) -> str:
    """Format a byte count for display (e.g. ``12.3 MB``)."""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _table(title: str) -> Table:
    return Table(
        title=title,
        show_header=True,
        header_style="header",
        border_style="border",
        row_styles=["", "on grey7"],
    )


def create_app_table(records: list[AppRecord], title: str = "Library") -> Table:
    """Build a table listing library apps."""
    table = _table(title)
    table.add_column("UUID", style="muted", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Name", no_wrap=True)
    table.add_column("Bundle ID", style="info")
    table.add_column("Version", style="muted")
    table.add_column("Size", justify="right")
    for record in records:
        table.add_row(
            record.uuid,
            record.kind.value,
            record.name,
            record.bundle_id,
            record.version,
            format_size(record.size),
        )
    return table


def create_certificate_table(assets: list[CertificateAsset]) -> Table:
    """Build a table listing certificates."""
    table = _table("Certificates")
    table.add_column("ID", style="muted", no_wrap=True)
    table.add_column("Name", no_wrap=True)
    table.add_column("Team", style="info")
    table.add_column("Expires", style="muted")
    table.add_column("PPQ", justify="center")
    for asset in assets:
        table.add_row(
            asset.id,
            asset.display_name,
            asset.team_name or "-",
            asset.expires_at or "-",
            "[warning]yes[/]" if asset.requires_identifier_randomization else "",
        )
    return table


def create_source_table(sources: list[SourceRecord]) -> Table:
    """Build a table listing repository sources in display order."""
    table = _table("Sources")
    table.add_column("#", justify="right", style="muted")
    table.add_column("Name", no_wrap=True)
    table.add_column("Identifier", style="info")
    table.add_column("URL", overflow="fold")
    for source in sources:
        table.add_row(
            str(source.order) if source.is_ordered else "-",
            source.name,
            source.identifier,
            source.source_url,
        )
    return table


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]{message}[/]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[warning]Warning:[/] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[error]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]{message}[/]")
