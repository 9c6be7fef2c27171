"""Config commands.

Show and change settings, and store service tokens.
"""

from typing import Annotated, Any

import typer
from rich.table import Table

from portalctl.cli.types import get_credentials, get_settings_service
from portalctl.core.credentials import SIGNING_API_TOKEN, source_token_key
from portalctl.core.errors import PortalError
from portalctl.core.paths import get_settings_path
from portalctl.core.settings import Settings
from portalctl.utils.formatting import console, print_error, print_success

app = typer.Typer(
    help="Show and change settings.",
    invoke_without_command=True,
    no_args_is_help=True,
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_value(key: str, value: str) -> Any:
    """Convert a command-line string for a settings field."""
    if key == "identifier_randomization":
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        msg = f"Expected true or false for {key}, got '{value}'"
        raise typer.BadParameter(msg)
    if key == "custom_signing_api" and not value.strip():
        return None
    return value


@app.command()
def show() -> None:
    """Show current settings."""
    try:
        settings = get_settings_service().settings
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    table = Table(title=str(get_settings_path()), show_header=True, header_style="header")
    table.add_column("Setting", style="info")
    table.add_column("Value")
    for key, value in settings.model_dump(mode="json").items():
        table.add_row(key, "-" if value is None else str(value))
    table.add_row("signing endpoint", settings.signing_endpoint, style="muted")
    console.print(table)


@app.command("set")
def set_value(
    key: Annotated[str, typer.Argument(help="Setting name.")],
    value: Annotated[str, typer.Argument(help="New value (empty to clear a URL).")],
) -> None:
    """Change a setting.

    Examples:
        portalctl config set server_method local
        portalctl config set custom_signing_api https://sign.example.com/sign
        portalctl config set identifier_randomization true
    """
    if key not in Settings.model_fields:
        print_error(f"Unknown setting '{key}'. Known: {', '.join(Settings.model_fields)}")
        raise typer.Exit(code=1)

    try:
        get_settings_service().update(**{key: _parse_value(key, value)})
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Set {key} = {value}")


@app.command()
def token(
    value: Annotated[
        str | None,
        typer.Argument(help="Token value; prompted for when omitted."),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option("--host", help="Store a feed token for this source host."),
    ] = None,
    clear: Annotated[
        bool,
        typer.Option("--clear", help="Remove the stored token."),
    ] = False,
) -> None:
    """Store the signing service token, or a source host's feed token."""
    key = source_token_key(host) if host else SIGNING_API_TOKEN
    credentials = get_credentials()

    try:
        if clear:
            credentials.delete(key)
            print_success("Token removed.")
            return
        if value is None:
            value = typer.prompt("Token", hide_input=True)
        credentials.save(key, value)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success("Token saved.")
