"""Library commands.

List and remove apps registered in the library.
"""

import shutil
from typing import Annotated

import typer

from portalctl.cli.types import KindChoice, get_app_store
from portalctl.core.errors import PortalError
from portalctl.utils.formatting import (
    console,
    create_app_table,
    print_error,
    print_info,
    print_success,
)

app = typer.Typer(
    help="Manage imported and signed apps.",
    invoke_without_command=True,
    no_args_is_help=True,
)


@app.command("list")
def list_apps(
    kind: Annotated[
        KindChoice,
        typer.Option("--kind", "-k", help="Library section to show.", case_sensitive=False),
    ] = KindChoice.ALL,
) -> None:
    """List library apps, newest first."""
    try:
        records = get_app_store().list_records(kind.to_kind())
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if not records:
        print_info("Library is empty.")
        return
    console.print(create_app_table(records))


@app.command()
def remove(
    uuid: Annotated[str, typer.Argument(help="UUID of the app to remove.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove an app and its library files."""
    store = get_app_store()
    try:
        record = store.get(uuid)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if not yes and not typer.confirm(f"Remove {record.name} ({record.uuid})?", default=False):
        print_info("Aborted.")
        raise typer.Exit(code=0)

    try:
        store.remove(uuid)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    shutil.rmtree(record.library_dir, ignore_errors=True)
    print_success(f"Removed {record.name}")
