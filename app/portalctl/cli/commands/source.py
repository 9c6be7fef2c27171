"""Source commands.

Manage the ordered list of repository sources. Every invocation first runs
the one-time order migration; it is a no-op once it has succeeded.
"""

from typing import Annotated

import typer

from portalctl.cli.types import get_source_store, run_async
from portalctl.core.errors import PortalError
from portalctl.core.url_actions import normalize_source_url
from portalctl.utils.formatting import (
    console,
    create_source_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Manage repository sources.",
    invoke_without_command=True,
    no_args_is_help=True,
)


@app.callback()
def source_main(ctx: typer.Context) -> None:
    """Manage repository sources."""
    if ctx.invoked_subcommand != "migrate":
        get_source_store().initialize_orders()


@app.command()
def add(
    url: Annotated[str, typer.Argument(help="Feed URL or domain.")],
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Name used when the feed has none."),
    ] = None,
) -> None:
    """Add a repository source.

    A domain without a scheme is treated as https. If the feed cannot be
    loaded the source is still added, named "Unknown".
    """
    record = run_async(get_source_store().add_source(normalize_source_url(url), name_hint=name))
    if record is None:
        print_info("Source already added.")
        return
    if record.name == "Unknown":
        print_warning(f"Could not load the feed; added {record.source_url} as a placeholder.")
    print_success(f"Added source {record.name} ({record.identifier})")


@app.command("list")
def list_sources() -> None:
    """List sources in display order."""
    try:
        sources = get_source_store().list_sources()
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if not sources:
        print_info("No sources added.")
        return
    console.print(create_source_table(sources))


@app.command()
def remove(
    identifier: Annotated[str, typer.Argument(help="Identifier of the source to remove.")],
) -> None:
    """Remove a repository source."""
    try:
        removed = get_source_store().remove_source(identifier)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if not removed:
        print_error(f"No source with identifier {identifier}")
        raise typer.Exit(code=1)
    print_success(f"Removed source {identifier}")


@app.command()
def reorder(
    identifiers: Annotated[
        list[str],
        typer.Argument(help="Source identifiers in the desired order."),
    ],
) -> None:
    """Reorder sources. Sources not named keep their order after the named ones."""
    try:
        sources = get_source_store().reorder(identifiers)
    except (PortalError, ValueError) as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    console.print(create_source_table(sources))


@app.command()
def migrate() -> None:
    """Run the one-time source order migration.

    The migration also runs before every other source command; this
    reports whether anything was left to do.
    """
    if get_source_store().initialize_orders():
        print_success("Source orders initialized.")
    else:
        print_info("Source orders already initialized.")
