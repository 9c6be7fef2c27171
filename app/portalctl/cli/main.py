"""Main CLI application entry point.

Defines the Typer application and global options.
"""

import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from portalctl import __version__
from portalctl.cli.commands import cert, config, import_, library, open_url, sign, source
from portalctl.utils.formatting import err_console

# Create main Typer app
app = typer.Typer(
    name="portalctl",
    help="Import, sign and distribute application packages.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"portalctl version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route portalctl log records to stderr through Rich."""
    package_logger = logging.getLogger("portalctl")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    package_logger.addHandler(RichHandler(console=err_console, show_path=False))
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
) -> None:
    """portalctl - Import, sign and distribute application packages.

    Keeps a library of apps and signing certificates, signs apps locally
    or through a signing service, and manages repository sources.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(verbose)


# Register commands
app.command("import")(import_.import_package)
app.command("sign")(sign.sign_app)
app.command("open-url")(open_url.open_url)
app.add_typer(library.app, name="library")
app.add_typer(cert.app, name="cert")
app.add_typer(source.app, name="source")
app.add_typer(config.app, name="config")


if __name__ == "__main__":
    app()
