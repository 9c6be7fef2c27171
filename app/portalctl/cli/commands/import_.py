"""Import command implementation.

Adds an application package to the unsigned library.
"""

from pathlib import Path
from typing import Annotated

import typer

from portalctl.cli.types import get_app_store, run_async, show_stage
from portalctl.pipelines.package_import import PackageImportPipeline
from portalctl.utils.formatting import print_info, print_success


def import_package(
    package: Annotated[
        Path,
        typer.Argument(help="Package file (.ipa) to import."),
    ],
) -> None:
    """Import a package into the unsigned library.

    Importing the same file twice is harmless: the second run reports the
    existing entry and changes nothing.

    Examples:
        portalctl import MyApp.ipa
    """
    print_info(f"Importing {package.name}")
    pipeline = PackageImportPipeline(package, get_app_store(), on_stage=show_stage)
    result = run_async(pipeline.run())

    if result.record is None:
        return
    if result.duplicate:
        print_info(f"Already in library: {result.record.name} ({result.record.uuid})")
        return
    print_success(
        f"Imported {result.record.name} {result.record.version} "
        f"({result.record.bundle_id}) as {result.record.uuid}"
    )
