"""Open-url command implementation.

Handles deep links (certificate import and export, adding sources) and
package files passed by the desktop environment.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Annotated

import typer

from portalctl.cli.commands.import_ import import_package
from portalctl.cli.types import (
    get_certificate_store,
    get_settings_service,
    get_source_store,
    run_async,
    show_stage,
)
from portalctl.core.errors import PortalError
from portalctl.core.paths import ensure_work_dir
from portalctl.core.url_actions import (
    AddSourceAction,
    ExportCertificateAction,
    ImportCertificateAction,
    ImportPackageAction,
    normalize_source_url,
    parse_url_action,
    render_export_callback,
)
from portalctl.models.certificate import CertificateAsset
from portalctl.pipelines.certificate_import import CertificateImportPipeline
from portalctl.utils.formatting import console, print_error, print_info, print_success


def _import_certificate(action: ImportCertificateAction) -> None:
    scratch = Path(tempfile.mkdtemp(prefix="url-import-", dir=ensure_work_dir()))
    try:
        key_file = scratch / "certificate.p12"
        provision_file = scratch / "profile.mobileprovision"
        key_file.write_bytes(action.key_data)
        provision_file.write_bytes(action.provision_data)
        pipeline = CertificateImportPipeline(
            key_file,
            provision_file,
            get_certificate_store(),
            get_settings_service(),
            passphrase=action.password,
            on_stage=show_stage,
        )
        result = run_async(pipeline.run())
    finally:
        shutil.rmtree(scratch, ignore_errors=True)
    print_success(f"Imported certificate {result.certificate.display_name}")


def _pick_certificate(certificate_id: str | None) -> CertificateAsset:
    store = get_certificate_store()
    if certificate_id is not None:
        return store.load_asset(certificate_id)

    certificates = store.list_certificates()
    if not certificates:
        raise PortalError("No certificates imported")
    if len(certificates) > 1:
        raise PortalError("Several certificates are imported; choose one with --cert")
    return store.load_asset(certificates[0].id)


def _export_certificate(
    action: ExportCertificateAction,
    certificate_id: str | None,
    launch: bool,
) -> None:
    try:
        asset = _pick_certificate(certificate_id)
        key_data = asset.key_path.read_bytes()
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    except OSError as e:
        print_error(f"Cannot read certificate: {e}")
        raise typer.Exit(code=1) from e

    callback = render_export_callback(action.callback_template, key_data, asset.passphrase)
    if launch:
        typer.launch(callback)
    console.print(callback, soft_wrap=True)


def open_url(
    url: Annotated[str, typer.Argument(help="Deep link or package path.")],
    certificate_id: Annotated[
        str | None,
        typer.Option("--cert", "-c", help="Certificate to send for export links."),
    ] = None,
    launch: Annotated[
        bool,
        typer.Option("--launch/--no-launch", help="Open the export callback URL."),
    ] = True,
) -> None:
    """Handle a deep link.

    Examples:
        portalctl open-url "new-portal://sources-add:repo.example.com"
        portalctl open-url "feather://export-certificate?callback_template=..."
    """
    action = parse_url_action(url)

    if isinstance(action, ImportCertificateAction):
        _import_certificate(action)
    elif isinstance(action, ExportCertificateAction):
        _export_certificate(action, certificate_id, launch)
    elif isinstance(action, AddSourceAction):
        store = get_source_store()
        store.initialize_orders()
        record = run_async(store.add_source(normalize_source_url(action.url)))
        if record is None:
            print_info("Source already added.")
        else:
            print_success(f"Added source {record.name} ({record.identifier})")
    elif isinstance(action, ImportPackageAction):
        import_package(action.path)
    else:
        print_error(f"Unsupported URL: {url}")
        raise typer.Exit(code=1)
