"""Sign command implementation.

Signs a library app locally with zsign, or through the remote signing
service which answers with an install link.
"""

from typing import Annotated

import typer

from portalctl.cli.types import (
    get_app_store,
    get_certificate_store,
    get_credentials,
    get_settings_service,
    run_async,
    show_stage,
)
from portalctl.core.errors import PortalError
from portalctl.core.install import DeliveryRouter, InstallTracker
from portalctl.models.app import AppRecord
from portalctl.models.certificate import CertificateAsset
from portalctl.models.install import InstallStatus
from portalctl.models.signing import SigningOptions
from portalctl.pipelines.local_signing import LocalSigningPipeline
from portalctl.pipelines.remote_signing import RemoteSigningPipeline
from portalctl.signers.zsign import ZsignSigner
from portalctl.utils.formatting import (
    console,
    print_error,
    print_info,
    print_success,
    print_warning,
)


class ConsolePresenter:
    """Carries out delivery decisions on the terminal."""

    def __init__(self, launch: bool) -> None:
        self._launch = launch

    def open_link(self, url: str) -> None:
        if self._launch:
            typer.launch(url)
        print_success(f"Install link: {url}")

    def present_web_view(self, url: str) -> None:
        print_info(f"Open the install page on your device: {url}")

    def dismiss_web_view(self) -> None:
        pass

    def start_pairing(self, url: str) -> None:
        print_warning("Local pairing is not available from the command line.")
        print_success(f"Install link: {url}")


def _show_status(status: InstallStatus) -> None:
    console.print(f"[muted]  status: {status.label}[/]")


def _load_inputs(uuid: str, certificate_id: str) -> tuple[AppRecord, CertificateAsset]:
    try:
        record = get_app_store().get(uuid)
        certificate = get_certificate_store().load_asset(certificate_id)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    return record, certificate


def sign_app(
    uuid: Annotated[str, typer.Argument(help="UUID of the library app to sign.")],
    certificate_id: Annotated[
        str,
        typer.Option("--cert", "-c", help="ID of the certificate to sign with."),
    ],
    remote: Annotated[
        bool,
        typer.Option("--remote", "-r", help="Sign through the remote signing service."),
    ] = False,
    bundle_id: Annotated[
        str | None,
        typer.Option("--bundle-id", "-b", help="Override the bundle identifier."),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Override the display name."),
    ] = None,
    version: Annotated[
        str | None,
        typer.Option("--app-version", help="Override the version string."),
    ] = None,
    launch: Annotated[
        bool,
        typer.Option("--open", help="Open the install link in a browser."),
    ] = False,
) -> None:
    """Sign a library app.

    Examples:
        portalctl sign 3f2a... --cert 9b1c...
        portalctl sign 3f2a... --cert 9b1c... --remote --open
    """
    if remote and (bundle_id or name or version):
        print_error("--bundle-id, --name and --app-version apply to local signing only.")
        raise typer.Exit(code=1)

    record, certificate = _load_inputs(uuid, certificate_id)
    settings = get_settings_service()

    if remote:
        tracker = InstallTracker()
        tracker.subscribe(_show_status)
        tracker.subscribe(DeliveryRouter(settings, ConsolePresenter(launch)))
        pipeline = RemoteSigningPipeline(
            record.package_path,
            certificate,
            settings,
            credentials=get_credentials(),
            controller=tracker.claim(),
            on_stage=show_stage,
        )
        print_info(f"Signing {record.name} remotely with {certificate.display_name}")
        run_async(pipeline.run())
        return

    signer = ZsignSigner()
    if not signer.is_available():
        print_error("zsign is not installed. Use --remote to sign with the signing service.")
        raise typer.Exit(code=1)

    options = SigningOptions(bundle_id=bundle_id, name=name, version=version)
    local = LocalSigningPipeline(
        record,
        certificate,
        signer,
        settings,
        get_app_store(),
        options=options,
        on_stage=show_stage,
    )
    print_info(f"Signing {record.name} with {certificate.display_name}")
    bundle = run_async(local.run())
    print_success(f"Signed {record.name} ({bundle.bundle_id or record.bundle_id})")
