"""Certificate commands.

Import, list, export and remove signing certificates.
"""

from pathlib import Path
from typing import Annotated

import typer

from portalctl.certs.bundle import export_certificate
from portalctl.cli.types import (
    get_certificate_store,
    get_settings_service,
    run_async,
    show_stage,
)
from portalctl.core.errors import PortalError
from portalctl.models.pipeline import CertificateImportResult
from portalctl.pipelines.certificate_import import (
    CertificateImportPipeline,
    import_certificate_bundle,
)
from portalctl.utils.formatting import (
    console,
    create_certificate_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

app = typer.Typer(
    help="Manage signing certificates.",
    invoke_without_command=True,
    no_args_is_help=True,
)

PasswordOption = Annotated[
    str | None,
    typer.Option("--password", "-p", help="P12 password."),
]
NicknameOption = Annotated[
    str | None,
    typer.Option("--nickname", "-n", help="Display name for the certificate."),
]
NoVerifyOption = Annotated[
    bool,
    typer.Option("--no-verify", help="Skip the password check."),
]


def _report_import(result: CertificateImportResult) -> None:
    certificate = result.certificate
    print_success(f"Imported certificate {certificate.display_name} ({certificate.id})")
    if result.randomization_enabled:
        print_warning(
            "This profile is subject to PPQ checks. Bundle identifier randomization was enabled."
        )


@app.command("import")
def import_cert(
    key_file: Annotated[Path, typer.Argument(help="P12 key file.")],
    provision_file: Annotated[Path, typer.Argument(help="Provisioning profile.")],
    password: PasswordOption = None,
    nickname: NicknameOption = None,
    no_verify: NoVerifyOption = False,
) -> None:
    """Import a P12 key file and its provisioning profile."""
    pipeline = CertificateImportPipeline(
        key_file,
        provision_file,
        get_certificate_store(),
        get_settings_service(),
        passphrase=password,
        nickname=nickname,
        verify_passphrase=not no_verify,
        on_stage=show_stage,
    )
    _report_import(run_async(pipeline.run()))


@app.command("import-bundle")
def import_bundle(
    bundle_file: Annotated[Path, typer.Argument(help="Certificate bundle (.portalcert).")],
    password: PasswordOption = None,
    nickname: NicknameOption = None,
    no_verify: NoVerifyOption = False,
) -> None:
    """Import a .portalcert certificate bundle."""
    result = run_async(
        import_certificate_bundle(
            bundle_file,
            get_certificate_store(),
            get_settings_service(),
            passphrase=password,
            nickname=nickname,
            verify_passphrase=not no_verify,
            on_stage=show_stage,
        )
    )
    _report_import(result)


@app.command("list")
def list_certs() -> None:
    """List imported certificates."""
    try:
        certificates = get_certificate_store().list_certificates()
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if not certificates:
        print_info("No certificates imported.")
        return
    console.print(create_certificate_table(certificates))


@app.command()
def export(
    certificate_id: Annotated[str, typer.Argument(help="ID of the certificate to export.")],
    output_dir: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory to write the bundle to."),
    ] = Path("."),
) -> None:
    """Export a certificate as a .portalcert bundle."""
    try:
        asset = get_certificate_store().load_asset(certificate_id)
        path = export_certificate(asset, output_dir)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Exported to {path}")


@app.command()
def remove(
    certificate_id: Annotated[str, typer.Argument(help="ID of the certificate to remove.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a certificate, its files and stored password."""
    store = get_certificate_store()
    try:
        asset = store.get(certificate_id)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if not yes and not typer.confirm(f"Remove certificate {asset.display_name}?", default=False):
        print_info("Aborted.")
        raise typer.Exit(code=0)

    try:
        store.remove(certificate_id)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Removed certificate {asset.display_name}")
