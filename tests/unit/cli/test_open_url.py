"""Unit tests for the open-url command."""

import base64
from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import httpx
from portalctl.cli.main import app
from portalctl.core.certificates import CertificateStore
from portalctl.core.library import AppRecordStore
from portalctl.core.sources import SourceStore
from typer.testing import CliRunner

runner = CliRunner()


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestOpenUrl:
    """Tests for portalctl open-url."""

    def test_add_source_link(self, xdg_home: Path) -> None:
        """sources-add links add the normalized source."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"name": "Linked", "identifier": "io.link"})
        )

        with patch(
            "portalctl.cli.commands.open_url.get_source_store",
            side_effect=lambda: SourceStore(transport=transport),
        ):
            result = runner.invoke(app, ["open-url", "new-portal://sources-add:repo.example.com"])

        assert result.exit_code == 0, result.output
        assert "Added source Linked" in result.output
        assert SourceStore().list_sources()[0].source_url == "https://repo.example.com"

    def test_import_certificate_link(
        self,
        xdg_home: Path,
        p12_file: Path,
        profile_file: Path,
        p12_password: str,
    ) -> None:
        """import-certificate links decode and import the certificate."""
        url = (
            "feather://import-certificate"
            f"?p12={_b64(p12_file.read_bytes())}"
            f"&mobileprovision={_b64(profile_file.read_bytes())}"
            f"&password={_b64(p12_password.encode())}"
        )

        result = runner.invoke(app, ["open-url", url])

        assert result.exit_code == 0, result.output
        certificates = CertificateStore().list_certificates()
        assert len(certificates) == 1
        assert certificates[0].key_path.read_bytes() == p12_file.read_bytes()
        assert list((xdg_home / "cache").rglob("url-import-*")) == []

    def test_export_certificate_link(
        self,
        xdg_home: Path,
        p12_file: Path,
        profile_file: Path,
        p12_password: str,
    ) -> None:
        """export-certificate links print the filled callback."""
        imported = runner.invoke(
            app, ["cert", "import", str(p12_file), str(profile_file), "-p", p12_password]
        )
        assert imported.exit_code == 0, imported.output
        url = "feather://export-certificate?callback_template=app://done/$(BASE64_CERT)/$(PASSWORD)"

        result = runner.invoke(app, ["open-url", url, "--no-launch"])

        assert result.exit_code == 0, result.output
        assert "app://done/" in result.output
        assert "$(BASE64_CERT)" not in result.output
        assert f"/{p12_password}" in result.output

    def test_export_without_certificates(self, xdg_home: Path) -> None:
        """Export links fail when no certificate is imported."""
        url = "feather://export-certificate?callback_template=app://done/$(BASE64_CERT)"

        result = runner.invoke(app, ["open-url", url, "--no-launch"])

        assert result.exit_code == 1
        assert "No certificates imported" in result.output

    def test_package_path(self, xdg_home: Path, make_ipa: Callable[..., Path]) -> None:
        """A package path is imported."""
        result = runner.invoke(app, ["open-url", str(make_ipa())])

        assert result.exit_code == 0, result.output
        assert len(AppRecordStore().list_records()) == 1

    def test_unsupported(self, xdg_home: Path) -> None:
        """Unknown links exit with an error."""
        result = runner.invoke(app, ["open-url", "https://example.com/page"])

        assert result.exit_code == 1
        assert "Unsupported URL" in result.output
