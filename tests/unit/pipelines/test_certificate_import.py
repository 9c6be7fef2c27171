"""Unit tests for the certificate import pipeline."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest
from portalctl.certs.bundle import create_bundle
from portalctl.core.certificates import CertificateStore
from portalctl.core.credentials import CredentialStore, certificate_passphrase_key
from portalctl.core.errors import (
    InvalidPassphraseError,
    MissingKeyMaterialError,
    MissingProvisioningProfileError,
    SettingsError,
)
from portalctl.core.settings import SettingsFlag, SettingsService
from portalctl.models.pipeline import CertificateImportResult
from portalctl.pipelines.certificate_import import (
    CertificateImportPipeline,
    import_certificate_bundle,
)


@pytest.fixture
def credentials(tmp_path: Path) -> CredentialStore:
    """Credential store in a temporary directory."""
    return CredentialStore(tmp_path / "credentials.toml")


@pytest.fixture
def store(tmp_path: Path, credentials: CredentialStore) -> CertificateStore:
    """Certificate store in a temporary state directory."""
    return CertificateStore(state_dir=tmp_path / "state", credentials=credentials)


@pytest.fixture
def settings(tmp_path: Path) -> SettingsService:
    """Settings service backed by a temporary file."""
    return SettingsService(tmp_path / "settings.toml")


@pytest.fixture
def library_dir(tmp_path: Path) -> Path:
    """Certificate library root."""
    return tmp_path / "library" / "certificates"


@pytest.fixture
def work_root(tmp_path: Path) -> Path:
    """Scratch root."""
    return tmp_path / "work"


class TestCertificateImport:
    """Tests for CertificateImportPipeline runs."""

    def _run(
        self,
        key: Path,
        profile: Path,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
        passphrase: str | None = None,
        nickname: str | None = None,
        verify_passphrase: bool = True,
    ) -> CertificateImportResult:
        pipeline = CertificateImportPipeline(
            key,
            profile,
            store,
            settings,
            passphrase=passphrase,
            nickname=nickname,
            verify_passphrase=verify_passphrase,
            library_dir=library_dir,
            work_root=work_root,
        )
        return asyncio.run(pipeline.run())

    def test_import(
        self,
        p12_file: Path,
        profile_file: Path,
        p12_password: str,
        store: CertificateStore,
        settings: SettingsService,
        credentials: CredentialStore,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """Files are moved into the library and the record is registered."""
        result = self._run(
            p12_file,
            profile_file,
            store,
            settings,
            library_dir,
            work_root,
            passphrase=p12_password,
            nickname="Work",
        )

        cert = result.certificate
        assert not result.randomization_enabled
        assert cert.key_path == library_dir / cert.id / "cert.p12"
        assert cert.provision_path == library_dir / cert.id / "profile.mobileprovision"
        assert cert.key_path.read_bytes() == p12_file.read_bytes()
        assert cert.nickname == "Work"
        assert cert.profile_name == "Test Profile"
        assert cert.team_name == "Example Team"
        assert cert.expires_at == "2030-01-01T12:00:00"
        assert [c.id for c in store.list_certificates()] == [cert.id]
        assert credentials.get(certificate_passphrase_key(cert.id)) == p12_password
        assert store.load_asset(cert.id).passphrase == p12_password
        assert p12_file.exists()
        assert profile_file.exists()
        assert list(work_root.iterdir()) == []
        assert not settings.is_enabled(SettingsFlag.IDENTIFIER_RANDOMIZATION)

    def test_ppq_profile_enables_randomization(
        self,
        p12_file: Path,
        ppq_profile_file: Path,
        p12_password: str,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """A PPQ profile switches identifier randomization on."""
        result = self._run(
            p12_file,
            ppq_profile_file,
            store,
            settings,
            library_dir,
            work_root,
            passphrase=p12_password,
        )

        assert result.randomization_enabled
        assert result.certificate.requires_identifier_randomization
        assert settings.is_enabled(SettingsFlag.IDENTIFIER_RANDOMIZATION)

    def test_randomization_already_on(
        self,
        p12_file: Path,
        ppq_profile_file: Path,
        p12_password: str,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """When the setting is already on the result reports no change."""
        settings.enable(SettingsFlag.IDENTIFIER_RANDOMIZATION)

        result = self._run(
            p12_file,
            ppq_profile_file,
            store,
            settings,
            library_dir,
            work_root,
            passphrase=p12_password,
        )

        assert not result.randomization_enabled
        assert settings.is_enabled(SettingsFlag.IDENTIFIER_RANDOMIZATION)

    def test_wrong_passphrase(
        self,
        p12_file: Path,
        profile_file: Path,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """A wrong passphrase is rejected before anything is moved."""
        with pytest.raises(InvalidPassphraseError):
            self._run(
                p12_file,
                profile_file,
                store,
                settings,
                library_dir,
                work_root,
                passphrase="wrong",
            )

        assert store.list_certificates() == []
        assert not library_dir.exists()
        assert list(work_root.iterdir()) == []

    def test_skip_verification(
        self,
        p12_file: Path,
        profile_file: Path,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """Verification can be turned off."""
        result = self._run(
            p12_file,
            profile_file,
            store,
            settings,
            library_dir,
            work_root,
            passphrase="wrong",
            verify_passphrase=False,
        )

        assert result.certificate.passphrase == "wrong"

    def test_missing_key_file(
        self,
        tmp_path: Path,
        profile_file: Path,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """A missing key file raises MissingKeyMaterialError."""
        with pytest.raises(MissingKeyMaterialError):
            self._run(tmp_path / "none.p12", profile_file, store, settings, library_dir, work_root)

    def test_missing_profile(
        self,
        tmp_path: Path,
        p12_file: Path,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """A missing profile raises MissingProvisioningProfileError."""
        with pytest.raises(MissingProvisioningProfileError):
            self._run(
                p12_file,
                tmp_path / "none.mobileprovision",
                store,
                settings,
                library_dir,
                work_root,
            )

    def test_settings_failure_rolls_back(
        self,
        p12_file: Path,
        ppq_profile_file: Path,
        p12_password: str,
        store: CertificateStore,
        settings: SettingsService,
        credentials: CredentialStore,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """A failure after registration removes the record and files again."""
        with (
            patch.object(settings, "enable", side_effect=SettingsError("read-only")),
            pytest.raises(SettingsError),
        ):
            self._run(
                p12_file,
                ppq_profile_file,
                store,
                settings,
                library_dir,
                work_root,
                passphrase=p12_password,
            )

        assert store.list_certificates() == []
        assert list(library_dir.iterdir()) == []
        assert list(work_root.iterdir()) == []


class TestImportBundle:
    """Tests for import_certificate_bundle function."""

    def test_uses_bundle_nickname(
        self,
        tmp_path: Path,
        p12_file: Path,
        profile_file: Path,
        p12_password: str,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """The nickname stored in the bundle is applied."""
        bundle = create_bundle(p12_file, profile_file, True, "Team Cert", tmp_path / "team")

        result = asyncio.run(
            import_certificate_bundle(
                bundle,
                store,
                settings,
                passphrase=p12_password,
                library_dir=library_dir,
                work_root=work_root,
            )
        )

        assert result.certificate.nickname == "Team Cert"
        assert result.certificate.key_path.read_bytes() == p12_file.read_bytes()
        assert list(work_root.iterdir()) == []

    def test_explicit_nickname_wins(
        self,
        tmp_path: Path,
        p12_file: Path,
        profile_file: Path,
        p12_password: str,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """A nickname argument overrides the bundle's."""
        bundle = create_bundle(p12_file, profile_file, True, "Team Cert", tmp_path / "team")

        result = asyncio.run(
            import_certificate_bundle(
                bundle,
                store,
                settings,
                passphrase=p12_password,
                nickname="Mine",
                library_dir=library_dir,
                work_root=work_root,
            )
        )

        assert result.certificate.nickname == "Mine"

    def test_wrong_passphrase_cleans_scratch(
        self,
        tmp_path: Path,
        p12_file: Path,
        profile_file: Path,
        store: CertificateStore,
        settings: SettingsService,
        library_dir: Path,
        work_root: Path,
    ) -> None:
        """Decoded files are removed when the import fails."""
        bundle = create_bundle(p12_file, profile_file, True, None, tmp_path / "team")

        with pytest.raises(InvalidPassphraseError):
            asyncio.run(
                import_certificate_bundle(
                    bundle,
                    store,
                    settings,
                    passphrase="wrong",
                    library_dir=library_dir,
                    work_root=work_root,
                )
            )

        assert list(work_root.iterdir()) == []
        assert store.list_certificates() == []
