"""Unit tests for settings loading and the settings service."""

import tomllib
from pathlib import Path

import pytest
from portalctl.core.errors import SettingsError
from portalctl.core.settings import (
    DEFAULT_SIGNING_ENDPOINT,
    InstallationMethod,
    ServerMethod,
    Settings,
    SettingsFlag,
    SettingsService,
    load_settings,
    save_settings,
)


class TestSettingsModel:
    """Tests for the Settings model."""

    def test_defaults(self) -> None:
        """Default settings use the hosted server and OTA install."""
        settings = Settings()

        assert settings.server_method == ServerMethod.REMOTE
        assert settings.installation_method == InstallationMethod.SERVER
        assert settings.identifier_randomization is False
        assert settings.signing_endpoint == DEFAULT_SIGNING_ENDPOINT

    def test_custom_endpoint_wins(self) -> None:
        """A non-empty custom endpoint replaces the default."""
        settings = Settings(custom_signing_api=" https://sign.example.com/sign ")

        assert settings.signing_endpoint == "https://sign.example.com/sign"

    def test_blank_custom_endpoint_ignored(self) -> None:
        """A blank custom endpoint falls back to the default."""
        assert Settings(custom_signing_api="   ").signing_endpoint == DEFAULT_SIGNING_ENDPOINT


class TestLoadSave:
    """Tests for load_settings and save_settings."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        """A missing settings file yields defaults."""
        assert load_settings(tmp_path / "settings.toml") == Settings()

    def test_round_trip(self, tmp_path: Path) -> None:
        """Saved settings load back equal."""
        path = tmp_path / "settings.toml"
        settings = Settings(server_method=ServerMethod.LOCAL, identifier_randomization=True)

        save_settings(settings, path)

        assert load_settings(path) == settings
        with open(path, "rb") as f:
            assert tomllib.load(f)["server_method"] == "local"

    def test_invalid_toml_raises(self, tmp_path: Path) -> None:
        """Broken TOML raises SettingsError."""
        path = tmp_path / "settings.toml"
        path.write_text("server_method = ")

        with pytest.raises(SettingsError, match="TOML"):
            load_settings(path)

    def test_unknown_key_raises(self, tmp_path: Path) -> None:
        """Unknown keys are rejected."""
        path = tmp_path / "settings.toml"
        path.write_text('colour = "blue"\n')

        with pytest.raises(SettingsError):
            load_settings(path)


class TestSettingsService:
    """Tests for SettingsService."""

    @pytest.fixture
    def service(self, tmp_path: Path) -> SettingsService:
        """Create a service backed by a temporary file."""
        return SettingsService(tmp_path / "settings.toml")

    def test_enable_switches_flag_on(self, service: SettingsService) -> None:
        """enable persists the flag and reports the change."""
        assert service.enable(SettingsFlag.IDENTIFIER_RANDOMIZATION) is True

        assert service.is_enabled(SettingsFlag.IDENTIFIER_RANDOMIZATION)

    def test_enable_twice_reports_no_change(self, service: SettingsService) -> None:
        """Enabling an enabled flag returns False."""
        service.enable(SettingsFlag.IDENTIFIER_RANDOMIZATION)

        assert service.enable(SettingsFlag.IDENTIFIER_RANDOMIZATION) is False

    def test_update_validates(self, service: SettingsService) -> None:
        """update rejects invalid values and keeps the file unchanged."""
        with pytest.raises(SettingsError):
            service.update(server_method="carrier-pigeon")

        assert service.settings == Settings()

    def test_update_persists(self, service: SettingsService) -> None:
        """update stores valid changes."""
        service.update(installation_method="idevice")

        assert service.settings.installation_method == InstallationMethod.IDEVICE
