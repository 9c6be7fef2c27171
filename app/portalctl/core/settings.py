"""User settings and the settings service.

This module provides the configuration model and I/O functions for the
options that steer signing and installation, plus the SettingsService
through which pipelines toggle global protection flags.

Configuration is stored in ~/.config/portalctl/settings.toml
"""

import logging
import os
import threading
import tomllib
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from portalctl.core.errors import SettingsError
from portalctl.core.paths import get_settings_path

logger = logging.getLogger(__name__)

# Remote signing service used when no custom endpoint is configured
DEFAULT_SIGNING_ENDPOINT = "https://sign.ayon1xw.me/sign"


class ServerMethod(str, Enum):
    """Where installer pages are served from.

    Attributes:
        REMOTE: Hosted installer; links are opened directly.
        LOCAL: Local server; the install page is shown in a web view.
        CUSTOM: Custom signing API; the install page is shown in a web view.
    """

    REMOTE = "remote"
    LOCAL = "local"
    CUSTOM = "custom"


class InstallationMethod(str, Enum):
    """How packages are delivered to the device.

    Attributes:
        SERVER: Over-the-air through an installer link.
        IDEVICE: Local network pairing with the device.
    """

    SERVER = "server"
    IDEVICE = "idevice"


class SettingsFlag(str, Enum):
    """Boolean settings that code may switch on through the service."""

    IDENTIFIER_RANDOMIZATION = "identifier_randomization"


class Settings(BaseModel):
    """Persisted user settings.

    Attributes:
        server_method: Where installer pages are served from.
        installation_method: How packages reach the device.
        custom_signing_api: Custom remote signing endpoint, if any.
        identifier_randomization: Append a random suffix to bundle
            identifiers when signing.
    """

    model_config = ConfigDict(extra="forbid")

    server_method: Annotated[
        ServerMethod,
        Field(description="Where installer pages are served from"),
    ] = ServerMethod.REMOTE
    installation_method: Annotated[
        InstallationMethod,
        Field(description="How packages are delivered to the device"),
    ] = InstallationMethod.SERVER
    custom_signing_api: Annotated[
        str | None,
        Field(description="Custom remote signing endpoint"),
    ] = None
    identifier_randomization: Annotated[
        bool,
        Field(description="Randomize bundle identifiers when signing"),
    ] = False

    @property
    def signing_endpoint(self) -> str:
        """Remote signing endpoint: the custom API when set, else the default."""
        if self.custom_signing_api and self.custom_signing_api.strip():
            return self.custom_signing_api.strip()
        return DEFAULT_SIGNING_ENDPOINT


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from a TOML file.

    A missing file yields default settings.

    Args:
        path: Path to the settings file. If None, uses the default path.

    Returns:
        Validated Settings object.

    Raises:
        SettingsError: If the file cannot be read, parsed or validated.
    """
    settings_path = path or get_settings_path()

    if not settings_path.exists():
        return Settings()

    try:
        with open(settings_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise SettingsError(f"Invalid TOML syntax: {e}") from e
    except OSError as e:
        raise SettingsError(f"Failed to read settings: {e}") from e

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise SettingsError(f"Invalid settings content: {e}") from e


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Save settings to a TOML file.

    The file is written atomically by first writing to a temporary file
    and then using os.replace() for atomic rename.

    Args:
        settings: The Settings object to save.
        path: Path to save the settings. If None, uses the default path.

    Returns:
        Path where the settings were saved.

    Raises:
        SettingsError: If the file cannot be written.
    """
    settings_path = path or get_settings_path()
    settings_path.parent.mkdir(parents=True, exist_ok=True)

    data = settings.model_dump(mode="json", exclude_none=True)

    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=settings_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(settings_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise SettingsError(f"Failed to write settings: {e}") from e

    return settings_path


class SettingsService:
    """Read and update settings through one injected object.

    Pipelines depend on this service rather than on module-level state.
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the service.

        Args:
            path: Optional override for the settings file.
        """
        self._path = path
        self._lock = threading.Lock()

    @property
    def settings(self) -> Settings:
        """Current settings, read from disk."""
        return load_settings(self._path)

    def is_enabled(self, flag: SettingsFlag) -> bool:
        """Check a boolean setting."""
        return bool(getattr(self.settings, flag.value))

    def enable(self, flag: SettingsFlag) -> bool:
        """Switch a boolean setting on.

        Args:
            flag: Setting to enable.

        Returns:
            True if the setting changed, False if it was already on.

        Raises:
            SettingsError: If the settings cannot be saved.
        """
        with self._lock:
            current = load_settings(self._path)
            if getattr(current, flag.value):
                return False
            save_settings(current.model_copy(update={flag.value: True}), self._path)
        logger.info("Enabled setting %s", flag.value)
        return True

    def update(self, **changes: object) -> Settings:
        """Apply and persist field changes.

        Raises:
            SettingsError: If the values are invalid or cannot be saved.
        """
        with self._lock:
            current = load_settings(self._path)
            try:
                updated = Settings.model_validate({**current.model_dump(), **changes})
            except ValidationError as e:
                raise SettingsError(f"Invalid settings value: {e}") from e
            save_settings(updated, self._path)
        return updated
