"""Signing models.

This module defines the options handed to signing capabilities, their
result, and the response document of the remote signing service.
"""

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True, slots=True)
class SigningOptions:
    """Modifications applied while signing.

    Attributes:
        bundle_id: Override for the bundle identifier.
        name: Override for the display name.
        version: Override for the short version string.
        randomize_identifier: Append a random suffix to the bundle
            identifier when no explicit override is given.
    """

    bundle_id: str | None = None
    name: str | None = None
    version: str | None = None
    randomize_identifier: bool = False


@dataclass(frozen=True, slots=True)
class SignedBundle:
    """Output of a signing capability.

    Attributes:
        app_path: Path to the signed ``.app`` directory.
        bundle_id: Bundle identifier the app was signed with.
    """

    app_path: Path
    bundle_id: str | None = None


class RemoteSigningResponse(BaseModel):
    """JSON response of the remote signing service.

    Attributes:
        install_link: Web page that redirects to the installer.
        direct_install_link: Link that starts installation directly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    install_link: str = Field(alias="installLink")
    direct_install_link: str = Field(alias="directInstallLink")
