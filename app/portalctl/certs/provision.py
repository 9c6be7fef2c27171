"""Provisioning profile inspection.

A ``.mobileprovision`` file is a CMS-signed XML property list. The plist is
located between its XML declaration and the closing ``</plist>`` tag and
parsed with plistlib; the signature itself is not verified.
"""

import logging
import plistlib
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from portalctl.core.errors import MissingProvisioningProfileError, PortalError

logger = logging.getLogger(__name__)

_PLIST_START = b"<?xml"
_PLIST_END = b"</plist>"


class ProfileParseError(PortalError):
    """Raised when a provisioning profile has no readable plist."""

    summary = "Invalid provisioning profile"


@dataclass(frozen=True, slots=True)
class ProvisioningProfile:
    """Fields of a provisioning profile relevant to signing.

    Attributes:
        name: Profile name.
        team_name: Developer team name.
        team_identifier: First team identifier, if any.
        application_identifier: Entitled application identifier.
        expiration_date: Expiration time, if present.
        get_task_allow: Whether debugging is allowed.
        ppq_check: Whether the platform anti-abuse check applies. Apps
            signed with such profiles need randomized bundle identifiers.
    """

    name: str | None = None
    team_name: str | None = None
    team_identifier: str | None = None
    application_identifier: str | None = None
    expiration_date: datetime | None = None
    get_task_allow: bool = False
    ppq_check: bool = False

    @property
    def requires_identifier_randomization(self) -> bool:
        return self.ppq_check

    @property
    def expires_at(self) -> str | None:
        """Expiration as ISO 8601, if known."""
        return self.expiration_date.isoformat() if self.expiration_date else None


def extract_plist(data: bytes) -> dict[str, Any]:
    """Cut the embedded plist out of a signed profile and parse it.

    Raises:
        ProfileParseError: If no plist is found or it cannot be parsed.
    """
    start = data.find(_PLIST_START)
    end = data.find(_PLIST_END, start + 1 if start >= 0 else 0)
    if start < 0 or end < 0:
        raise ProfileParseError("No property list found in provisioning profile")

    try:
        payload = plistlib.loads(data[start : end + len(_PLIST_END)])
    except (plistlib.InvalidFileException, ValueError) as e:
        raise ProfileParseError(f"Invalid provisioning profile: {e}") from e
    if not isinstance(payload, dict):
        raise ProfileParseError("Provisioning profile is not a dictionary")
    return payload


def read_provisioning_profile(path: Path) -> ProvisioningProfile:
    """Read the signing-relevant fields of a provisioning profile.

    Raises:
        MissingProvisioningProfileError: If the file does not exist.
        ProfileParseError: If the file has no readable plist.
    """
    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        raise MissingProvisioningProfileError(f"Provisioning profile not found: {path}") from e
    except OSError as e:
        raise ProfileParseError(f"Failed to read provisioning profile: {e}") from e

    plist = extract_plist(data)
    entitlements = plist.get("Entitlements") or {}
    team_ids = plist.get("TeamIdentifier") or []
    expiration = plist.get("ExpirationDate")

    profile = ProvisioningProfile(
        name=plist.get("Name"),
        team_name=plist.get("TeamName"),
        team_identifier=team_ids[0] if team_ids else None,
        application_identifier=entitlements.get("application-identifier"),
        expiration_date=expiration if isinstance(expiration, datetime) else None,
        get_task_allow=bool(entitlements.get("get-task-allow", False)),
        ppq_check=bool(plist.get("PPQCheck", False)),
    )
    logger.debug("Read provisioning profile %s (PPQCheck=%s)", profile.name, profile.ppq_check)
    return profile
