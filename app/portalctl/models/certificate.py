"""Certificate models.

This module defines the signing certificate record kept in the library and
the metadata document embedded in ``.portalcert`` bundles.
"""

import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Current bundle format version written by the encoder
BUNDLE_FORMAT_VERSION = "1.0"

# Versions the decoder trusts for metadata-driven lookup
SUPPORTED_BUNDLE_VERSIONS: frozenset[str] = frozenset({BUNDLE_FORMAT_VERSION})


class BundleMetadata(BaseModel):
    """Descriptor stored as ``metadata.json`` inside a certificate bundle.

    The passphrase itself is never embedded; only ``has_password`` records
    whether one is needed.

    Attributes:
        version: Bundle format version string.
        created_at: Creation time in epoch seconds.
        p12_filename: File name of the key material inside the bundle.
        provision_filename: File name of the provisioning profile.
        nickname: Optional human-readable certificate name.
        has_password: Whether the key material needs a passphrase.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str
    created_at: float = Field(alias="createdAt")
    p12_filename: str = Field(alias="p12Filename")
    provision_filename: str = Field(alias="provisionFilename")
    nickname: str | None = None
    has_password: bool = Field(default=False, alias="hasPassword")

    @property
    def is_supported(self) -> bool:
        """Check if the decoder recognizes this format version."""
        return self.version in SUPPORTED_BUNDLE_VERSIONS

    def to_json(self) -> str:
        """Serialize using the on-disk camelCase field names."""
        return self.model_dump_json(by_alias=True)


def create_bundle_metadata(
    p12_filename: str,
    provision_filename: str,
    nickname: str | None = None,
    has_password: bool = False,
    created_at: float | None = None,
) -> BundleMetadata:
    """Build metadata for the current format version.

    Args:
        p12_filename: Key material file name.
        provision_filename: Provisioning profile file name.
        nickname: Optional certificate nickname.
        has_password: Whether the key material is passphrase protected.
        created_at: Creation time, defaults to now.

    Returns:
        New BundleMetadata instance.
    """
    return BundleMetadata(
        version=BUNDLE_FORMAT_VERSION,
        created_at=created_at if created_at is not None else time.time(),
        p12_filename=p12_filename,
        provision_filename=provision_filename,
        nickname=nickname,
        has_password=has_password,
    )


@dataclass(frozen=True, slots=True)
class CertificateAsset:
    """Signing identity stored in the certificate library.

    Attributes:
        id: Unique identifier (32-character hex string).
        key_path: Path to the P12 key material.
        provision_path: Path to the provisioning profile.
        nickname: Optional human-readable name.
        passphrase: P12 passphrase. Held in memory only; persisted through
            the credential store.
        profile_name: Name from the provisioning profile.
        team_name: Team name from the provisioning profile.
        expires_at: Profile expiration (ISO 8601), if known.
        added_at: When the certificate was imported (ISO 8601).
        requires_identifier_randomization: True when the provisioning
            profile is subject to platform anti-abuse checks.
    """

    id: str
    key_path: Path
    provision_path: Path
    nickname: str | None = None
    passphrase: str | None = field(default=None, repr=False)
    profile_name: str | None = None
    team_name: str | None = None
    expires_at: str | None = None
    added_at: str = ""
    requires_identifier_randomization: bool = False

    def __post_init__(self) -> None:
        """Validate certificate data after initialization."""
        if not self.id:
            msg = "Certificate ID cannot be empty"
            raise ValueError(msg)

    @property
    def display_name(self) -> str:
        """Name shown to users: nickname, profile name, or 'Unknown'."""
        return self.nickname or self.profile_name or "Unknown"

    @property
    def has_passphrase(self) -> bool:
        """Check if a non-empty passphrase is attached."""
        return bool(self.passphrase)

    def with_passphrase(self, passphrase: str | None) -> "CertificateAsset":
        """Return a copy carrying the given passphrase."""
        return replace(self, passphrase=passphrase)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage.

        The passphrase is deliberately excluded.
        """
        result: dict[str, Any] = {
            "id": self.id,
            "key_path": str(self.key_path),
            "provision_path": str(self.provision_path),
            "added_at": self.added_at,
            "requires_identifier_randomization": self.requires_identifier_randomization,
        }
        for key in ("nickname", "profile_name", "team_name", "expires_at"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CertificateAsset":
        """Deserialize from dictionary.

        Raises:
            KeyError: If required fields are missing.
        """
        return cls(
            id=data["id"],
            key_path=Path(data["key_path"]),
            provision_path=Path(data["provision_path"]),
            nickname=data.get("nickname"),
            profile_name=data.get("profile_name"),
            team_name=data.get("team_name"),
            expires_at=data.get("expires_at"),
            added_at=data.get("added_at", ""),
            requires_identifier_randomization=data.get("requires_identifier_randomization", False),
        )

