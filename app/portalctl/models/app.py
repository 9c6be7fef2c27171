"""App record model.

This module defines the library entry registered for every imported or
signed application package.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any


class AppKind(str, Enum):
    """Library section an app record belongs to.

    Attributes:
        IMPORTED: Package imported as-is, not yet signed.
        SIGNED: Package re-signed with a library certificate.
    """

    IMPORTED = "imported"
    SIGNED = "signed"


@dataclass(frozen=True, slots=True)
class AppRecord:
    """Application package registered in the library.

    Attributes:
        uuid: Library key, also the name of the app's library directory.
        identifier: Import identifier derived from the package contents
            (SHA-256 hex digest); unique per store.
        kind: Library section.
        bundle_id: Bundle identifier from the app's Info.plist.
        name: App display name.
        version: Short version string.
        package_path: Path to the stored package archive.
        app_path: Path to the extracted ``.app`` directory.
        size: Package size in bytes.
        added_at: When the record was created (ISO 8601).
        certificate_id: Certificate used for signing (signed apps only).
    """

    uuid: str
    identifier: str
    kind: AppKind
    bundle_id: str
    name: str
    version: str
    package_path: Path
    app_path: Path
    size: int = 0
    added_at: str = ""
    certificate_id: str | None = None

    def __post_init__(self) -> None:
        """Validate record data after initialization."""
        if not self.uuid:
            msg = "App record UUID cannot be empty"
            raise ValueError(msg)
        if not self.identifier:
            msg = "App record identifier cannot be empty"
            raise ValueError(msg)

    @property
    def library_dir(self) -> Path:
        """Directory holding the package and its extracted payload."""
        return self.package_path.parent

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        result: dict[str, Any] = {
            "uuid": self.uuid,
            "identifier": self.identifier,
            "kind": self.kind.value,
            "bundle_id": self.bundle_id,
            "name": self.name,
            "version": self.version,
            "package_path": str(self.package_path),
            "app_path": str(self.app_path),
            "size": self.size,
            "added_at": self.added_at,
        }
        if self.certificate_id is not None:
            result["certificate_id"] = self.certificate_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppRecord":
        """Deserialize from dictionary.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If kind is invalid.
        """
        return cls(
            uuid=data["uuid"],
            identifier=data["identifier"],
            kind=AppKind(data["kind"]),
            bundle_id=data.get("bundle_id", ""),
            name=data.get("name", "Unknown"),
            version=data.get("version", ""),
            package_path=Path(data["package_path"]),
            app_path=Path(data["app_path"]),
            size=int(data.get("size", 0)),
            added_at=data.get("added_at", ""),
            certificate_id=data.get("certificate_id"),
        )
