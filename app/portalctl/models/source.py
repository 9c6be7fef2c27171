"""Source (repository) models.

This module defines the stored reference to a remote package feed and the
pydantic model used to parse the feed document itself.
"""

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Order value of records created before ordering existed
UNORDERED = -1

# Display name stored when a feed could not be fetched or parsed
PLACEHOLDER_NAME = "Unknown"


@dataclass(frozen=True, slots=True)
class SourceRecord:
    """Reference to a remote repository feed.

    Attributes:
        identifier: Unique key, taken from the feed or falling back to the URL.
        name: Display name.
        source_url: URL the feed is fetched from.
        icon_url: Optional feed icon URL.
        added_at: When the source was added (ISO 8601 with timezone).
        order: Sort position; ``UNORDERED`` (-1) for legacy records.
    """

    identifier: str
    name: str
    source_url: str
    icon_url: str | None = None
    added_at: str = ""
    order: int = UNORDERED

    def __post_init__(self) -> None:
        """Validate source data after initialization."""
        if not self.identifier:
            msg = "Source identifier cannot be empty"
            raise ValueError(msg)
        if not self.source_url:
            msg = "Source URL cannot be empty"
            raise ValueError(msg)

    @property
    def is_ordered(self) -> bool:
        """Check if this record has been assigned a sort position."""
        return self.order != UNORDERED

    def with_order(self, order: int) -> "SourceRecord":
        """Return a copy with a different sort position."""
        return replace(self, order=order)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        result: dict[str, Any] = {
            "identifier": self.identifier,
            "name": self.name,
            "source_url": self.source_url,
            "added_at": self.added_at,
            "order": self.order,
        }
        if self.icon_url is not None:
            result["icon_url"] = self.icon_url
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceRecord":
        """Deserialize from dictionary.

        Records written before ordering existed carry no ``order`` key and
        load as ``UNORDERED``.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If identifier or URL is empty.
        """
        return cls(
            identifier=data["identifier"],
            name=data.get("name") or PLACEHOLDER_NAME,
            source_url=data["source_url"],
            icon_url=data.get("icon_url"),
            added_at=data.get("added_at", ""),
            order=int(data.get("order", UNORDERED)),
        )


def create_source_record(
    identifier: str,
    source_url: str,
    name: str | None = None,
    icon_url: str | None = None,
    order: int = UNORDERED,
) -> SourceRecord:
    """Factory function to create a new SourceRecord stamped with the current time.

    Args:
        identifier: Unique source identifier.
        source_url: Feed URL.
        name: Display name, defaults to the placeholder name.
        icon_url: Optional icon URL.
        order: Sort position.

    Returns:
        New SourceRecord.
    """
    return SourceRecord(
        identifier=identifier,
        name=name or PLACEHOLDER_NAME,
        source_url=source_url,
        icon_url=icon_url,
        added_at=datetime.now(UTC).isoformat(),
        order=order,
    )


class FeedApp(BaseModel):
    """Single app entry listed by a repository feed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    bundle_identifier: str | None = Field(default=None, alias="bundleIdentifier")
    version: str | None = None
    download_url: str | None = Field(default=None, alias="downloadURL")


class RepositoryFeed(BaseModel):
    """Repository feed document served at a source URL.

    Only the fields needed to describe the source are validated; unknown
    keys are ignored so newer feed revisions still parse.

    Attributes:
        name: Feed display name.
        identifier: Feed identifier, used as the source identifier when set.
        icon_url: Optional feed icon.
        apps: Apps offered by the feed.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    identifier: str | None = None
    icon_url: str | None = Field(default=None, alias="iconURL")
    apps: list[FeedApp] = Field(default_factory=lambda: [])
