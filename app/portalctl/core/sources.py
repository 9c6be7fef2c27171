"""Repository (source) store.

Keeps the ordered list of remote package feeds. Adding a source never
fails because of the network: when the feed cannot be fetched or parsed a
placeholder record is stored instead. Reordering is transactional and the
one-time order migration is lock-guarded and retried until it persists.
"""

import logging
import threading
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from portalctl.core.credentials import CredentialStore, source_token_key
from portalctl.core.errors import DuplicateIdentifierError, PersistenceError, RecordNotFoundError
from portalctl.core.records import JsonRecordStore
from portalctl.core.state import StateManager
from portalctl.models.source import (
    PLACEHOLDER_NAME,
    UNORDERED,
    RepositoryFeed,
    SourceRecord,
    create_source_record,
)

logger = logging.getLogger(__name__)

# Persisted flag marking the one-time order migration as done
SOURCE_ORDER_MIGRATION_KEY = "SourceOrderMigrationCompleted"

# Timeout for feed requests in seconds
FEED_TIMEOUT: float = 30.0

_migration_lock = threading.Lock()


class SourceStore(JsonRecordStore[SourceRecord]):
    """Persisted repository sources.

    Storage location: ~/.local/state/portalctl/sources.json
    """

    FILENAME = "sources.json"

    def __init__(
        self,
        state_dir: Path | None = None,
        state: StateManager | None = None,
        credentials: CredentialStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            state_dir: Optional override for the state directory.
            state: Flag storage for the migration marker.
            credentials: Optional credential store for per-host feed tokens.
            transport: Optional HTTP transport (used by tests).
        """
        super().__init__(state_dir)
        self._state = state if state is not None else StateManager(state_dir)
        self._credentials = credentials
        self._transport = transport

    def _decode(self, data: dict[str, Any]) -> SourceRecord:
        return SourceRecord.from_dict(data)

    def _encode(self, record: SourceRecord) -> dict[str, Any]:
        return record.to_dict()

    # =========================================================================
    # Queries
    # =========================================================================

    def list_sources(self) -> list[SourceRecord]:
        """List sources in display order.

        Ordered records come first by ``order``; unordered legacy records
        follow by creation time.
        """
        return sorted(
            self._read(),
            key=lambda r: (not r.is_ordered, r.order, r.added_at),
        )

    def source_exists(self, identifier: str) -> bool:
        """Check if a source with this identifier is stored."""
        return any(r.identifier == identifier for r in self._read())

    def get_source(self, identifier: str) -> SourceRecord:
        """Get a source by identifier.

        Raises:
            RecordNotFoundError: If the source is unknown.
        """
        for record in self._read():
            if record.identifier == identifier:
                return record
        raise RecordNotFoundError(f"No source with identifier {identifier}")

    # =========================================================================
    # Mutations
    # =========================================================================

    async def add_source(
        self,
        url: str,
        name_hint: str | None = None,
        identifier_hint: str | None = None,
    ) -> SourceRecord | None:
        """Add a source, fetching its feed for name, icon and identifier.

        Fetch and parse failures are not errors: a placeholder record named
        "Unknown" is stored instead.

        Args:
            url: Feed URL.
            name_hint: Name used when the feed does not provide one.
            identifier_hint: Identifier used when the feed has none.

        Returns:
            The new record, or None if the source already existed or the
            URL is invalid.

        Raises:
            PersistenceError: If the store cannot be saved.
        """
        try:
            httpx.URL(url)
        except httpx.InvalidURL:
            logger.error("Invalid URL string: %s", url)
            return None

        fallback_id = identifier_hint or url
        if self.source_exists(fallback_id):
            logger.debug("Source already exists: %s", fallback_id)
            return None

        try:
            feed = await self.fetch_feed(url)
        except (httpx.HTTPError, ValidationError) as e:
            logger.warning("Could not load feed %s, storing placeholder: %s", url, e)
            return self._insert(fallback_id, url, name_hint or PLACEHOLDER_NAME, None)

        return self._insert(
            feed.identifier or fallback_id,
            url,
            feed.name or name_hint or PLACEHOLDER_NAME,
            feed.icon_url,
        )

    async def fetch_feed(self, url: str) -> RepositoryFeed:
        """Fetch and parse the feed served at ``url``.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses.
            pydantic.ValidationError: If the body is not a valid feed.
        """
        headers: dict[str, str] = {}
        if self._credentials is not None:
            token = self._credentials.get(source_token_key(httpx.URL(url).host))
            if token:
                headers["Authorization"] = f"Bearer {token}"

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=FEED_TIMEOUT,
            follow_redirects=True,
        ) as client:
            response = await client.get(url, headers=headers)
            response.raise_for_status()

        return RepositoryFeed.model_validate_json(response.content)

    def _insert(
        self,
        identifier: str,
        url: str,
        name: str,
        icon_url: str | None,
    ) -> SourceRecord | None:
        """Append a record after the current last position.

        Returns:
            The stored record, or None if the identifier already exists.
        """
        try:
            with self._transaction() as records:
                if any(r.identifier == identifier for r in records):
                    raise DuplicateIdentifierError(identifier)
                max_order = max((r.order for r in records), default=UNORDERED)
                record = create_source_record(
                    identifier=identifier,
                    source_url=url,
                    name=name,
                    icon_url=icon_url,
                    order=max_order + 1,
                )
                records.append(record)
        except DuplicateIdentifierError:
            logger.debug("Ignoring %s", identifier)
            return None

        logger.info("Added source %s (%s)", record.name, record.identifier)
        return record

    def remove_source(self, identifier: str) -> bool:
        """Delete a source.

        Returns:
            True if a source was removed.
        """
        removed = False
        with self._transaction() as records:
            for index, record in enumerate(records):
                if record.identifier == identifier:
                    del records[index]
                    removed = True
                    break
        return removed

    def reorder(self, identifiers: list[str]) -> list[SourceRecord]:
        """Assign dense zero-based orders following ``identifiers``.

        Sources not named in ``identifiers`` keep their relative order and
        are placed after the named ones. All changes are saved in one
        transaction; on any failure nothing is changed.

        Args:
            identifiers: Source identifiers in the desired order.

        Returns:
            Sources in their new order.

        Raises:
            RecordNotFoundError: If an identifier is unknown.
            ValueError: If an identifier is repeated.
            PersistenceError: If the store cannot be saved.
        """
        if len(set(identifiers)) != len(identifiers):
            msg = "Source order contains duplicate identifiers"
            raise ValueError(msg)

        try:
            with self._transaction() as records:
                by_id = {r.identifier: r for r in records}
                for identifier in identifiers:
                    if identifier not in by_id:
                        raise RecordNotFoundError(f"No source with identifier {identifier}")

                rest = sorted(
                    (r for r in records if r.identifier not in set(identifiers)),
                    key=lambda r: (not r.is_ordered, r.order, r.added_at),
                )
                sequence = [by_id[i] for i in identifiers] + rest
                records[:] = [record.with_order(index) for index, record in enumerate(sequence)]
                reordered = list(records)
        except PersistenceError as e:
            logger.error("Error reordering sources: %s", e)
            raise

        return reordered

    def initialize_orders(self) -> bool:
        """Assign orders to legacy records once.

        Guarded by a lock so concurrent callers cannot both run the
        check-then-act sequence. The completion flag is set only after
        the records were saved; if saving fails the flag stays unset and
        the migration runs again on the next call.

        Returns:
            True if orders were assigned during this call.
        """
        with _migration_lock:
            if self._state.get_flag(SOURCE_ORDER_MIGRATION_KEY):
                return False

            try:
                assigned = self._assign_initial_orders()
                self._state.set_flag(SOURCE_ORDER_MIGRATION_KEY)
            except PersistenceError as e:
                logger.error("Error initializing source orders: %s", e)
                return False

        if assigned:
            logger.info("Initialized source orders")
        return assigned

    def _assign_initial_orders(self) -> bool:
        """Number all records by creation time if any is unordered."""
        with self._locked():
            records, unreadable = self._load_document()
            if not any(not r.is_ordered for r in records):
                return False
            records.sort(key=lambda r: r.added_at)
            ordered = [record.with_order(index) for index, record in enumerate(records)]
            self._save(ordered, unreadable)
        return True
