"""App record store.

Keeps the list of imported and signed apps registered in the library.
Registration is idempotent by import identifier: adding a record whose
identifier already exists leaves the store untouched.
"""

import logging
from typing import Any

from portalctl.core.errors import DuplicateIdentifierError, RecordNotFoundError
from portalctl.core.records import JsonRecordStore
from portalctl.models.app import AppKind, AppRecord

logger = logging.getLogger(__name__)


class AppRecordStore(JsonRecordStore[AppRecord]):
    """Persisted app records.

    Storage location: ~/.local/state/portalctl/apps.json
    """

    FILENAME = "apps.json"

    def _decode(self, data: dict[str, Any]) -> AppRecord:
        return AppRecord.from_dict(data)

    def _encode(self, record: AppRecord) -> dict[str, Any]:
        return record.to_dict()

    def add_record(self, record: AppRecord) -> bool:
        """Register a record.

        Args:
            record: Record to add.

        Returns:
            True if added, False if a record with the same identifier
            already existed (nothing is written in that case).

        Raises:
            PersistenceError: If the store cannot be saved.
        """
        try:
            with self._transaction() as records:
                if any(r.identifier == record.identifier for r in records):
                    raise DuplicateIdentifierError(record.identifier)
                records.append(record)
        except DuplicateIdentifierError:
            logger.debug("Ignoring duplicate app %s", record.identifier)
            return False

        logger.info("Registered %s app %s (%s)", record.kind.value, record.name, record.uuid)
        return True

    def exists(self, identifier: str) -> bool:
        """Check if a record with the given import identifier exists."""
        return any(r.identifier == identifier for r in self._read())

    def find(self, identifier: str) -> AppRecord | None:
        """Find a record by import identifier."""
        for record in self._read():
            if record.identifier == identifier:
                return record
        return None

    def get(self, uuid: str) -> AppRecord:
        """Get a record by UUID.

        Raises:
            RecordNotFoundError: If no record has this UUID.
        """
        for record in self._read():
            if record.uuid == uuid:
                return record
        raise RecordNotFoundError(f"No app with UUID {uuid}")

    def list_records(self, kind: AppKind | None = None) -> list[AppRecord]:
        """List records, newest first.

        Args:
            kind: Restrict to one library section.
        """
        records = [r for r in self._read() if kind is None or r.kind == kind]
        records.sort(key=lambda r: r.added_at, reverse=True)
        return records

    def remove(self, uuid: str) -> bool:
        """Remove a record by UUID.

        Returns:
            True if a record was removed.
        """
        removed = False
        with self._transaction() as records:
            for index, record in enumerate(records):
                if record.uuid == uuid:
                    del records[index]
                    removed = True
                    break
        return removed

    def update(self, record: AppRecord) -> None:
        """Replace the stored record that has the same UUID.

        Raises:
            RecordNotFoundError: If no record has this UUID.
            PersistenceError: If the store cannot be saved.
        """
        with self._transaction() as records:
            for index, existing in enumerate(records):
                if existing.uuid == record.uuid:
                    records[index] = record
                    break
            else:
                raise RecordNotFoundError(f"No app with UUID {record.uuid}")
        logger.info("Updated %s app %s (%s)", record.kind.value, record.name, record.uuid)
