"""JSON record persistence shared by the library stores.

Each store keeps its records in one JSON document under the state
directory. Writes follow a single-writer discipline: every mutation runs
inside a transaction that holds a per-file lock, reloads the document,
applies the change and replaces the file atomically. A transaction body
that raises leaves the file untouched.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Generic, TypeVar

from portalctl.core.errors import PersistenceError
from portalctl.core.paths import get_state_dir

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Document schema version written at the top level of every store file
STORE_FORMAT_VERSION = 1

_locks: dict[Path, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    """Return the process-wide write lock for a store file."""
    key = path.resolve()
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        return lock


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to ``path`` through a temporary file and ``os.replace``.

    Args:
        path: Destination file.
        data: JSON-serializable document.

    Raises:
        OSError: If the file cannot be written. The temporary file is
            removed and the destination keeps its previous content.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(str(tmp_path), str(path))
    except OSError:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise


class JsonRecordStore(ABC, Generic[T]):
    """Base class for stores persisted as a JSON list of records.

    Subclasses provide the file name and the record (de)serialization.

    Attributes:
        state_dir: Directory containing the store file.
    """

    FILENAME: str = ""

    def __init__(self, state_dir: Path | None = None) -> None:
        """Initialize the store.

        Args:
            state_dir: Optional override for the state directory.
                      Default: ~/.local/state/portalctl
        """
        self._state_dir = state_dir if state_dir is not None else get_state_dir()

    @property
    def path(self) -> Path:
        """Path to the store file."""
        return self._state_dir / self.FILENAME

    @abstractmethod
    def _decode(self, data: dict[str, Any]) -> T:
        """Build a record from its stored dictionary."""

    @abstractmethod
    def _encode(self, record: T) -> dict[str, Any]:
        """Convert a record to its stored dictionary."""

    def _load_document(self) -> tuple[list[T], list[Any]]:
        """Read all records from disk.

        Entries that cannot be decoded are returned separately, unchanged.

        Returns:
            Tuple of (records in stored order, undecodable raw entries);
            both empty if the file doesn't exist.

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed.
        """
        if not self.path.exists():
            return [], []

        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e

        raw_records = document.get("records", []) if isinstance(document, dict) else document
        if not isinstance(raw_records, list):
            raise PersistenceError(f"Unexpected content in {self.path}")

        records: list[T] = []
        unreadable: list[Any] = []
        for index, raw in enumerate(raw_records):
            try:
                records.append(self._decode(raw))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Preserving undecodable record %d in %s: %s", index, self.path, e)
                unreadable.append(raw)
        return records, unreadable

    def _load(self) -> list[T]:
        """Read the decodable records from disk."""
        records, _ = self._load_document()
        return records

    def _save(self, records: list[T], unreadable: list[Any] | None = None) -> None:
        """Persist all records atomically.

        Args:
            records: Records to write.
            unreadable: Raw entries that failed to decode; written back
                after ``records`` exactly as loaded.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        document = {
            "version": STORE_FORMAT_VERSION,
            "records": [self._encode(record) for record in records] + list(unreadable or []),
        }
        try:
            write_json_atomic(self.path, document)
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold this store file's process-wide write lock."""
        with _lock_for(self.path):
            yield

    @contextmanager
    def _transaction(self) -> Iterator[list[T]]:
        """Load records under the write lock and save them on clean exit.

        Concurrent writers queue on the lock. If the body raises, nothing
        is written and the exception propagates. Undecodable entries are
        carried through unchanged.

        Yields:
            Mutable list of the current records.
        """
        with self._locked():
            records, unreadable = self._load_document()
            yield records
            self._save(records, unreadable)

    def _read(self) -> list[T]:
        """Read a consistent snapshot of the records."""
        with self._locked():
            return self._load()
