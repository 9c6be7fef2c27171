"""Persisted runtime flags.

This module provides the StateManager class for small boolean flags that
must survive between runs, such as one-time migration markers. Flags are
stored as a flat JSON object in the state directory.
"""

import json
import logging
import threading
from pathlib import Path

from portalctl.core.errors import PersistenceError
from portalctl.core.paths import get_state_dir
from portalctl.core.records import write_json_atomic

logger = logging.getLogger(__name__)


class StateManager:
    """Manages persisted flags in state.json.

    Storage location: ~/.local/state/portalctl/state.json

    Attributes:
        state_dir: Directory containing the state file.
    """

    STATE_FILENAME = "state.json"

    def __init__(self, state_dir: Path | None = None) -> None:
        """Initialize StateManager.

        Args:
            state_dir: Optional override for state directory.
                      Default: ~/.local/state/portalctl
        """
        self._state_dir = state_dir if state_dir is not None else get_state_dir()
        self._lock = threading.Lock()

    @property
    def state_path(self) -> Path:
        """Path to the state.json file."""
        return self._state_dir / self.STATE_FILENAME

    def get_flag(self, name: str) -> bool:
        """Read a flag.

        Args:
            name: Flag key.

        Returns:
            The stored value, False if the flag or file is missing or the
            file is unreadable.
        """
        return bool(self._read().get(name, False))

    def set_flag(self, name: str, value: bool = True) -> None:
        """Persist a flag.

        Args:
            name: Flag key.
            value: Value to store.

        Raises:
            PersistenceError: If the state file cannot be read or written.
        """
        with self._lock:
            data = self._read(strict=True)
            data[name] = value
            try:
                write_json_atomic(self.state_path, data)
            except OSError as e:
                raise PersistenceError(f"Failed to write {self.state_path}: {e}") from e
        logger.debug("Set state flag %s=%s", name, value)

    def _read(self, strict: bool = False) -> dict[str, object]:
        """Load the flag document.

        A missing file holds no flags. A corrupt file reads as empty unless
        ``strict`` is set, in which case PersistenceError is raised.
        """
        if not self.state_path.exists():
            return {}
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            if strict:
                raise PersistenceError(f"Unreadable state file {self.state_path}: {e}") from e
            logger.warning("Ignoring unreadable state file %s: %s", self.state_path, e)
            return {}
        if not isinstance(data, dict):
            if strict:
                raise PersistenceError(f"Malformed state file {self.state_path}")
            logger.warning("Ignoring malformed state file %s", self.state_path)
            return {}
        return data
