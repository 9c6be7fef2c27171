"""Credential store facade.

Secrets (signing service tokens, per-source feed tokens and certificate
passphrases) live in a TOML file in the config directory that only the
owner can read. Every write replaces the file atomically.
"""

import logging
import os
import threading
import tomllib
from pathlib import Path
from tempfile import NamedTemporaryFile

import tomli_w

from portalctl.core.errors import CredentialNotFoundError, PersistenceError
from portalctl.core.paths import get_credentials_path

logger = logging.getLogger(__name__)

# Well-known credential keys
SIGNING_API_TOKEN = "signing_api_token"


def source_token_key(host: str) -> str:
    """Credential key for a repository host's bearer token."""
    return f"source_token:{host.lower()}"


def certificate_passphrase_key(certificate_id: str) -> str:
    """Credential key for a certificate's P12 passphrase."""
    return f"certificate_passphrase:{certificate_id}"


class CredentialStore:
    """Stores secrets by key.

    Attributes:
        path: Location of the credentials file.
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the store.

        Args:
            path: Optional override for the credentials file.
                  Default: ~/.config/portalctl/credentials.toml
        """
        self._path = path if path is not None else get_credentials_path()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Location of the credentials file."""
        return self._path

    def save(self, key: str, value: str) -> None:
        """Store a secret, replacing any existing value.

        Raises:
            ValueError: If the key is empty.
            PersistenceError: If the file cannot be read or written.
        """
        if not key:
            msg = "Credential key cannot be empty"
            raise ValueError(msg)
        with self._lock:
            secrets = self._read(strict=True)
            secrets[key] = value
            self._write(secrets)
        logger.debug("Stored credential %s", key)

    def retrieve(self, key: str) -> str:
        """Read a secret.

        Raises:
            CredentialNotFoundError: If no value is stored under ``key``.
        """
        secrets = self._read()
        if key not in secrets:
            raise CredentialNotFoundError(f"No credential stored for '{key}'")
        return secrets[key]

    def get(self, key: str) -> str | None:
        """Read a secret, returning None when it is absent."""
        return self._read().get(key)

    def delete(self, key: str) -> None:
        """Remove a secret. Removing an absent key is not an error.

        Raises:
            PersistenceError: If the file cannot be read or written.
        """
        with self._lock:
            secrets = self._read(strict=True)
            if secrets.pop(key, None) is None:
                return
            self._write(secrets)
        logger.debug("Deleted credential %s", key)

    def exists(self, key: str) -> bool:
        """Check if a secret is stored under ``key``."""
        return key in self._read()

    def _read(self, strict: bool = False) -> dict[str, str]:
        """Load all secrets; a missing file holds none.

        An unreadable file reads as empty unless ``strict`` is set.

        Raises:
            PersistenceError: If ``strict`` and the file cannot be parsed.
        """
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            if strict:
                raise PersistenceError(f"Unreadable credentials file {self._path}: {e}") from e
            logger.warning("Ignoring unreadable credentials file %s: %s", self._path, e)
            return {}
        table = data.get("credentials", {})
        if not isinstance(table, dict):
            if strict:
                raise PersistenceError(f"Malformed credentials table in {self._path}")
            return {}
        return {str(k): str(v) for k, v in table.items()}

    def _write(self, secrets: dict[str, str]) -> None:
        """Write all secrets atomically with owner-only permissions."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Path | None = None
        try:
            with NamedTemporaryFile(
                mode="wb",
                dir=self._path.parent,
                delete=False,
                suffix=".tmp",
            ) as f:
                tmp_path = Path(f.name)
                os.chmod(f.name, 0o600)
                tomli_w.dump({"credentials": secrets}, f)
            os.replace(str(tmp_path), str(self._path))
        except OSError as e:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
            raise PersistenceError(f"Failed to write credentials: {e}") from e
