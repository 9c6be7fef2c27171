"""Certificate store.

Keeps the metadata of imported certificates. Key material and profiles
live as files in the certificate library; passphrases live in the
credential store and are attached only when a caller loads an asset for
signing.
"""

import logging
import shutil
from pathlib import Path
from typing import Any

from portalctl.core.credentials import CredentialStore, certificate_passphrase_key
from portalctl.core.errors import DuplicateIdentifierError, RecordNotFoundError
from portalctl.core.records import JsonRecordStore
from portalctl.models.certificate import CertificateAsset

logger = logging.getLogger(__name__)


class CertificateStore(JsonRecordStore[CertificateAsset]):
    """Persisted certificate records.

    Storage location: ~/.local/state/portalctl/certificates.json
    """

    FILENAME = "certificates.json"

    def __init__(
        self,
        state_dir: Path | None = None,
        credentials: CredentialStore | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            state_dir: Optional override for the state directory.
            credentials: Credential store for passphrases.
        """
        super().__init__(state_dir)
        self._credentials = credentials if credentials is not None else CredentialStore()

    def _decode(self, data: dict[str, Any]) -> CertificateAsset:
        return CertificateAsset.from_dict(data)

    def _encode(self, record: CertificateAsset) -> dict[str, Any]:
        return record.to_dict()

    def add(self, asset: CertificateAsset) -> bool:
        """Register a certificate and store its passphrase.

        Returns:
            True if added, False if the ID was already registered.

        Raises:
            PersistenceError: If the store cannot be saved.
        """
        try:
            with self._transaction() as records:
                if any(r.id == asset.id for r in records):
                    raise DuplicateIdentifierError(asset.id)
                records.append(asset)
        except DuplicateIdentifierError:
            logger.debug("Ignoring duplicate certificate %s", asset.id)
            return False

        if asset.passphrase:
            self._credentials.save(certificate_passphrase_key(asset.id), asset.passphrase)
        logger.info("Registered certificate %s (%s)", asset.display_name, asset.id)
        return True

    def get(self, certificate_id: str) -> CertificateAsset:
        """Get a certificate without its passphrase.

        Raises:
            RecordNotFoundError: If the certificate is unknown.
        """
        for record in self._read():
            if record.id == certificate_id:
                return record
        raise RecordNotFoundError(f"No certificate with ID {certificate_id}")

    def load_asset(self, certificate_id: str) -> CertificateAsset:
        """Get a certificate with its passphrase attached, ready for signing.

        Raises:
            RecordNotFoundError: If the certificate is unknown.
        """
        asset = self.get(certificate_id)
        return asset.with_passphrase(
            self._credentials.get(certificate_passphrase_key(certificate_id))
        )

    def list_certificates(self) -> list[CertificateAsset]:
        """List certificates in import order."""
        return sorted(self._read(), key=lambda r: r.added_at)

    def remove(self, certificate_id: str) -> bool:
        """Remove a certificate, its library files and stored passphrase.

        Returns:
            True if a certificate was removed.
        """
        removed: CertificateAsset | None = None
        with self._transaction() as records:
            for index, record in enumerate(records):
                if record.id == certificate_id:
                    removed = records.pop(index)
                    break

        if removed is None:
            return False

        self._credentials.delete(certificate_passphrase_key(certificate_id))
        library_dir = removed.key_path.parent
        if library_dir.name == certificate_id:
            shutil.rmtree(library_dir, ignore_errors=True)
        logger.info("Removed certificate %s", certificate_id)
        return True
