"""P12 signing identity checks.

Uses cryptography's PKCS#12 loader to verify passphrases before key
material is accepted into the library, and to read the certificate's
common name and validity.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from portalctl.core.errors import InvalidPassphraseError, MissingKeyMaterialError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SigningIdentity:
    """Certificate details from a P12 file.

    Attributes:
        common_name: Subject common name (e.g. "iPhone Distribution: ...").
        serial_number: Certificate serial number as hex.
        not_valid_after: Certificate expiry (UTC).
        has_private_key: Whether the P12 holds a private key.
    """

    common_name: str | None
    serial_number: str
    not_valid_after: datetime
    has_private_key: bool


def _load(key_file: Path, passphrase: str | None) -> pkcs12.PKCS12KeyAndCertificates:
    try:
        data = key_file.read_bytes()
    except FileNotFoundError as e:
        raise MissingKeyMaterialError(f"P12 certificate file not found: {key_file}") from e

    password = passphrase.encode("utf-8") if passphrase else None
    try:
        return pkcs12.load_pkcs12(data, password)
    except ValueError as e:
        raise InvalidPassphraseError(f"Cannot open {key_file.name}: {e}") from e


def check_passphrase(key_file: Path, passphrase: str | None) -> bool:
    """Check whether ``passphrase`` opens ``key_file``.

    Raises:
        MissingKeyMaterialError: If the key file does not exist.
    """
    try:
        _load(key_file, passphrase)
    except InvalidPassphraseError:
        logger.debug("Passphrase rejected for %s", key_file.name)
        return False
    return True


def read_identity(key_file: Path, passphrase: str | None) -> SigningIdentity:
    """Read the signing certificate from a P12 file.

    Raises:
        MissingKeyMaterialError: If the file is missing or holds no certificate.
        InvalidPassphraseError: If the passphrase is wrong or the file is
            not a P12 archive.
    """
    bundle = _load(key_file, passphrase)
    if bundle.cert is None:
        raise MissingKeyMaterialError(f"No certificate in {key_file.name}")

    certificate = bundle.cert.certificate
    names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    common_name = str(names[0].value) if names else None
    return SigningIdentity(
        common_name=common_name,
        serial_number=format(certificate.serial_number, "x"),
        not_valid_after=certificate.not_valid_after_utc,
        has_private_key=bundle.key is not None,
    )
