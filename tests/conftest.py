"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import datetime
import os
import plistlib
import struct
import zipfile
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    NoEncryption,
    pkcs12,
)
from cryptography.x509.oid import NameOID

P12_PASSWORD = "secret"


def make_profile_bytes(name: str = "Test Profile", ppq_check: bool = False) -> bytes:
    """Build a provisioning profile: an XML plist wrapped in signature bytes."""
    plist = plistlib.dumps(
        {
            "Name": name,
            "TeamName": "Example Team",
            "TeamIdentifier": ["ABCDE12345"],
            "ExpirationDate": datetime.datetime(2030, 1, 1, 12, 0, 0),
            "PPQCheck": ppq_check,
            "Entitlements": {
                "application-identifier": "ABCDE12345.*",
                "get-task-allow": False,
            },
        }
    )
    return b"0\x82\x1b\x8f\x06\t*\x86H\x86\xf7" + plist + b"\x00\xa0\x82\x0e\x01"


def make_p12_bytes(password: str | None = P12_PASSWORD, common_name: str = "Test Signer") -> bytes:
    """Build a PKCS#12 archive holding a self-signed certificate and its key."""
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    encryption = (
        BestAvailableEncryption(password.encode("utf-8")) if password else NoEncryption()
    )
    return pkcs12.serialize_key_and_certificates(b"test", key, certificate, None, encryption)


def mark_zip_encrypted(path: Path) -> None:
    """Set the encryption flag on every member of a ZIP file in place."""
    data = bytearray(path.read_bytes())
    with zipfile.ZipFile(path) as archive:
        offsets = [info.header_offset for info in archive.infolist()]
        central = archive.start_dir
    for offset in offsets:
        data[offset + 6] |= 0x1
    for _ in offsets:
        data[central + 8] |= 0x1
        name_len, extra_len, comment_len = struct.unpack_from("<HHH", data, central + 28)
        central += 46 + name_len + extra_len + comment_len
    path.write_bytes(bytes(data))


@pytest.fixture(scope="session")
def p12_data() -> bytes:
    """Password-protected PKCS#12 archive, generated once per session."""
    return make_p12_bytes()


@pytest.fixture
def p12_file(tmp_path: Path, p12_data: bytes) -> Path:
    """P12 key file protected by ``P12_PASSWORD``."""
    path = tmp_path / "inputs" / "cert.p12"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(p12_data)
    return path


@pytest.fixture
def profile_file(tmp_path: Path) -> Path:
    """Provisioning profile without the PPQ check."""
    path = tmp_path / "inputs" / "profile.mobileprovision"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_profile_bytes())
    return path


@pytest.fixture
def ppq_profile_file(tmp_path: Path) -> Path:
    """Provisioning profile subject to the PPQ check."""
    path = tmp_path / "inputs" / "ppq.mobileprovision"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_profile_bytes(name="PPQ Profile", ppq_check=True))
    return path


@pytest.fixture
def make_ipa(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a minimal ``.ipa`` package."""

    def _make(
        filename: str = "Example.ipa",
        bundle_id: str = "com.example.app",
        name: str = "Example",
        version: str = "1.2.3",
        app_dir: str = "Example.app",
    ) -> Path:
        path = tmp_path / "packages" / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        info = plistlib.dumps(
            {
                "CFBundleIdentifier": bundle_id,
                "CFBundleDisplayName": name,
                "CFBundleShortVersionString": version,
            }
        )
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr(f"Payload/{app_dir}/Info.plist", info)
            archive.writestr(f"Payload/{app_dir}/Example", b"\xcf\xfa\xed\xfe binary")
        return path

    return _make


@pytest.fixture
def xdg_home(tmp_path: Path) -> Iterator[Path]:
    """Point every XDG base directory into ``tmp_path``."""
    env = {
        "XDG_CONFIG_HOME": str(tmp_path / "config"),
        "XDG_STATE_HOME": str(tmp_path / "state"),
        "XDG_DATA_HOME": str(tmp_path / "data"),
        "XDG_CACHE_HOME": str(tmp_path / "cache"),
    }
    with patch.dict(os.environ, env):
        yield tmp_path


@pytest.fixture
def profile_bytes() -> Callable[..., bytes]:
    """Factory for provisioning profile contents."""
    return make_profile_bytes


@pytest.fixture
def encrypt_zip() -> Callable[[Path], None]:
    """Mark every member of a ZIP file as encrypted."""
    return mark_zip_encrypted


@pytest.fixture
def p12_password() -> str:
    """Password of the ``p12_file`` fixture."""
    return P12_PASSWORD
