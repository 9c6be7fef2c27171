"""Certificate bundle codec.

A ``.portalcert`` bundle is a ZIP archive holding a P12 key file, a
provisioning profile and a ``metadata.json`` descriptor at the archive
root. Decoding prefers the descriptor but tolerates bundles written by
other tools: when the descriptor is missing, unreadable, of an unknown
version, or points at files that are not there, the extracted tree is
scanned for the first key file and the first profile.
"""

import logging
import os
import shutil
import tempfile
import zipfile
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from portalctl.core.errors import (
    BundleDecodeError,
    BundleEncodeError,
    InputNotFoundError,
    MissingKeyMaterialError,
    MissingProvisioningProfileError,
)
from portalctl.models.certificate import (
    BundleMetadata,
    CertificateAsset,
    create_bundle_metadata,
)
from portalctl.utils.archive import safe_extract

logger = logging.getLogger(__name__)

BUNDLE_EXTENSION = ".portalcert"
METADATA_FILENAME = "metadata.json"
KEY_EXTENSIONS = frozenset({".p12", ".pfx"})
PROFILE_EXTENSIONS = frozenset({".mobileprovision"})

# Archive junk written by macOS Finder
_IGNORED_DIRS = frozenset({"__MACOSX"})


@dataclass(frozen=True, slots=True)
class ExtractedBundle:
    """Decoded bundle contents.

    Attributes:
        key_path: Extracted P12 key file.
        provision_path: Extracted provisioning profile.
        metadata: Bundle descriptor, synthesized when the stored one was
            unusable.
        workdir: Directory the bundle was extracted into.
        from_metadata: True when both files were located via the stored
            descriptor.
    """

    key_path: Path
    provision_path: Path
    metadata: BundleMetadata
    workdir: Path
    from_metadata: bool = True


def _bundle_path(output: Path) -> Path:
    """Append the bundle extension unless ``output`` already has it."""
    if output.suffix.lower() == BUNDLE_EXTENSION:
        return output
    return output.with_name(output.name + BUNDLE_EXTENSION)


def create_bundle(
    key_file: Path,
    provision_file: Path,
    has_password: bool,
    nickname: str | None,
    output: Path,
) -> Path:
    """Pack a key file and a provisioning profile into a bundle.

    The inputs are copied next to a fresh ``metadata.json`` in a private
    staging directory which is always removed. A file already present at
    the final path is replaced.

    Args:
        key_file: P12 key material.
        provision_file: Provisioning profile.
        has_password: Whether the key material needs a passphrase.
        nickname: Optional certificate nickname.
        output: Destination; ``.portalcert`` is appended when missing.

    Returns:
        Path of the written bundle.

    Raises:
        MissingKeyMaterialError: If ``key_file`` does not exist.
        MissingProvisioningProfileError: If ``provision_file`` does not exist.
        BundleEncodeError: If staging or archiving fails.
    """
    if not key_file.is_file():
        raise MissingKeyMaterialError(f"P12 certificate file not found: {key_file}")
    if not provision_file.is_file():
        raise MissingProvisioningProfileError(f"Provisioning profile not found: {provision_file}")
    if key_file.name == provision_file.name or METADATA_FILENAME in (
        key_file.name,
        provision_file.name,
    ):
        raise BundleEncodeError(
            f"Cannot bundle {key_file.name} and {provision_file.name}: file names collide"
        )

    metadata = create_bundle_metadata(
        p12_filename=key_file.name,
        provision_filename=provision_file.name,
        nickname=nickname,
        has_password=has_password,
    )
    final_path = _bundle_path(output)
    logger.info("Creating certificate bundle %s", final_path)

    tmp_path: Path | None = None
    try:
        with tempfile.TemporaryDirectory(prefix="portalcert-") as staging:
            staging_dir = Path(staging)
            shutil.copy2(key_file, staging_dir / key_file.name)
            shutil.copy2(provision_file, staging_dir / provision_file.name)
            (staging_dir / METADATA_FILENAME).write_text(metadata.to_json(), encoding="utf-8")

            final_path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=final_path.parent,
                delete=False,
                suffix=".tmp",
            ) as f:
                tmp_path = Path(f.name)
                with zipfile.ZipFile(f, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                    for name in (METADATA_FILENAME, key_file.name, provision_file.name):
                        archive.write(staging_dir / name, arcname=name)

        os.replace(str(tmp_path), str(final_path))
    except (OSError, zipfile.LargeZipFile) as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise BundleEncodeError(f"Failed to create certificate bundle: {e}") from e

    logger.debug("Bundle metadata: %s", metadata.to_json())
    return final_path


def _read_metadata(workdir: Path) -> BundleMetadata | None:
    """Parse ``metadata.json`` at the root of the extracted tree, if usable."""
    metadata_path = workdir / METADATA_FILENAME
    if not metadata_path.is_file():
        logger.debug("Bundle has no metadata file")
        return None
    try:
        return BundleMetadata.model_validate_json(metadata_path.read_bytes())
    except (OSError, ValidationError) as e:
        logger.warning("Ignoring unreadable bundle metadata: %s", e)
        return None


def _resolve_named(workdir: Path, filename: str) -> Path | None:
    """Locate a file named by the metadata, staying inside ``workdir``."""
    if not filename:
        return None
    root = workdir.resolve()
    candidate = (root / filename).resolve()
    if not candidate.is_relative_to(root) or not candidate.is_file():
        return None
    return candidate


def scan_for_assets(root: Path) -> tuple[Path | None, Path | None]:
    """Find the first key file and first provisioning profile under ``root``.

    The tree is walked depth-first in pre-order with the entries of every
    directory visited in name order, so the result does not depend on the
    file system. Extension matching is case-insensitive.

    Returns:
        Tuple of (key_path, provision_path); either may be None.
    """
    key_path: Path | None = None
    provision_path: Path | None = None

    def visit(directory: Path) -> None:
        nonlocal key_path, provision_path
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            if key_path is not None and provision_path is not None:
                return
            if entry.is_dir():
                if entry.name not in _IGNORED_DIRS:
                    visit(entry)
                continue
            if entry.name.startswith("._"):
                continue
            suffix = entry.suffix.lower()
            if key_path is None and suffix in KEY_EXTENSIONS:
                key_path = entry
            elif provision_path is None and suffix in PROFILE_EXTENSIONS:
                provision_path = entry

    visit(root)
    return key_path, provision_path


def extract_bundle(bundle_file: Path, scratch_dir: Path) -> ExtractedBundle:
    """Decode a bundle into ``scratch_dir``.

    The caller owns ``scratch_dir`` and removes it; see ``open_bundle``.

    Args:
        bundle_file: Bundle to decode.
        scratch_dir: Directory to extract into (created if needed).

    Returns:
        Locations of the extracted assets and the effective metadata.

    Raises:
        InputNotFoundError: If ``bundle_file`` does not exist.
        BundleDecodeError: If the archive cannot be read or is unsafe.
        MissingKeyMaterialError: If no key file can be located.
        MissingProvisioningProfileError: If no profile can be located.
    """
    if not bundle_file.is_file():
        raise InputNotFoundError(f"Input file not found: {bundle_file}")

    logger.info("Extracting certificate bundle %s", bundle_file.name)
    try:
        scratch_dir.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(bundle_file) as archive:
            safe_extract(archive, scratch_dir)
    except (OSError, ValueError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise BundleDecodeError(f"Failed to extract certificate bundle: {e}") from e
    except (RuntimeError, NotImplementedError, EOFError, zlib.error) as e:
        # Encrypted members, unsupported compression or truncated data
        raise BundleDecodeError(f"Unreadable certificate bundle: {e}") from e

    metadata = _read_metadata(scratch_dir)
    key_path: Path | None = None
    provision_path: Path | None = None

    if metadata is not None and metadata.is_supported:
        key_path = _resolve_named(scratch_dir, metadata.p12_filename)
        provision_path = _resolve_named(scratch_dir, metadata.provision_filename)
    elif metadata is not None:
        logger.warning("Unsupported bundle version %s, scanning contents", metadata.version)

    from_metadata = key_path is not None and provision_path is not None
    if not from_metadata:
        scanned_key, scanned_profile = scan_for_assets(scratch_dir)
        key_path = key_path or scanned_key
        provision_path = provision_path or scanned_profile

    if key_path is None:
        raise MissingKeyMaterialError("P12 certificate file not found in bundle")
    if provision_path is None:
        raise MissingProvisioningProfileError("Provisioning profile not found in bundle")

    if from_metadata and metadata is not None:
        effective = metadata
    else:
        # Keep what the unusable descriptor still tells us
        effective = create_bundle_metadata(
            p12_filename=key_path.name,
            provision_filename=provision_path.name,
            nickname=metadata.nickname if metadata is not None else None,
            has_password=metadata.has_password if metadata is not None else False,
            created_at=bundle_file.stat().st_mtime,
        )

    return ExtractedBundle(
        key_path=key_path,
        provision_path=provision_path,
        metadata=effective,
        workdir=scratch_dir,
        from_metadata=from_metadata,
    )


@contextmanager
def open_bundle(bundle_file: Path, work_dir: Path | None = None) -> Iterator[ExtractedBundle]:
    """Decode a bundle into a private scratch directory.

    The directory is removed when the block exits, however it exits.

    Args:
        bundle_file: Bundle to decode.
        work_dir: Parent for the scratch directory (system temp by default).
    """
    if work_dir is not None:
        work_dir.mkdir(parents=True, exist_ok=True)
    scratch_dir = Path(tempfile.mkdtemp(prefix="portalcert-extract-", dir=work_dir))
    try:
        yield extract_bundle(bundle_file, scratch_dir)
    finally:
        shutil.rmtree(scratch_dir, ignore_errors=True)


def is_valid_bundle(path: Path) -> bool:
    """Check the extension and that the bundle decodes completely."""
    if path.suffix.lower() != BUNDLE_EXTENSION:
        logger.debug("Not a bundle extension: %s", path.suffix)
        return False
    try:
        with open_bundle(path):
            return True
    except (
        InputNotFoundError,
        BundleDecodeError,
        MissingKeyMaterialError,
        MissingProvisioningProfileError,
        OSError,
    ) as e:
        logger.debug("Bundle validation failed: %s", e)
        return False


def export_certificate(asset: CertificateAsset, output_dir: Path) -> Path:
    """Write a library certificate as a bundle into ``output_dir``.

    The file is named after the nickname (spaces become underscores), or
    ``certificate`` when there is none.

    Raises:
        MissingKeyMaterialError: If the key file is gone.
        MissingProvisioningProfileError: If the profile is gone.
        BundleEncodeError: If the bundle cannot be written.
    """
    filename = (asset.nickname or "certificate").replace(" ", "_")
    logger.info("Exporting certificate %s", asset.display_name)
    return create_bundle(
        key_file=asset.key_path,
        provision_file=asset.provision_path,
        has_password=asset.has_passphrase,
        nickname=asset.nickname,
        output=output_dir / (filename + BUNDLE_EXTENSION),
    )
