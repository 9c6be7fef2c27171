"""Package import pipeline.

Stages: copy the package into scratch, extract it and read the app's
Info.plist, move package and payload into the library, register the record.
A package whose SHA-256 is already registered is a successful no-op.
"""

import asyncio
import hashlib
import logging
import plistlib
import shutil
import uuid
import zipfile
from xml.parsers.expat import ExpatError
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import Any

from portalctl.core.errors import InputNotFoundError, PackageArchiveError
from portalctl.core.library import AppRecordStore
from portalctl.core.paths import get_unsigned_dir
from portalctl.models.app import AppKind, AppRecord
from portalctl.models.pipeline import ImportResult, PipelineKind
from portalctl.pipelines.base import Pipeline, Stage, StageListener
from portalctl.utils.archive import safe_extract

logger = logging.getLogger(__name__)

PAYLOAD_DIR = "Payload"
_HASH_CHUNK = 1024 * 1024


@dataclass(frozen=True, slots=True)
class AppInfo:
    """Application details read from the package's Info.plist."""

    bundle_id: str
    name: str
    version: str
    app_dir_name: str


def package_identifier(path: Path) -> str:
    """Derive the import identifier of a package: its SHA-256 hex digest."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def find_app_plist(names: list[str]) -> str | None:
    """Find ``Payload/<name>.app/Info.plist`` among archive member names."""
    for name in sorted(names):
        parts = PurePosixPath(name).parts
        if (
            len(parts) == 3
            and parts[0] == PAYLOAD_DIR
            and parts[1].endswith(".app")
            and parts[2] == "Info.plist"
        ):
            return name
    return None


def read_app_info(plist: dict[str, Any], app_dir_name: str) -> AppInfo:
    """Extract the app details from an Info.plist dictionary.

    Raises:
        PackageArchiveError: If the bundle identifier is missing.
    """
    bundle_id = plist.get("CFBundleIdentifier")
    if not bundle_id:
        raise PackageArchiveError("Info.plist has no CFBundleIdentifier")
    name = (
        plist.get("CFBundleDisplayName")
        or plist.get("CFBundleName")
        or PurePosixPath(app_dir_name).stem
    )
    version = plist.get("CFBundleShortVersionString") or plist.get("CFBundleVersion") or "1.0"
    return AppInfo(str(bundle_id), str(name), str(version), app_dir_name)


def inspect_package(package: Path, destination: Path) -> AppInfo:
    """Extract a package into ``destination`` and read its app details.

    Raises:
        PackageArchiveError: If the archive is corrupt, unsafe, or has no
            ``Payload/*.app/Info.plist``.
    """
    try:
        with zipfile.ZipFile(package) as archive:
            plist_name = find_app_plist(archive.namelist())
            if plist_name is None:
                raise PackageArchiveError(f"No application found in {package.name}")
            plist = plistlib.loads(archive.read(plist_name))
            destination.mkdir(parents=True, exist_ok=True)
            safe_extract(archive, destination)
    except zipfile.BadZipFile as e:
        raise PackageArchiveError(f"Corrupt package archive {package.name}: {e}") from e
    except (plistlib.InvalidFileException, ExpatError) as e:
        raise PackageArchiveError(f"Invalid Info.plist in {package.name}: {e}") from e
    except (RuntimeError, NotImplementedError) as e:
        # Encrypted members or unsupported compression
        raise PackageArchiveError(f"Unreadable package archive {package.name}: {e}") from e
    except ValueError as e:
        raise PackageArchiveError(str(e)) from e

    if not isinstance(plist, dict):
        raise PackageArchiveError(f"Invalid Info.plist in {package.name}")
    return read_app_info(plist, PurePosixPath(plist_name).parts[1])


class PackageImportPipeline(Pipeline[ImportResult]):
    """Import an application package into the unsigned library."""

    kind = PipelineKind.PACKAGE_IMPORT

    def __init__(
        self,
        package: Path,
        store: AppRecordStore,
        library_dir: Path | None = None,
        work_root: Path | None = None,
        on_stage: StageListener | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            package: Package file to import (``.ipa``).
            store: Record store to register the app in.
            library_dir: Parent of per-app directories.
                         Default: ~/.local/share/portalctl/library/unsigned
            work_root: Parent of the scratch directory.
            on_stage: Stage progress listener.
        """
        super().__init__(str(package), work_root=work_root, on_stage=on_stage)
        self._package = package
        self._store = store
        self._uuid = uuid.uuid4().hex
        library_dir = library_dir if library_dir is not None else get_unsigned_dir()
        self._target_dir = library_dir / self._uuid

        self._identifier = ""
        self._existing: AppRecord | None = None
        self._info: AppInfo | None = None
        self._moved = False
        self._record: AppRecord | None = None

    @property
    def duplicate(self) -> bool:
        """Check if the package was found to be already registered."""
        return self._existing is not None

    @property
    def _working_copy(self) -> Path:
        return self.workdir / self._package.name

    @property
    def _extract_dir(self) -> Path:
        return self.workdir / "extract"

    def stages(self) -> list[Stage]:
        return [
            Stage("copy", self._copy),
            Stage("extract", self._extract),
            Stage("move", self._move),
            Stage("register", self._register),
        ]

    async def _copy(self) -> None:
        if not self._package.is_file():
            raise InputNotFoundError(f"Input file not found: {self._package}")

        await asyncio.to_thread(shutil.copy2, self._package, self._working_copy)
        self._identifier = await asyncio.to_thread(package_identifier, self._working_copy)

        self._existing = self._store.find(self._identifier)
        if self._existing is not None:
            logger.info("Package already imported as %s", self._existing.uuid)

    async def _extract(self) -> None:
        if self.duplicate:
            return
        self._info = await asyncio.to_thread(
            inspect_package, self._working_copy, self._extract_dir
        )
        logger.debug("Found %s %s (%s)", self._info.name, self._info.version, self._info.bundle_id)

    async def _move(self) -> None:
        if self.duplicate:
            return
        await asyncio.to_thread(self._move_into_library)

    def _move_into_library(self) -> None:
        self._target_dir.mkdir(parents=True, exist_ok=False)
        self._moved = True
        shutil.move(str(self._working_copy), str(self._target_dir / self._package.name))
        shutil.move(str(self._extract_dir / PAYLOAD_DIR), str(self._target_dir / PAYLOAD_DIR))

    async def _register(self) -> None:
        if self.duplicate or self._info is None:
            return

        package_path = self._target_dir / self._package.name
        record = AppRecord(
            uuid=self._uuid,
            identifier=self._identifier,
            kind=AppKind.IMPORTED,
            bundle_id=self._info.bundle_id,
            name=self._info.name,
            version=self._info.version,
            package_path=package_path,
            app_path=self._target_dir / PAYLOAD_DIR / self._info.app_dir_name,
            size=package_path.stat().st_size,
            added_at=datetime.now(UTC).isoformat(),
        )

        if await asyncio.to_thread(self._store.add_record, record):
            self._record = record
            return

        # Registered concurrently by another import of the same package
        await asyncio.to_thread(shutil.rmtree, self._target_dir, True)
        self._moved = False
        self._existing = self._store.find(self._identifier)

    def result(self) -> ImportResult:
        if self._existing is not None:
            return ImportResult(record=self._existing, duplicate=True)
        return ImportResult(record=self._record)

    def discard_partial(self) -> None:
        if self._moved and self._record is None:
            shutil.rmtree(self._target_dir, ignore_errors=True)
            self._moved = False
