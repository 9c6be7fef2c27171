"""Certificate import pipeline.

Stages: copy key material and provisioning profile into scratch, inspect
the profile (and check the passphrase), move both into the certificate
library, register the record. Importing a profile subject to the platform
anti-abuse check switches on identifier randomization globally through the
injected settings service.
"""

import asyncio
import logging
import shutil
import tempfile
import uuid
from datetime import UTC, datetime
from pathlib import Path

from portalctl.certs.bundle import extract_bundle
from portalctl.certs.identity import check_passphrase
from portalctl.certs.provision import ProvisioningProfile, read_provisioning_profile
from portalctl.core.certificates import CertificateStore
from portalctl.core.errors import (
    InvalidPassphraseError,
    MissingKeyMaterialError,
    MissingProvisioningProfileError,
)
from portalctl.core.paths import ensure_work_dir, get_certificates_dir
from portalctl.core.settings import SettingsFlag, SettingsService
from portalctl.models.certificate import CertificateAsset
from portalctl.models.pipeline import CertificateImportResult, PipelineKind
from portalctl.pipelines.base import Pipeline, Stage, StageListener

logger = logging.getLogger(__name__)


class CertificateImportPipeline(Pipeline[CertificateImportResult]):
    """Import a P12 key file and provisioning profile into the library."""

    kind = PipelineKind.CERTIFICATE_IMPORT

    def __init__(
        self,
        key_file: Path,
        provision_file: Path,
        store: CertificateStore,
        settings: SettingsService,
        passphrase: str | None = None,
        nickname: str | None = None,
        verify_passphrase: bool = True,
        library_dir: Path | None = None,
        work_root: Path | None = None,
        on_stage: StageListener | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            key_file: P12 key material.
            provision_file: Provisioning profile.
            store: Certificate store to register in.
            settings: Settings service for the randomization side effect.
            passphrase: P12 passphrase, if any.
            nickname: Optional display name.
            verify_passphrase: Open the P12 with the passphrase before import.
            library_dir: Parent of per-certificate directories.
                         Default: ~/.local/share/portalctl/library/certificates
            work_root: Parent of the scratch directory.
            on_stage: Stage progress listener.
        """
        super().__init__(str(key_file), work_root=work_root, on_stage=on_stage)
        self._key_file = key_file
        self._provision_file = provision_file
        self._store = store
        self._settings = settings
        self._passphrase = passphrase
        self._nickname = nickname
        self._verify_passphrase = verify_passphrase

        self._id = uuid.uuid4().hex
        library_dir = library_dir if library_dir is not None else get_certificates_dir()
        self._target_dir = library_dir / self._id

        self._profile: ProvisioningProfile | None = None
        self._moved = False
        self._asset: CertificateAsset | None = None
        self._randomization_enabled = False

    def stages(self) -> list[Stage]:
        return [
            Stage("copy", self._copy),
            Stage("inspect", self._inspect),
            Stage("move", self._move),
            Stage("register", self._register),
        ]

    @property
    def _staged_key(self) -> Path:
        return self.workdir / "key" / self._key_file.name

    @property
    def _staged_profile(self) -> Path:
        return self.workdir / "profile" / self._provision_file.name

    async def _copy(self) -> None:
        if not self._key_file.is_file():
            raise MissingKeyMaterialError(f"P12 certificate file not found: {self._key_file}")
        if not self._provision_file.is_file():
            raise MissingProvisioningProfileError(
                f"Provisioning profile not found: {self._provision_file}"
            )
        await asyncio.to_thread(self._copy_inputs)

    def _copy_inputs(self) -> None:
        self._staged_key.parent.mkdir(parents=True)
        self._staged_profile.parent.mkdir(parents=True)
        shutil.copy2(self._key_file, self._staged_key)
        shutil.copy2(self._provision_file, self._staged_profile)

    async def _inspect(self) -> None:
        self._profile = await asyncio.to_thread(read_provisioning_profile, self._staged_profile)
        if self._verify_passphrase:
            valid = await asyncio.to_thread(check_passphrase, self._staged_key, self._passphrase)
            if not valid:
                raise InvalidPassphraseError()

    async def _move(self) -> None:
        await asyncio.to_thread(self._move_into_library)

    def _move_into_library(self) -> None:
        self._target_dir.mkdir(parents=True, exist_ok=False)
        self._moved = True
        shutil.move(str(self._staged_key), str(self._target_dir / self._key_file.name))
        shutil.move(str(self._staged_profile), str(self._target_dir / self._provision_file.name))

    async def _register(self) -> None:
        profile = self._profile or ProvisioningProfile()
        asset = CertificateAsset(
            id=self._id,
            key_path=self._target_dir / self._key_file.name,
            provision_path=self._target_dir / self._provision_file.name,
            nickname=self._nickname,
            passphrase=self._passphrase,
            profile_name=profile.name,
            team_name=profile.team_name,
            expires_at=profile.expires_at,
            added_at=datetime.now(UTC).isoformat(),
            requires_identifier_randomization=profile.requires_identifier_randomization,
        )
        await asyncio.to_thread(self._store.add, asset)
        self._asset = asset

        if asset.requires_identifier_randomization:
            logger.info("Profile %s requires identifier randomization", profile.name)
            self._randomization_enabled = await asyncio.to_thread(
                self._settings.enable, SettingsFlag.IDENTIFIER_RANDOMIZATION
            )

    def result(self) -> CertificateImportResult:
        if self._asset is None:
            raise MissingKeyMaterialError("Certificate was not registered")
        return CertificateImportResult(
            certificate=self._asset,
            randomization_enabled=self._randomization_enabled,
        )

    def discard_partial(self) -> None:
        if self._asset is not None:
            # Registered but a later step failed: undo the registration too
            self._store.remove(self._asset.id)
            self._asset = None
        if self._moved:
            shutil.rmtree(self._target_dir, ignore_errors=True)
            self._moved = False


async def import_certificate_bundle(
    bundle_file: Path,
    store: CertificateStore,
    settings: SettingsService,
    passphrase: str | None = None,
    nickname: str | None = None,
    verify_passphrase: bool = True,
    library_dir: Path | None = None,
    work_root: Path | None = None,
    on_stage: StageListener | None = None,
) -> CertificateImportResult:
    """Decode a ``.portalcert`` bundle and import its certificate.

    The bundle's nickname is used unless ``nickname`` is given. The scratch
    directory holding the decoded files is removed on every exit path.

    Raises:
        InputNotFoundError: If the bundle does not exist.
        BundleDecodeError: If the bundle cannot be read.
        MissingKeyMaterialError: If the bundle holds no key file.
        MissingProvisioningProfileError: If the bundle holds no profile.
        InvalidPassphraseError: If the passphrase does not open the key.
    """
    if work_root is None:
        work_root = ensure_work_dir()
    else:
        work_root.mkdir(parents=True, exist_ok=True)
    scratch_dir = Path(tempfile.mkdtemp(prefix="portalcert-extract-", dir=work_root))
    try:
        extracted = await asyncio.to_thread(extract_bundle, bundle_file, scratch_dir)
        pipeline = CertificateImportPipeline(
            key_file=extracted.key_path,
            provision_file=extracted.provision_path,
            store=store,
            settings=settings,
            passphrase=passphrase,
            nickname=nickname or extracted.metadata.nickname,
            verify_passphrase=verify_passphrase,
            library_dir=library_dir,
            work_root=work_root,
            on_stage=on_stage,
        )
        return await pipeline.run()
    finally:
        shutil.rmtree(scratch_dir, ignore_errors=True)
