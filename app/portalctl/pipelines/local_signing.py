"""Local signing pipeline.

Stages: copy the app directory into scratch, sign the copy through a
Signer, swap it in for the library copy, then record the app as signed.
The original is moved aside next to the library copy and is put back when
a later stage fails.
"""

import asyncio
import logging
import secrets
import shutil
from dataclasses import replace
from pathlib import Path

from portalctl.core.errors import InputNotFoundError
from portalctl.core.library import AppRecordStore
from portalctl.core.settings import SettingsFlag, SettingsService
from portalctl.models.app import AppKind, AppRecord
from portalctl.models.certificate import CertificateAsset
from portalctl.models.pipeline import PipelineKind
from portalctl.models.signing import SignedBundle, SigningOptions
from portalctl.pipelines.base import Pipeline, Stage, StageListener
from portalctl.signers.base import Signer

logger = logging.getLogger(__name__)


def randomized_identifier(bundle_id: str) -> str:
    """Append a random hex suffix to a bundle identifier."""
    return f"{bundle_id}.{secrets.token_hex(4)}"


class LocalSigningPipeline(Pipeline[SignedBundle]):
    """Re-sign a library app in place."""

    kind = PipelineKind.LOCAL_SIGNING

    def __init__(
        self,
        record: AppRecord,
        certificate: CertificateAsset,
        signer: Signer,
        settings: SettingsService,
        store: AppRecordStore,
        options: SigningOptions | None = None,
        work_root: Path | None = None,
        on_stage: StageListener | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            record: Library app to sign.
            certificate: Certificate with its passphrase attached.
            signer: Signing engine.
            settings: Settings service (identifier randomization).
            store: Record store updated once the signed app is in place.
            options: Signing overrides.
            work_root: Parent of the scratch directory.
            on_stage: Stage progress listener.
        """
        super().__init__(str(record.app_path), work_root=work_root, on_stage=on_stage)
        self._record = record
        self._certificate = certificate
        self._signer = signer
        self._settings = settings
        self._store = store
        self._options = options or SigningOptions()
        self._applied: SigningOptions | None = None
        self._signed: SignedBundle | None = None
        self._swapped = False
        self._updated: AppRecord | None = None

    @property
    def _working_app(self) -> Path:
        return self.workdir / "signing" / self._record.app_path.name

    @property
    def _backup_app(self) -> Path:
        app_path = self._record.app_path
        return app_path.with_name(f".{app_path.name}.original")

    def effective_options(self) -> SigningOptions:
        """Signing options after applying identifier randomization.

        Randomization applies when the global setting or the certificate
        requires it and no explicit bundle identifier was given.
        """
        options = self._options
        if options.bundle_id:
            return options
        wanted = (
            options.randomize_identifier
            or self._certificate.requires_identifier_randomization
            or self._settings.is_enabled(SettingsFlag.IDENTIFIER_RANDOMIZATION)
        )
        if not wanted:
            return options
        return replace(
            options,
            bundle_id=randomized_identifier(self._record.bundle_id),
            randomize_identifier=True,
        )

    def stages(self) -> list[Stage]:
        return [
            Stage("copy", self._copy),
            Stage("sign", self._sign),
            Stage("commit", self._commit),
            Stage("register", self._register),
        ]

    async def _copy(self) -> None:
        if not self._record.app_path.is_dir():
            raise InputNotFoundError(f"App directory not found: {self._record.app_path}")
        await asyncio.to_thread(shutil.copytree, self._record.app_path, self._working_app)

    async def _sign(self) -> None:
        self._applied = self.effective_options()
        logger.info(
            "Signing %s with %s using %s",
            self._record.name,
            self._certificate.display_name,
            self._signer.name,
        )
        self._signed = await self._signer.sign(self._working_app, self._certificate, self._applied)

    async def _commit(self) -> None:
        await asyncio.to_thread(self._swap_in)

    def _swap_in(self) -> None:
        """Move the library app aside and the signed copy into its place."""
        target = self._record.app_path
        signed_path = self._signed.app_path if self._signed is not None else self._working_app
        if self._backup_app.exists():
            shutil.rmtree(self._backup_app)
        shutil.move(str(target), str(self._backup_app))
        self._swapped = True
        shutil.move(str(signed_path), str(target))

    async def _register(self) -> None:
        options = self._applied or self._options
        signed_id = self._signed.bundle_id if self._signed is not None else None
        updated = replace(
            self._record,
            kind=AppKind.SIGNED,
            certificate_id=self._certificate.id,
            bundle_id=signed_id or options.bundle_id or self._record.bundle_id,
            name=options.name or self._record.name,
            version=options.version or self._record.version,
        )
        await asyncio.to_thread(self._store.update, updated)
        self._updated = updated

        self._swapped = False
        await asyncio.to_thread(shutil.rmtree, self._backup_app, True)

    @property
    def updated_record(self) -> AppRecord | None:
        """Library record as stored after a successful run."""
        return self._updated

    def result(self) -> SignedBundle:
        bundle_id = self._updated.bundle_id if self._updated is not None else None
        return SignedBundle(app_path=self._record.app_path, bundle_id=bundle_id)

    def discard_partial(self) -> None:
        """Put the original app back when the run failed after moving it aside."""
        if not self._swapped:
            return
        target = self._record.app_path
        try:
            if target.exists():
                shutil.rmtree(target)
            shutil.move(str(self._backup_app), str(target))
        except OSError as e:
            logger.error(
                "Could not restore %s, the original app is kept at %s: %s",
                target,
                self._backup_app,
                e,
            )
            return
        self._swapped = False
