"""Signer backed by the zsign command-line tool."""

import asyncio
import logging
import subprocess
from pathlib import Path

from portalctl.core.errors import SigningError
from portalctl.models.certificate import CertificateAsset
from portalctl.models.signing import SignedBundle, SigningOptions
from portalctl.signers.base import Signer
from portalctl.utils.shell import command_exists, run_command

logger = logging.getLogger(__name__)

ZSIGN_COMMAND = "zsign"


class ZsignSigner(Signer):
    """Signs app directories by running ``zsign``.

    Attributes:
        command: Executable to run.
        timeout: Maximum time in seconds for one signing run.
    """

    def __init__(self, command: str = ZSIGN_COMMAND, timeout: float = 600.0) -> None:
        self.command = command
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "zsign"

    def is_available(self) -> bool:
        return command_exists(self.command)

    def build_args(
        self,
        app_path: Path,
        certificate: CertificateAsset,
        options: SigningOptions,
    ) -> list[str]:
        """Build the zsign argument list."""
        args = [
            self.command,
            "-k",
            str(certificate.key_path),
            "-m",
            str(certificate.provision_path),
        ]
        if certificate.passphrase:
            args += ["-p", certificate.passphrase]
        if options.bundle_id:
            args += ["-b", options.bundle_id]
        if options.name:
            args += ["-n", options.name]
        if options.version:
            args += ["-r", options.version]
        args.append(str(app_path))
        return args

    async def sign(
        self,
        app_path: Path,
        certificate: CertificateAsset,
        options: SigningOptions,
    ) -> SignedBundle:
        if not self.is_available():
            raise SigningError(f"{self.command} is not installed")

        args = self.build_args(app_path, certificate, options)
        logger.debug("Running %s on %s", self.command, app_path)
        try:
            result = await asyncio.to_thread(run_command, args, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise SigningError(f"{self.command} timed out after {self.timeout:.0f}s") from e
        except OSError as e:
            raise SigningError(f"Failed to run {self.command}: {e}") from e

        if not result.success:
            detail = (
                result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
            )
            raise SigningError(f"{self.command} failed: {detail}")

        return SignedBundle(app_path=app_path, bundle_id=options.bundle_id)
