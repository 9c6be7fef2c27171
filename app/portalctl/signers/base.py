"""Abstract signing capability.

Pipelines depend only on this interface; concrete engines wrap an external
tool or library.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from portalctl.models.certificate import CertificateAsset
from portalctl.models.signing import SignedBundle, SigningOptions


class Signer(ABC):
    """Signs an ``.app`` directory in place.

    Example:
        >>> signer = ZsignSigner()
        >>> if signer.is_available():
        ...     bundle = await signer.sign(app_path, certificate, SigningOptions())
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short engine name used in logs."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the engine can be used on this system."""

    @abstractmethod
    async def sign(
        self,
        app_path: Path,
        certificate: CertificateAsset,
        options: SigningOptions,
    ) -> SignedBundle:
        """Sign ``app_path`` with ``certificate``.

        Args:
            app_path: ``.app`` directory to sign; modified in place.
            certificate: Certificate with its passphrase attached.
            options: Identifier, name and version overrides.

        Returns:
            The signed bundle.

        Raises:
            SigningError: If signing fails.
        """
