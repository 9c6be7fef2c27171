"""Pipeline run models.

This module defines the ephemeral record of one pipeline execution and the
result types returned by the pipeline variants.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from portalctl.models.app import AppRecord
from portalctl.models.certificate import CertificateAsset


class PipelineKind(str, Enum):
    """Concrete pipeline variants.

    Attributes:
        PACKAGE_IMPORT: Import an application package into the library.
        LOCAL_SIGNING: Re-sign a library app with a local signing engine.
        REMOTE_SIGNING: Sign through a remote signing service.
        CERTIFICATE_IMPORT: Import key material and a provisioning profile.
    """

    PACKAGE_IMPORT = "package-import"
    LOCAL_SIGNING = "local-signing"
    REMOTE_SIGNING = "remote-signing"
    CERTIFICATE_IMPORT = "certificate-import"


@dataclass(slots=True)
class PipelineRun:
    """State of a single pipeline execution.

    Not persisted. Owned by the pipeline for the duration of ``run()``.

    Attributes:
        kind: Pipeline variant being executed.
        input_ref: Description of the input artifact (usually a path).
        workdir: Scratch working directory, removed when the run ends.
        completed_stages: Names of stages that finished, in order.
        error: Terminal failure, if the run failed.
        succeeded: True once every stage finished.
    """

    kind: PipelineKind
    input_ref: str
    workdir: Path | None = None
    completed_stages: list[str] = field(default_factory=lambda: [])
    error: BaseException | None = None
    succeeded: bool = False

    @property
    def finished(self) -> bool:
        """Check if the run reached a terminal outcome."""
        return self.succeeded or self.error is not None


@dataclass(frozen=True, slots=True)
class ImportResult:
    """Outcome of a package import.

    Attributes:
        record: Registered record, or the already existing one for duplicates.
        duplicate: True when the package was already in the library.
    """

    record: AppRecord | None
    duplicate: bool = False


@dataclass(frozen=True, slots=True)
class CertificateImportResult:
    """Outcome of a certificate import.

    Attributes:
        certificate: The registered certificate.
        randomization_enabled: True when the import switched on global
            identifier randomization.
    """

    certificate: CertificateAsset
    randomization_enabled: bool = False
