"""Staged pipelines.

This module provides the pipeline framework and its four variants:
package import, local signing, remote signing and certificate import.
"""

from portalctl.pipelines.base import Pipeline, Stage
from portalctl.pipelines.certificate_import import (
    CertificateImportPipeline,
    import_certificate_bundle,
)
from portalctl.pipelines.local_signing import LocalSigningPipeline
from portalctl.pipelines.package_import import PackageImportPipeline
from portalctl.pipelines.remote_signing import RemoteSigningPipeline

__all__ = [
    "CertificateImportPipeline",
    "LocalSigningPipeline",
    "PackageImportPipeline",
    "Pipeline",
    "RemoteSigningPipeline",
    "Stage",
    "import_certificate_bundle",
]
