"""Data models for portalctl.

This module exports the core data structures used throughout the application.
"""

from portalctl.models.app import AppKind, AppRecord
from portalctl.models.certificate import (
    BUNDLE_FORMAT_VERSION,
    BundleMetadata,
    CertificateAsset,
    create_bundle_metadata,
)
from portalctl.models.install import DeliveryPath, InstallState, InstallStatus
from portalctl.models.pipeline import (
    CertificateImportResult,
    ImportResult,
    PipelineKind,
    PipelineRun,
)
from portalctl.models.signing import RemoteSigningResponse, SignedBundle, SigningOptions
from portalctl.models.source import (
    PLACEHOLDER_NAME,
    UNORDERED,
    RepositoryFeed,
    SourceRecord,
    create_source_record,
)

__all__ = [
    "BUNDLE_FORMAT_VERSION",
    "PLACEHOLDER_NAME",
    "UNORDERED",
    "AppKind",
    "AppRecord",
    "BundleMetadata",
    "CertificateAsset",
    "CertificateImportResult",
    "DeliveryPath",
    "ImportResult",
    "InstallState",
    "InstallStatus",
    "PipelineKind",
    "PipelineRun",
    "RemoteSigningResponse",
    "RepositoryFeed",
    "SignedBundle",
    "SigningOptions",
    "SourceRecord",
    "create_bundle_metadata",
    "create_source_record",
]
