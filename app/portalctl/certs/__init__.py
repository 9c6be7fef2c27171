"""Certificate handling: bundle codec, profile and P12 inspection."""

from portalctl.certs.bundle import (
    BUNDLE_EXTENSION,
    ExtractedBundle,
    create_bundle,
    export_certificate,
    extract_bundle,
    is_valid_bundle,
    open_bundle,
)
from portalctl.certs.identity import SigningIdentity, check_passphrase, read_identity
from portalctl.certs.provision import ProvisioningProfile, read_provisioning_profile

__all__ = [
    "BUNDLE_EXTENSION",
    "ExtractedBundle",
    "ProvisioningProfile",
    "SigningIdentity",
    "check_passphrase",
    "create_bundle",
    "export_certificate",
    "extract_bundle",
    "is_valid_bundle",
    "open_bundle",
    "read_identity",
    "read_provisioning_profile",
]
