"""Signing engines.

This module provides the abstract Signer capability and the zsign-backed
implementation.
"""

from portalctl.signers.base import Signer
from portalctl.signers.zsign import ZsignSigner

__all__ = ["Signer", "ZsignSigner"]
