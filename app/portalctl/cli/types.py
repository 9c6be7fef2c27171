"""Shared types and utilities for CLI commands.

This module builds the stores and services commands work with, and the
helpers that turn async pipeline runs into CLI output.
"""

import asyncio
from collections.abc import Coroutine
from enum import Enum
from typing import Any, TypeVar

import typer

from portalctl.core.certificates import CertificateStore
from portalctl.core.credentials import CredentialStore
from portalctl.core.errors import PortalError
from portalctl.core.library import AppRecordStore
from portalctl.core.settings import SettingsService
from portalctl.core.sources import SourceStore
from portalctl.core.state import StateManager
from portalctl.models.app import AppKind
from portalctl.utils.formatting import console, print_error

T = TypeVar("T")


class KindChoice(str, Enum):
    """Library sections selectable on the command line."""

    IMPORTED = "imported"
    SIGNED = "signed"
    ALL = "all"

    def to_kind(self) -> AppKind | None:
        """Map to the record kind, None for all."""
        if self == KindChoice.ALL:
            return None
        return AppKind(self.value)


def get_settings_service() -> SettingsService:
    return SettingsService()


def get_credentials() -> CredentialStore:
    return CredentialStore()


def get_app_store() -> AppRecordStore:
    return AppRecordStore()


def get_certificate_store() -> CertificateStore:
    return CertificateStore(credentials=get_credentials())


def get_source_store() -> SourceStore:
    return SourceStore(state=StateManager(), credentials=get_credentials())


def show_stage(name: str) -> None:
    """Stage listener printing progress lines."""
    console.print(f"[muted]  {name}...[/]")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion, turning PortalError into exit code 1."""
    try:
        return asyncio.run(coro)
    except PortalError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
