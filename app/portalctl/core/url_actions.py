"""Parsing of deep-link URLs.

Supported forms::

    feather://import-certificate?p12=<b64>&mobileprovision=<b64>&password=<b64>
    feather://export-certificate?callback_template=<template>
    feather://source/<url>
    new-portal://sources-add:<domain-or-url>
    /path/to/package.ipa

``portal://`` is accepted wherever ``feather://`` is.
"""

import base64
import logging
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote, unquote, urlsplit

logger = logging.getLogger(__name__)

APP_SCHEMES = frozenset({"feather", "portal"})
SOURCE_ADD_SCHEME = "new-portal"
PACKAGE_EXTENSIONS = frozenset({".ipa", ".tipa"})

# Placeholders substituted in export callback templates
CERT_PLACEHOLDER = "$(BASE64_CERT)"
PASSWORD_PLACEHOLDER = "$(PASSWORD)"


@dataclass(frozen=True, slots=True)
class ImportCertificateAction:
    """Import key material and a profile delivered inline."""

    key_data: bytes = field(repr=False)
    provision_data: bytes = field(repr=False)
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class ExportCertificateAction:
    """Send a certificate to another app through a callback URL."""

    callback_template: str


@dataclass(frozen=True, slots=True)
class AddSourceAction:
    """Add a repository source. ``url`` is not yet normalized."""

    url: str


@dataclass(frozen=True, slots=True)
class ImportPackageAction:
    """Import a local application package."""

    path: Path


UrlAction = (
    ImportCertificateAction | ExportCertificateAction | AddSourceAction | ImportPackageAction
)


def normalize_source_url(value: str) -> str:
    """Trim whitespace and prefix ``https://`` when no http(s) scheme is given."""
    normalized = value.strip()
    if not normalized.lower().startswith(("http://", "https://")):
        normalized = "https://" + normalized
    return normalized


def _query_values(query: str) -> dict[str, str]:
    """Split a query string without treating ``+`` as a space.

    Base64 payloads use ``+``; names are lower-cased.
    """
    values: dict[str, str] = {}
    for item in query.split("&"):
        if not item:
            continue
        name, _, value = item.partition("=")
        values.setdefault(unquote(name).lower(), unquote(value))
    return values


def _parse_import_certificate(query: str) -> ImportCertificateAction | None:
    values = _query_values(query)
    try:
        key_data = base64.b64decode(values["p12"], validate=True)
        provision_data = base64.b64decode(values["mobileprovision"], validate=True)
        password = base64.b64decode(values["password"], validate=True).decode("utf-8")
    except KeyError as e:
        logger.warning("import-certificate link is missing %s", e)
        return None
    except ValueError as e:
        logger.warning("import-certificate link has invalid data: %s", e)
        return None
    return ImportCertificateAction(key_data, provision_data, password)


def parse_url_action(url: str) -> UrlAction | None:
    """Map a deep link (or package path) to an action.

    Returns:
        The parsed action, or None when the URL is not recognized or its
        parameters are invalid.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()

    if scheme == SOURCE_ADD_SCHEME:
        _, marker, value = url.partition("sources-add:")
        if marker and value:
            return AddSourceAction(unquote(value))
        return None

    if scheme in APP_SCHEMES:
        host = parts.netloc.lower()
        if host == "import-certificate":
            return _parse_import_certificate(parts.query)
        if host == "export-certificate":
            template = _query_values(parts.query).get("callback_template")
            return ExportCertificateAction(template) if template else None
        _, marker, value = url.partition("/source/")
        if marker and value:
            return AddSourceAction(value)
        return None

    if scheme in ("", "file"):
        path = Path(unquote(parts.path))
        if path.suffix.lower() in PACKAGE_EXTENSIONS:
            return ImportPackageAction(path)

    return None


def render_export_callback(template: str, key_data: bytes, password: str | None) -> str:
    """Fill an export callback template.

    ``$(BASE64_CERT)`` becomes the percent-encoded base64 key material and
    ``$(PASSWORD)`` the passphrase (empty when there is none).
    """
    encoded_cert = quote(base64.b64encode(key_data).decode("ascii"), safe="")
    return template.replace(CERT_PLACEHOLDER, encoded_cert).replace(
        PASSWORD_PLACEHOLDER, password or ""
    )
