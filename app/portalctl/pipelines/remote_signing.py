"""Remote signing pipeline.

Stages: assemble a multipart request from the package, key material,
provisioning profile and optional passphrase; POST it to the signing
service; parse the JSON response; extract the direct install link.

Request body::

    --Boundary-<uuid>
    Content-Disposition: form-data; name="ipa"; filename="<package name>"
    Content-Type: application/octet-stream

    <package bytes>
    --Boundary-<uuid>
    Content-Disposition: form-data; name="p12"; filename="cert.p12"
    ...
    --Boundary-<uuid>--
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

import httpx
from pydantic import ValidationError

from portalctl.core.credentials import SIGNING_API_TOKEN, CredentialStore
from portalctl.core.errors import (
    NetworkTransportError,
    PreconditionError,
    ResponseDecodeError,
    ServerRejectedError,
)
from portalctl.core.install import InstallController
from portalctl.core.settings import SettingsService
from portalctl.models.certificate import CertificateAsset
from portalctl.models.install import InstallState
from portalctl.models.pipeline import PipelineKind
from portalctl.models.signing import RemoteSigningResponse
from portalctl.pipelines.base import Pipeline, Stage, StageListener

logger = logging.getLogger(__name__)

KEY_PART_FILENAME = "cert.p12"
PROFILE_PART_FILENAME = "profile.mobileprovision"


@dataclass(frozen=True, slots=True)
class FormPart:
    """One part of a multipart form body."""

    name: str
    data: bytes
    filename: str | None = None
    content_type: str | None = None


def encode_multipart(parts: list[FormPart], boundary: str) -> bytes:
    """Encode ``parts`` as a ``multipart/form-data`` body."""
    body = bytearray()
    for part in parts:
        body += f"--{boundary}\r\n".encode()
        disposition = f'Content-Disposition: form-data; name="{part.name}"'
        if part.filename is not None:
            disposition += f'; filename="{part.filename}"'
        body += f"{disposition}\r\n".encode()
        if part.content_type is not None:
            body += f"Content-Type: {part.content_type}\r\n".encode()
        body += b"\r\n"
        body += part.data
        body += b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return bytes(body)


def _read_required(path: Path, label: str) -> bytes:
    """Read an input file that must exist and be non-empty.

    Raises:
        PreconditionError: If the file is missing, unreadable or empty.
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise PreconditionError(f"Cannot read {label} {path}: {e}") from e
    if not data:
        raise PreconditionError(f"{label.capitalize()} {path} is empty")
    return data


class RemoteSigningPipeline(Pipeline[str]):
    """Sign a package through the remote signing service.

    The result is the service's direct install link.
    """

    kind = PipelineKind.REMOTE_SIGNING

    def __init__(
        self,
        package: Path,
        certificate: CertificateAsset,
        settings: SettingsService,
        credentials: CredentialStore | None = None,
        controller: InstallController | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        work_root: Path | None = None,
        on_stage: StageListener | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            package: Package file (``.ipa``) to upload.
            certificate: Certificate with its passphrase attached.
            settings: Settings service (endpoint selection).
            credentials: Optional store holding a bearer token for the service.
            controller: Optional install status writer to drive.
            transport: Optional HTTP transport (used by tests).
            work_root: Parent of the scratch directory.
            on_stage: Stage progress listener.
        """
        super().__init__(str(package), work_root=work_root, on_stage=on_stage)
        self._package = package
        self._certificate = certificate
        self._settings = settings
        self._credentials = credentials
        self._controller = controller
        self._transport = transport

        self._boundary = f"Boundary-{uuid.uuid4()}"
        self._body = b""
        self._response: httpx.Response | None = None
        self._parsed: RemoteSigningResponse | None = None
        self._install_link = ""

    @property
    def boundary(self) -> str:
        """Multipart boundary token of this request."""
        return self._boundary

    def stages(self) -> list[Stage]:
        return [
            Stage("assemble", self._assemble),
            Stage("post", self._post),
            Stage("parse", self._parse),
            Stage("extract-link", self._extract_link),
        ]

    async def run(self) -> str:
        try:
            link = await super().run()
        except asyncio.CancelledError:
            self._report_failure("Signing was cancelled")
            raise
        except Exception as e:
            self._report_failure(str(e) or type(e).__name__)
            raise

        if self._controller is not None and self._controller.active:
            self._controller.advance(InstallState.READY, install_link=link)
        return link

    def _report_failure(self, reason: str) -> None:
        if self._controller is not None and self._controller.active:
            self._controller.fail(reason)

    async def _assemble(self) -> None:
        self._body = await asyncio.to_thread(self._build_body)

    def _build_body(self) -> bytes:
        package_data = _read_required(self._package, "package")
        key_data = _read_required(self._certificate.key_path, "key material")
        profile_data = _read_required(self._certificate.provision_path, "provisioning profile")

        parts = [
            FormPart("ipa", package_data, self._package.name, "application/octet-stream"),
            FormPart("p12", key_data, KEY_PART_FILENAME, "application/x-pkcs12"),
            FormPart(
                "mobileprovision",
                profile_data,
                PROFILE_PART_FILENAME,
                "application/x-apple-aspen-config",
            ),
        ]
        if self._certificate.passphrase:
            parts.append(FormPart("p12_password", self._certificate.passphrase.encode("utf-8")))
        return encode_multipart(parts, self._boundary)

    async def _post(self) -> None:
        endpoint = self._settings.settings.signing_endpoint
        headers = {"Content-Type": f"multipart/form-data; boundary={self._boundary}"}
        if self._credentials is not None:
            token = self._credentials.get(SIGNING_API_TOKEN)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        logger.info("Uploading %s to %s", self._package.name, endpoint)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                response = await client.post(endpoint, content=self._body, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkTransportError(f"Network error: {e}") from e

        if not response.is_success:
            logger.warning("Signing service returned HTTP %d", response.status_code)
            raise ServerRejectedError(response.text or None, status_code=response.status_code)
        self._response = response

    async def _parse(self) -> None:
        if self._response is None:
            raise ResponseDecodeError()
        try:
            self._parsed = RemoteSigningResponse.model_validate_json(self._response.content)
        except ValidationError as e:
            raise ResponseDecodeError(f"Invalid response from server: {e}") from e

    async def _extract_link(self) -> None:
        if self._parsed is None or not self._parsed.direct_install_link:
            raise ResponseDecodeError("Response has no direct install link")
        self._install_link = self._parsed.direct_install_link
        logger.debug("Install link: %s", self._install_link)

    def result(self) -> str:
        return self._install_link
