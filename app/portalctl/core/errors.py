"""Error taxonomy shared by the codec, stores and pipelines.

Every error kind carries one human-readable ``summary`` that is used as the
message when no more specific message is given. Callers surface
``str(error)`` to the user.
"""


class PortalError(Exception):
    """Base exception for all portalctl errors."""

    summary = "Operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.summary)

    @property
    def message(self) -> str:
        """Human-readable message for this error."""
        return str(self)


class InputNotFoundError(PortalError):
    """Raised when an input file does not exist."""

    summary = "Input file not found"


class MissingKeyMaterialError(PortalError):
    """Raised when the P12 key material cannot be located."""

    summary = "P12 certificate file not found"


class MissingProvisioningProfileError(PortalError):
    """Raised when the provisioning profile cannot be located."""

    summary = "Provisioning profile not found"


class BundleDecodeError(PortalError):
    """Raised when a certificate bundle cannot be read."""

    summary = "Failed to extract certificate bundle"


class BundleEncodeError(PortalError):
    """Raised when a certificate bundle cannot be written."""

    summary = "Failed to create certificate bundle"


class DuplicateIdentifierError(PortalError):
    """Raised internally when a record identifier already exists.

    Stores and pipelines treat this as a successful no-op; it is never
    surfaced to users.
    """

    summary = "Record already exists"


class NetworkTransportError(PortalError):
    """Raised when a request could not be delivered or answered."""

    summary = "Network request failed"


class ServerRejectedError(PortalError):
    """Raised when the server answers with a non-2xx status.

    The message is the raw response body returned by the server.
    """

    summary = "Server error"

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResponseDecodeError(PortalError):
    """Raised when a server response is not the expected JSON document."""

    summary = "Invalid response from server"


class PersistenceError(PortalError):
    """Raised when a store cannot persist its records."""

    summary = "Failed to save changes"


class PreconditionError(PortalError):
    """Raised when an operation's inputs are unusable before any work starts."""

    summary = "Operation inputs are incomplete"


class PackageArchiveError(PortalError):
    """Raised when an application package is corrupt or not an app archive."""

    summary = "Invalid or corrupt application package"


class SigningError(PortalError):
    """Raised by signing capabilities when a bundle cannot be signed."""

    summary = "Signing failed"


class InvalidPassphraseError(PortalError):
    """Raised when a P12 passphrase does not unlock the key material."""

    summary = "Incorrect certificate password"


class InvalidTransitionError(PortalError):
    """Raised when an install status transition is not allowed."""

    summary = "Invalid install status transition"


class CredentialNotFoundError(PortalError):
    """Raised when a credential is not present in the credential store."""

    summary = "Item not found in credential store"


class SettingsError(PortalError):
    """Raised when the settings file cannot be read or written."""

    summary = "Invalid settings"


class RecordNotFoundError(PortalError):
    """Raised when a stored record cannot be found."""

    summary = "Record not found"
