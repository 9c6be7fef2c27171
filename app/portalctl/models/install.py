"""Install status models.

This module defines the states an app passes through while being delivered
to a target device, and the delivery paths observers can choose from.
"""

from dataclasses import dataclass
from enum import Enum


class InstallState(str, Enum):
    """Delivery progress of one install run.

    Attributes:
        NONE: Packaging; nothing delivered yet.
        READY: Package prepared, waiting for the delivery trigger.
        SENDING_MANIFEST: Install manifest is being sent.
        SENDING_PAYLOAD: Package data is being transferred.
        INSTALLING: Target is installing the package.
        COMPLETED: Terminal success.
        FAILED: Terminal failure.
    """

    NONE = "none"
    READY = "ready"
    SENDING_MANIFEST = "sending_manifest"
    SENDING_PAYLOAD = "sending_payload"
    INSTALLING = "installing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is possible."""
        return self in (InstallState.COMPLETED, InstallState.FAILED)


# Allowed forward transitions. FAILED is reachable from every non-terminal state.
TRANSITIONS: dict[InstallState, frozenset[InstallState]] = {
    InstallState.NONE: frozenset(
        {InstallState.READY, InstallState.SENDING_MANIFEST, InstallState.SENDING_PAYLOAD}
    ),
    InstallState.READY: frozenset(
        {InstallState.SENDING_MANIFEST, InstallState.SENDING_PAYLOAD, InstallState.COMPLETED}
    ),
    InstallState.SENDING_MANIFEST: frozenset({InstallState.SENDING_PAYLOAD}),
    InstallState.SENDING_PAYLOAD: frozenset({InstallState.INSTALLING, InstallState.COMPLETED}),
    InstallState.INSTALLING: frozenset({InstallState.COMPLETED}),
    InstallState.COMPLETED: frozenset(),
    InstallState.FAILED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class InstallStatus:
    """Current install state plus context.

    Attributes:
        state: Current state.
        reason: Failure reason (FAILED only).
        install_link: Link to hand to the installer (READY onwards).
    """

    state: InstallState = InstallState.NONE
    reason: str | None = None
    install_link: str | None = None

    @property
    def is_in_progress(self) -> bool:
        """Check if the run has not reached a terminal state."""
        return not self.state.is_terminal

    @property
    def is_error(self) -> bool:
        """Check if the run failed."""
        return self.state == InstallState.FAILED

    @property
    def is_success(self) -> bool:
        """Check if the run completed."""
        return self.state == InstallState.COMPLETED

    @property
    def label(self) -> str:
        """Short human-readable label for the state."""
        return _LABELS[self.state]


_LABELS: dict[InstallState, str] = {
    InstallState.NONE: "Packaging",
    InstallState.READY: "Ready to Install",
    InstallState.SENDING_MANIFEST: "Sending Manifest",
    InstallState.SENDING_PAYLOAD: "Uploading App",
    InstallState.INSTALLING: "Installing",
    InstallState.COMPLETED: "Completed",
    InstallState.FAILED: "Failed",
}


class DeliveryPath(str, Enum):
    """How a READY package reaches the target.

    Attributes:
        DIRECT_LINK: Open the installer link directly.
        LOCAL_PAIRING: Hand off to the local network installer.
        WEB_VIEW: Present the install page in an in-app web view.
    """

    DIRECT_LINK = "direct_link"
    LOCAL_PAIRING = "local_pairing"
    WEB_VIEW = "web_view"
