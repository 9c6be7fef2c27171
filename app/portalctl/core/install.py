"""Install status state machine.

An InstallTracker exposes the current delivery status of one install run to
any number of observers. Only the InstallController handed out by the most
recent ``claim()`` may advance it; everyone else gets a read-only view.
"""

import logging
import threading
from collections.abc import Callable
from typing import Protocol

from portalctl.core.errors import InvalidTransitionError
from portalctl.core.settings import InstallationMethod, ServerMethod, SettingsService
from portalctl.models.install import TRANSITIONS, DeliveryPath, InstallState, InstallStatus

logger = logging.getLogger(__name__)

StatusObserver = Callable[[InstallStatus], None]


class InstallTracker:
    """Observable install status with a single writer."""

    def __init__(self) -> None:
        self._status = InstallStatus()
        self._observers: list[StatusObserver] = []
        self._controller: InstallController | None = None
        self._lock = threading.RLock()

    @property
    def status(self) -> InstallStatus:
        """Current status."""
        return self._status

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        """Register an observer called with every new status.

        Returns:
            Function that removes the observer again.
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def claim(self) -> "InstallController":
        """Start a new run: reset to NONE and hand out the writer.

        Any previously issued controller is revoked.
        """
        with self._lock:
            if self._controller is not None:
                self._controller._revoked = True
            controller = InstallController(self)
            self._controller = controller
            self._publish(InstallStatus())
        return controller

    def _advance(
        self,
        controller: "InstallController",
        target: InstallState,
        reason: str | None,
        install_link: str | None,
    ) -> InstallStatus:
        with self._lock:
            if controller is not self._controller or controller._revoked:
                raise InvalidTransitionError("Install controller is no longer active")

            current = self._status.state
            if target == InstallState.FAILED:
                allowed = not current.is_terminal
            else:
                allowed = target in TRANSITIONS[current]
            if not allowed:
                raise InvalidTransitionError(
                    f"Cannot move install status from {current.value} to {target.value}"
                )

            status = InstallStatus(
                state=target,
                reason=reason,
                install_link=install_link or self._status.install_link,
            )
            self._publish(status)
        return status

    def _publish(self, status: InstallStatus) -> None:
        self._status = status
        logger.debug("Install status: %s", status.state.value)
        for observer in list(self._observers):
            observer(status)


class InstallController:
    """Write handle for an InstallTracker, obtained from ``claim()``."""

    def __init__(self, tracker: InstallTracker) -> None:
        self._tracker = tracker
        self._revoked = False

    @property
    def active(self) -> bool:
        """Check if this controller may still advance the tracker."""
        return not self._revoked

    def advance(self, state: InstallState, install_link: str | None = None) -> InstallStatus:
        """Move to ``state``.

        Raises:
            InvalidTransitionError: If the move is not allowed or the
                controller was revoked.
        """
        if state == InstallState.FAILED:
            msg = "Use fail() to record a failure"
            raise InvalidTransitionError(msg)
        return self._tracker._advance(self, state, None, install_link)

    def fail(self, reason: str) -> InstallStatus:
        """Move to FAILED with a reason.

        Raises:
            InvalidTransitionError: If the run already ended.
        """
        return self._tracker._advance(self, InstallState.FAILED, reason, None)


class DeliveryPresenter(Protocol):
    """Surface that carries out delivery decisions."""

    def open_link(self, url: str) -> None: ...

    def present_web_view(self, url: str) -> None: ...

    def dismiss_web_view(self) -> None: ...

    def start_pairing(self, url: str) -> None: ...


def choose_delivery_path(settings_service: SettingsService) -> DeliveryPath:
    """Pick how a READY package reaches the device from current settings."""
    settings = settings_service.settings
    if settings.installation_method == InstallationMethod.IDEVICE:
        return DeliveryPath.LOCAL_PAIRING
    if settings.server_method == ServerMethod.REMOTE:
        return DeliveryPath.DIRECT_LINK
    return DeliveryPath.WEB_VIEW


class DeliveryRouter:
    """Observer that triggers delivery when a package becomes READY.

    Subscribe an instance to an InstallTracker. The web view presented for
    local and custom servers is dismissed once payload transfer starts or
    the install completes.
    """

    def __init__(self, settings_service: SettingsService, presenter: DeliveryPresenter) -> None:
        self._settings = settings_service
        self._presenter = presenter
        self._web_view_shown = False

    def __call__(self, status: InstallStatus) -> None:
        if status.state == InstallState.READY:
            self._on_ready(status)
        elif status.state in (InstallState.SENDING_PAYLOAD, InstallState.COMPLETED):
            if self._web_view_shown:
                self._presenter.dismiss_web_view()
                self._web_view_shown = False

    def _on_ready(self, status: InstallStatus) -> None:
        if not status.install_link:
            logger.warning("Install is ready but has no link")
            return

        path = choose_delivery_path(self._settings)
        logger.debug("Delivering via %s", path.value)
        if path == DeliveryPath.LOCAL_PAIRING:
            self._presenter.start_pairing(status.install_link)
        elif path == DeliveryPath.DIRECT_LINK:
            self._presenter.open_link(status.install_link)
        else:
            self._presenter.present_web_view(status.install_link)
            self._web_view_shown = True
