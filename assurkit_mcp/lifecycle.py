from typing import Callable, Optional

from .logging import get_logger
from .session import CredentialStore

logger = get_logger(__name__)

Navigator = Callable[[str], None]


def log_navigator(location: str) -> None:
    """Default navigator for headless use: there is no browser, so just record it."""
    logger.info("navigate", location=location)


class SessionLifecycleController:
    """Ends a session: clears credentials and sends the user to the logged-out location."""

    def __init__(
        self,
        store: CredentialStore,
        navigator: Optional[Navigator] = None,
        logged_out_path: str = "/login",
    ):
        self.store = store
        self.navigator = navigator or log_navigator
        self.logged_out_path = logged_out_path
        self.redirected_to: Optional[str] = None
        self._terminated_generation: Optional[int] = None
        self._erase_failed = False

    def terminate(self, reason: str = "renewal_failed") -> bool:
        """
        Clear the store and navigate once per session.

        Returns False when this session was already terminated; if the durable
        erase failed last time it is retried, without navigating again. A later
        login bumps the store generation and re-arms the controller. Storage
        errors propagate after the in-memory pair is gone and the redirect done.
        """
        if self._terminated_generation == self.store.generation:
            if self._erase_failed:
                self._clear()
            return False
        self._terminated_generation = self.store.generation
        try:
            self._clear()
        finally:
            logger.warning("session_terminated", reason=reason, location=self.logged_out_path)
            self.redirected_to = self.logged_out_path
            self.navigator(self.logged_out_path)
        return True

    def _clear(self) -> None:
        self._erase_failed = True
        self.store.clear()
        self._erase_failed = False
