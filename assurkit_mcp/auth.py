import asyncio
from typing import Any, Dict, Optional

from .dispatcher import RequestContext, RequestDispatcher
from .errors import SessionExpiredError
from .http_client import HttpClient
from .lifecycle import SessionLifecycleController
from .logging import get_logger
from .session import CredentialPair, CredentialStore

logger = get_logger(__name__)

RENEWAL_PATH = "auth/refresh"


def pair_from_payload(payload: Any, fallback_renewal: Optional[str] = None) -> CredentialPair:
    """Pull the access/renewal tokens out of a login, register or refresh response."""
    data = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else payload
    data = data or {}

    access_token = data.get("access_token") or data.get("accessToken") or data.get("token")
    refresh_token = data.get("refresh_token") or data.get("refreshToken") or fallback_renewal

    if not access_token:
        raise RuntimeError("AssurKit API auth failed: access token missing in response.")
    if not refresh_token:
        raise RuntimeError("AssurKit API auth failed: refresh token missing in response.")
    return CredentialPair(access=access_token, renewal=refresh_token)


def _mark_retrieved(future: asyncio.Future) -> None:
    # Every waiter may have been cancelled; don't let asyncio warn about the exception.
    if not future.cancelled():
        future.exception()


class RenewalCoordinator:
    """Runs at most one token renewal at a time and shares its outcome."""

    def __init__(
        self,
        client: HttpClient,
        store: CredentialStore,
        lifecycle: SessionLifecycleController,
        timeout: float = 15.0,
    ):
        self.client = client
        self.store = store
        self.lifecycle = lifecycle
        self.timeout = timeout
        self._pending: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def renew(self) -> asyncio.Future:
        """
        Return the future of the renewal in flight, starting one if there is none.

        The check and the install happen without yielding to the loop, so two
        callers can never both start a renewal. The future resolves with the
        new access token or fails with SessionExpiredError.
        """
        if self._pending is not None:
            return self._pending
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        future.add_done_callback(_mark_retrieved)
        self._pending = future
        self._task = loop.create_task(self._run(future))
        return future

    async def _exchange(self) -> CredentialPair:
        renewal = self.store.renewal()
        if not renewal:
            raise SessionExpiredError("No refresh token cached. Please login again.", reason="no_refresh_token")
        payload = await self.client.request(
            "POST",
            RENEWAL_PATH,
            json_body={"refresh_token": renewal},
            timeout=self.timeout,
        )
        return pair_from_payload(payload, fallback_renewal=renewal)

    async def _run(self, future: asyncio.Future) -> None:
        logger.info("renewal_started")
        try:
            pair = await asyncio.wait_for(self._exchange(), timeout=self.timeout)
            self.store.set(pair)
        except asyncio.CancelledError:
            self._fail(future, SessionExpiredError(reason="renewal_cancelled"))
            raise
        except SessionExpiredError as exc:
            self._fail(future, exc)
            return
        except Exception as exc:
            error = SessionExpiredError(
                "Authorization failed and refresh could not be completed; please login again.",
                reason=type(exc).__name__,
            )
            error.__cause__ = exc
            self._fail(future, error)
            return

        future.set_result(pair.access)
        self._release(future)
        logger.info("renewal_succeeded")

    def _release(self, future: asyncio.Future) -> None:
        if self._pending is future:
            self._pending = None
            self._task = None

    def _fail(self, future: asyncio.Future, error: BaseException) -> None:
        if not future.done():
            future.set_exception(error)
        self._release(future)
        logger.warning("renewal_failed", reason=getattr(error, "reason", None))
        try:
            self.lifecycle.terminate(reason="renewal_failed")
        except OSError:
            # Session is already gone from memory and redirected; only the on-disk copy is stale.
            logger.exception("credentials_erase_failed")


class AuthManager:
    """Handles login, registration and logout against the AssurKit API."""

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        store: CredentialStore,
        lifecycle: SessionLifecycleController,
    ):
        self.dispatcher = dispatcher
        self.store = store
        self.lifecycle = lifecycle

    async def _authenticate(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        payload = await self.dispatcher.dispatch(
            RequestContext("POST", path, json_body=body, authenticated=False)
        )
        self.store.set(pair_from_payload(payload))
        user = payload.get("user") if isinstance(payload, dict) else None
        logger.info("login_succeeded", path=path)
        return {"authenticated": True, "user": user}

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Authenticate with email/password and cache the token pair."""
        return await self._authenticate("auth/login", {"email": email, "password": password})

    async def register(self, email: str, password: str, name: str, role: str = "Viewer") -> Dict[str, Any]:
        """Create an account and start a session with the returned tokens."""
        return await self._authenticate(
            "auth/register",
            {"email": email, "password": password, "name": name, "role": role},
        )

    def logout(self) -> Dict[str, Any]:
        self.lifecycle.terminate(reason="logout")
        return {"authenticated": False, "redirect": self.lifecycle.redirected_to}

    async def me(self) -> Dict[str, Any]:
        """
        Fetch the signed-in user's profile.

        A failing lookup does not clear the tokens: only a failed renewal ends
        the session, so an ordinary error here (403, 500, network) leaves it intact.
        """
        if not self.store.is_authenticated:
            raise SessionExpiredError("No cached session. Please run the login tool first.", reason="anonymous")
        return await self.dispatcher.dispatch(RequestContext("GET", "api/me"))

    def status(self) -> Dict[str, Any]:
        return {
            "authenticated": self.store.is_authenticated,
            "redirect": None if self.store.is_authenticated else self.lifecycle.redirected_to,
        }
