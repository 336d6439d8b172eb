from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .auth import AuthManager, RenewalCoordinator
from .config import Settings
from .dispatcher import RequestContext, RequestDispatcher
from .http_client import HttpClient
from .lifecycle import Navigator, SessionLifecycleController
from .session import CredentialStore, FileCredentialStorage


@dataclass
class ApiSession:
    """One authenticated connection to the AssurKit API, wired explicitly."""

    client: HttpClient
    store: CredentialStore
    lifecycle: SessionLifecycleController
    coordinator: RenewalCoordinator
    dispatcher: RequestDispatcher
    auth: AuthManager

    async def dispatch(self, ctx: RequestContext) -> Dict[str, Any]:
        return await self.dispatcher.dispatch(ctx)

    async def call(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.dispatcher.dispatch(RequestContext(method, path, **kwargs))


def build_session(
    cfg: Settings,
    *,
    storage=None,
    navigator: Optional[Navigator] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    load: bool = True,
) -> ApiSession:
    """Compose store, coordinator, dispatcher and lifecycle for one session."""
    client = HttpClient(cfg.api_base_url, timeout=cfg.request_timeout, transport=transport)
    store = CredentialStore(storage if storage is not None else FileCredentialStorage(cfg.credentials_path))
    if load:
        store.load()
    lifecycle = SessionLifecycleController(store, navigator, cfg.logged_out_path)
    coordinator = RenewalCoordinator(client, store, lifecycle, timeout=cfg.renewal_timeout)
    dispatcher = RequestDispatcher(client, store, coordinator)
    auth = AuthManager(dispatcher, store, lifecycle)
    return ApiSession(
        client=client,
        store=store,
        lifecycle=lifecycle,
        coordinator=coordinator,
        dispatcher=dispatcher,
        auth=auth,
    )
