import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from .http_client import HttpClient
from .logging import get_logger
from .session import CredentialStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """One outbound call. `retried` flips at most once, on a derived copy."""

    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json_body: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None
    files: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    authenticated: bool = True
    retried: bool = False

    def as_retry(self) -> "RequestContext":
        return replace(self, retried=True)


class RequestDispatcher:
    """The only call path to the backend; owns the retry-once policy."""

    def __init__(self, client: HttpClient, store: CredentialStore, coordinator):
        self.client = client
        self.store = store
        self.coordinator = coordinator

    async def _send(self, ctx: RequestContext, access_token: Optional[str]):
        return await self.client.send(
            ctx.method,
            ctx.path,
            access_token=access_token if ctx.authenticated else None,
            params=ctx.params,
            json_body=ctx.json_body,
            data=ctx.data,
            files=ctx.files,
            headers=ctx.headers,
        )

    async def dispatch(self, ctx: RequestContext) -> Dict[str, Any]:
        """
        Send `ctx` with the current access token and decode the result.

        On a 401 for an authenticated call that has not been replayed yet, and
        while a renewal token is cached, the session is renewed (shared with any
        concurrent callers) and the call is replayed once with the new token.
        Renewal failures raise SessionExpiredError; a second 401 raises
        AuthorizationError without ending the session.
        """
        sent_token = self.store.current()
        response = await self._send(ctx, sent_token)

        if (
            response.status_code == 401
            and ctx.authenticated
            and not ctx.retried
            and self.store.renewal()
        ):
            retry = ctx.as_retry()
            logger.info("request_unauthorized", method=ctx.method, path=ctx.path)
            latest = self.store.current()
            if not self.coordinator.pending and latest and latest != sent_token:
                # Renewed by another caller while this request was in flight.
                new_token = latest
            else:
                new_token = await asyncio.shield(self.coordinator.renew())
            logger.info("request_replayed", method=retry.method, path=retry.path)
            response = await self._send(retry, new_token)

        return await self.client.handle(response)
