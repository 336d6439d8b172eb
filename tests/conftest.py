import asyncio
import inspect
import json
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import httpx
import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from assurkit_mcp.api import build_session  # noqa: E402
from assurkit_mcp.config import Settings  # noqa: E402
from assurkit_mcp.session import ACCESS_SLOT, RENEWAL_SLOT, MemoryCredentialStorage  # noqa: E402

BASE_URL = "http://assurkit.test"
STALE = {ACCESS_SLOT: "stale-access", RENEWAL_SLOT: "stale-refresh"}


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


class RecordingStorage(MemoryCredentialStorage):
    """In-memory slots that count how often they were written and erased."""

    def __init__(self, slots=None):
        super().__init__(slots)
        self.writes = 0
        self.erases = 0

    def write(self, slots):
        self.writes += 1
        super().write(slots)

    def erase(self):
        self.erases += 1
        super().erase()


class ReadOnlyStorage(RecordingStorage):
    """Storage whose first `failures` erases fail like a read-only filesystem."""

    def __init__(self, slots=None, failures=1):
        super().__init__(slots)
        self.failures = failures

    def erase(self):
        self.erases += 1
        if self.failures:
            self.failures -= 1
            raise OSError(30, "Read-only file system")
        MemoryCredentialStorage.erase(self)


class FakeBackend:
    """Scriptable stand-in for the AssurKit API behind httpx.MockTransport.

    Business endpoints answer 200 for a currently valid access token and 401
    otherwise. `/forbidden` always answers 401, `/boom` 500, `/offline` raises
    a connection error and `/slow` holds a stale-token 401 until `slow_gate`.
    `renewal_mode` makes `/auth/refresh` drop the connection ("offline") or
    answer 200 without tokens ("malformed").
    """

    def __init__(self):
        self.valid_tokens = {"fresh-access"}
        self.next_pair: Tuple[str, Optional[str]] = ("fresh-access", "fresh-refresh")
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.renewal_bodies: List[dict] = []
        self.renewal_status = 200
        self.renewal_mode: Optional[str] = None
        self.renewal_delay = 0.0
        self.renewal_gate: Optional[asyncio.Event] = None
        self.open_gate_after: Optional[int] = None
        self.slow_gate: Optional[asyncio.Event] = None
        self.unauthorized = 0

    @property
    def renewal_calls(self) -> int:
        return len(self.renewal_bodies)

    def business_calls(self, path: Optional[str] = None):
        return [
            call for call in self.calls
            if not call[1].startswith("/auth/") and (path is None or call[1] == path)
        ]

    def _unauthorized(self) -> httpx.Response:
        self.unauthorized += 1
        if self.renewal_gate is not None and self.open_gate_after == self.unauthorized:
            self.renewal_gate.set()
        return httpx.Response(401, json={"message": "Token expired"})

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        auth = request.headers.get("authorization")
        token = auth.split(" ", 1)[1] if auth else None
        self.calls.append((request.method, path, auth))

        if path == "/auth/refresh":
            self.renewal_bodies.append(json.loads(request.content))
            if self.renewal_gate is not None:
                await self.renewal_gate.wait()
            if self.renewal_delay:
                await asyncio.sleep(self.renewal_delay)
            if self.renewal_mode == "offline":
                raise httpx.ConnectError("connection refused", request=request)
            if self.renewal_mode == "malformed":
                return httpx.Response(200, json={"message": "Token refreshed successfully"})
            if self.renewal_status != 200:
                return httpx.Response(self.renewal_status, json={"message": "Invalid token"})
            access, refresh = self.next_pair
            self.valid_tokens = {access}
            body = {"access_token": access}
            if refresh:
                body["refresh_token"] = refresh
            return httpx.Response(200, json=body)

        if path in ("/auth/login", "/auth/register"):
            body = json.loads(request.content)
            if body.get("password") != "Secret@123":
                return httpx.Response(401, json={"message": "Invalid email or password"})
            return httpx.Response(
                200,
                json={
                    "access_token": "fresh-access",
                    "refresh_token": "fresh-refresh",
                    "user": {"email": body["email"], "role": "Viewer"},
                },
            )

        if path == "/health":
            return httpx.Response(200, json={"status": "healthy"})
        if path == "/offline":
            raise httpx.ConnectError("connection refused", request=request)
        if path == "/boom":
            return httpx.Response(500, json={"message": "Internal error"})
        if path == "/forbidden":
            return self._unauthorized()
        if path == "/slow" and token not in self.valid_tokens:
            await self.slow_gate.wait()
            return self._unauthorized()

        if token not in self.valid_tokens:
            return self._unauthorized()
        return httpx.Response(200, json={"path": path, "seen": token})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def navigations():
    return []


@pytest.fixture
def storage():
    return RecordingStorage(STALE)


@pytest.fixture
def settings():
    return Settings(api_base_url=BASE_URL, logged_out_path="/login", renewal_timeout=5.0)


@pytest.fixture
def api(backend, navigations, storage, settings):
    return build_session(
        settings,
        storage=storage,
        navigator=navigations.append,
        transport=httpx.MockTransport(backend.handler),
    )
