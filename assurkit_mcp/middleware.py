from typing import Iterable, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse


def origin_allowed(origin: Optional[str], allowed_origins: List[str]) -> bool:
    """Return True when origin matches allowlist or wildcard."""
    if not origin:
        return True  # allow tools/curl with no Origin
    if not allowed_origins:
        return False
    if "*" in allowed_origins:
        return True
    return origin in allowed_origins


def bearer_token(auth_header: str) -> Optional[str]:
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


class McpAuthMiddleware(BaseHTTPMiddleware):
    """Protect /mcp with optional API key and origin checks."""

    def __init__(self, app, api_keys: Iterable[str] = (), allowed_origins: Iterable[str] = ("*",)):
        super().__init__(app)
        self.api_keys = list(api_keys)
        self.allowed_origins = list(allowed_origins)

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/mcp"):
            if not origin_allowed(request.headers.get("origin"), self.allowed_origins):
                return PlainTextResponse("Origin not allowed.", status_code=403)

            if self.api_keys:
                token = bearer_token(request.headers.get("authorization", ""))
                if not token or token not in self.api_keys:
                    return JSONResponse({"error": "Unauthorized"}, status_code=401)

        return await call_next(request)
