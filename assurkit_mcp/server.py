from contextlib import asynccontextmanager
from typing import Optional

from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from .api import ApiSession, build_session
from .config import Settings, settings
from .logging import configure_logging
from .middleware import McpAuthMiddleware
from .tools import register_tools


def build_app(cfg: Settings = settings, session: Optional[ApiSession] = None) -> Starlette:
    """Create the Starlette app with MCP routes and middleware."""
    configure_logging(cfg.log_level, cfg.log_json)
    api_session = session or build_session(cfg)
    mcp = FastMCP("AssurKit Compliance MCP")
    register_tools(mcp, api_session)

    async def health(_request):
        return JSONResponse({"status": "ok", "authenticated": api_session.store.is_authenticated})

    @asynccontextmanager
    async def lifespan(_app: Starlette):
        async with mcp.session_manager.run():
            yield

    routes = [
        Route("/health", health),
        # FastMCP already exposes /mcp; mount at root to avoid /mcp/mcp and 307->404.
        Mount("/", app=mcp.streamable_http_app()),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        McpAuthMiddleware,
        api_keys=cfg.mcp_api_keys,
        allowed_origins=cfg.allowed_origins,
    )

    if cfg.allowed_origins:
        allow_origins = ["*"] if "*" in cfg.allowed_origins else cfg.allowed_origins
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    return app
