"""Entry point for the AssurKit compliance MCP server."""

import uvicorn

from assurkit_mcp.server import build_app
from assurkit_mcp.config import settings

app = build_app(settings)


if __name__ == "__main__":
    uvicorn.run("app:app", host=settings.host, port=settings.port, reload=False)
