import httpx
from mcp.server.fastmcp import FastMCP
from starlette.testclient import TestClient

from assurkit_mcp.api import build_session
from assurkit_mcp.server import build_app
from assurkit_mcp.tools import _query, register_tools

from conftest import STALE, RecordingStorage

EXPECTED_TOOLS = {
    "health_check",
    "login",
    "register",
    "logout",
    "me",
    "session_status",
    "list_companies",
    "get_company",
    "list_processes",
    "list_subprocesses",
    "list_risks",
    "list_controls",
    "list_evidence",
    "upload_evidence",
    "list_issues",
    "api_request",
}


def test_query_drops_unset_filters():
    assert _query(page=1, search=None, status="open") == {"page": 1, "status": "open"}


async def test_all_tools_registered(api):
    mcp = FastMCP("test")
    register_tools(mcp, api)

    tools = await mcp.list_tools()

    assert {tool.name for tool in tools} == EXPECTED_TOOLS


def test_health_route_reports_session_state(settings, backend):
    session = build_session(
        settings,
        storage=RecordingStorage(STALE),
        transport=httpx.MockTransport(backend.handler),
    )
    client = TestClient(build_app(settings, session=session))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "authenticated": True}
