from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from .api import ApiSession
from .dispatcher import RequestContext

_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}


def _query(**values: Any) -> Dict[str, Any]:
    """Drop unset filters so the backend applies its own defaults."""
    return {key: value for key, value in values.items() if value is not None}


def register_tools(mcp: FastMCP, session: ApiSession) -> None:
    """Register all AssurKit tools with FastMCP."""

    async def _call(
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> Dict[str, Any]:
        """
        Internal helper: every tool reaches the API through the session dispatcher,
        which attaches the cached access token and renews it once on a 401.
        """
        return await session.dispatch(
            RequestContext(
                method,
                path,
                params=params,
                json_body=json_body,
                data=data,
                files=files,
                authenticated=authenticated,
            )
        )

    # ---------------- Public ----------------
    @mcp.tool()
    async def health_check() -> Dict[str, Any]:
        """
        Purpose: Liveness probe confirming the MCP server can reach the AssurKit API.
        Inputs: none.
        Outputs: dict with backend health status and timestamp.
        Behavior: Unauthenticated GET /health; never triggers a token renewal.
        """
        return await _call("GET", "health", authenticated=False)

    # ---------------- Session ----------------
    @mcp.tool()
    async def login(email: str, password: str) -> Dict[str, Any]:
        """
        Purpose: Start an authenticated session.
        Inputs:
        - email (str): account email.
        - password (str): account password.
        Outputs: dict with `authenticated` flag and the `user` profile returned by the API.
        Behavior: POST /auth/login; the access/refresh token pair is persisted and used by every later tool.
        """
        return await session.auth.login(email, password)

    @mcp.tool()
    async def register(email: str, password: str, name: str) -> Dict[str, Any]:
        """
        Purpose: Create a Viewer account and sign in with it.
        Inputs: email, password, name (str).
        Outputs: same shape as `login`.
        Behavior: POST /auth/register with role=Viewer, then caches the returned tokens.
        """
        return await session.auth.register(email, password, name)

    @mcp.tool()
    async def logout() -> Dict[str, Any]:
        """
        Purpose: End the current session.
        Outputs: dict with `authenticated: false` and the logged-out `redirect` location.
        Behavior: Clears cached tokens from memory and disk; no API call.
        """
        return session.auth.logout()

    @mcp.tool()
    async def me() -> Dict[str, Any]:
        """
        Purpose: Return the profile and roles of the signed-in user.
        Behavior: GET /api/me; fails with a "please login again" error when no session exists.
        """
        return await session.auth.me()

    @mcp.tool()
    async def session_status() -> Dict[str, Any]:
        """
        Purpose: Report whether tokens are cached, and where the user was sent after the last session ended.
        Behavior: Local only; never touches the network.
        """
        return session.auth.status()

    # ---------------- Organisation ----------------
    @mcp.tool()
    async def list_companies(page: int = 1, per_page: int = 20, search: Optional[str] = None) -> Dict[str, Any]:
        """
        Purpose: Page through the companies in scope.
        Inputs: page (int, 1-based), per_page (int), search (str|None) name filter.
        Behavior: GET /api/companies.
        """
        return await _call("GET", "api/companies", params=_query(page=page, per_page=per_page, search=search))

    @mcp.tool()
    async def get_company(company_id: str) -> Dict[str, Any]:
        """GET /api/companies/{id}."""
        return await _call("GET", f"api/companies/{company_id}")

    @mcp.tool()
    async def list_processes(company_id: Optional[str] = None, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        """
        Purpose: List business processes, optionally for one company.
        Behavior: GET /api/processes?company_id=...
        """
        return await _call("GET", "api/processes", params=_query(company_id=company_id, page=page, per_page=per_page))

    @mcp.tool()
    async def list_subprocesses(process_id: Optional[str] = None, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        """GET /api/subprocesses, filtered by parent process when given."""
        return await _call("GET", "api/subprocesses", params=_query(process_id=process_id, page=page, per_page=per_page))

    # ---------------- Risk & control ----------------
    @mcp.tool()
    async def list_risks(subprocess_id: Optional[str] = None, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        """
        Purpose: List risks, optionally those of one subprocess.
        Behavior: GET /api/risks?subprocess_id=...
        """
        return await _call("GET", "api/risks", params=_query(subprocess_id=subprocess_id, page=page, per_page=per_page))

    @mcp.tool()
    async def list_controls(risk_id: Optional[str] = None, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        """
        Purpose: List controls, optionally those mapped to one risk.
        Behavior: GET /api/controls?risk_id=...
        """
        return await _call("GET", "api/controls", params=_query(risk_id=risk_id, page=page, per_page=per_page))

    # ---------------- Evidence & issues ----------------
    @mcp.tool()
    async def list_evidence(
        control_id: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Dict[str, Any]:
        """
        Purpose: Browse uploaded evidence.
        Inputs: control_id (str|None), search (str|None), page, per_page.
        Behavior: GET /evidence with the given filters.
        """
        return await _call(
            "GET",
            "evidence",
            params=_query(control_id=control_id, search=search, page=page, per_page=per_page),
        )

    @mcp.tool()
    async def upload_evidence(
        file_path: str,
        control_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Purpose: Attach a local file as evidence.
        Inputs:
        - file_path (str): path readable by the MCP server process.
        - control_id (str|None): control the evidence supports.
        - description (str|None): free text.
        Outputs: the created evidence record.
        Behavior: multipart POST /evidence/upload; the file bytes are read once so a replay after renewal resends the same content.
        """
        files = {"file": session.client.file_payload(file_path)}
        return await _call(
            "POST",
            "evidence/upload",
            data=_query(control_id=control_id, description=description),
            files=files,
        )

    @mcp.tool()
    async def list_issues(
        status: Optional[str] = None,
        severity: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Dict[str, Any]:
        """GET /issues filtered by status/severity."""
        return await _call("GET", "issues", params=_query(status=status, severity=severity, page=page, per_page=per_page))

    # ---------------- Generic ----------------
    @mcp.tool()
    async def api_request(
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Purpose: Reach any AssurKit endpoint not covered by a dedicated tool.
        Inputs:
        - method (str): GET, POST, PUT, PATCH or DELETE.
        - path (str): API path, e.g. `api/manage/risks/42` or `test-plans`.
        - params (dict|None): query string.
        - body (dict|None): JSON body.
        Behavior: Same session handling as every other tool (bearer token, one renewal + retry on 401).
        """
        verb = method.upper()
        if verb not in _METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        return await _call(verb, path, params=params, json_body=body)
