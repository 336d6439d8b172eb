import mimetypes
import os
from typing import Any, Dict, Optional

import httpx

from .errors import ApiError, AuthorizationError


class HttpClient:
    """Thin wrapper around httpx for talking to the AssurKit API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @staticmethod
    def auth_header(token: Optional[str]) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"} if token else {}

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def send(
        self,
        method: str,
        path: str,
        *,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Send one HTTP request and return the raw response without raising on status.

        Transport failures (connection errors, timeouts) propagate as httpx exceptions.
        """
        merged_headers = dict(headers or {})
        merged_headers.update(self.auth_header(access_token))
        async with httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.timeout,
            transport=self.transport,
        ) as client:
            return await client.request(
                method,
                self.url_for(path),
                params=params,
                json=json_body,
                data=data,
                files=files,
                headers=merged_headers,
            )

    async def handle(self, response: httpx.Response) -> Dict[str, Any]:
        """Decode a successful response or raise ApiError/AuthorizationError."""
        if response.is_success:
            if not response.content:
                return {}
            return response.json()
        try:
            payload = response.json()
            message = payload.get("message") or payload.get("error") or payload
        except Exception:
            payload = None
            message = response.text
        error_cls = AuthorizationError if response.status_code == 401 else ApiError
        raise error_cls(response.status_code, message, payload)

    async def request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """Send and decode in one step; used for calls that must bypass the dispatcher."""
        response = await self.send(method, path, **kwargs)
        return await self.handle(response)

    @staticmethod
    def file_payload(file_path: str):
        """Return (filename, bytes, mime) tuple suitable for httpx files=."""
        with open(file_path, "rb") as fh:
            data = fh.read()
        filename = os.path.basename(file_path)
        mime_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        return (filename, data, mime_type)
