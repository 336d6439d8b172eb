from typing import Any, Optional


class ApiError(RuntimeError):
    """Non-2xx response from the AssurKit API."""

    def __init__(self, status_code: int, message: Any, payload: Any = None):
        self.status_code = status_code
        self.message = message
        self.payload = payload
        super().__init__(f"AssurKit API error ({status_code}): {message}")


class AuthorizationError(ApiError):
    """401 that was not recovered by renewing the session."""


class SessionExpiredError(RuntimeError):
    """The session could not be renewed; the user has to sign in again."""

    def __init__(self, message: str = "Session expired; please login again.", *, reason: Optional[str] = None):
        self.reason = reason
        super().__init__(message)
