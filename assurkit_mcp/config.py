import os
from dataclasses import dataclass, field
from typing import List


def _csv_env(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _bool_env(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Centralised configuration for the MCP server and the AssurKit API session."""

    api_base_url: str = os.getenv("ASSURKIT_API_BASE_URL", "http://localhost:8080").rstrip("/")
    credentials_path: str = os.path.expanduser(
        os.getenv("ASSURKIT_CREDENTIALS_PATH", "~/.assurkit/credentials.json")
    )
    logged_out_path: str = os.getenv("ASSURKIT_LOGGED_OUT_PATH", "/login")
    request_timeout: float = float(os.getenv("ASSURKIT_REQUEST_TIMEOUT", "30"))
    renewal_timeout: float = float(os.getenv("ASSURKIT_RENEWAL_TIMEOUT", "15"))
    mcp_api_keys: List[str] = field(default_factory=lambda: _csv_env("MCP_API_KEYS"))
    allowed_origins: List[str] = field(default_factory=lambda: _csv_env("MCP_ALLOWED_ORIGINS", "*"))
    host: str = os.getenv("MCP_HOST", "0.0.0.0")
    port: int = int(os.getenv("MCP_PORT", "8000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_json: bool = _bool_env("LOG_JSON", "true")


settings = Settings()
