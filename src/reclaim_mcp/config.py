"""Environment-driven settings. Call ``load_env()`` once at process start."""

from __future__ import annotations

import os

from dotenv import load_dotenv

DEFAULT_API_BASE = "https://api.app.reclaim.ai/api/"
DEFAULT_HTTP_TIMEOUT = 30.0


def load_env() -> None:
    """Pull a local ``.env`` into the environment without overriding real variables."""
    load_dotenv(override=False)


def _clean(raw: str | None) -> str | None:
    return raw.strip() if raw and raw.strip() else None


def api_key() -> str | None:
    return _clean(os.getenv("RECLAIM_API_KEY"))


def api_base() -> str:
    return _clean(os.getenv("RECLAIM_API_BASE")) or DEFAULT_API_BASE


def http_timeout() -> float:
    raw = os.getenv("RECLAIM_HTTP_TIMEOUT")
    try:
        return float(raw) if raw else DEFAULT_HTTP_TIMEOUT
    except (TypeError, ValueError):
        return DEFAULT_HTTP_TIMEOUT


def default_time_zone() -> str | None:
    """Process-wide zone for offset-less input; injected into ResolutionContext."""
    return _clean(os.getenv("MCP_DEFAULT_TIMEZONE"))


def log_level() -> str:
    return (_clean(os.getenv("RECLAIM_LOG_LEVEL")) or "INFO").upper()


def transport() -> str:
    """``stdio`` or ``http``. An MCP_HTTP_PORT alone implies HTTP."""
    mode = (_clean(os.getenv("MCP_TRANSPORT")) or "").lower()
    if not mode:
        return "http" if http_port_raw() else "stdio"
    return mode


def http_host() -> str:
    return _clean(os.getenv("MCP_HTTP_HOST")) or "127.0.0.1"


def http_port_raw() -> str | None:
    return _clean(os.getenv("MCP_HTTP_PORT"))


def http_port() -> int:
    raw = http_port_raw()
    if raw is None:
        return 3000
    port = int(raw)  # ValueError surfaces to the caller
    if port <= 0:
        raise ValueError(f"Invalid MCP_HTTP_PORT value {raw!r}.")
    return port


def http_path() -> str:
    path = _clean(os.getenv("MCP_HTTP_PATH")) or "/mcp"
    return path if path.startswith("/") else f"/{path}"


def http_stateless() -> bool:
    return (os.getenv("MCP_HTTP_STATELESS") or "").lower() == "true"
