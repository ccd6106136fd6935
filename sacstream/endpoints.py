"""
SAC Stream Endpoints

URL builders for the platform's push endpoints. WebSocket endpoints
carry the auth token as a query parameter because the upgrade request
cannot set an Authorization header; HTTP streams use bearer_headers().

    skill sync       {ws_base}/api/skill-sync/watch?agent_id=..&token=..
    output watch     {ws_base}/api/workspace/output/watch?agent_id=..&token=..
    session channel  {session_ws_base}/ws/{user_id}/{session_id}
"""

from urllib.parse import quote, urlencode, urlsplit, urlunsplit

from sacstream.config import StreamConfig, get_config
from sacstream.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Base URLs
# ---------------------------------------------------------------------------

def api_base_url(config: StreamConfig | None = None) -> str:
    """HTTP API base, e.g. http://localhost:8080/api."""
    config = config or get_config()
    url = (config.endpoints.api_url or "").rstrip("/")
    if not url:
        raise ConfigurationError("endpoints.api_url is required.")
    return url


def ws_base_url(config: StreamConfig | None = None) -> str:
    """WebSocket base for /api/... watch endpoints.

    Uses endpoints.ws_url when set. Otherwise derives it from the API URL:
    http→ws, https→wss, trailing /api removed (watch paths include it).
    """
    config = config or get_config()
    explicit = (config.endpoints.ws_url or "").rstrip("/")
    if explicit:
        return explicit
    return derive_ws_url(api_base_url(config))


def session_ws_base_url(config: StreamConfig | None = None) -> str:
    """Base of the session proxy (separate port in development)."""
    config = config or get_config()
    url = (config.endpoints.session_ws_url or "").rstrip("/")
    return url or ws_base_url(config)


def derive_ws_url(http_url: str) -> str:
    parts = urlsplit(http_url)
    if parts.scheme not in ("http", "https"):
        raise ConfigurationError(f"Cannot derive a WebSocket URL from '{http_url}'")
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = parts.path.rstrip("/")
    if path.endswith("/api"):
        path = path[: -len("/api")]
    return urlunsplit((scheme, parts.netloc, path, "", ""))


# ---------------------------------------------------------------------------
# Endpoint builders
# ---------------------------------------------------------------------------

def skill_sync_url(base: str, agent_id: int, token: str) -> str:
    return _with_query(f"{base.rstrip('/')}/api/skill-sync/watch",
                       agent_id=agent_id, token=token)


def output_watch_url(base: str, agent_id: int, token: str) -> str:
    return _with_query(f"{base.rstrip('/')}/api/workspace/output/watch",
                       agent_id=agent_id, token=token)


def session_channel_url(base: str, user_id: int | str, session_id: str) -> str:
    return (f"{base.rstrip('/')}/ws/"
            f"{quote(str(user_id), safe='')}/{quote(str(session_id), safe='')}")


def stream_url(base: str, path: str) -> str:
    """Join an HTTP API base and a path; absolute URLs pass through."""
    if "://" in path:
        return path
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def _with_query(url: str, **params) -> str:
    return f"{url}?{urlencode({k: str(v) for k, v in params.items()})}"
