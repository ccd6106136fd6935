"""
SAC Stream Configuration

Loads settings from config/settings.toml, applies SAC_* environment
variable overrides, and exposes a lock-guarded shared instance via
get_config(). Uses stdlib tomllib.

Only configuration is shared process-wide. Sessions are always owned by
whoever created them.

Usage:
    from sacstream.config import get_config

    config = get_config()
    url = config.endpoints.api_url                  # dot-access
    delay = config.skill_sync.base_delay
    config.reload()                                 # re-read from disk
"""

import copy
import logging
import os
import threading
import tomllib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


logger = logging.getLogger("sacstream.config")


# ---------------------------------------------------------------------------
# Hardcoded fallback defaults, used when settings.toml is missing
# ---------------------------------------------------------------------------

# max_attempts = 0 means unlimited; max_delay = 0 means uncapped
_DEFAULTS: dict[str, Any] = {
    "endpoints": {
        "api_url": "http://localhost:8080/api",
        "ws_url": "",
        "session_ws_url": "ws://localhost:8081",
    },
    "auth": {
        "token": "",
    },
    "session_channel": {
        "max_attempts": 5,
        "base_delay": 3.0,
        "backoff_multiplier": 1.0,
        "max_delay": 0,
    },
    "skill_sync": {
        "max_attempts": 0,
        "base_delay": 2.0,
        "backoff_multiplier": 1.0,
        "max_delay": 0,
    },
    "output_watch": {
        "max_attempts": 0,
        "base_delay": 2.0,
        "backoff_multiplier": 1.0,
        "max_delay": 0,
    },
    "event_stream": {
        "max_attempts": 0,
        "base_delay": 1.0,
        "backoff_multiplier": 2.0,
        "max_delay": 30.0,
    },
    "transport": {
        "open_timeout": 10.0,
    },
    "logging": {
        "level": "INFO",
    },
}

# Environment variable overrides: SAC_<KEY> → dotpath
# Only flat (non-nested) keys are supported via env vars.
_ENV_OVERRIDES: list[tuple[str, str, Any]] = [
    ("SAC_API_URL",                  "endpoints.api_url",                str),
    ("SAC_WS_URL",                   "endpoints.ws_url",                 str),
    ("SAC_SESSION_WS_URL",           "endpoints.session_ws_url",         str),
    ("SAC_TOKEN",                    "auth.token",                       str),
    ("SAC_OPEN_TIMEOUT",             "transport.open_timeout",           float),
    ("SAC_LOG_LEVEL",                "logging.level",                    str),
    ("SAC_SESSION_MAX_ATTEMPTS",     "session_channel.max_attempts",     int),
    ("SAC_SESSION_RECONNECT_DELAY",  "session_channel.base_delay",       float),
    ("SAC_WATCH_RECONNECT_DELAY",    "skill_sync.base_delay",            float),
    ("SAC_OUTPUT_RECONNECT_DELAY",   "output_watch.base_delay",          float),
]



# ---------------------------------------------------------------------------
# ConfigSection: dot-access wrapper for nested dicts
# ---------------------------------------------------------------------------

class ConfigSection:
    """Read-only attribute view over one table of the config.

        section = ConfigSection({"base_delay": 2.0, "nested": {"key": "val"}})
        section.base_delay   # 2.0
        section.nested.key   # "val"
    """

    def __init__(self, data: dict[str, Any], name: str = ""):
        self._data = data
        self._name = name

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_"):
            raise AttributeError(key)
        return _lookup(self._data, key, self._name)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return self._data

    def __repr__(self) -> str:
        return f"ConfigSection({self._name or '<root>'}: {self._data!r})"


def _lookup(data: dict[str, Any], key: str, prefix: str) -> Any:
    dotpath = f"{prefix}.{key}" if prefix else key
    if key not in data:
        raise AttributeError(
            f"No config value '{dotpath}'. Known keys: {sorted(data)}"
        )
    value = data[key]
    return ConfigSection(value, dotpath) if isinstance(value, dict) else value


# ---------------------------------------------------------------------------
# StreamConfig: main config object
# ---------------------------------------------------------------------------

class StreamConfig:
    """Stream client settings: defaults, then settings.toml, then SAC_* env.

    The file is config/settings.toml under the project root unless an
    explicit path or SAC_CONFIG names another one. A missing or unreadable
    file is not an error; the defaults still apply.

        config.endpoints.api_url
        config.session_channel.max_attempts
    """

    def __init__(self, config_path: str | Path | None = None):
        self._lock = threading.Lock()
        self._path = _default_path() if config_path is None else Path(config_path)
        self._data: dict[str, Any] = self._build()
        self.last_loaded = datetime.now(timezone.utc).isoformat()

    @property
    def path(self) -> Path:
        return self._path

    def _build(self) -> dict[str, Any]:
        data = copy.deepcopy(_DEFAULTS)
        _deep_merge(data, self._read_file())
        self._apply_env(data)
        return data

    def _read_file(self) -> dict[str, Any]:
        if not self._path.is_file():
            logger.debug("No config file at %s; using defaults", self._path)
            return {}
        try:
            with self._path.open("rb") as f:
                parsed = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("Failed to read %s: %s; using fallback defaults", self._path, e)
            return {}
        logger.info("Configuration loaded from %s", self._path)
        return parsed

    @staticmethod
    def _apply_env(data: dict[str, Any]) -> None:
        for env_var, dotpath, cast in _ENV_OVERRIDES:
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            try:
                value = cast(raw)
            except (TypeError, ValueError) as e:
                logger.warning("Invalid env override %s=%r ignored: %s", env_var, raw, e)
                continue
            section, _, key = dotpath.rpartition(".")
            data.setdefault(section, {})[key] = value
            logger.info("Env override: %s -> %s", env_var, dotpath)

    def reload(self) -> dict[str, Any]:
        """Re-read the file and environment.

        Returns the changed values keyed by dotpath, e.g.:
            {"skill_sync.base_delay": {"old": 2.0, "new": 5.0}}

        Sessions read their policy once at construction, so changes apply
        to sessions created after the reload.
        """
        with self._lock:
            before = _flatten(self._data)
            self._data = self._build()
            self.last_loaded = datetime.now(timezone.utc).isoformat()
            after = _flatten(self._data)

        changes = {
            key: {"old": before.get(key), "new": after.get(key)}
            for key in sorted(before.keys() | after.keys())
            if before.get(key) != after.get(key)
        }
        logger.info("Configuration reloaded: %d change(s)", len(changes))
        return changes

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return _lookup(self._data, name, "")

    def to_dict(self) -> dict[str, Any]:
        """Deep copy of every setting, with the auth token masked."""
        data = copy.deepcopy(self._data)
        if data.get("auth", {}).get("token"):
            data["auth"]["token"] = "***"
        return data


# ---------------------------------------------------------------------------
# Shared instance
# ---------------------------------------------------------------------------

_instance: StreamConfig | None = None
_instance_lock = threading.Lock()


def get_config(config_path: str | Path | None = None) -> StreamConfig:
    """Return the process-wide StreamConfig, creating it on first use.

    config_path is only honoured by the call that creates the instance.
    """
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = StreamConfig(config_path)
        return _instance


def reset_config() -> None:
    """Forget the shared instance so the next get_config() reloads."""
    global _instance
    with _instance_lock:
        _instance = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _default_path() -> Path:
    env_path = os.environ.get("SAC_CONFIG")
    if env_path:
        return Path(env_path)
    return Path(__file__).resolve().parent.parent / "config" / "settings.toml"


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in place, table by table."""
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _deep_merge(current, value)
        else:
            base[key] = value


def _flatten(data: dict, prefix: str = "") -> dict[str, Any]:
    """{"a": {"b": 1}} -> {"a.b": 1}"""
    flat = {}
    for key, value in data.items():
        dotpath = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, dotpath + "."))
        else:
            flat[dotpath] = value
    return flat
