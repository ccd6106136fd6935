"""
SAC Stream Watchers

Ready-made sessions for the platform's push endpoints. Each returns the
SubscriptionSession; the caller keeps it and calls stop() when done.

    watch_skill_sync        skill sync progress, retries forever
    watch_output            output workspace file changes, retries forever
    create_session_channel  agent session socket, bounded retries, not started
    watch_event_stream      streaming HTTP "data:" feed, receive-only

Usage:
    from sacstream.watchers import watch_skill_sync

    def on_event(event):
        print(event.step, event.message)

    session = watch_skill_sync(agent_id=3, on_event=on_event, token=jwt)
    ...
    session.stop()
"""

import functools
from typing import Any, Callable

import httpx

from sacstream.config import StreamConfig, get_config
from sacstream.decoder import JsonFrameDecoder, TextFrameDecoder
from sacstream.endpoints import (
    api_base_url,
    output_watch_url,
    session_channel_url,
    session_ws_base_url,
    skill_sync_url,
    stream_url,
    ws_base_url,
)
from sacstream.errors import ConfigurationError
from sacstream.events import OutputEvent, SkillSyncEvent, StreamEvent
from sacstream.policy import ReconnectPolicy
from sacstream.scheduler import Scheduler
from sacstream.session import SubscriptionSession
from sacstream.transport import bearer_headers, open_http_stream, open_websocket


# ---------------------------------------------------------------------------
# WebSocket watchers
# ---------------------------------------------------------------------------

def watch_skill_sync(
    agent_id: int,
    on_event: Callable[[SkillSyncEvent], Any],
    *,
    token: str | None = None,
    config: StreamConfig | None = None,
    opener: Callable | None = None,
    scheduler: Scheduler | None = None,
) -> SubscriptionSession:
    """Start watching skill sync progress for one agent."""
    config = config or get_config()
    url = skill_sync_url(ws_base_url(config), agent_id, _token(token, config))
    session = SubscriptionSession(
        url,
        opener=opener or _websocket_opener(config),
        decoder=JsonFrameDecoder(model=SkillSyncEvent),
        policy=ReconnectPolicy.from_config(config.skill_sync),
        scheduler=scheduler,
        name=f"skill-sync:{agent_id}",
    )
    session.on("message", on_event)
    session.start()
    return session


def watch_output(
    agent_id: int,
    on_event: Callable[[OutputEvent], Any],
    *,
    token: str | None = None,
    config: StreamConfig | None = None,
    opener: Callable | None = None,
    scheduler: Scheduler | None = None,
) -> SubscriptionSession:
    """Start watching an agent's output workspace for uploads and deletes."""
    config = config or get_config()
    url = output_watch_url(ws_base_url(config), agent_id, _token(token, config))
    session = SubscriptionSession(
        url,
        opener=opener or _websocket_opener(config),
        decoder=JsonFrameDecoder(model=OutputEvent),
        policy=ReconnectPolicy.from_config(config.output_watch),
        scheduler=scheduler,
        name=f"output:{agent_id}",
    )
    session.on("message", on_event)
    session.start()
    return session


def create_session_channel(
    user_id: int | str,
    session_id: str,
    *,
    base_url: str | None = None,
    config: StreamConfig | None = None,
    opener: Callable | None = None,
    scheduler: Scheduler | None = None,
) -> SubscriptionSession:
    """Build (but do not start) the socket for one agent session.

    Frames are delivered as text. Messages sent before the socket opens
    are queued and flushed on connect. After the configured number of
    failed reconnects the session closes and emits max_attempts_reached.
    """
    config = config or get_config()
    url = session_channel_url(base_url or session_ws_base_url(config), user_id, session_id)
    return SubscriptionSession(
        url,
        opener=opener or _websocket_opener(config),
        decoder=TextFrameDecoder(),
        policy=ReconnectPolicy.from_config(config.session_channel),
        scheduler=scheduler,
        name=f"session:{session_id}",
    )


# ---------------------------------------------------------------------------
# Streaming HTTP watcher
# ---------------------------------------------------------------------------

def watch_event_stream(
    path: str,
    on_event: Callable[[Any], Any],
    *,
    token: str | None = None,
    model: Any = StreamEvent,
    config: StreamConfig | None = None,
    client: httpx.AsyncClient | None = None,
    opener: Callable | None = None,
    scheduler: Scheduler | None = None,
) -> SubscriptionSession:
    """Start reading a streaming HTTP feed of "data: <json>" records.

    Args:
        path:   API path (joined to endpoints.api_url) or absolute URL.
        model:  Event class with from_dict(); None delivers plain dicts.
        client: Shared httpx.AsyncClient, reused across reconnects.
    """
    config = config or get_config()
    url = stream_url(api_base_url(config), path)
    if opener is None:
        opener = functools.partial(
            open_http_stream,
            headers=bearer_headers(_token(token, config)),
            client=client,
        )
    session = SubscriptionSession(
        url,
        opener=opener,
        decoder=JsonFrameDecoder(model=model),
        policy=ReconnectPolicy.from_config(config.event_stream),
        scheduler=scheduler,
        outbound=False,
        name=f"stream:{path}",
    )
    session.on("message", on_event)
    session.start()
    return session


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _websocket_opener(config: StreamConfig) -> Callable:
    return functools.partial(open_websocket, open_timeout=float(config.transport.open_timeout))


def _token(token: str | None, config: StreamConfig) -> str:
    resolved = token or config.auth.token
    if not resolved:
        raise ConfigurationError(
            "An auth token is required. Pass token= or set SAC_TOKEN."
        )
    return resolved
