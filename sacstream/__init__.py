"""
SAC Stream: resilient event stream client for the SAC agent platform.

A SubscriptionSession keeps a logical subscription alive across transport
drops, queues outbound messages while disconnected and reconnects under a
ReconnectPolicy. The watchers module wires sessions to the platform's
skill sync, output watch, session channel and streaming HTTP endpoints.
"""

from sacstream.errors import (
    ConfigurationError,
    SendNotSupportedError,
    StreamError,
    TransportError,
)
from sacstream.events import OutputEvent, SkillSyncEvent, StreamEvent
from sacstream.policy import GiveUp, ReconnectPolicy, RetryAfter
from sacstream.session import ConnectionState, SubscriptionSession
from sacstream.transport import TransportCallbacks, open_http_stream, open_websocket
from sacstream.watchers import (
    create_session_channel,
    watch_event_stream,
    watch_output,
    watch_skill_sync,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ConnectionState",
    "GiveUp",
    "OutputEvent",
    "ReconnectPolicy",
    "RetryAfter",
    "SendNotSupportedError",
    "SkillSyncEvent",
    "StreamError",
    "StreamEvent",
    "SubscriptionSession",
    "TransportCallbacks",
    "TransportError",
    "create_session_channel",
    "open_http_stream",
    "open_websocket",
    "watch_event_stream",
    "watch_output",
    "watch_skill_sync",
]
