"""
SAC Stream Subscription Session

A long-lived logical subscription to a server-pushed event stream that
survives transport drops. The session owns the connection state, the
outbound queue and the reconnect timer; the transport, decoder, policy
and clock are all injected.

States:

    IDLE ──start()──→ CONNECTING ──transport open──→ OPEN
                          ↑                            │
                          └──── unexpected close ──────┘
                          │
                          └── policy gives up ──→ CLOSED (max_attempts_reached)

    any state ──stop()──→ CLOSING ──→ CLOSED      (terminal, never reopens)

Events (register with on(), remove with off()):
    open                  ()
    message               (event)          one decoded frame
    close                 (code)           transport closed unexpectedly
    error                 (exc)            transport failed (TransportError)
    reconnecting          (attempt, delay) a reconnect has been scheduled
    max_attempts_reached  (attempts)       policy gave up; session is CLOSED
    state_change          (old, new)

Usage:
    from sacstream.session import SubscriptionSession
    from sacstream.transport import open_websocket
    from sacstream.decoder import JsonFrameDecoder
    from sacstream.policy import ReconnectPolicy

    session = SubscriptionSession(
        "ws://localhost:8080/api/skill-sync/watch?agent_id=3&token=...",
        opener=open_websocket,
        decoder=JsonFrameDecoder(),
        policy=ReconnectPolicy.fixed(2.0),
    )
    session.on("message", print)
    session.start()        # inside a running event loop
    ...
    session.stop()
"""

import logging
from enum import Enum
from typing import Any, Callable

from sacstream.decoder import TextFrameDecoder
from sacstream.errors import SendNotSupportedError, TransportError
from sacstream.outbound import OutboundQueue
from sacstream.policy import GiveUp, ReconnectPolicy, WATCHER_POLICY
from sacstream.scheduler import LoopScheduler, Scheduler
from sacstream.transport import TransportCallbacks, redact_url


logger = logging.getLogger("sacstream.session")


# ---------------------------------------------------------------------------
# Connection state
# ---------------------------------------------------------------------------

class ConnectionState(Enum):
    """Lifecycle states of a session. Only the session moves between them."""
    IDLE = "idle"                # Constructed, start() not called yet
    CONNECTING = "connecting"    # Opening a transport, or waiting out a reconnect delay
    OPEN = "open"                # Transport connected, frames flowing
    CLOSING = "closing"          # stop() in progress
    CLOSED = "closed"            # Terminal


EVENT_NAMES = (
    "open",
    "message",
    "close",
    "error",
    "reconnecting",
    "max_attempts_reached",
    "state_change",
)


# ---------------------------------------------------------------------------
# SubscriptionSession
# ---------------------------------------------------------------------------

class SubscriptionSession:
    """Reconnecting subscription over a pluggable transport.

    Args:
        endpoint:  URL handed to the opener on every (re)connect.
        opener:    Callable (endpoint, TransportCallbacks) -> handle.
        decoder:   Callable raw frame -> event or None. Defaults to text.
        policy:    ReconnectPolicy. Defaults to unlimited retries every 2s.
        scheduler: Timer/clock provider. Defaults to the running asyncio loop.
        outbound:  False for receive-only transports; send() then raises.
        name:      Label used in log lines.
    """

    def __init__(
        self,
        endpoint: str,
        opener: Callable[[str, TransportCallbacks], Any],
        decoder: Callable[[Any], Any] | None = None,
        policy: ReconnectPolicy | None = None,
        scheduler: Scheduler | None = None,
        outbound: bool = True,
        name: str | None = None,
    ):
        self.endpoint = endpoint
        self.name = name or "session"
        self._opener = opener
        self._decoder = decoder or TextFrameDecoder()
        self._policy = policy or WATCHER_POLICY
        self._scheduler = scheduler or LoopScheduler()
        self._outbound_enabled = outbound

        self._state = ConnectionState.IDLE
        self._handle: Any = None
        self._generation = 0
        self._attempts = 0
        self._timer: Any = None
        self._queue = OutboundQueue(clock=self._scheduler.time)
        self._handlers: dict[str, list[Callable]] = {name: [] for name in EVENT_NAMES}

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def reconnect_attempts(self) -> int:
        """Reconnects made since the last successful open."""
        return self._attempts

    @property
    def pending_messages(self) -> int:
        """Messages waiting in the outbound queue."""
        return len(self._queue)

    def is_connected(self) -> bool:
        return self._state is ConnectionState.OPEN

    def __repr__(self) -> str:
        return f"SubscriptionSession({self.name!r}, state={self._state.value})"

    # -------------------------------------------------------------------
    # Handler registration
    # -------------------------------------------------------------------

    def on(self, event: str, handler: Callable) -> None:
        """Register a handler. Registering the same handler twice is a no-op."""
        handlers = self._handlers_for(event)
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event: str, handler: Callable) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers_for(event)
        if handler in handlers:
            handlers.remove(handler)

    def _handlers_for(self, event: str) -> list[Callable]:
        try:
            return self._handlers[event]
        except KeyError:
            raise ValueError(
                f"Unknown event '{event}'. Available: {list(EVENT_NAMES)}"
            )

    def _emit(self, event: str, *args) -> None:
        # Copy: a handler may call on()/off() while we iterate
        for handler in list(self._handlers[event]):
            try:
                handler(*args)
            except Exception:
                logger.exception("[%s] %s handler %r failed", self.name, event, handler)

    # -------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------

    def start(self) -> None:
        """Begin connecting. No-op unless the session is IDLE."""
        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return
        if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            logger.warning("[%s] start() on a closed session ignored; create a new one", self.name)
            return
        logger.info("[%s] Starting subscription to %s", self.name, redact_url(self.endpoint))
        self._set_state(ConnectionState.CONNECTING)
        self._open_transport()

    def send(self, payload: str | bytes) -> None:
        """Send now if connected, otherwise queue until the next open."""
        if not self._outbound_enabled:
            raise SendNotSupportedError(f"Session '{self.name}' is receive-only")

        if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            logger.warning("[%s] send() on a closed session dropped", self.name)
            return

        # Anything already queued goes first
        if self._state is ConnectionState.OPEN and not self._queue:
            if self._handle is not None and self._handle.send(payload):
                return
            logger.debug("[%s] Transport rejected send; queueing", self.name)

        self._queue.enqueue(payload)

    def stop(self) -> None:
        """Close permanently. Cancels any pending reconnect. Idempotent."""
        if self._state is ConnectionState.CLOSED:
            return
        self._set_state(ConnectionState.CLOSING)
        self._cancel_timer()
        self._release_handle()
        dropped = self._queue.clear()
        if dropped:
            logger.info("[%s] Dropped %d queued message(s) on stop", self.name, dropped)
        self._set_state(ConnectionState.CLOSED)
        logger.info("[%s] Subscription stopped", self.name)

    # -------------------------------------------------------------------
    # Transport lifecycle
    # -------------------------------------------------------------------

    def _open_transport(self) -> None:
        self._timer = None
        self._release_handle()
        self._generation += 1
        generation = self._generation

        callbacks = TransportCallbacks(
            on_open=lambda: self._on_transport_open(generation),
            on_frame=lambda raw: self._on_transport_frame(generation, raw),
            on_close=lambda code=None: self._on_transport_close(generation, code),
            on_error=lambda exc: self._on_transport_error(generation, exc),
        )
        try:
            handle = self._opener(self.endpoint, callbacks)
        except Exception as e:
            # Synchronous opener failure (bad URL, no loop) counts as a drop
            logger.warning("[%s] Could not open transport: %s", self.name, e)
            if not isinstance(e, TransportError):
                e = TransportError(f"Could not open transport: {e}",
                                   details={"url": redact_url(self.endpoint)})
            self._on_transport_error(generation, e)
            return

        if self._is_current(generation):
            self._handle = handle
            # Openers that report on_open before returning left the queue unflushed
            if self._state is ConnectionState.OPEN:
                self._flush()
        else:
            handle.close()

    def _release_handle(self) -> None:
        """Invalidate and close the current handle, if any."""
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                handle.close()
            except Exception:
                logger.exception("[%s] Error closing transport", self.name)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _on_transport_open(self, generation: int) -> None:
        if not self._is_current(generation) or self._state is not ConnectionState.CONNECTING:
            return
        self._attempts = 0
        self._set_state(ConnectionState.OPEN)
        # A state_change handler may have called stop()
        if self._state is not ConnectionState.OPEN:
            return
        logger.info("[%s] Connected", self.name)

        self._flush()
        self._emit("open")

    def _flush(self) -> None:
        if not self._queue or self._handle is None:
            return
        sent = self._queue.drain_to(self._handle.send)
        logger.info("[%s] Flushed %d queued message(s), %d remaining",
                    self.name, sent, len(self._queue))

    def _on_transport_frame(self, generation: int, raw: Any) -> None:
        if not self._is_current(generation) or self._state is not ConnectionState.OPEN:
            return
        try:
            event = self._decoder(raw)
        except Exception as e:
            logger.debug("[%s] Decoder raised on frame, skipping: %s", self.name, e)
            return
        if event is None:
            return
        self._emit("message", event)

    def _on_transport_close(self, generation: int, code: int | None) -> None:
        if not self._is_current(generation):
            return
        self._disconnected()
        if self._state is not ConnectionState.CONNECTING:
            return
        logger.info("[%s] Connection closed (code=%s)", self.name, code)
        self._emit("close", code)
        self._after_disconnect()

    def _on_transport_error(self, generation: int, exc: Exception) -> None:
        if not self._is_current(generation):
            return
        self._disconnected()
        if self._state is not ConnectionState.CONNECTING:
            return
        logger.warning("[%s] Connection error: %s", self.name, exc)
        self._emit("error", exc)
        self._after_disconnect()

    def _disconnected(self) -> None:
        """Drop the dead handle and fall back to CONNECTING."""
        self._generation += 1
        handle, self._handle = self._handle, None
        self._reclaim_unsent(handle)
        if self._state is ConnectionState.OPEN:
            self._set_state(ConnectionState.CONNECTING)

    def _reclaim_unsent(self, handle: Any) -> None:
        unsent = getattr(handle, "unsent", None)
        if unsent is None:
            return
        payloads = unsent()
        if payloads:
            self._queue.requeue(payloads)
            logger.info("[%s] Re-queued %d unsent message(s)", self.name, len(payloads))

    def _after_disconnect(self) -> None:
        # A close/error handler may have called stop()
        if self._state is not ConnectionState.CONNECTING:
            return

        attempt = self._attempts + 1
        decision = self._policy.on_disconnect(attempt)
        if isinstance(decision, GiveUp):
            logger.error("[%s] Max reconnection attempts reached (%d)", self.name, decision.attempts)
            dropped = self._queue.clear()
            if dropped:
                logger.info("[%s] Dropped %d queued message(s)", self.name, dropped)
            self._set_state(ConnectionState.CLOSED)
            self._emit("max_attempts_reached", decision.attempts)
            return

        self._attempts = attempt
        limit = "unlimited" if self._policy.unlimited else str(self._policy.max_attempts)
        logger.info("[%s] Reconnecting in %.1fs (attempt %d/%s)",
                    self.name, decision.delay, attempt, limit)
        self._timer = self._scheduler.call_later(decision.delay, self._reconnect)
        self._emit("reconnecting", attempt, decision.delay)

    def _reconnect(self) -> None:
        self._timer = None
        if self._state is not ConnectionState.CONNECTING:
            return
        self._open_transport()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_state(self, new: ConnectionState) -> None:
        old = self._state
        if old is new:
            return
        self._state = new
        logger.debug("[%s] State %s -> %s", self.name, old.value, new.value)
        self._emit("state_change", old, new)
