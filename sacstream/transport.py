"""
SAC Stream Transports

A transport handle is one physical connection. The session creates a new
handle for every (re)connect through an "opener":

    handle = opener(endpoint, callbacks)

and the handle reports back through the TransportCallbacks it was given:

    on_open()          exactly once, when the connection is usable
    on_frame(raw)      once per received frame
    on_close(code)     terminal: the peer or network closed the connection
    on_error(exc)      terminal: the connection failed (TransportError)

After on_close/on_error, or after close(), the handle is dead and emits
nothing more. Handles must be opened from inside a running event loop.

A handle whose send() only buffers may also offer unsent(), returning the
accepted payloads that never reached the wire. The session puts them back
at the head of its outbound queue when the connection ends.

Two openers ship here:
    open_websocket    websockets asyncio client, full duplex
    open_http_stream  httpx streaming GET, "data: <json>\\n\\n" records, receive-only
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

import httpx
import websockets

from sacstream.decoder import SSERecordBuffer
from sacstream.errors import TransportError


logger = logging.getLogger("sacstream.transport")

DEFAULT_OPEN_TIMEOUT = 10.0

# Streaming bodies stay open indefinitely, so no read timeout
HTTP_STREAM_TIMEOUT = httpx.Timeout(connect=10.0, read=None, write=10.0, pool=10.0)


# ---------------------------------------------------------------------------
# Callbacks bundle
# ---------------------------------------------------------------------------

@dataclass
class TransportCallbacks:
    """What a handle calls as its connection progresses."""
    on_open: Callable[[], Any]
    on_frame: Callable[[str | bytes], Any]
    on_close: Callable[[int | None], Any]
    on_error: Callable[[Exception], Any]


def bearer_headers(token: str | None) -> dict[str, str]:
    """Authorization header for HTTP streams (WebSockets use ?token=)."""
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------

class WebSocketHandle:
    """One WebSocket connection driven by a background task.

    Outbound payloads go through an asyncio.Queue consumed by a writer
    task so send() stays synchronous and order is preserved. Payloads
    the writer had not finished sending when the connection ended are
    returned by unsent(), oldest first.
    """

    def __init__(self, url: str, callbacks: TransportCallbacks,
                 headers: dict[str, str] | None = None,
                 open_timeout: float = DEFAULT_OPEN_TIMEOUT):
        self.url = url
        self._callbacks = callbacks
        self._headers = headers or None
        self._open_timeout = open_timeout
        self._ws = None
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._inflight: str | bytes | None = None
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed

    def send(self, payload: str | bytes) -> bool:
        """Queue a frame for the writer. False if the socket is not open."""
        if not self.is_open:
            return False
        self._outbox.put_nowait(payload)
        return True

    def unsent(self) -> list[str | bytes]:
        """Take back every accepted payload that never reached the socket."""
        payloads = [] if self._inflight is None else [self._inflight]
        self._inflight = None
        while not self._outbox.empty():
            payloads.append(self._outbox.get_nowait())
        return payloads

    def close(self) -> None:
        """Silence callbacks and tear the connection down. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._task.cancel()

    async def _run(self):
        try:
            async with websockets.connect(
                self.url,
                additional_headers=self._headers,
                open_timeout=self._open_timeout,
            ) as ws:
                if self._closed:
                    return
                self._ws = ws
                logger.info("WebSocket connected: %s", redact_url(self.url))
                self._callbacks.on_open()

                writer = asyncio.create_task(self._write(ws))
                try:
                    async for raw in ws:
                        if self._closed:
                            return
                        self._callbacks.on_frame(raw)
                except websockets.ConnectionClosed:
                    # Abnormal closure; the code is read below
                    pass
                finally:
                    writer.cancel()
                    self._ws = None

            if not self._closed:
                self._closed = True
                code = ws.close_code
                logger.info("WebSocket closed: %s (code=%s)", redact_url(self.url), code)
                self._callbacks.on_close(code)

        except asyncio.CancelledError:
            logger.debug("WebSocket task cancelled: %s", redact_url(self.url))
            raise
        except (websockets.WebSocketException, OSError, asyncio.TimeoutError) as e:
            code = getattr(getattr(e, "response", None), "status_code", None)
            self._fail(TransportError(
                f"WebSocket connection failed: {e}", code=code,
                details={"url": redact_url(self.url)},
            ))

    async def _write(self, ws):
        try:
            while True:
                payload = await self._outbox.get()
                self._inflight = payload
                await ws.send(payload)
                self._inflight = None
        except websockets.ConnectionClosed:
            # The reader sees the same closure and reports it
            logger.debug("Writer stopped: connection closed")
        except Exception as e:
            # The refused payload is dropped, not handed back by unsent()
            rejected, self._inflight = self._inflight, None
            logger.exception("WebSocket send failed: %s (payload type %s)",
                             redact_url(self.url), type(rejected).__name__)
            self._fail(TransportError(
                f"WebSocket send failed: {type(e).__name__}: {e}",
                details={"url": redact_url(self.url)},
            ))
            self._task.cancel()

    def _fail(self, error: TransportError):
        if self._closed:
            return
        self._closed = True
        logger.warning("WebSocket failed: %s: %s", redact_url(self.url), error)
        self._callbacks.on_error(error)


def open_websocket(url: str, callbacks: TransportCallbacks, *,
                   headers: dict[str, str] | None = None,
                   open_timeout: float = DEFAULT_OPEN_TIMEOUT) -> WebSocketHandle:
    """Opener for WebSocket endpoints."""
    return WebSocketHandle(url, callbacks, headers=headers, open_timeout=open_timeout)


# ---------------------------------------------------------------------------
# Streaming HTTP
# ---------------------------------------------------------------------------

class HttpStreamHandle:
    """One streaming GET whose body is a sequence of "data:" records.

    Args:
        client: Shared httpx.AsyncClient. When None, a client is created
                for this handle and closed with it.
    """

    def __init__(self, url: str, callbacks: TransportCallbacks,
                 headers: dict[str, str] | None = None,
                 client: httpx.AsyncClient | None = None):
        self.url = url
        self._callbacks = callbacks
        self._headers = headers or {}
        self._client = client
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send(self, payload: str | bytes) -> bool:
        return False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._task.cancel()

    async def _run(self):
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=HTTP_STREAM_TIMEOUT)
        headers = {"Accept": "text/event-stream", **self._headers}
        try:
            async with client.stream("GET", self.url, headers=headers) as response:
                if not response.is_success:
                    await response.aread()
                    raise TransportError(
                        f"Stream rejected with HTTP {response.status_code}",
                        code=response.status_code,
                        details={"url": redact_url(self.url), "body": response.text[:200]},
                    )
                if self._closed:
                    return
                logger.info("Stream connected: %s", redact_url(self.url))
                self._callbacks.on_open()

                records = SSERecordBuffer()
                async for chunk in response.aiter_text():
                    for payload in records.feed(chunk):
                        if self._closed:
                            return
                        self._callbacks.on_frame(payload)

            if not self._closed:
                self._closed = True
                logger.info("Stream ended: %s", redact_url(self.url))
                self._callbacks.on_close(None)

        except asyncio.CancelledError:
            logger.debug("Stream task cancelled: %s", redact_url(self.url))
            raise
        except TransportError as e:
            self._fail(e)
        except httpx.HTTPError as e:
            self._fail(TransportError(
                f"Stream failed: {type(e).__name__}: {e}",
                details={"url": redact_url(self.url)},
            ))
        finally:
            if owns_client:
                await client.aclose()

    def _fail(self, error: TransportError):
        if self._closed:
            return
        self._closed = True
        logger.warning("Stream failed: %s: %s", redact_url(self.url), error)
        self._callbacks.on_error(error)


def open_http_stream(url: str, callbacks: TransportCallbacks, *,
                     headers: dict[str, str] | None = None,
                     client: httpx.AsyncClient | None = None) -> HttpStreamHandle:
    """Opener for streaming HTTP endpoints."""
    return HttpStreamHandle(url, callbacks, headers=headers, client=client)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def redact_url(url: str) -> str:
    """Hide the token query parameter in log lines."""
    head, sep, query = url.partition("?")
    if not sep:
        return url
    parts = []
    for pair in query.split("&"):
        key, eq, _ = pair.partition("=")
        parts.append(f"{key}=***" if key == "token" and eq else pair)
    return head + "?" + "&".join(parts)
