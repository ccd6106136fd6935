"""
SAC Stream Outbound Queue

Holds messages the caller submitted while the session was not connected.
The session drains it oldest-first right after the transport opens.

Usage:
    from sacstream.outbound import OutboundQueue

    queue = OutboundQueue()
    queue.enqueue('{"type": "ping"}')
    sent = queue.drain_to(handle.send)   # stops at the first rejected send
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable


logger = logging.getLogger("sacstream.outbound")


# ---------------------------------------------------------------------------
# OutboundMessage
# ---------------------------------------------------------------------------

@dataclass
class OutboundMessage:
    """A single queued message.

    Attributes:
        payload:     Text or binary frame exactly as the caller passed it.
        enqueued_at: Clock reading at enqueue time (diagnostics only).
    """
    payload: str | bytes
    enqueued_at: float = field(default_factory=time.monotonic)


# ---------------------------------------------------------------------------
# OutboundQueue
# ---------------------------------------------------------------------------

class OutboundQueue:
    """FIFO buffer for messages waiting on a connection.

    Args:
        clock: Callable returning the current time, used for enqueued_at.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._messages: deque[OutboundMessage] = deque()

    def enqueue(self, payload: str | bytes) -> None:
        """Append a message. Always succeeds."""
        self._messages.append(OutboundMessage(payload, self._clock()))

    def requeue(self, payloads: list[str | bytes]) -> None:
        """Put payloads back at the head, ahead of anything queued since.

        Used for messages a transport accepted but never sent; their
        relative order is kept.
        """
        now = self._clock()
        self._messages.extendleft(OutboundMessage(p, now) for p in reversed(payloads))

    def drain_to(self, send: Callable[[str | bytes], bool]) -> int:
        """Send queued messages oldest-first until empty or rejected.

        A message is only removed after send() accepts it, so a rejection
        leaves that message and everything behind it queued for the next
        drain. Nothing already sent is sent again.

        Args:
            send: Transport send function; returns False to reject.

        Returns:
            Number of messages sent.
        """
        sent = 0
        while self._messages:
            message = self._messages[0]
            if not send(message.payload):
                logger.debug(
                    "Drain halted after %d message(s), %d still queued",
                    sent, len(self._messages),
                )
                break
            self._messages.popleft()
            sent += 1
        return sent

    def clear(self) -> int:
        """Drop every queued message. Returns how many were dropped."""
        dropped = len(self._messages)
        self._messages.clear()
        return dropped

    def peek_all(self) -> list[OutboundMessage]:
        """Snapshot of queued messages, oldest first."""
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)
