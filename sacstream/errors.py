"""
SAC Stream Exceptions

Only configuration mistakes and programming errors are raised to the
caller. Transport failures travel through the session's "error" event
as TransportError instances and are never raised out of start()/send().
"""

from typing import Any


class StreamError(Exception):
    """Base exception for the stream client."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(StreamError):
    """Raised when a policy or config value is invalid."""
    pass


class TransportError(StreamError):
    """A physical connection failed to open or dropped abnormally.

    Attributes:
        code: WebSocket close code or HTTP status, when one is known.
    """

    def __init__(self, message: str, code: int | None = None,
                 details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.code = code


class SendNotSupportedError(StreamError):
    """Raised by send() on a receive-only session (streaming HTTP)."""
    pass
