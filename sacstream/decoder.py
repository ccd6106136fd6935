"""
SAC Stream Frame Decoders

Turn one raw transport frame into one event, or None when the frame is
malformed. Decoders never raise: a single corrupt frame from the server
must not take the subscription down.

Also holds SSERecordBuffer, which cuts a streaming HTTP body into
"data:" records for the HTTP transport.

Usage:
    from sacstream.decoder import JsonFrameDecoder
    from sacstream.events import SkillSyncEvent

    decode = JsonFrameDecoder(model=SkillSyncEvent)
    event = decode('{"type": "skill_sync", ...}')   # SkillSyncEvent or None
"""

import json
import logging
from typing import Any


logger = logging.getLogger("sacstream.decoder")


# ---------------------------------------------------------------------------
# JSON frames
# ---------------------------------------------------------------------------

class JsonFrameDecoder:
    """Decode a JSON object frame, optionally into a model.

    Args:
        model: Class with a from_dict(dict) constructor. When None the
               decoded dict itself is the event.
    """

    def __init__(self, model: Any = None):
        self.model = model

    def __call__(self, raw: str | bytes) -> Any | None:
        try:
            data = json.loads(raw)
        except (ValueError, TypeError, RecursionError) as e:
            # ValueError covers JSONDecodeError and UnicodeDecodeError
            logger.debug("Skipping malformed frame: %s", e)
            return None

        if not isinstance(data, dict):
            logger.debug("Skipping non-object frame (%s)", type(data).__name__)
            return None

        if self.model is None:
            return data

        try:
            return self.model.from_dict(data)
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            logger.debug("Skipping frame rejected by %s: %s", self.model.__name__, e)
            return None


# ---------------------------------------------------------------------------
# Text frames
# ---------------------------------------------------------------------------

class TextFrameDecoder:
    """Pass text frames through unchanged; decode binary frames as UTF-8."""

    def __call__(self, raw: str | bytes) -> str | None:
        if isinstance(raw, str):
            return raw
        try:
            return bytes(raw).decode("utf-8")
        except (UnicodeDecodeError, TypeError) as e:
            logger.debug("Skipping undecodable frame: %s", e)
            return None


# ---------------------------------------------------------------------------
# SSE record splitting
# ---------------------------------------------------------------------------

class SSERecordBuffer:
    """Accumulates body chunks and yields completed "data:" payloads.

    Records end at a blank line. Only "data" fields are kept; several data
    lines in one record are joined with a newline. Comment lines (":"
    keep-alives) and other fields are dropped. An unfinished trailing
    record stays buffered until a later chunk completes it.
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> list[str]:
        """Add a chunk and return every payload it completed, in order."""
        # Normalise over the whole buffer so a CRLF split across chunks still joins
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")
        payloads = []
        while True:
            end = self._buffer.find("\n\n")
            if end < 0:
                break
            record = self._buffer[:end]
            self._buffer = self._buffer[end + 2:]
            payload = self._parse_record(record)
            if payload is not None:
                payloads.append(payload)
        return payloads

    @property
    def pending(self) -> str:
        """Text of the unfinished record, if any."""
        return self._buffer

    @staticmethod
    def _parse_record(record: str) -> str | None:
        data_lines = []
        for line in record.split("\n"):
            if not line or line.startswith(":"):
                continue
            name, sep, value = line.partition(":")
            if name != "data":
                continue
            if not sep:
                value = ""
            elif value.startswith(" "):
                value = value[1:]
            data_lines.append(value)
        if not data_lines:
            return None
        return "\n".join(data_lines)
