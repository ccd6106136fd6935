"""
SAC Stream Scheduler

The session never touches asyncio timers directly. It asks a scheduler
for call_later() and time(), so tests can drive reconnect delays with a
fake clock instead of sleeping.
"""

import asyncio
import time
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...

    def time(self) -> float: ...


class LoopScheduler:
    """Scheduler backed by an asyncio event loop.

    Args:
        loop: Loop to schedule on. Defaults to the running loop at call time.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)

    def time(self) -> float:
        return time.monotonic()
