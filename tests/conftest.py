"""Shared fixtures: a manual clock scheduler and a scriptable transport."""

import os
import sys

import pytest

root = os.path.dirname(os.path.abspath(__file__))
proj = os.path.abspath(os.path.join(root, ".."))
if proj not in sys.path:
    sys.path.insert(0, proj)

from sacstream import config as config_module  # noqa: E402


class FakeTimer:
    def __init__(self, scheduler, when, callback):
        self._scheduler = scheduler
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Timers only fire when the test advances the clock."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay, callback):
        timer = FakeTimer(self, self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def time(self):
        return self.now

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in order."""
        target = self.now + seconds
        fired = 0
        while True:
            due = sorted((t for t in self.pending if t.when <= target), key=lambda t: t.when)
            if not due:
                break
            timer = due[0]
            self.timers.remove(timer)
            self.now = timer.when
            timer.callback()
            fired += 1
        self.now = target
        return fired

    def fire_next(self) -> bool:
        pending = sorted(self.pending, key=lambda t: t.when)
        if not pending:
            return False
        return self.advance(pending[0].when - self.now) > 0


class FakeHandle:
    """One scripted connection. The test drives its callbacks."""

    def __init__(self, endpoint, callbacks):
        self.endpoint = endpoint
        self.callbacks = callbacks
        self.sent: list = []
        self.accept = True
        self.accept_limit: int | None = None
        self.closed = False

    def send(self, payload) -> bool:
        if not self.accept or self.closed:
            return False
        if self.accept_limit is not None and len(self.sent) >= self.accept_limit:
            return False
        self.sent.append(payload)
        return True

    def close(self):
        self.closed = True

    # Server-side actions
    def open(self):
        self.callbacks.on_open()

    def frame(self, raw):
        self.callbacks.on_frame(raw)

    def drop(self, code=1006):
        self.callbacks.on_close(code)

    def fail(self, exc=None):
        from sacstream.errors import TransportError
        self.callbacks.on_error(exc or TransportError("connection refused"))


class FakeOpener:
    """Opener that records every handle it creates."""

    def __init__(self):
        self.handles: list[FakeHandle] = []

    def __call__(self, endpoint, callbacks):
        handle = FakeHandle(endpoint, callbacks)
        self.handles.append(handle)
        return handle

    @property
    def latest(self) -> FakeHandle:
        return self.handles[-1]

    @property
    def opens(self) -> int:
        return len(self.handles)


class Recorder:
    """Collects (event, args) tuples from session handlers."""

    def __init__(self, session, events=("open", "message", "close", "error",
                                        "reconnecting", "max_attempts_reached")):
        self.calls: list[tuple] = []
        for name in events:
            session.on(name, self._make(name))

    def _make(self, name):
        def handler(*args):
            self.calls.append((name, *args))
        return handler

    def of(self, name) -> list[tuple]:
        return [c[1:] for c in self.calls if c[0] == name]


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def opener():
    return FakeOpener()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep every test away from the real settings file and SAC_* env vars."""
    for name in list(os.environ):
        if name.startswith("SAC_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SAC_CONFIG", str(tmp_path / "missing.toml"))
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture
def record():
    """record(session) attaches a Recorder to every lifecycle event."""
    return Recorder
