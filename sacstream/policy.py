"""
SAC Stream Reconnect Policy

Decides whether, and after how long, a session re-opens its transport
after an unexpected close.

    delay(attempt) = min(base_delay * backoff_multiplier ** (attempt - 1), max_delay)

attempt is 1-based: the first reconnect after a drop is attempt 1. With
max_attempts set, attempt max_attempts + 1 is refused and the session
gives up. max_attempts=None retries forever.

Usage:
    from sacstream.policy import ReconnectPolicy, RetryAfter

    policy = ReconnectPolicy(max_attempts=5, base_delay=1.0,
                             backoff_multiplier=2.0, max_delay=30.0)
    decision = policy.on_disconnect(3)
    if isinstance(decision, RetryAfter):
        print(decision.delay)   # 4.0
"""

from dataclasses import dataclass
from typing import Any

from sacstream.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryAfter:
    """Reconnect after `delay` seconds."""
    delay: float


@dataclass(frozen=True)
class GiveUp:
    """Stop reconnecting; the session becomes CLOSED."""
    attempts: int


# ---------------------------------------------------------------------------
# ReconnectPolicy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReconnectPolicy:
    """Backoff and attempt ceiling for one session.

    Attributes:
        max_attempts:       Reconnects allowed between successful opens.
                            None means unlimited.
        base_delay:         Seconds before the first reconnect.
        backoff_multiplier: Growth factor per attempt (1.0 = fixed delay).
        max_delay:          Upper bound on any single delay. None = no cap.
    """
    max_attempts: int | None = None
    base_delay: float = 2.0
    backoff_multiplier: float = 1.0
    max_delay: float | None = None

    def __post_init__(self):
        if self.max_attempts is not None and self.max_attempts < 0:
            raise ConfigurationError("max_attempts must be non-negative or None.")
        if self.base_delay < 0:
            raise ConfigurationError("base_delay must be non-negative.")
        if self.backoff_multiplier < 1:
            raise ConfigurationError("backoff_multiplier must be >= 1.")
        if self.max_delay is not None and self.max_delay < self.base_delay:
            raise ConfigurationError("max_delay must be >= base_delay.")

    @property
    def unlimited(self) -> bool:
        return self.max_attempts is None

    def delay_for(self, attempt: int) -> float:
        """Delay before reconnect number `attempt` (1-based)."""
        delay = self.base_delay * (self.backoff_multiplier ** max(attempt - 1, 0))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def on_disconnect(self, attempt: int) -> RetryAfter | GiveUp:
        """Decide what to do before reconnect number `attempt`."""
        if self.max_attempts is not None and attempt > self.max_attempts:
            return GiveUp(attempts=attempt - 1)
        return RetryAfter(delay=self.delay_for(attempt))

    # -------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------

    @classmethod
    def fixed(cls, delay: float, max_attempts: int | None = None) -> "ReconnectPolicy":
        """Same delay every time, optionally capped in attempts."""
        return cls(max_attempts=max_attempts, base_delay=delay,
                   backoff_multiplier=1.0, max_delay=None)

    @classmethod
    def from_config(cls, section: Any) -> "ReconnectPolicy":
        """Build a policy from a config section (ConfigSection or dict).

        TOML has no null, so max_attempts = 0 means unlimited and
        max_delay = 0 means uncapped.
        """
        data = section.to_dict() if hasattr(section, "to_dict") else dict(section)
        try:
            max_attempts = int(data.get("max_attempts", 0)) or None
            base_delay = float(data.get("base_delay", 2.0))
            multiplier = float(data.get("backoff_multiplier", 1.0))
            max_delay = float(data.get("max_delay", 0)) or None
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid reconnect settings: {e}", data)
        return cls(max_attempts=max_attempts, base_delay=base_delay,
                   backoff_multiplier=multiplier, max_delay=max_delay)


# Default for sessions built without a policy: recover silently forever.
# The session channel ceiling (5 x 3 s) lives in the session_channel config.
WATCHER_POLICY = ReconnectPolicy.fixed(2.0)
