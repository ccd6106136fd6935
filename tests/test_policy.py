"""Tests for ReconnectPolicy decisions and construction."""

import pytest

from sacstream.config import ConfigSection, StreamConfig
from sacstream.errors import ConfigurationError
from sacstream.policy import (
    WATCHER_POLICY,
    GiveUp,
    ReconnectPolicy,
    RetryAfter,
)


def test_fixed_policy_returns_same_delay():
    policy = ReconnectPolicy.fixed(3.0)
    assert [policy.on_disconnect(n) for n in (1, 2, 50)] == [RetryAfter(3.0)] * 3
    assert policy.unlimited


def test_backoff_grows_by_multiplier_and_caps():
    policy = ReconnectPolicy(base_delay=0.5, backoff_multiplier=3.0, max_delay=10.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [0.5, 1.5, 4.5, 10.0, 10.0]


def test_uncapped_backoff_keeps_growing():
    policy = ReconnectPolicy(base_delay=1.0, backoff_multiplier=2.0)
    assert policy.delay_for(11) == 1024.0


def test_ceiling_allows_exactly_max_attempts():
    policy = ReconnectPolicy.fixed(1.0, max_attempts=3)
    assert isinstance(policy.on_disconnect(3), RetryAfter)
    assert policy.on_disconnect(4) == GiveUp(attempts=3)


def test_zero_attempts_gives_up_immediately():
    assert ReconnectPolicy(max_attempts=0).on_disconnect(1) == GiveUp(attempts=0)


@pytest.mark.parametrize("kwargs", [
    {"max_attempts": -1},
    {"base_delay": -0.1},
    {"backoff_multiplier": 0.5},
    {"base_delay": 5.0, "max_delay": 1.0},
])
def test_invalid_settings_raise(kwargs):
    with pytest.raises(ConfigurationError):
        ReconnectPolicy(**kwargs)


def test_from_config_treats_zero_as_unlimited():
    section = ConfigSection({"max_attempts": 0, "base_delay": 2.0,
                             "backoff_multiplier": 1.0, "max_delay": 0})
    policy = ReconnectPolicy.from_config(section)
    assert policy.max_attempts is None
    assert policy.max_delay is None
    assert policy.base_delay == 2.0


def test_from_config_accepts_plain_dict():
    policy = ReconnectPolicy.from_config({"max_attempts": 5, "base_delay": "3"})
    assert policy == ReconnectPolicy.fixed(3.0, max_attempts=5)


def test_from_config_rejects_garbage():
    with pytest.raises(ConfigurationError):
        ReconnectPolicy.from_config({"base_delay": "soon"})


def test_builtin_policies(tmp_path):
    channel = ReconnectPolicy.from_config(StreamConfig(tmp_path / "absent.toml").session_channel)
    assert channel == ReconnectPolicy.fixed(3.0, max_attempts=5)
    assert WATCHER_POLICY.unlimited
    assert WATCHER_POLICY.delay_for(1) == 2.0
