"""Tests for TOML loading, env overrides and reload diffs."""

import logging

import pytest

from sacstream.config import StreamConfig, get_config, reset_config
from sacstream.logs import setup_logging


def write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_uses_defaults(tmp_path):
    config = StreamConfig(tmp_path / "absent.toml")
    assert config.endpoints.api_url == "http://localhost:8080/api"
    assert config.session_channel.max_attempts == 5
    assert config.session_channel.base_delay == 3.0
    assert config.skill_sync.max_attempts == 0
    assert config.transport.open_timeout == 10.0


def test_toml_values_merge_over_defaults(tmp_path):
    path = write(tmp_path / "settings.toml", """
[endpoints]
api_url = "https://sac.example.com/api"

[skill_sync]
base_delay = 5.0
""")
    config = StreamConfig(path)
    assert config.endpoints.api_url == "https://sac.example.com/api"
    assert config.endpoints.session_ws_url == "ws://localhost:8081"
    assert config.skill_sync.base_delay == 5.0
    assert config.skill_sync.backoff_multiplier == 1.0


def test_broken_toml_falls_back_to_defaults(tmp_path, caplog):
    path = write(tmp_path / "settings.toml", "[endpoints\napi_url = ")
    with caplog.at_level(logging.WARNING, logger="sacstream.config"):
        config = StreamConfig(path)
    assert config.endpoints.api_url == "http://localhost:8080/api"
    assert "fallback defaults" in caplog.text


def test_env_overrides_win(tmp_path, monkeypatch):
    path = write(tmp_path / "settings.toml", '[auth]\ntoken = "from-file"\n')
    monkeypatch.setenv("SAC_TOKEN", "from-env")
    monkeypatch.setenv("SAC_SESSION_MAX_ATTEMPTS", "2")
    monkeypatch.setenv("SAC_WATCH_RECONNECT_DELAY", "0.5")
    config = StreamConfig(path)
    assert config.auth.token == "from-env"
    assert config.session_channel.max_attempts == 2
    assert config.skill_sync.base_delay == 0.5


def test_invalid_env_override_is_ignored(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("SAC_OPEN_TIMEOUT", "soon")
    with caplog.at_level(logging.WARNING, logger="sacstream.config"):
        config = StreamConfig(tmp_path / "absent.toml")
    assert config.transport.open_timeout == 10.0
    assert "SAC_OPEN_TIMEOUT" in caplog.text


def test_reload_reports_changed_values(tmp_path):
    path = write(tmp_path / "settings.toml", "[skill_sync]\nbase_delay = 2.0\n")
    config = StreamConfig(path)
    assert config.reload() == {}

    write(path, "[skill_sync]\nbase_delay = 5.0\n")
    assert config.reload() == {"skill_sync.base_delay": {"old": 2.0, "new": 5.0}}
    assert config.skill_sync.base_delay == 5.0


def test_to_dict_masks_token(tmp_path, monkeypatch):
    monkeypatch.setenv("SAC_TOKEN", "jwt-value")
    config = StreamConfig(tmp_path / "absent.toml")
    assert config.to_dict()["auth"]["token"] == "***"
    assert config.auth.token == "jwt-value"


def test_unknown_section_raises_attribute_error(tmp_path):
    config = StreamConfig(tmp_path / "absent.toml")
    with pytest.raises(AttributeError):
        config.nonexistent
    with pytest.raises(AttributeError):
        config.endpoints.nonexistent


def test_get_config_is_shared_until_reset(tmp_path, monkeypatch):
    path = write(tmp_path / "settings.toml", '[endpoints]\napi_url = "http://one/api"\n')
    monkeypatch.setenv("SAC_CONFIG", str(path))
    first = get_config()
    assert get_config() is first
    assert first.path == path
    assert first.endpoints.api_url == "http://one/api"

    reset_config()
    assert get_config() is not first


def test_setup_logging_uses_configured_level(monkeypatch):
    package_logger = logging.getLogger("sacstream")
    monkeypatch.setenv("SAC_LOG_LEVEL", "DEBUG")
    try:
        setup_logging()
        assert package_logger.level == logging.DEBUG
        setup_logging("warning")
        assert package_logger.level == logging.WARNING
    finally:
        package_logger.setLevel(logging.NOTSET)
