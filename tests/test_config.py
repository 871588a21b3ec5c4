"""
Tests for configuration loading.
"""

import pytest

from rainalarm.config import AlarmConfig, load_config
from rainalarm.exceptions import ConfigurationError

ENV_VARS = [
    "KMA_API_KEY",
    "KMA_APIHUB_KEY",
    "MOCK_MODE",
    "KMA_DAILY_LIMIT",
    "REALTIME_THRESHOLD",
    "FORECAST_THRESHOLD",
    "COMBINED_THRESHOLD",
    "ALARM_RULE",
    "BATCH_SIZE",
    "BATCH_PAUSE",
    "ALERT_ACTIVE_INTERVAL",
    "ALERT_IDLE_INTERVAL",
    "FAST_POLL_INTERVAL",
    "SLOW_POLL_INTERVAL",
    "RAINALARM_DB_PATH",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # setenv first so values loaded from env files are undone on teardown
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    # Keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)


def test_defaults():
    config = load_config()
    assert config.api_key is None
    assert config.daily_limit == 10000
    assert config.realtime_threshold == 20.0
    assert config.forecast_threshold == 55.0
    assert config.alarm_rule == "forecast"
    assert config.batch_size == 5
    assert config.fast_poll_interval == 300
    assert config.slow_poll_interval == 1800
    assert not config.has_apihub


def test_from_environment(monkeypatch):
    monkeypatch.setenv("KMA_API_KEY", "portal-key")
    monkeypatch.setenv("KMA_APIHUB_KEY", "hub-key")
    monkeypatch.setenv("MOCK_MODE", "true")
    monkeypatch.setenv("KMA_DAILY_LIMIT", "500")
    monkeypatch.setenv("ALARM_RULE", "Combined")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = load_config()

    assert config.api_key == "portal-key"
    assert config.has_apihub
    assert config.mock_mode
    assert config.daily_limit == 500
    assert config.alarm_rule == "combined"
    assert config.log_level == "DEBUG"


def test_placeholder_keys_are_unset(monkeypatch):
    monkeypatch.setenv("KMA_API_KEY", "여기에 키 입력")
    monkeypatch.setenv("KMA_APIHUB_KEY", "여기에 키 입력")

    config = load_config()

    assert config.api_key is None
    assert not config.has_apihub


def test_env_file(tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("KMA_API_KEY=from-file\nBATCH_SIZE=3\n", encoding="utf-8")

    config = load_config(str(env_file))

    assert config.api_key == "from-file"
    assert config.batch_size == 3


def test_environment_overrides_env_file(monkeypatch, tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("BATCH_SIZE=3\n", encoding="utf-8")
    monkeypatch.setenv("BATCH_SIZE", "7")

    assert load_config(str(env_file)).batch_size == 7


def test_invalid_number(monkeypatch):
    monkeypatch.setenv("KMA_DAILY_LIMIT", "lots")
    with pytest.raises(ConfigurationError, match="KMA_DAILY_LIMIT"):
        load_config()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"alarm_rule": "median"},
        {"batch_size": 0},
        {"daily_limit": -1},
        {"alert_active_interval": 3600, "alert_idle_interval": 1800},
    ],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ConfigurationError):
        AlarmConfig(**kwargs)
