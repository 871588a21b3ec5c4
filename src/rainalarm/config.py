"""
Configuration for the rainfall alarm engine.

Values come from environment variables, optionally seeded from a ``.env``
file. Intervals are in seconds, thresholds in millimetres.
"""

import os
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigurationError

T = TypeVar("T")

ALARM_RULES = ("forecast", "combined")

# Keys left at the template placeholder ("여기에 키 입력") count as unset
_PLACEHOLDER_PREFIX = "여기에"


@dataclass
class AlarmConfig:
    """Settings shared by the gateway, evaluator, batcher and scheduler."""

    api_key: Optional[str] = None
    apihub_key: Optional[str] = None
    mock_mode: bool = False
    daily_limit: int = 10000
    request_timeout: float = 15.0
    apihub_timeout: float = 30.0

    realtime_threshold: float = 20.0
    forecast_threshold: float = 55.0
    combined_threshold: float = 55.0
    alarm_rule: str = "forecast"

    batch_size: int = 5
    batch_pause: float = 0.5

    alert_active_interval: float = 5 * 60
    alert_idle_interval: float = 30 * 60
    fast_poll_interval: float = 5 * 60
    slow_poll_interval: float = 30 * 60
    initial_alert_delay: float = 5.0
    initial_slow_delay: float = 15.0

    reading_retention: float = 60 * 60
    freshness_window: float = 30 * 60

    database_path: str = "rainfall.db"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.alarm_rule not in ALARM_RULES:
            raise ConfigurationError(
                f"Unknown alarm rule '{self.alarm_rule}'. Choose one of {', '.join(ALARM_RULES)}"
            )
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.daily_limit < 0:
            raise ConfigurationError("daily_limit must be non-negative")
        if self.alert_active_interval > self.alert_idle_interval:
            raise ConfigurationError(
                "alert_active_interval must not exceed alert_idle_interval"
            )

    @property
    def has_apihub(self) -> bool:
        return _is_configured(self.apihub_key)


def _is_configured(key: Optional[str]) -> bool:
    return bool(key) and not str(key).startswith(_PLACEHOLDER_PREFIX)


def _env(name: str, cast: Callable[[str], T], default: T) -> T:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e


def _flag(raw: str) -> bool:
    return raw.lower() in ("true", "1", "yes", "on")


def _key(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if _is_configured(value) else None


def load_config(env_file: Optional[str] = None) -> AlarmConfig:
    """
    Build an AlarmConfig from the environment.

    Args:
        env_file: Optional path to a .env file. When omitted, a ``.env`` in the
                  working directory is used if present. Variables already set
                  in the environment take precedence.

    Returns:
        AlarmConfig populated from environment variables

    Raises:
        ConfigurationError: If a variable holds an invalid value
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))
    defaults = AlarmConfig()

    return AlarmConfig(
        api_key=_key("KMA_API_KEY"),
        apihub_key=_key("KMA_APIHUB_KEY"),
        mock_mode=_env("MOCK_MODE", _flag, defaults.mock_mode),
        daily_limit=_env("KMA_DAILY_LIMIT", int, defaults.daily_limit),
        realtime_threshold=_env("REALTIME_THRESHOLD", float, defaults.realtime_threshold),
        forecast_threshold=_env("FORECAST_THRESHOLD", float, defaults.forecast_threshold),
        combined_threshold=_env("COMBINED_THRESHOLD", float, defaults.combined_threshold),
        alarm_rule=_env("ALARM_RULE", str.lower, defaults.alarm_rule),
        batch_size=_env("BATCH_SIZE", int, defaults.batch_size),
        batch_pause=_env("BATCH_PAUSE", float, defaults.batch_pause),
        alert_active_interval=_env(
            "ALERT_ACTIVE_INTERVAL", float, defaults.alert_active_interval
        ),
        alert_idle_interval=_env("ALERT_IDLE_INTERVAL", float, defaults.alert_idle_interval),
        fast_poll_interval=_env("FAST_POLL_INTERVAL", float, defaults.fast_poll_interval),
        slow_poll_interval=_env("SLOW_POLL_INTERVAL", float, defaults.slow_poll_interval),
        database_path=_env("RAINALARM_DB_PATH", str, defaults.database_path),
        log_level=_env("LOG_LEVEL", str.upper, defaults.log_level),
    )
