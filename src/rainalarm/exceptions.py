"""
Exceptions for rainalarm.
"""


class RainAlarmError(Exception):
    """Base exception for rainalarm errors."""

    pass


class ConfigurationError(RainAlarmError):
    """Invalid or missing configuration value."""

    pass
