"""
Exceptions for KMA (Korea Meteorological Administration) operations.
"""

from ..exceptions import RainAlarmError


class KMAError(RainAlarmError):
    """Base exception for KMA-related errors."""

    pass


class KMAConnectionError(KMAError):
    """Error connecting to a KMA API."""

    pass


class KMAQueryError(KMAError):
    """Error in KMA query or response parsing."""

    pass


class QuotaExceededError(KMAError):
    """The provider's daily call budget is exhausted."""

    def __init__(self, limit: int, calls: int):
        self.limit = limit
        self.calls = calls
        super().__init__(f"KMA API daily limit exceeded ({calls}/{limit})")
