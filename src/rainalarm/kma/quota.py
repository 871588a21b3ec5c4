"""
Daily call budget for the KMA data portal.

The portal counts calls per calendar day in Korea Standard Time, so the
counter rolls over at KST midnight regardless of the host timezone.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..utils import Clock, to_kst, utc_now
from .exceptions import QuotaExceededError

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 10000


@dataclass(frozen=True)
class QuotaUsage:
    """Snapshot of the daily call counter."""

    date: str
    calls: int
    limit: int
    remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "calls": self.calls,
            "limit": self.limit,
            "remaining": self.remaining,
        }


class DailyQuota:
    """
    Per-day call counter keyed to the provider's local (KST) date.

    Every external call must go through :meth:`acquire`, which fails once the
    limit has been reached instead of letting the call through.
    """

    def __init__(self, limit: int = DEFAULT_DAILY_LIMIT, clock: Optional[Clock] = None):
        if limit < 0:
            raise ValueError("limit must be non-negative")
        self.limit = limit
        self._clock = clock or utc_now
        self._date = ""
        self._calls = 0

    def _today(self) -> str:
        return to_kst(self._clock()).strftime("%Y-%m-%d")

    def _roll(self) -> str:
        today = self._today()
        if today != self._date:
            if self._date:
                logger.info(
                    f"KMA quota rollover {self._date} -> {today} ({self._calls} calls)"
                )
            self._date = today
            self._calls = 0
        return today

    def acquire(self, operation: str = "") -> None:
        """
        Count one call against today's budget.

        Raises:
            QuotaExceededError: If today's budget is already used up
        """
        self._roll()
        if self._calls >= self.limit:
            logger.error(
                f"Daily limit reached ({self._calls}/{self.limit}). Skipping {operation}"
            )
            raise QuotaExceededError(self.limit, self._calls)

        self._calls += 1
        if self._calls % 100 == 0:
            logger.info(
                f"Daily usage: {self._calls}/{self.limit} "
                f"({self._calls / self.limit * 100:.1f}%)"
            )

    def usage(self) -> QuotaUsage:
        """Return today's usage without consuming a call."""
        today = self._today()
        calls = self._calls if today == self._date else 0
        return QuotaUsage(
            date=today,
            calls=calls,
            limit=self.limit,
            remaining=max(0, self.limit - calls),
        )
