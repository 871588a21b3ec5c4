"""
Internal utility functions for rainalarm.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")

# Korea Standard Time has no daylight saving, a fixed offset is exact.
KST = timezone(timedelta(hours=9), name="KST")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_kst(moment: datetime) -> datetime:
    """
    Convert a datetime to KST.

    Naive datetimes are assumed to be UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(KST)


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """
    Split a sequence into consecutive lists of at most ``size`` items.

    Example:
        >>> chunked([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError("size must be a positive integer")
    return [list(items[i : (i + size)]) for i in range(0, len(items), size)]


def round1(value: float) -> float:
    """Round a rainfall amount to 0.1 mm."""
    return round(float(value), 1)
