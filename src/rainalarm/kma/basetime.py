"""
Issuance time arithmetic for KMA products.

Every product is published on its own cadence and becomes available some
minutes after its nominal issuance time. These helpers pick the most recent
issuance that is already available at ``now``. All results are KST strings
in the formats the APIs expect.
"""

from datetime import datetime, timedelta
from typing import Tuple

from ..utils import to_kst


def _floor_minutes(moment: datetime, step: int) -> datetime:
    return moment.replace(minute=(moment.minute // step) * step, second=0, microsecond=0)


def nowcast_base(now: datetime) -> Tuple[str, str]:
    """
    Base date/time for the ultra-short nowcast (getUltraSrtNcst).

    Issued on the hour, available about 40 minutes later.

    Returns:
        Tuple of (base_date 'YYYYMMDD', base_time 'HH00')
    """
    kst = to_kst(now)
    if kst.minute < 40:
        kst -= timedelta(hours=1)
    return kst.strftime("%Y%m%d"), f"{kst.hour:02d}00"


def forecast_base(now: datetime) -> Tuple[str, str]:
    """
    Base date/time for the ultra-short forecast (getUltraSrtFcst).

    Issued at half past every hour, available about 45 minutes past.

    Returns:
        Tuple of (base_date 'YYYYMMDD', base_time 'HH30')
    """
    kst = to_kst(now)
    if kst.minute < 45:
        kst -= timedelta(hours=1)
    return kst.strftime("%Y%m%d"), f"{kst.hour:02d}30"


def aws_snapshot_time(now: datetime) -> str:
    """Latest AWS 10-minute observation time ('YYYYMMDDHHMI'), 5 minute lag."""
    kst = _floor_minutes(to_kst(now) - timedelta(minutes=5), 10)
    return kst.strftime("%Y%m%d%H%M")


def vsrt_issue_time(now: datetime) -> str:
    """Latest radar nowcast grid issuance ('YYYYMMDDHHMI'), 10 minute lag."""
    kst = _floor_minutes(to_kst(now) - timedelta(minutes=10), 10)
    return kst.strftime("%Y%m%d%H%M")


def vsrt_effective_time(now: datetime) -> str:
    """Effective hour of the radar nowcast covering the next 60 minutes ('YYYYMMDDHH')."""
    return (to_kst(now) + timedelta(hours=1)).strftime("%Y%m%d%H")


def bulletin_date(now: datetime) -> str:
    """Today's date in KST ('YYYYMMDD') for the warning bulletin list."""
    return to_kst(now).strftime("%Y%m%d")
