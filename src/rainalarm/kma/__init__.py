"""
Korea Meteorological Administration (KMA) data access.

This module wraps the KMA products used for rainfall alarms:

- Ultra-short nowcast (getUltraSrtNcst): rolling one-hour accumulation per
  5 km grid cell
- Ultra-short forecast (getUltraSrtFcst): hourly rainfall forecast per cell
- Radar nowcast grid (nph-dfs_vsrt_grd): national hourly forecast grid,
  refreshed every 10 minutes
- AWS observations (nph-aws1_10m): national 15-minute gauge rainfall
- Warning bulletins (getWthrWrnList): heavy-rain watches and warnings

API Documentation:
- Data portal: https://www.data.go.kr/data/15084084/openapi.do
- APIHUB: https://apihub.kma.go.kr/
"""

from .client import KMAClient
from .exceptions import KMAConnectionError, KMAError, KMAQueryError, QuotaExceededError
from .grid import GridCell, to_grid
from .models import (
    AWSObservation,
    AWSSnapshot,
    PrecipitationValue,
    RainAlert,
    WarningBulletin,
)
from .quota import DailyQuota, QuotaUsage

__all__ = [
    "KMAClient",
    "DailyQuota",
    "QuotaUsage",
    "GridCell",
    "to_grid",
    "KMAError",
    "KMAConnectionError",
    "KMAQueryError",
    "QuotaExceededError",
    "AWSObservation",
    "AWSSnapshot",
    "PrecipitationValue",
    "RainAlert",
    "WarningBulletin",
]
