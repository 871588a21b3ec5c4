"""
Data source gateway.

Binds the KMA client to the engine's per-cycle cache, its clock and its
configuration, and exposes the typed values the evaluator and the alert
monitor need. Mock mode replaces every upstream product with synthetic data
so the engine can run without API keys.
"""

import logging
import random
from typing import List, Optional

from .cache import EngineContext
from .config import AlarmConfig
from .kma.basetime import (
    aws_snapshot_time,
    bulletin_date,
    forecast_base,
    nowcast_base,
    vsrt_effective_time,
    vsrt_issue_time,
)
from .kma.client import KMAClient
from .kma.exceptions import KMAError
from .kma.grid import GridCell
from .kma.models import AWSSnapshot, WarningBulletin
from .kma.quota import QuotaUsage
from .models import Station
from .utils import Clock, round1, to_kst, utc_now

logger = logging.getLogger(__name__)

MOCK_ALERT_REGIONS = (
    ("서울특별시", "경기도남부"),
    ("부산광역시", "경상남도"),
    ("제주특별자치도",),
    ("강원도영동", "강원도영서"),
)
MOCK_ALERT_LEVELS = ("주의보", "경보")


class DataSourceGateway:
    """
    Quota-guarded access to rainfall products.

    Realtime nowcasts are cached per cycle inside the engine context, the
    national AWS snapshot and radar grid are fetched at most once per cycle.
    Forecast resolution prefers the radar nowcast grid and falls back to the
    ultra-short forecast when the APIHUB is unconfigured or unreachable.
    """

    def __init__(
        self,
        client: KMAClient,
        context: EngineContext,
        config: AlarmConfig,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.context = context
        self.config = config
        self._clock = clock or utc_now
        self._rng = rng or random.Random()

        self.realtime_calls = 0
        self.forecast_calls = 0
        self.aws_calls = 0

    @property
    def mock_mode(self) -> bool:
        return self.config.mock_mode

    def usage(self) -> QuotaUsage:
        """Return the KMA daily call usage."""
        return self.client.usage()

    # AWS observations

    async def refresh_aws_snapshot(self) -> Optional[AWSSnapshot]:
        """
        Load the national AWS snapshot into the cycle cache.

        Skipped in mock mode and when no APIHUB key is configured. A failed
        fetch leaves the cache empty, so realtime values fall back to the
        nowcast.
        """
        cycle = self.context.cycle
        if self.mock_mode or not self.client.has_apihub:
            cycle.aws = None
            return None

        tm = aws_snapshot_time(self._clock())
        self.aws_calls += 1
        try:
            cycle.aws = await self.client.get_aws_snapshot(tm)
        except KMAError as e:
            logger.warning(f"AWS snapshot {tm} unavailable, using nowcast deltas: {e}")
            cycle.aws = None
        return cycle.aws

    def aws_realtime(self, station: Station) -> Optional[float]:
        """15-minute rainfall for a station from the cycle's AWS snapshot."""
        snapshot = self.context.cycle.aws
        if snapshot is None:
            return None
        return snapshot.lookup(station.stn_id, station.lat, station.lon)

    # Grid nowcast

    async def fetch_nowcast(self, cell: GridCell) -> Optional[float]:
        """
        Rolling one-hour rainfall accumulation for a grid cell.

        The first call for a cell in a cycle goes to the provider; later calls
        are served from the cycle cache. A cell whose call failed is not
        retried in the same cycle and gives None.

        Returns:
            Accumulation in mm (0 when no precipitation is reported), or None
            when no value is available

        Raises:
            KMAError: If the provider call fails
        """
        if self.mock_mode:
            return None

        cycle = self.context.cycle
        if cell in cycle.realtime:
            return cycle.realtime[cell]
        if cell in cycle.realtime_failed:
            return None

        base_date, base_time = nowcast_base(self._clock())
        self.realtime_calls += 1
        try:
            value = await self.client.get_ultra_srt_ncst(cell, base_date, base_time)
        except KMAError:
            cycle.realtime_failed.add(cell)
            raise
        cache = cycle.realtime
        amount = round1(value.value) if value is not None else None
        cache[cell] = amount
        return amount

    # Forecast

    async def fetch_forecast(self, cell: GridCell) -> float:
        """
        Hourly rainfall forecast for a grid cell.

        Raises:
            KMAError: If the fallback forecast call fails as well
        """
        if self.mock_mode:
            return self.mock_forecast()

        self.forecast_calls += 1
        cycle = self.context.cycle
        if self.client.has_apihub and not cycle.vsrt_failed:
            try:
                return await self._vsrt_forecast(cell)
            except KMAError as e:
                # Remaining cells of the cycle go straight to the fallback
                cycle.vsrt_failed = True
                logger.error(f"VSRT grid error: {e}, falling back to getUltraSrtFcst")

        base_date, base_time = forecast_base(self._clock())
        value = await self.client.get_ultra_srt_fcst(cell, base_date, base_time)
        return round1(value.value) if value is not None else 0.0

    async def _vsrt_forecast(self, cell: GridCell) -> float:
        cycle = self.context.cycle
        now = self._clock()
        key = (vsrt_issue_time(now), vsrt_effective_time(now))

        if cycle.vsrt_key != key:
            cycle.vsrt_grid = await self.client.get_vsrt_grid(*key)
            cycle.vsrt_key = key

        value = cycle.vsrt_grid.get(cell)
        if value is None:
            logger.warning(f"VSRT ({cell}) not found in grid")
            return 0.0
        return round1(value.value)

    # Warning bulletins

    async def fetch_bulletins(self) -> List[WarningBulletin]:
        """
        Today's warning bulletins from every regional office.

        Raises:
            KMAError: If the bulletin list cannot be fetched
        """
        if self.mock_mode:
            bulletins = self.mock_bulletins()
            logger.info(f"MOCK mode: {len(bulletins)} bulletin(s)")
            return bulletins

        today = bulletin_date(self._clock())
        return await self.client.get_warning_list(today, today)

    # Synthetic data

    def mock_realtime(self) -> float:
        """Synthetic 15-minute rainfall, mostly light with occasional bursts."""
        roll = self._rng.random()
        if roll < 0.7:
            return round1(self._rng.random() * 5)
        if roll < 0.9:
            return round1(10 + self._rng.random() * 15)
        return round1(20 + self._rng.random() * 15)

    def mock_forecast(self) -> float:
        return round1(self._rng.random() * 40)

    def mock_bulletins(self) -> List[WarningBulletin]:
        if self._rng.random() < 0.5:
            return []
        regions = self._rng.choice(MOCK_ALERT_REGIONS)
        level = self._rng.choice(MOCK_ALERT_LEVELS)
        issued_at = int(to_kst(self._clock()).strftime("%Y%m%d%H%M"))
        return [
            WarningBulletin(
                authority="national",
                issued_at=issued_at,
                text=f"호우{level} : {', '.join(regions)}",
            )
        ]
