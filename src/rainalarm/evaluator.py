"""
Alarm threshold evaluation.

A station raises an alarm in two steps. Its recent 15-minute rainfall must
exceed the realtime threshold; only then is the hourly forecast for its grid
cell looked up and checked by the configured :class:`AlarmRule`. Stations
below the realtime threshold never cost a forecast call.
"""

import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from .cache import EngineContext
from .config import AlarmConfig
from .exceptions import RainAlarmError
from .kma.grid import GridCell
from .models import EvaluationResult, Reading, Station
from .sources import DataSourceGateway
from .storage import RainfallStore
from .utils import Clock, round1, utc_now

logger = logging.getLogger(__name__)

Resolved = Tuple[float, bool]


class AlarmRule:
    """Second alarm condition, checked once realtime rainfall is high."""

    name = ""

    def is_alarm(self, realtime: float, forecast: float) -> bool:
        raise NotImplementedError


class ForecastThresholdRule(AlarmRule):
    """Alarm when the hourly forecast alone reaches the threshold."""

    name = "forecast"

    def __init__(self, threshold: float = 55.0):
        self.threshold = threshold

    def is_alarm(self, realtime: float, forecast: float) -> bool:
        return forecast >= self.threshold


class CombinedTotalRule(AlarmRule):
    """Alarm when realtime plus forecast rainfall exceeds the threshold."""

    name = "combined"

    def __init__(self, threshold: float = 55.0):
        self.threshold = threshold

    def is_alarm(self, realtime: float, forecast: float) -> bool:
        return round1(realtime + forecast) > self.threshold


def build_rule(config: AlarmConfig) -> AlarmRule:
    """Create the alarm rule selected by ``config.alarm_rule``."""
    if config.alarm_rule == CombinedTotalRule.name:
        return CombinedTotalRule(config.combined_threshold)
    return ForecastThresholdRule(config.forecast_threshold)


class AlarmEvaluator:
    """
    Evaluates stations against the alarm thresholds.

    Realtime rainfall is resolved by trying, in order:

    1. ``aws``: the station's value in the national AWS 15-minute snapshot
    2. ``nowcast_delta``: growth of the grid cell's rolling one-hour nowcast
       since the previous cycle
    3. ``mock``: synthetic rainfall, in mock mode only

    Every evaluation stores one reading and one forecast record.
    """

    def __init__(
        self,
        gateway: DataSourceGateway,
        store: RainfallStore,
        context: EngineContext,
        config: AlarmConfig,
        rule: Optional[AlarmRule] = None,
        clock: Optional[Clock] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.context = context
        self.config = config
        self.rule = rule or build_rule(config)
        self._clock = clock or utc_now

    def _resolvers(
        self, station: Station, cell: GridCell, preloaded: Optional[float]
    ) -> List[Tuple[str, Callable[[], Awaitable[Resolved]]]]:
        async def aws() -> Resolved:
            value = self.gateway.aws_realtime(station)
            return (value, True) if value is not None else (0.0, False)

        async def nowcast_delta() -> Resolved:
            current = preloaded
            if current is None:
                current = await self.gateway.fetch_nowcast(cell)
            if current is None:
                return 0.0, False
            baseline = self.context.baselines.get(cell)
            if baseline is None:
                return 0.0, True
            return round1(max(0.0, current - baseline)), True

        async def mock() -> Resolved:
            return self.gateway.mock_realtime(), True

        resolvers = [("aws", aws), ("nowcast_delta", nowcast_delta)]
        if self.config.mock_mode:
            resolvers.append(("mock", mock))
        return resolvers

    async def resolve_realtime(
        self, station: Station, cell: GridCell, preloaded: Optional[float] = None
    ) -> Tuple[float, str]:
        """
        Resolve a station's 15-minute rainfall.

        Returns:
            Tuple of (rainfall in mm, name of the resolver that found it);
            ``(0.0, "none")`` when no resolver found a value
        """
        for name, resolver in self._resolvers(station, cell, preloaded):
            value, found = await resolver()
            if found:
                return value, name
        return 0.0, "none"

    async def resolve_forecast(self, cell: GridCell) -> Tuple[float, bool]:
        """
        Hourly forecast for a cell, resolved at most once per cycle.

        A failed lookup counts as no rain and is cached like any other value.

        Returns:
            Tuple of (forecast in mm, whether the provider was called)
        """
        cache = self.context.cycle.forecast
        if cell in cache:
            return cache[cell], False

        try:
            value = await self.gateway.fetch_forecast(cell)
        except RainAlarmError as e:
            logger.error(f"Forecast lookup failed for ({cell}): {e}")
            value = 0.0
        cache[cell] = value
        return value, True

    async def evaluate(
        self,
        station: Station,
        preloaded_realtime: Optional[float] = None,
        grid_x: Optional[int] = None,
        grid_y: Optional[int] = None,
    ) -> EvaluationResult:
        """
        Evaluate one station.

        Args:
            station: Station to evaluate
            preloaded_realtime: The cell's nowcast accumulation when the caller
                already fetched it
            grid_x: Grid column of the station, computed when omitted
            grid_y: Grid row of the station, computed when omitted

        Returns:
            EvaluationResult with the values used and the alarm decision

        Raises:
            KMAError: If the realtime nowcast cannot be fetched
            sqlite3.Error: If the records cannot be stored
        """
        if grid_x is not None and grid_y is not None:
            cell = GridCell(grid_x, grid_y)
        else:
            cell = station.cell

        realtime, source = await self.resolve_realtime(station, cell, preloaded_realtime)
        now = self._clock()

        if realtime <= self.config.realtime_threshold:
            self.store.insert_reading(Reading(station.id, realtime, 0.0, now))
            # Stored as 0 so a stale forecast is not shown once the rain stops
            self.store.insert_forecast(station.id, now, 0.0)
            return EvaluationResult(
                realtime_15min=realtime,
                forecast_hourly=0.0,
                alarm=False,
                forecast_called=False,
                realtime_source=source,
            )

        forecast, called = await self.resolve_forecast(cell)
        self.store.insert_reading(Reading(station.id, realtime, forecast, now))
        self.store.insert_forecast(station.id, now, forecast)

        alarm = self.rule.is_alarm(realtime, forecast)
        if alarm:
            logger.info(
                f"Alarm at station {station.stn_id} ({cell}): "
                f"15min={realtime}mm forecast={forecast}mm [{self.rule.name}]"
            )
        return EvaluationResult(
            realtime_15min=realtime,
            forecast_hourly=forecast,
            alarm=alarm,
            forecast_called=called,
            realtime_source=source,
            total=round1(realtime + forecast),
        )
