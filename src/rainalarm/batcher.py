"""
Grid batching for polling cycles.

Stations that fall into the same forecast grid cell share every upstream
value, so a cycle fetches per cell rather than per station. Cells are
fetched in small concurrent batches with a pause in between to stay clear of
the provider's rate limits.
"""

import asyncio
import logging
import sqlite3
import time
from collections import Counter, defaultdict
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from .broadcast import Broadcaster
from .cache import EngineContext
from .config import AlarmConfig
from .evaluator import AlarmEvaluator
from .exceptions import RainAlarmError
from .kma.grid import GridCell
from .models import AlarmEvent, CycleReport, Station
from .sources import DataSourceGateway
from .storage import RainfallStore
from .utils import Clock, chunked, utc_now

logger = logging.getLogger(__name__)


def group_by_cell(stations: Sequence[Station]) -> Dict[GridCell, List[Station]]:
    """Group stations by grid cell, keeping first-seen cell order."""
    groups: Dict[GridCell, List[Station]] = {}
    for station in stations:
        groups.setdefault(station.cell, []).append(station)
    return groups


class GridBatcher:
    """Runs one polling cycle over a set of stations."""

    def __init__(
        self,
        gateway: DataSourceGateway,
        evaluator: AlarmEvaluator,
        store: RainfallStore,
        broadcaster: Broadcaster,
        context: EngineContext,
        config: AlarmConfig,
        clock: Optional[Clock] = None,
    ):
        self.gateway = gateway
        self.evaluator = evaluator
        self.store = store
        self.broadcaster = broadcaster
        self.context = context
        self.config = config
        self._clock = clock or utc_now

    async def _fetch_cell(self, cell: GridCell) -> Optional[float]:
        return await self.gateway.fetch_nowcast(cell)

    async def process_stations(self, stations: Sequence[Station], label: str) -> CycleReport:
        """
        Evaluate every station once.

        Args:
            stations: Stations to evaluate
            label: Name of the cycle for logs and the report

        Returns:
            CycleReport summarizing calls, failures and raised alarms
        """
        started = time.monotonic()
        report = CycleReport(label=label, stations=len(stations))
        logger.info(f"[{label}] Processing {len(stations)} stations")

        self.context.cycle.clear()
        await self.gateway.refresh_aws_snapshot()

        realtime_before = self.gateway.realtime_calls
        groups = group_by_cell(stations)
        report.unique_cells = len(groups)
        logger.info(
            f"[{label}] Grids: {report.unique_cells} "
            f"({report.savings_ratio * 100:.0f}% API saved)"
        )

        batches = chunked(list(groups), self.config.batch_size)
        for index, batch in enumerate(batches):
            if index > 0 and self.config.batch_pause > 0:
                await asyncio.sleep(self.config.batch_pause)

            results = await asyncio.gather(
                *(self._fetch_cell(cell) for cell in batch), return_exceptions=True
            )
            for cell, result in zip(batch, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    report.failed_cells += 1
                    logger.error(f"[{label}] Grid ({cell}) error: {result}")
                    result = None
                # Without a nowcast the stations still resolve through AWS or 0
                await self._evaluate_cell(cell, groups[cell], result, report)

        report.realtime_calls = self.gateway.realtime_calls - realtime_before
        self._emit_regional_counts(report.alarms)
        self._prune(label)

        report.elapsed_seconds = time.monotonic() - started
        logger.info(
            f"[{label}] Done in {report.elapsed_seconds:.1f}s. "
            f"API: {report.realtime_calls}+{report.forecast_calls}. "
            f"Alarms: {len(report.alarms)}"
        )
        return report

    async def _evaluate_cell(
        self,
        cell: GridCell,
        stations: List[Station],
        realtime: Optional[float],
        report: CycleReport,
    ) -> None:
        for station in stations:
            try:
                result = await self.evaluator.evaluate(
                    station, preloaded_realtime=realtime, grid_x=cell.nx, grid_y=cell.ny
                )
            except (RainAlarmError, sqlite3.Error) as e:
                report.station_errors += 1
                logger.error(f"[{report.label}] Station {station.stn_id} error: {e}")
                continue

            if result.forecast_called:
                report.forecast_calls += 1
            if result.alarm:
                event = AlarmEvent(
                    station_id=station.id,
                    stn_id=station.stn_id,
                    region_id=station.metro_id,
                    district_id=station.district_id,
                    emd_code=station.emd_code,
                    emd_name=station.emd_name,
                    realtime_15min=result.realtime_15min,
                    forecast_hourly=result.forecast_hourly,
                    total=result.total if result.total is not None else result.forecast_hourly,
                    timestamp=self._clock(),
                )
                report.alarms.append(event)
                self.broadcaster.emit_alarm(event)

        # Baseline moves only after every station of the cell used the old one
        if realtime is not None:
            self.context.baselines.update(cell, realtime)

    def _emit_regional_counts(self, alarms: List[AlarmEvent]) -> None:
        by_region: Dict[int, Counter] = defaultdict(Counter)
        for alarm in alarms:
            if alarm.region_id is None or alarm.district_id is None:
                continue
            by_region[alarm.region_id][alarm.district_id] += 1
        for region_id, counts in sorted(by_region.items()):
            self.broadcaster.emit_regional_counts(region_id, dict(counts))

    def _prune(self, label: str) -> None:
        cutoff = self._clock() - timedelta(seconds=self.config.reading_retention)
        try:
            self.store.prune(cutoff)
        except sqlite3.Error as e:
            logger.error(f"[{label}] Cleanup error: {e}")
