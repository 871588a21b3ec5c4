"""
Engine assembly.

:class:`RainfallAlarmEngine` wires the client, caches, gateway, evaluator,
batcher, alert monitor and scheduler of one engine instance together.
"""

import logging
import random
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .alert_monitor import AlertStateMonitor
from .batcher import GridBatcher
from .broadcast import Broadcaster, LoggingBroadcaster
from .cache import EngineContext
from .config import AlarmConfig
from .evaluator import AlarmEvaluator, AlarmRule
from .kma.client import KMAClient
from .kma.quota import DailyQuota, QuotaUsage
from .models import AlertCheckResult, CycleReport, Station
from .scheduler import TwoTierScheduler
from .sources import DataSourceGateway
from .storage import RainfallStore
from .utils import Clock, utc_now

logger = logging.getLogger(__name__)


class RainfallAlarmEngine:
    """
    One independent alarm engine.

    Args:
        config: Engine settings
        store: Station directory and record storage; opened from
               ``config.database_path`` when omitted and closed with the engine
        client: KMA client; created from the config when omitted
        broadcaster: Event sink, logs events when omitted
        rule: Alarm rule overriding ``config.alarm_rule``
        clock: Time source, UTC now by default
        rng: Random source for mock mode
        sleep: Sleep function used by the scheduler driver

    Example:
        >>> async with RainfallAlarmEngine(load_config()) as engine:
        ...     report = await engine.poll()
    """

    def __init__(
        self,
        config: AlarmConfig,
        store: Optional[RainfallStore] = None,
        client: Optional[KMAClient] = None,
        broadcaster: Optional[Broadcaster] = None,
        rule: Optional[AlarmRule] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.config = config
        self._clock = clock or utc_now
        self._owns_store = store is None
        self.store = store or RainfallStore(config.database_path)
        self.client = client or KMAClient(
            api_key=config.api_key,
            apihub_key=config.apihub_key if config.has_apihub else None,
            timeout=config.request_timeout,
            apihub_timeout=config.apihub_timeout,
            quota=DailyQuota(config.daily_limit, clock=self._clock),
        )
        self.broadcaster = broadcaster or LoggingBroadcaster()
        self.context = EngineContext()

        self.gateway = DataSourceGateway(self.client, self.context, config, self._clock, rng)
        self.evaluator = AlarmEvaluator(
            self.gateway, self.store, self.context, config, rule=rule, clock=self._clock
        )
        self.batcher = GridBatcher(
            self.gateway,
            self.evaluator,
            self.store,
            self.broadcaster,
            self.context,
            config,
            clock=self._clock,
        )
        self.monitor = AlertStateMonitor(self.gateway, self.context, clock=self._clock)
        self.scheduler = TwoTierScheduler(
            self.monitor,
            self.batcher,
            self.store,
            self.broadcaster,
            self.context,
            config,
            clock=self._clock,
            sleep=sleep,
        )

    async def close(self) -> None:
        await self.client.close()
        if self._owns_store:
            self.store.close()

    async def __aenter__(self) -> "RainfallAlarmEngine":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def usage(self) -> QuotaUsage:
        return self.gateway.usage()

    async def check_alerts(self) -> AlertCheckResult:
        """Run one alert state check."""
        return await self.monitor.check_and_update()

    async def poll(self, stations: Optional[Sequence[Station]] = None) -> CycleReport:
        """
        Run one polling cycle outside the scheduler.

        Args:
            stations: Stations to evaluate, every station when omitted
        """
        targets: List[Station] = (
            list(stations) if stations is not None else self.store.all_stations()
        )
        async with self.context.poll_lock:
            return await self.batcher.process_stations(targets, "Manual")

    async def run(self) -> None:
        """Run the scheduler until it is stopped."""
        if self.config.mock_mode:
            logger.info("MOCK mode: upstream data is synthetic")
        await self.scheduler.run_forever()

    def stop(self) -> None:
        self.scheduler.stop()
