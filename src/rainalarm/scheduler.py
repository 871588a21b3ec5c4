"""
Two-tier polling scheduler.

Three timers drive the engine:

- ``alert_check``: refreshes the regional alert state, every 5 minutes while
  an alert is active and every 30 minutes otherwise, backing off on errors
- ``fast``: polls the stations of alerted regions every 5 minutes, only while
  an alert is active
- ``slow``: polls everything else every 30 minutes

Each timer holds the time it fires next (None when stopped). A driver loop
fires due timers; jobs re-arm their own timer when they finish. Polls never
overlap: a poll that fires while another one runs is skipped and re-armed at
its normal interval.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .alert_monitor import AlertStateMonitor
from .batcher import GridBatcher
from .broadcast import Broadcaster
from .cache import EngineContext
from .config import AlarmConfig
from .models import CycleReport, RegionalAlertState, Station
from .storage import RainfallStore
from .utils import Clock, utc_now

logger = logging.getLogger(__name__)

ALERT_CHECK = "alert_check"
FAST = "fast"
SLOW = "slow"

# Longest the driver sleeps, so stop() takes effect promptly
MAX_IDLE_SECONDS = 1.0


def error_backoff(consecutive_errors: int, active_interval: float, idle_interval: float) -> float:
    """
    Retry delay after failed alert checks, doubling per error.

    Example:
        >>> error_backoff(2, 300, 1800)
        600
    """
    exponent = max(consecutive_errors - 1, 0)
    return min(active_interval * 2**exponent, idle_interval)


@dataclass
class Timer:
    name: str
    next_fire_at: Optional[datetime] = None

    @property
    def armed(self) -> bool:
        return self.next_fire_at is not None

    def arm(self, at: datetime) -> None:
        self.next_fire_at = at

    def stop(self) -> None:
        self.next_fire_at = None

    def is_due(self, now: datetime) -> bool:
        return self.next_fire_at is not None and self.next_fire_at <= now


class TwoTierScheduler:
    """Alert-driven fast/slow polling over the station directory."""

    def __init__(
        self,
        monitor: AlertStateMonitor,
        batcher: GridBatcher,
        store: RainfallStore,
        broadcaster: Broadcaster,
        context: EngineContext,
        config: AlarmConfig,
        clock: Optional[Clock] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.monitor = monitor
        self.batcher = batcher
        self.store = store
        self.broadcaster = broadcaster
        self.context = context
        self.config = config
        self._clock = clock or utc_now
        self._sleep = sleep or asyncio.sleep

        self.timers: Dict[str, Timer] = {
            ALERT_CHECK: Timer(ALERT_CHECK),
            FAST: Timer(FAST),
            SLOW: Timer(SLOW),
        }
        self._jobs: Dict[str, Callable[[], Awaitable[Any]]] = {
            ALERT_CHECK: self.run_alert_check,
            FAST: self.run_fast_poll,
            SLOW: self.run_slow_poll,
        }
        self._tasks: Set["asyncio.Future[Any]"] = set()
        self._running = False

    @property
    def state(self) -> RegionalAlertState:
        return self.context.alert_state

    def _arm_in(self, name: str, seconds: float) -> None:
        self.timers[name].arm(self._clock() + timedelta(seconds=seconds))

    def start(self) -> None:
        """Arm the first alert check and the first slow poll."""
        logger.info(
            "Scheduler started - 2-tier polling "
            f"(fast: {self.config.fast_poll_interval / 60:g}min alert areas / "
            f"slow: {self.config.slow_poll_interval / 60:g}min background)"
        )
        self._arm_in(ALERT_CHECK, self.config.initial_alert_delay)
        self._arm_in(SLOW, self.config.initial_slow_delay)
        self.timers[FAST].stop()

    # Jobs

    async def run_alert_check(self) -> None:
        """Refresh the alert state and re-arm the timers it governs."""
        config = self.config
        try:
            result = await self.monitor.check_and_update()
        except Exception:
            logger.exception("Alert check error")
            self._arm_in(ALERT_CHECK, config.alert_active_interval)
            return

        state = result.state
        if result.error:
            backoff = error_backoff(
                state.consecutive_errors,
                config.alert_active_interval,
                config.alert_idle_interval,
            )
            logger.warning(
                f"Alert API error - retry in {backoff / 60:.1f}min "
                f"(attempt {state.consecutive_errors})"
            )
            self._arm_in(ALERT_CHECK, backoff)
            return

        if result.changed:
            self.broadcaster.emit_alert_state(state)

        if state.is_active:
            if result.changed:
                logger.info("IDLE->ACTIVE: starting fast poll")
                self.timers[FAST].arm(self._clock())
            self._arm_in(ALERT_CHECK, config.alert_active_interval)
        else:
            if result.changed:
                logger.info("ACTIVE->IDLE: stopping fast poll")
                self.timers[FAST].stop()
            logger.info(
                f"No rain alerts. IDLE - next check in {config.alert_idle_interval / 60:g}min"
            )
            self._arm_in(ALERT_CHECK, config.alert_idle_interval)

    def fast_scope(self) -> List[Station]:
        """Stations of the regions under an alert."""
        return self.store.stations_in_regions(self.state.affected_region_ids)

    def slow_scope(self) -> List[Station]:
        """
        Stations for the background poll.

        Everything while idle or while the alert state is uncertain, otherwise
        only the stations outside the alerted regions.
        """
        state = self.state
        if state.is_erroring or not state.is_active:
            return self.store.all_stations()
        return self.store.stations_outside_regions(state.affected_region_ids)

    async def run_fast_poll(self) -> Optional[CycleReport]:
        lock = self.context.poll_lock
        if lock.locked():
            logger.info("[Fast] Skipped - poll already running")
            if self.state.is_active:
                self._arm_in(FAST, self.config.fast_poll_interval)
            return None

        state = self.state
        if not state.is_active and not state.is_erroring:
            return None

        report = None
        async with lock:
            try:
                stations = self.fast_scope()
                if stations:
                    report = await self.batcher.process_stations(stations, "Fast")
                else:
                    logger.info("[Fast] No alert-area stations")
            except Exception:
                logger.exception("Fast poll error")

        if self.state.is_active:
            self._arm_in(FAST, self.config.fast_poll_interval)
        return report

    async def run_slow_poll(self) -> Optional[CycleReport]:
        lock = self.context.poll_lock
        if lock.locked():
            logger.info("[Slow] Skipped - poll already running, rescheduling")
            self._arm_in(SLOW, self.config.slow_poll_interval)
            return None

        report = None
        async with lock:
            try:
                stations = self.slow_scope()
                if stations:
                    report = await self.batcher.process_stations(stations, "Slow")
                else:
                    logger.info("[Slow] No non-alert stations (all covered by fast poll)")
            except Exception:
                logger.exception("Slow poll error")

        self._arm_in(SLOW, self.config.slow_poll_interval)
        return report

    # Driver

    def tick(self) -> List[str]:
        """
        Launch every due timer as a task.

        Must be called from a running event loop.

        Returns:
            Names of the timers that fired
        """
        now = self._clock()
        fired = []
        for name, timer in self.timers.items():
            if not timer.is_due(now):
                continue
            timer.stop()
            task = asyncio.ensure_future(self._jobs[name]())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            fired.append(name)
        return fired

    async def drain(self) -> None:
        """Wait for every launched job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def next_fire_at(self) -> Optional[datetime]:
        armed = [t.next_fire_at for t in self.timers.values() if t.next_fire_at is not None]
        return min(armed) if armed else None

    async def run_forever(self) -> None:
        """Start the timers and drive them until :meth:`stop` is called."""
        self.start()
        self._running = True
        try:
            while self._running:
                self.tick()
                upcoming = self.next_fire_at()
                delay = MAX_IDLE_SECONDS
                if upcoming is not None:
                    remaining = (upcoming - self._clock()).total_seconds()
                    delay = min(max(remaining, 0.0), MAX_IDLE_SECONDS)
                await self._sleep(delay)
        finally:
            await self.drain()
            logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._running = False
