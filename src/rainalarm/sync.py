"""
Synchronous wrapper functions for rainalarm.

This module provides blocking versions of the one-shot engine operations for
callers that cannot use async/await, such as the command line. Each call
builds an engine, runs the operation on a fresh event loop and closes the
engine again.

Usage:
    # Instead of this async code:
    async with RainfallAlarmEngine(config) as engine:
        result = await engine.check_alerts()

    # Use this sync code:
    from rainalarm.sync import check_alerts_sync
    result = check_alerts_sync(config)
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .config import AlarmConfig, load_config
from .engine import RainfallAlarmEngine
from .models import AlertCheckResult, CycleReport

R = TypeVar("R")


class AsyncSyncBridge:
    """Runs async engine operations synchronously."""

    @staticmethod
    def run_async(
        async_fn: Callable[..., Awaitable[R]],
        args: tuple = (),
        kwargs: Optional[dict] = None,
    ) -> R:
        """Run an async function synchronously.

        Args:
            async_fn: Async function to run
            args: Positional arguments for the function
            kwargs: Keyword arguments for the function

        Returns:
            Result of running the async function

        Raises:
            RuntimeError: If called from within an existing event loop
        """
        if kwargs is None:
            kwargs = {}

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            raise RuntimeError(
                "Cannot use sync version from within an existing asyncio event loop. "
                "Use the async version instead."
            )

        return asyncio.run(async_fn(*args, **kwargs))

    @staticmethod
    def with_engine(
        operation: Callable[[RainfallAlarmEngine], Awaitable[R]],
        config: Optional[AlarmConfig] = None,
        **engine_kwargs: Any,
    ) -> R:
        """Build an engine, run ``operation`` on it and close the engine."""

        async def _call_and_cleanup() -> R:
            engine = RainfallAlarmEngine(config or load_config(), **engine_kwargs)
            try:
                return await operation(engine)
            finally:
                await engine.close()

        return AsyncSyncBridge.run_async(_call_and_cleanup)


def check_alerts_sync(config: Optional[AlarmConfig] = None, **engine_kwargs: Any) -> AlertCheckResult:
    """Synchronous version of RainfallAlarmEngine.check_alerts.

    Args:
        config: Engine settings, loaded from the environment when omitted
        **engine_kwargs: Extra RainfallAlarmEngine arguments

    Returns:
        AlertCheckResult of one alert state check
    """
    return AsyncSyncBridge.with_engine(
        lambda engine: engine.check_alerts(), config, **engine_kwargs
    )


def poll_sync(config: Optional[AlarmConfig] = None, **engine_kwargs: Any) -> CycleReport:
    """Synchronous version of RainfallAlarmEngine.poll over every station.

    Args:
        config: Engine settings, loaded from the environment when omitted
        **engine_kwargs: Extra RainfallAlarmEngine arguments

    Returns:
        CycleReport of the cycle
    """
    return AsyncSyncBridge.with_engine(lambda engine: engine.poll(), config, **engine_kwargs)


def run_sync(config: Optional[AlarmConfig] = None, **engine_kwargs: Any) -> None:
    """Run the scheduler until interrupted."""
    AsyncSyncBridge.with_engine(lambda engine: engine.run(), config, **engine_kwargs)
