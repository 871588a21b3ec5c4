"""
Caches shared by the polling engine.

``CycleCache`` lives for exactly one polling cycle and guarantees that each
grid cell is resolved at most once per cycle. ``GridBaselineCache`` survives
across cycles and holds the previous nowcast accumulation per cell, used to
turn a rolling one-hour total into a short-interval amount.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Tuple

from .kma.grid import GridCell
from .kma.models import AWSSnapshot, PrecipitationValue
from .models import RegionalAlertState


@dataclass
class CycleCache:
    """Values fetched during the current polling cycle."""

    forecast: Dict[GridCell, float] = field(default_factory=dict)
    realtime: Dict[GridCell, Optional[float]] = field(default_factory=dict)
    # Cells whose nowcast call failed this cycle
    realtime_failed: Set[GridCell] = field(default_factory=set)
    aws: Optional[AWSSnapshot] = None
    vsrt_key: Optional[Tuple[str, str]] = None
    vsrt_grid: Dict[GridCell, PrecipitationValue] = field(default_factory=dict)
    vsrt_failed: bool = False

    def clear(self) -> None:
        self.forecast.clear()
        self.realtime.clear()
        self.realtime_failed.clear()
        self.aws = None
        self.vsrt_key = None
        self.vsrt_grid = {}
        self.vsrt_failed = False


class GridBaselineCache:
    """Last observed nowcast accumulation per grid cell."""

    def __init__(self) -> None:
        self._values: Dict[GridCell, float] = {}

    def get(self, cell: GridCell) -> Optional[float]:
        return self._values.get(cell)

    def update(self, cell: GridCell, value: float) -> None:
        self._values[cell] = value

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, cell: object) -> bool:
        return cell in self._values


@dataclass
class EngineContext:
    """
    Mutable state owned by one engine instance.

    Components receive the context instead of sharing module globals, so
    several engines (or tests) can run side by side.
    """

    cycle: CycleCache = field(default_factory=CycleCache)
    baselines: GridBaselineCache = field(default_factory=GridBaselineCache)
    poll_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    alert_state: RegionalAlertState = field(default_factory=RegionalAlertState)
