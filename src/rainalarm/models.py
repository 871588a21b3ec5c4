"""
Data models for the rainfall alarm engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .kma.grid import GridCell, to_grid
from .kma.models import RainAlert


@dataclass(frozen=True)
class Station:
    """A rain gauge station and the administrative units it belongs to."""

    id: int
    stn_id: str
    name: str
    lat: float
    lon: float
    emd_code: Optional[str] = None
    emd_name: Optional[str] = None
    district_id: Optional[int] = None
    metro_id: Optional[int] = None  # region id used for alert scoping

    @property
    def cell(self) -> GridCell:
        return to_grid(self.lat, self.lon)


@dataclass(frozen=True)
class Reading:
    """One evaluation outcome for one station."""

    station_id: int
    realtime_15min: float
    forecast_hourly: float
    timestamp: datetime


@dataclass(frozen=True)
class AlarmEvent:
    """A raised alarm. Broadcast to subscribers, not stored."""

    station_id: int
    stn_id: str
    region_id: Optional[int]
    district_id: Optional[int]
    emd_code: Optional[str]
    emd_name: Optional[str]
    realtime_15min: float
    forecast_hourly: float
    total: float
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stationId": self.station_id,
            "stnId": self.stn_id,
            "metroId": self.region_id,
            "districtId": self.district_id,
            "emdCode": self.emd_code,
            "emdName": self.emd_name,
            "realtime15min": self.realtime_15min,
            "forecastHourly": self.forecast_hourly,
            "total": self.total,
            "timestamp": self.timestamp.isoformat(),
        }


class AlertLevel(str, Enum):
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class RegionalAlertState:
    """
    Regional heavy-rain alert state.

    Replaced as a whole on every check, so readers always see a consistent
    value.
    """

    level: AlertLevel = AlertLevel.IDLE
    affected_region_ids: Tuple[int, ...] = ()
    active_alerts: Tuple[RainAlert, ...] = ()
    last_checked_at: Optional[datetime] = None
    consecutive_errors: int = 0
    last_error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.level is AlertLevel.ACTIVE

    @property
    def is_erroring(self) -> bool:
        return self.consecutive_errors > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "affectedMetroIds": list(self.affected_region_ids),
            "activeAlerts": [
                {"type": a.hazard, "level": a.level, "regions": list(a.regions), "raw": a.raw}
                for a in self.active_alerts
            ],
            "lastChecked": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "consecutiveErrors": self.consecutive_errors,
            "lastError": self.last_error,
        }


@dataclass(frozen=True)
class AlertCheckResult:
    """Outcome of one alert state check."""

    changed: bool
    state: RegionalAlertState
    error: bool


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one station."""

    realtime_15min: float
    forecast_hourly: float
    alarm: bool
    forecast_called: bool = False
    realtime_source: str = "none"
    total: Optional[float] = None


@dataclass
class CycleReport:
    """Summary of one polling cycle."""

    label: str
    stations: int = 0
    unique_cells: int = 0
    realtime_calls: int = 0
    forecast_calls: int = 0
    failed_cells: int = 0
    station_errors: int = 0
    alarms: List[AlarmEvent] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def savings_ratio(self) -> float:
        """Share of per-station calls saved by grid deduplication."""
        if not self.stations:
            return 0.0
        return 1 - self.unique_cells / self.stations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "stations": self.stations,
            "uniqueCells": self.unique_cells,
            "savingsRatio": round(self.savings_ratio, 3),
            "realtimeCalls": self.realtime_calls,
            "forecastCalls": self.forecast_calls,
            "failedCells": self.failed_cells,
            "stationErrors": self.station_errors,
            "alarms": [alarm.to_dict() for alarm in self.alarms],
            "elapsedSeconds": round(self.elapsed_seconds, 1),
        }
